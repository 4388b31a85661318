"""Step-by-step plant diagnosis workflow.

The flow is a fixed table of transitions::

    API_KEY --KEY_ACCEPTED--> UPLOAD --NEXT--> CONFIRM --NEXT--> DIAGNOSE --NEXT--> GOAL --NEXT--> GOAL

Each row may carry a guard (raises EmptyInputError) and an action that calls
the Gemini service. The machine knows nothing about Streamlit; the UI only
reads ``state`` and calls the methods below.
"""
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import gemini_service
from errors import (
    EmptyInputError,
    ExternalServiceError,
    InvalidTransitionError,
    MissingCredentialError,
    UnsupportedFileTypeError,
)
from image_utils import MAX_IMAGES, ImageReference, load_image_reference
from session_key import Credential

logger = logging.getLogger(__name__)


class Step(str, Enum):
    API_KEY = "API_KEY"
    UPLOAD = "UPLOAD"
    CONFIRM = "CONFIRM"
    DIAGNOSE = "DIAGNOSE"
    GOAL = "GOAL"


class Event(str, Enum):
    KEY_ACCEPTED = "KEY_ACCEPTED"
    NEXT = "NEXT"


# Steps shown in the progress stepper (API_KEY is a gate, not a step)
STEP_ORDER = [Step.UPLOAD, Step.CONFIRM, Step.DIAGNOSE, Step.GOAL]


def _empty_images() -> List[Optional[ImageReference]]:
    return [None] * MAX_IMAGES


@dataclass
class WorkflowState:
    step: Step = Step.UPLOAD
    images: List[Optional[ImageReference]] = field(default_factory=_empty_images)
    plant_name: str = ""
    health_report: str = ""
    user_goal: str = ""
    goal_advice: str = ""
    loading_message: Optional[str] = None
    error: Optional[str] = None
    # Inline errors show above the current form; others replace the view
    error_is_inline: bool = False

    def selected_images(self) -> List[ImageReference]:
        return [img for img in self.images if img is not None]


# ===== Guards =====

def _require_image(state: WorkflowState) -> None:
    if not state.selected_images():
        raise EmptyInputError("Please upload at least one image.")


def _require_plant_name(state: WorkflowState) -> None:
    if not state.plant_name.strip():
        raise EmptyInputError("The plant name cannot be empty.")


def _require_goal(state: WorkflowState) -> None:
    if not state.user_goal.strip():
        raise EmptyInputError("Please describe your care goal.")


# ===== Actions =====

def _identify(service, state: WorkflowState, api_key: str) -> None:
    state.plant_name = service.identify_plant(api_key, state.selected_images())


def _analyze(service, state: WorkflowState, api_key: str) -> None:
    state.health_report = service.analyze_plant_health(
        api_key, state.selected_images(), state.plant_name.strip()
    )


def _advise(service, state: WorkflowState, api_key: str) -> None:
    state.goal_advice = service.get_goal_advice(
        api_key, state.plant_name.strip(), state.health_report, state.user_goal.strip()
    )


Guard = Callable[[WorkflowState], None]
Action = Callable[[object, WorkflowState, str], None]


@dataclass(frozen=True)
class Transition:
    source: Step
    event: Event
    target: Step
    guard: Optional[Guard] = None
    action: Optional[Action] = None
    loading_message: Optional[str] = None
    failure_message: Optional[str] = None


TRANSITIONS: Tuple[Transition, ...] = (
    Transition(Step.API_KEY, Event.KEY_ACCEPTED, Step.UPLOAD),
    Transition(
        Step.UPLOAD, Event.NEXT, Step.CONFIRM,
        guard=_require_image,
        action=_identify,
        loading_message="Identifying your plant...",
        failure_message="Could not identify the plant. Please try again with different images.",
    ),
    Transition(
        Step.CONFIRM, Event.NEXT, Step.DIAGNOSE,
        guard=_require_plant_name,
        action=_analyze,
        loading_message="Analyzing your plant's health...",
        failure_message="The health analysis failed. Please try again.",
    ),
    Transition(Step.DIAGNOSE, Event.NEXT, Step.GOAL),
    Transition(
        Step.GOAL, Event.NEXT, Step.GOAL,
        guard=_require_goal,
        action=_advise,
        loading_message="Preparing in-depth advice...",
        failure_message="Could not generate advice. Please try again.",
    ),
)

_TABLE: Dict[Tuple[Step, Event], Transition] = {(t.source, t.event): t for t in TRANSITIONS}


class PlantWorkflow:
    """Holds one user's WorkflowState and drives it through TRANSITIONS.

    ``service`` is anything exposing identify_plant, analyze_plant_health and
    get_goal_advice with the signatures of the gemini_service module.
    """

    def __init__(self, service=gemini_service, credential_present: bool = False):
        self.service = service
        self.state = WorkflowState(step=Step.UPLOAD if credential_present else Step.API_KEY)

    # --- Transitions ---

    def dispatch(
        self,
        event: Event,
        credential: Optional[Credential] = None,
        progress: Optional[Callable[[str], object]] = None,
    ) -> WorkflowState:
        state = self.state
        if state.error and not state.error_is_inline:
            raise InvalidTransitionError("Return to the upload step before continuing.")
        transition = _TABLE.get((state.step, event))
        if transition is None:
            raise InvalidTransitionError(f"No transition from {state.step.value} on {event.value}.")

        if transition.guard is not None:
            try:
                transition.guard(state)
            except EmptyInputError as e:
                self._set_error(e.message, inline=True)
                return state

        if transition.action is not None:
            if credential is None:
                raise MissingCredentialError()
            failure = self._run_action(transition, credential.value, progress)
            if failure is not None:
                self._set_error(failure, inline=False)
                return state

        state.error = None
        state.error_is_inline = False
        logger.info("Workflow %s -> %s", state.step.value, transition.target.value)
        state.step = transition.target
        return state

    def _run_action(self, transition: Transition, api_key: str, progress) -> Optional[str]:
        state = self.state
        state.error = None
        state.error_is_inline = False
        state.loading_message = transition.loading_message
        failure = None
        try:
            with (progress or nullcontext)(transition.loading_message):
                transition.action(self.service, state, api_key)
        except ExternalServiceError as e:
            logger.error("Step %s failed: %s", state.step.value, e.message)
            failure = transition.failure_message or e.message
        finally:
            state.loading_message = None
        return failure

    def _set_error(self, message: str, inline: bool) -> None:
        self.state.loading_message = None
        self.state.error = message
        self.state.error_is_inline = inline

    # --- User edits ---

    def select_image(self, index: int, filename: str, mime_type: Optional[str], data: bytes) -> bool:
        """Replace image slot ``index``. Returns False if the file was rejected."""
        if self.state.step != Step.UPLOAD:
            raise InvalidTransitionError("Images can only be changed on the upload step.")
        if not 0 <= index < MAX_IMAGES:
            raise IndexError(f"Image slot {index} out of range")
        try:
            reference = load_image_reference(filename, mime_type, data)
        except UnsupportedFileTypeError as e:
            self._set_error(e.message, inline=True)
            return False
        self.state.images[index] = reference
        self.clear_inline_error()
        return True

    def remove_image(self, index: int) -> None:
        if self.state.step != Step.UPLOAD:
            raise InvalidTransitionError("Images can only be changed on the upload step.")
        self.state.images[index] = None

    def set_plant_name(self, text: str) -> None:
        self.state.plant_name = text
        if text.strip():
            self.clear_inline_error()

    def set_user_goal(self, text: str) -> None:
        self.state.user_goal = text
        if text.strip():
            self.clear_inline_error()

    def clear_inline_error(self) -> None:
        if self.state.error_is_inline:
            self.state.error = None
            self.state.error_is_inline = False

    # --- Resets ---

    def reset(self, credential_present: bool = True) -> WorkflowState:
        self.state = WorkflowState(step=Step.UPLOAD if credential_present else Step.API_KEY)
        return self.state

    def recover(self) -> WorkflowState:
        """Leave the error view: back to upload, keeping only the images."""
        images = list(self.state.images)
        self.state = WorkflowState(step=Step.UPLOAD, images=images)
        return self.state

    def expire(self) -> WorkflowState:
        logger.info("Credential missing or expired, returning to key entry")
        return self.reset(credential_present=False)

    # --- Progress ---

    def step_index(self) -> int:
        """Position in STEP_ORDER, or -1 while waiting for a key."""
        return STEP_ORDER.index(self.state.step) if self.state.step in STEP_ORDER else -1

    def completed_steps(self) -> List[Step]:
        return STEP_ORDER[: max(self.step_index(), 0)]
