import streamlit as st
st.set_page_config(page_title="Plant Care Expert", page_icon="🌿", layout="wide")
import html
import logging

import api_config
from api_config import DISPLAY_TZ, GEMINI_API_KEY, SESSION_TIMEOUT_MINUTES
from errors import EmptyKeyError, MissingCredentialError
from image_utils import IMAGE_SLOTS
from markdown_blocks import parse_blocks, render_html
from session_key import SessionKeyStore
from workflow import STEP_ORDER, Event, PlantWorkflow, Step

api_config.configure_logging()
logger = logging.getLogger(__name__)

STEP_LABELS = {
    Step.UPLOAD: ("Upload photos", "Provide pictures of your plant"),
    Step.CONFIRM: ("Confirm", "Confirm the plant's name"),
    Step.DIAGNOSE: ("Diagnose", "Health analysis"),
    Step.GOAL: ("Advice", "Goal-oriented care tips"),
}
UPLOADER_KEYS = [f"image_upload_{i}" for i in range(len(IMAGE_SLOTS))]
INPUT_KEYS = ["plant_name_input", "user_goal_input"] + UPLOADER_KEYS


# =======================================================
# ===== DISPLAY HELPERS =====
# =======================================================
def display_image_with_max_height(img_data_url, caption="", max_height_px=300):
    """Displays a data-URL image centered with a max height, letting width adjust."""
    img_style_str = "; ".join([
        f"max-height: {max_height_px}px",
        "width: auto",
        "display: block",
        "margin-left: auto",
        "margin-right: auto",
        "border-radius: 8px",
    ])
    caption = html.escape(caption) if caption else ""
    html_string = f"""
    <div style="display: flex; justify-content: center; flex-direction: column; align-items: center; margin-bottom: 10px;">
        <img src="{img_data_url}" style="{img_style_str};" alt="{caption or 'Plant image'}">
        {f'<p style="text-align: center; font-size: 0.9em; color: grey; margin-top: 5px;">{caption}</p>' if caption else ""}
    </div>
    """
    st.markdown(html_string, unsafe_allow_html=True)


def display_markdown_result(text):
    st.markdown(render_html(parse_blocks(text)), unsafe_allow_html=True)


def display_previews(workflow, max_height_px=200):
    images = workflow.state.selected_images()
    if not images:
        return
    cols = st.columns(len(images))
    for col, image in zip(cols, images):
        with col:
            display_image_with_max_height(image.preview, caption=image.filename, max_height_px=max_height_px)


def display_stepper(workflow):
    st.sidebar.subheader("Progress")
    current = workflow.state.step
    done = workflow.completed_steps()
    for number, step in enumerate(STEP_ORDER, start=1):
        name, description = STEP_LABELS[step]
        if step in done:
            st.sidebar.markdown(f"✅ ~~{number:02d}~~ **{name}**")
        elif step == current:
            st.sidebar.markdown(f"▶️ **{number:02d} {name}**  \n{description}")
        else:
            st.sidebar.markdown(f"⬜ {number:02d} {name}")


def clear_inputs():
    # Widgets are recreated empty on the next run
    for key in INPUT_KEYS:
        st.session_state.pop(key, None)


# =======================================================
# ===== STEP VIEWS =====
# =======================================================
def api_key_view(workflow, key_store):
    st.header("Welcome!")
    st.write("Please enter your Gemini API key to get started.")
    raw_key = st.text_input(
        "Gemini API Key", value=GEMINI_API_KEY or "", type="password",
        key="api_key_input", placeholder="Enter your API key",
    )
    if st.button("Start", key="api_key_submit", type="primary"):
        try:
            key_store.submit(raw_key)
        except EmptyKeyError as e:
            st.error(e.message)
            return
        workflow.dispatch(Event.KEY_ACCEPTED)
        st.rerun()
    st.caption(
        f"Your key is only kept for this session and is removed after {SESSION_TIMEOUT_MINUTES} minutes."
    )


def _on_image_change(workflow, index):
    uploaded = st.session_state.get(UPLOADER_KEYS[index])
    if uploaded is None:
        workflow.remove_image(index)
    else:
        workflow.select_image(index, uploaded.name, uploaded.type, uploaded.getvalue())


def upload_view(workflow, credential):
    st.subheader("Step 1: Upload photos")
    st.write(f"Provide up to {len(IMAGE_SLOTS)} photos so the AI can give the most accurate diagnosis.")
    cols = st.columns(len(IMAGE_SLOTS))
    for index, (label, description) in enumerate(IMAGE_SLOTS):
        with cols[index]:
            st.file_uploader(
                label, help=description, key=UPLOADER_KEYS[index],
                on_change=_on_image_change, args=(workflow, index),
            )
            image = workflow.state.images[index]
            if image is not None:
                display_image_with_max_height(image.preview, caption=image.filename)
                if st.button("🗑️ Remove", key=f"remove_image_{index}"):
                    workflow.remove_image(index)
                    st.session_state.pop(UPLOADER_KEYS[index], None)
                    st.rerun()
    if st.button("Next", key="upload_next", type="primary"):
        run_step(workflow, credential)


def confirm_view(workflow, credential):
    st.subheader("Step 2: Confirm the plant")
    display_previews(workflow, max_height_px=160)
    name = st.text_input(
        "Plant name (suggested by AI)", value=workflow.state.plant_name, key="plant_name_input",
        help="You can edit this if the name is wrong.",
    )
    workflow.set_plant_name(name)
    if st.button("✨ Diagnose health", key="confirm_next", type="primary"):
        run_step(workflow, credential)


def diagnose_view(workflow, credential):
    st.subheader(f"Step 3: Diagnosis for {workflow.state.plant_name.strip()}")
    with st.container(height=400):
        display_markdown_result(workflow.state.health_report)
    if st.button("Get goal-oriented advice", key="diagnose_next", type="primary"):
        run_step(workflow, credential)


def goal_view(workflow, credential):
    st.subheader("Step 4: In-depth advice")
    goal = st.text_area(
        "What is your care goal?", value=workflow.state.user_goal, key="user_goal_input", height=100,
        placeholder="e.g. more flowers, greener leaves, getting rid of mealybugs...",
    )
    workflow.set_user_goal(goal)
    if st.button("✨ Get advice", key="goal_next", type="primary"):
        run_step(workflow, credential)
    if workflow.state.goal_advice:
        with st.container(height=300):
            display_markdown_result(workflow.state.goal_advice)
    st.divider()
    if st.button("↩️ Start over", key="goal_reset"):
        workflow.reset(credential_present=True)
        clear_inputs()
        st.rerun()


def error_view(workflow):
    st.header("An error occurred")
    st.error(workflow.state.error)
    if st.button("Try again", key="error_recover"):
        workflow.recover()
        clear_inputs()
        st.rerun()


def run_step(workflow, credential):
    try:
        workflow.dispatch(Event.NEXT, credential=credential, progress=st.spinner)
    except MissingCredentialError:
        logger.warning("Dispatch without a credential")
        workflow.expire()
    st.rerun()


STEP_VIEWS = {
    Step.UPLOAD: upload_view,
    Step.CONFIRM: confirm_view,
    Step.DIAGNOSE: diagnose_view,
    Step.GOAL: goal_view,
}


# --- Main App Logic ---
def main():
    key_store = SessionKeyStore(st.session_state)
    credential = key_store.load()

    if "workflow" not in st.session_state:
        st.session_state.workflow = PlantWorkflow(credential_present=credential is not None)
    workflow = st.session_state.workflow

    # Expired or forgotten key sends the user back to key entry
    if credential is None and workflow.state.step != Step.API_KEY:
        workflow.expire()
        clear_inputs()
    elif credential is not None and workflow.state.step == Step.API_KEY:
        workflow.dispatch(Event.KEY_ACCEPTED)

    if workflow.state.step == Step.API_KEY:
        api_key_view(workflow, key_store)
        return

    # --- Sidebar ---
    st.sidebar.title("🌿 Plant Care Expert")
    display_stepper(workflow)
    st.sidebar.divider()
    expires = key_store.expires_at(credential).astimezone(DISPLAY_TZ)
    st.sidebar.caption(f"API key valid until {expires.strftime('%H:%M %Z')}")
    if st.sidebar.button("🔑 Forget API key", key="forget_key"):
        key_store.clear()
        workflow.expire()
        clear_inputs()
        st.rerun()
    st.sidebar.caption("Powered by Gemini")

    st.title("🌿 Plant Care Expert")
    st.caption("Your virtual assistant for a thriving garden")

    state = workflow.state
    if state.error and not state.error_is_inline:
        error_view(workflow)
        return
    if state.error:
        st.warning(state.error)

    STEP_VIEWS[state.step](workflow, credential)


# --- Run the App ---
if __name__ == "__main__":
    main()
