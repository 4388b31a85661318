"""Errors raised by the key store, the Gemini client and the workflow.

Every error carries a ``message`` that is safe to show to the user as-is.
"""
from typing import Optional


class PlantAppError(Exception):
    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EmptyKeyError(PlantAppError):
    default_message = "Please enter your Gemini API key."


class EmptyInputError(PlantAppError):
    default_message = "This field cannot be empty."


class UnsupportedFileTypeError(PlantAppError):
    default_message = "Please choose image files only."


class ExternalServiceError(PlantAppError):
    default_message = "The AI service could not be reached. Please try again."

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MissingCredentialError(PlantAppError):
    default_message = "Your API key is missing or has expired. Please enter it again."


class InvalidTransitionError(PlantAppError):
    default_message = "That action is not available at this step."
