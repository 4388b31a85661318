import os
import logging
import pytz
from dotenv import load_dotenv

load_dotenv()


def _float_env(name, default):
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return float(default)


def _int_env(name, default):
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return int(default)


# Optional: prefills the key form, never used without the user submitting it
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_API_BASE = os.getenv(
    "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
).rstrip("/")
GEMINI_TIMEOUT = _float_env("GEMINI_TIMEOUT", "60")

SESSION_TIMEOUT_MINUTES = _int_env("SESSION_TIMEOUT_MINUTES", "30")
RESPONSE_LANGUAGE = os.getenv("RESPONSE_LANGUAGE", "English")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

try:
    DISPLAY_TZ = pytz.timezone(os.getenv("DISPLAY_TIMEZONE", "UTC"))
except pytz.UnknownTimeZoneError:
    logging.getLogger(__name__).warning(
        "Unknown DISPLAY_TIMEZONE %r, falling back to UTC", os.getenv("DISPLAY_TIMEZONE")
    )
    DISPLAY_TZ = pytz.utc


def configure_logging():
    """Set up root logging once for the Streamlit process."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
