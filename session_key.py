import json
import time
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, MutableMapping, Optional

import pytz

from api_config import SESSION_TIMEOUT_MINUTES
from errors import EmptyKeyError

logger = logging.getLogger(__name__)

STORAGE_KEY = "gemini-api-key"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Credential:
    value: str
    created_at: int  # epoch ms

    def is_expired(self, now: int, timeout_ms: int) -> bool:
        return now - self.created_at >= timeout_ms


class SessionKeyStore:
    """Keeps the user's Gemini key in session storage for a limited time.

    ``storage`` is any mutable mapping; the app hands in ``st.session_state``.
    The entry is stored as JSON ``{"key": ..., "timestamp": <epoch ms>}`` and
    expiry is checked every time it is read.
    """

    def __init__(
        self,
        storage: MutableMapping,
        timeout_minutes: int = SESSION_TIMEOUT_MINUTES,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.storage = storage
        self.timeout_ms = timeout_minutes * 60 * 1000
        self.clock = clock or now_ms

    def submit(self, raw_key: str) -> Credential:
        key = (raw_key or "").strip()
        if not key:
            raise EmptyKeyError()
        credential = Credential(value=key, created_at=self.clock())
        self.storage[STORAGE_KEY] = json.dumps(
            {"key": credential.value, "timestamp": credential.created_at}
        )
        logger.info("API key stored for %d minutes", self.timeout_ms // 60000)
        return credential

    def load(self) -> Optional[Credential]:
        raw = self.storage.get(STORAGE_KEY)
        if not raw:
            return None
        try:
            item = json.loads(raw)
            credential = Credential(value=str(item["key"]), created_at=int(item["timestamp"]))
        except (json.JSONDecodeError, TypeError, KeyError, ValueError) as e:
            logger.error("Failed to read API key from session storage: %s", e)
            self.clear()
            return None

        if credential.is_expired(self.clock(), self.timeout_ms):
            logger.info("Stored API key expired, clearing it")
            self.clear()
            return None
        return credential

    def clear(self) -> None:
        if STORAGE_KEY in self.storage:
            del self.storage[STORAGE_KEY]

    def expires_at(self, credential: Credential) -> datetime:
        created = datetime.fromtimestamp(credential.created_at / 1000, tz=pytz.utc)
        return created + timedelta(milliseconds=self.timeout_ms)
