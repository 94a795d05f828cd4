import time
import kopf
import logging
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)

EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

# Event reasons
EVENT_VALIDATION_FAILED = "VrgValidationFailed"
EVENT_PRIMARY_SUCCESS = "PrimarySuccess"
EVENT_SECONDARY_SUCCESS = "SecondarySuccess"
EVENT_DELETE_SUCCESS = "DeleteSuccess"
EVENT_PV_UPLOAD_FAILED = "PVUploadFailed"
EVENT_PV_RESTORE_FAILED = "PVRestoreFailed"

_Key = Tuple[str, str, str, str]


class EventReporter:
    """Post Kubernetes events, dropping repeats.

    An event identical in object uid, type, reason and message to one posted
    less than `window` seconds ago is not posted again.
    """

    def __init__(
        self,
        window: float,
        post: Callable[..., Any] = kopf.event,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window = window
        self._post = post
        self._clock = clock
        self._posted: Dict[_Key, float] = {}

    def _expire(self, now: float) -> None:
        expired = [k for k, t in self._posted.items() if now - t >= self.window]
        for k in expired:
            del self._posted[k]

    def report_once(self, body: Dict[str, Any], type: str, reason: str, message: str) -> bool:
        """Post the event unless an identical one is still in the window.

        Returns:
            True if the event was posted.
        """
        uid = (body.get("metadata") or {}).get("uid") or ""
        key = (uid, type, reason, message)
        now = self._clock()
        self._expire(now)
        if key in self._posted:
            logger.debug(f"Dropping repeated event {reason} for {uid}")
            return False
        self._posted[key] = now
        self._post(body, type=type, reason=reason, message=message)
        return True
