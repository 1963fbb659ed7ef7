import threading
from core.logger import logger


class RequestRegistry:
    """
    Tracks which playback requests have an availability monitor running.

    Holds only the keys (Tautulli rating keys), never the monitors. The
    registry lives for the lifetime of the process; a restart clears it.
    """

    def __init__(self):
        self._active = set()
        self._lock = threading.Lock()

    def try_acquire(self, key) -> bool:
        """Mark key as active. Returns False when a monitor already owns it."""
        key = str(key)
        with self._lock:
            if key in self._active:
                logger.info(f"Request for rating key {key} is already in progress", extra={'emoji_type': 'skip'})
                return False
            self._active.add(key)
        logger.debug(f"Registered request for rating key {key}", extra={'emoji_type': 'debug'})
        return True

    def release(self, key):
        """Idempotent; safe to call from every cleanup path."""
        key = str(key)
        with self._lock:
            self._active.discard(key)
        logger.debug(f"Released request for rating key {key}", extra={'emoji_type': 'debug'})

    def is_active(self, key) -> bool:
        with self._lock:
            return str(key) in self._active

    def __len__(self):
        with self._lock:
            return len(self._active)


# Shared instance used by the webhook handlers and the monitors they spawn
active_requests = RequestRegistry()
