"""Process-wide last-known-good addon configuration."""
import logging
from threading import Lock
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


class ConfigStore:
    """
    Thread-safe shallow key/value store shared by all requests.

    Merges overwrite per key and never delete; readers get a copy so a
    request sees one consistent view for its whole lifetime.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})
        self._lock = Lock()

    def merge(self, partial: Mapping[str, Any]) -> None:
        """Overwrite the keys present in ``partial``; other keys are kept."""
        if not partial:
            return
        with self._lock:
            self._values.update(partial)
        logger.debug(f"Config store updated keys: {sorted(partial)}")

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of the current settings."""
        with self._lock:
            return dict(self._values)
