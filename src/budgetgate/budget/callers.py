"""Active-caller tracking, the scaling signal for replenishment."""

import logging

logger = logging.getLogger(__name__)


class CallerTracker:
    """Set of caller ids currently connected to the backend."""

    def __init__(self) -> None:
        self._callers: set[str] = set()

    def join(self, caller_id: str) -> bool:
        """Register a caller. Returns False if it was already active."""
        if caller_id in self._callers:
            return False
        self._callers.add(caller_id)
        logger.info(f"Caller '{caller_id}' joined ({len(self._callers)} active)")
        return True

    def leave(self, caller_id: str) -> bool:
        """Remove a caller. Returns False if it was not active."""
        if caller_id not in self._callers:
            return False
        self._callers.discard(caller_id)
        logger.info(f"Caller '{caller_id}' left ({len(self._callers)} active)")
        return True

    def count(self) -> int:
        return len(self._callers)

    def __contains__(self, caller_id: object) -> bool:
        return caller_id in self._callers
