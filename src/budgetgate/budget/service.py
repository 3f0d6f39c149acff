"""
Admission control over a set of budget pools.

The controller is the single mutual-exclusion domain for pool levels
and the wait queue. Every public operation takes the lock for its whole
critical section; blocked callers wait on their own future with the
lock released, and only a tick ever resolves that future.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, Mapping

from budgetgate.budget.errors import (
    BudgetNotInitializedError,
    EmptyRequestError,
    UnknownRequestTypeError,
)
from budgetgate.budget.pool import BudgetPool
from budgetgate.budget.queue import FairWaitQueue, PendingAcquisition
from budgetgate.budget.types import (
    DEFAULT_BUDGETS,
    DEFAULT_DERIVED_RULES,
    BudgetConfig,
    DerivedBudgetRule,
    RequestType,
)

logger = logging.getLogger(__name__)


class AdmissionController:
    """
    Gate for operations that each consume one unit of one or more budgets.

    Create one per backend being emulated and pass it to collaborators;
    independent instances share nothing.
    """

    def __init__(self) -> None:
        self._pool = BudgetPool()
        self._queue = FairWaitQueue()
        self._lock = asyncio.Lock()
        self._tick_count = 0
        self._last_caller_count = 0

    @classmethod
    def with_defaults(cls) -> AdmissionController:
        """Controller initialized with the built-in budgets."""
        controller = cls()
        controller.initialize(DEFAULT_BUDGETS, DEFAULT_DERIVED_RULES)
        return controller

    @property
    def pool(self) -> BudgetPool:
        return self._pool

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def initialize(
        self,
        configs: Mapping[RequestType, BudgetConfig],
        derived_rules: Iterable[DerivedBudgetRule] = DEFAULT_DERIVED_RULES,
    ) -> None:
        """
        Seed all pools. Must run before any acquisition.

        Args:
            configs: Replenishment parameters per request type
            derived_rules: Budgets computed from two other pools
        """
        self._pool.initialize(configs, derived_rules)

    def level(self, request_type: RequestType | str) -> int:
        """Whole units currently available; 0 for unknown types."""
        return self._pool.level(request_type)

    def _normalize(self, request_types: Iterable[RequestType | str]) -> frozenset[RequestType]:
        if isinstance(request_types, (str, RequestType)):
            request_types = [request_types]
        normalized = frozenset(RequestType.parse(t) for t in request_types)
        if not normalized:
            raise EmptyRequestError("At least one request type is required")
        if not self._pool.initialized:
            raise BudgetNotInitializedError("Budget pools have not been initialized")
        for request_type in normalized:
            if not self._pool.is_known(request_type):
                raise UnknownRequestTypeError(
                    f"No budget configured for {request_type}"
                )
        return normalized

    def _take(self, request_types: frozenset[RequestType]) -> bool:
        if not self._pool.can_satisfy(request_types):
            return False
        self._pool.deduct_all(request_types)
        return True

    async def try_acquire_all(self, request_types: Iterable[RequestType | str]) -> bool:
        """
        Take one unit of every type, or nothing at all.

        Never waits for budget and never touches the wait queue.

        Args:
            request_types: Non-empty set of required types

        Returns:
            True if every budget was deducted
        """
        required = self._normalize(request_types)
        async with self._lock:
            return self._take(required)

    async def acquire_all_blocking(
        self,
        key: str | None,
        request_types: Iterable[RequestType | str],
    ) -> None:
        """
        Take one unit of every type, waiting in line if any is short.

        Returns immediately when budget is available. Otherwise the request
        joins the tail of the wait queue and the caller is suspended until
        a tick grants it. There is no timeout.

        Args:
            key: Label identifying the operation, used in diagnostics
            request_types: Non-empty set of required types
        """
        required = self._normalize(request_types)

        async with self._lock:
            if self._take(required):
                return
            entry = self._queue.enqueue(required, key=key)

        if key is not None:
            logger.warning(
                f"Request was queued due to lack of budget. "
                f"Try sending fewer requests. Key = {key}"
            )
        else:
            logger.warning(
                "Request was queued due to lack of budget. Try sending fewer requests."
            )

        try:
            await entry.future
        except asyncio.CancelledError:
            async with self._lock:
                if not self._queue.discard(entry) and self._was_granted(entry):
                    # Granted by a tick before this task could resume
                    self._pool.restore(entry.required_types, self._last_caller_count)
                    logger.debug(f"Returned budget of cancelled acquisition {key}")
            raise

    @staticmethod
    def _was_granted(entry: PendingAcquisition) -> bool:
        return entry.future.done() and not entry.future.cancelled()

    def _grant(self, entry: PendingAcquisition) -> bool:
        return self._take(entry.required_types)

    async def tick(self, elapsed_seconds: float, caller_count: int) -> int:
        """
        Replenish every pool, then grant waiting acquisitions oldest first.

        Args:
            elapsed_seconds: Time since the previous tick
            caller_count: Active callers scaling rates and ceilings

        Returns:
            Number of queued acquisitions granted
        """
        async with self._lock:
            self._pool.replenish_all(elapsed_seconds, caller_count)
            granted = self._queue.drain(self._grant)
            self._tick_count += 1
            self._last_caller_count = caller_count

        if granted:
            logger.debug(
                f"Tick {self._tick_count}: granted {len(granted)} queued "
                f"acquisitions, {len(self._queue)} still waiting"
            )
        return len(granted)

    def status(self) -> dict[str, Any]:
        """Levels, ceilings and queue depth for diagnostics."""
        return {
            "budgets": self._pool.snapshot(self._last_caller_count),
            "queue_depth": len(self._queue),
            "tick_count": self._tick_count,
            "caller_count": self._last_caller_count,
        }
