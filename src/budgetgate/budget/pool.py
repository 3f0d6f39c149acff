"""
Budget pools for every configured request type.

Holds fractional levels internally; callers only ever observe whole
units. Derived budgets are recomputed after every mutation so they
never exceed either source pool.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, Mapping

from budgetgate.budget.errors import (
    BudgetNotInitializedError,
    InvalidBudgetConfigError,
    UnknownRequestTypeError,
)
from budgetgate.budget.types import BudgetConfig, DerivedBudgetRule, RequestType

logger = logging.getLogger(__name__)


class BudgetPool:
    """
    Levels, rates and ceilings for a fixed set of request types.

    Not safe for concurrent use on its own; AdmissionController wraps
    every call in a single lock.
    """

    def __init__(self) -> None:
        self._configs: dict[RequestType, BudgetConfig] = {}
        self._derived: dict[RequestType, DerivedBudgetRule] = {}
        self._levels: dict[RequestType, float] = {}
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def request_types(self) -> list[RequestType]:
        """Independently replenished types, in configuration order."""
        return list(self._configs)

    @property
    def derived_types(self) -> list[RequestType]:
        return list(self._derived)

    def initialize(
        self,
        configs: Mapping[RequestType, BudgetConfig],
        derived_rules: Iterable[DerivedBudgetRule] = (),
    ) -> None:
        """
        Seed every pool at its initial level and set up derived rules.

        Args:
            configs: Replenishment parameters per request type
            derived_rules: Budgets computed as the min of two pools

        Raises:
            InvalidBudgetConfigError: If any config or rule is unusable
        """
        if not configs:
            raise InvalidBudgetConfigError("At least one budget must be configured")

        validated: dict[RequestType, BudgetConfig] = {}
        for request_type, config in configs.items():
            request_type = RequestType.parse(request_type)
            if not isinstance(config, BudgetConfig):
                raise InvalidBudgetConfigError(
                    f"{request_type}: expected BudgetConfig, got {type(config).__name__}"
                )
            config.validate(request_type)
            validated[request_type] = config

        derived: dict[RequestType, DerivedBudgetRule] = {}
        for rule in derived_rules:
            rule.validate(validated)
            derived[rule.target] = rule

        self._configs = validated
        self._derived = derived
        self._levels = {t: float(c.initial_level) for t, c in validated.items()}
        self._initialized = True
        self.recompute_derived()

        levels = ", ".join(f"{t}={self.level(t)}" for t in self._levels)
        logger.info(f"Budget pools initialized: {levels}")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise BudgetNotInitializedError("Budget pools have not been initialized")

    def config(self, request_type: RequestType) -> BudgetConfig:
        self._require_initialized()
        try:
            return self._configs[request_type]
        except KeyError:
            raise UnknownRequestTypeError(
                f"No budget configured for {request_type}"
            ) from None

    def is_known(self, request_type: RequestType) -> bool:
        return request_type in self._configs or request_type in self._derived

    def expand(self, request_types: Iterable[RequestType]) -> frozenset[RequestType]:
        """Replace derived types by the pools they are computed from."""
        expanded: set[RequestType] = set()
        for request_type in request_types:
            rule = self._derived.get(request_type)
            if rule is not None:
                expanded.update(rule.sources)
            else:
                expanded.add(request_type)
        return frozenset(expanded)

    def level(self, request_type: RequestType | str) -> int:
        """Whole units available now; 0 for an unknown type."""
        raw = self.raw_level(request_type)
        return math.floor(raw)

    def raw_level(self, request_type: RequestType | str) -> float:
        try:
            request_type = RequestType.parse(request_type)
        except UnknownRequestTypeError:
            return 0.0
        return self._levels.get(request_type, 0.0)

    def ceiling(self, request_type: RequestType, caller_count: int = 0) -> float:
        """Maximum level for a type at the given caller count."""
        rule = self._derived.get(request_type)
        if rule is not None:
            return min(self.ceiling(source, caller_count) for source in rule.sources)
        return self.config(request_type).ceiling(caller_count)

    def replenish(
        self, request_type: RequestType, elapsed_seconds: float, caller_count: int
    ) -> None:
        """
        Add elapsed_seconds worth of units to one pool, capped at its ceiling.

        Args:
            request_type: Independently replenished type
            elapsed_seconds: Time since the previous replenishment
            caller_count: Active callers, scaling both rate and ceiling
        """
        config = self.config(request_type)
        elapsed_seconds = max(0.0, elapsed_seconds)
        caller_count = max(0, caller_count)

        rate = config.effective_rate(caller_count)
        self._levels[request_type] = min(
            self._levels[request_type] + elapsed_seconds * rate,
            config.max_level_factor * rate,
        )
        self.recompute_derived()

    def replenish_all(self, elapsed_seconds: float, caller_count: int) -> None:
        for request_type in self._configs:
            self.replenish(request_type, elapsed_seconds, caller_count)

    def deduct(self, request_type: RequestType) -> None:
        """Take exactly one unit, never going below zero."""
        if not self.is_known(request_type):
            self.config(request_type)
        self.deduct_all([request_type])

    def can_satisfy(self, request_types: Iterable[RequestType]) -> bool:
        """True if every type has at least one whole unit."""
        self._require_initialized()
        return all(self._levels.get(t, 0.0) >= 1 for t in self.expand(request_types))

    def deduct_all(self, request_types: Iterable[RequestType]) -> None:
        for request_type in self.expand(request_types):
            self._levels[request_type] = max(0.0, self._levels[request_type] - 1)
        self.recompute_derived()

    def restore(self, request_types: Iterable[RequestType], caller_count: int = 0) -> None:
        """Give back one unit per type, capped at the current ceiling."""
        caller_count = max(0, caller_count)
        for request_type in self.expand(request_types):
            ceiling = self._configs[request_type].ceiling(caller_count)
            level = self._levels[request_type]
            self._levels[request_type] = max(level, min(level + 1, ceiling))
        self.recompute_derived()

    def recompute_derived(self) -> None:
        for target, rule in self._derived.items():
            self._levels[target] = min(self._levels[s] for s in rule.sources)

    def snapshot(self, caller_count: int = 0) -> dict[str, dict[str, Any]]:
        """Per-type levels and limits for diagnostics."""
        self._require_initialized()
        result: dict[str, dict[str, Any]] = {}
        for request_type in [*self._configs, *self._derived]:
            rule = self._derived.get(request_type)
            if rule is None:
                rate = self._configs[request_type].effective_rate(caller_count)
            else:
                rate = min(
                    self._configs[s].effective_rate(caller_count) for s in rule.sources
                )
            result[request_type.value] = {
                "level": self.level(request_type),
                "ceiling": self.ceiling(request_type, caller_count),
                "rate": rate,
                "derived_from": [s.value for s in rule.sources] if rule else None,
            }
        return result
