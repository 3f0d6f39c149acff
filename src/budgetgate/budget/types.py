"""
Request types and budget configuration.

Defines the fixed set of gated request categories, the per-type
replenishment parameters, and the derived-budget rules that combine
two pools into one.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping

from budgetgate.budget.errors import InvalidBudgetConfigError, UnknownRequestTypeError

logger = logging.getLogger(__name__)


class RequestType(str, Enum):
    """Category of gated backend operation."""

    GET = "get"
    GET_SORTED = "get_sorted"
    ON_UPDATE = "on_update"
    SET_INCREMENT = "set_increment"
    SET_INCREMENT_SORTED = "set_increment_sorted"
    UPDATE = "update"  # derived: min(get, set_increment)

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: RequestType | str) -> RequestType:
        """Coerce a string to a RequestType, raising on unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownRequestTypeError(f"Unknown request type: {value!r}") from None


_CONFIG_FIELDS = ("initial_level", "base_rate", "per_caller_rate", "max_level_factor")


@dataclass(frozen=True)
class BudgetConfig:
    """
    Replenishment parameters for one request type.

    The ceiling is not a constant: it is max_level_factor times the
    effective rate, so it grows with the number of active callers.
    """

    initial_level: float
    base_rate: float
    """Units added per second with no callers."""

    per_caller_rate: float
    """Additional units per second for each active caller."""

    max_level_factor: float
    """Ceiling expressed as a multiple of the effective rate."""

    def effective_rate(self, caller_count: int) -> float:
        return self.base_rate + caller_count * self.per_caller_rate

    def ceiling(self, caller_count: int) -> float:
        return self.max_level_factor * self.effective_rate(caller_count)

    def validate(self, request_type: RequestType | str) -> None:
        """Raise InvalidBudgetConfigError if this config cannot work."""
        for name in _CONFIG_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidBudgetConfigError(
                    f"{request_type}: {name} must be a number, got {value!r}"
                )
            if not math.isfinite(value) or value < 0:
                raise InvalidBudgetConfigError(
                    f"{request_type}: {name} must be a finite non-negative number"
                )
        # A ceiling below one unit can never satisfy an acquisition
        if self.ceiling(0) < 1:
            raise InvalidBudgetConfigError(
                f"{request_type}: ceiling {self.ceiling(0)} is below 1 "
                f"(max_level_factor={self.max_level_factor}, base_rate={self.base_rate})"
            )

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], request_type: str = "?") -> BudgetConfig:
        missing = [name for name in _CONFIG_FIELDS if name not in data]
        if missing:
            raise InvalidBudgetConfigError(
                f"{request_type}: missing {', '.join(missing)}"
            )
        return cls(**{name: data[name] for name in _CONFIG_FIELDS})


@dataclass(frozen=True)
class DerivedBudgetRule:
    """A budget computed as the minimum of two source pools."""

    target: RequestType
    sources: tuple[RequestType, RequestType]

    def validate(self, configured: Iterable[RequestType]) -> None:
        configured = set(configured)
        if self.target in configured:
            raise InvalidBudgetConfigError(
                f"{self.target}: derived budget cannot also be configured directly"
            )
        for source in self.sources:
            if source not in configured:
                raise InvalidBudgetConfigError(
                    f"{self.target}: derived from unconfigured type {source}"
                )


DEFAULT_BUDGETS: dict[RequestType, BudgetConfig] = {
    RequestType.GET: BudgetConfig(
        initial_level=100, base_rate=60, per_caller_rate=10, max_level_factor=3
    ),
    RequestType.GET_SORTED: BudgetConfig(
        initial_level=15, base_rate=5, per_caller_rate=2, max_level_factor=3
    ),
    RequestType.ON_UPDATE: BudgetConfig(
        initial_level=30, base_rate=30, per_caller_rate=5, max_level_factor=1
    ),
    RequestType.SET_INCREMENT: BudgetConfig(
        initial_level=100, base_rate=60, per_caller_rate=10, max_level_factor=3
    ),
    RequestType.SET_INCREMENT_SORTED: BudgetConfig(
        initial_level=50, base_rate=30, per_caller_rate=5, max_level_factor=3
    ),
}

DEFAULT_DERIVED_RULES: tuple[DerivedBudgetRule, ...] = (
    DerivedBudgetRule(
        target=RequestType.UPDATE,
        sources=(RequestType.GET, RequestType.SET_INCREMENT),
    ),
)


def parse_budget_configs(data: Any) -> dict[RequestType, BudgetConfig]:
    """
    Build budget configs from a JSON-like mapping.

    Args:
        data: Mapping of request type name to config fields

    Returns:
        Validated configs keyed by RequestType
    """
    if not isinstance(data, dict):
        raise InvalidBudgetConfigError(
            f"Budget config must be an object, got {type(data).__name__}"
        )

    configs: dict[RequestType, BudgetConfig] = {}
    for name, fields in data.items():
        try:
            request_type = RequestType.parse(name)
        except UnknownRequestTypeError as e:
            raise InvalidBudgetConfigError(str(e)) from e
        if not isinstance(fields, dict):
            raise InvalidBudgetConfigError(f"{name}: config must be an object")
        config = BudgetConfig.from_dict(fields, request_type=name)
        config.validate(request_type)
        configs[request_type] = config
    return configs


def load_budget_configs(path: str | Path) -> dict[RequestType, BudgetConfig]:
    """Load and validate budget configs from a JSON file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidBudgetConfigError(f"Failed to load budget config {path}: {e}") from e

    configs = parse_budget_configs(data)
    logger.info(f"Loaded {len(configs)} budget configs from {path}")
    return configs


def derived_rules_for(configs: Mapping[RequestType, BudgetConfig]) -> tuple[DerivedBudgetRule, ...]:
    """Built-in derived rules whose source pools are all configured."""
    return tuple(
        rule for rule in DEFAULT_DERIVED_RULES
        if all(source in configs for source in rule.sources)
    )
