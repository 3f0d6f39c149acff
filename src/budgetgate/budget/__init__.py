"""
Budget and admission-control module.

Provides replenishing per-request-type budget pools, derived budgets,
atomic multi-budget acquisition and a fair queue for callers that
must wait.
"""

from budgetgate.budget.callers import CallerTracker
from budgetgate.budget.errors import (
    BudgetError,
    BudgetExhaustedError,
    BudgetNotInitializedError,
    EmptyRequestError,
    InvalidBudgetConfigError,
    UnknownRequestTypeError,
)
from budgetgate.budget.pool import BudgetPool
from budgetgate.budget.queue import FairWaitQueue, PendingAcquisition
from budgetgate.budget.service import AdmissionController
from budgetgate.budget.types import (
    DEFAULT_BUDGETS,
    DEFAULT_DERIVED_RULES,
    BudgetConfig,
    DerivedBudgetRule,
    RequestType,
    derived_rules_for,
    load_budget_configs,
    parse_budget_configs,
)

__all__ = [
    "AdmissionController",
    "BudgetConfig",
    "BudgetError",
    "BudgetExhaustedError",
    "BudgetNotInitializedError",
    "BudgetPool",
    "CallerTracker",
    "DEFAULT_BUDGETS",
    "DEFAULT_DERIVED_RULES",
    "DerivedBudgetRule",
    "EmptyRequestError",
    "FairWaitQueue",
    "InvalidBudgetConfigError",
    "PendingAcquisition",
    "RequestType",
    "UnknownRequestTypeError",
    "derived_rules_for",
    "load_budget_configs",
    "parse_budget_configs",
]
