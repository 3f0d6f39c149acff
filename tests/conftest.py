"""Pytest configuration and fixtures."""

import pytest

from budgetgate.budget import (
    DEFAULT_DERIVED_RULES,
    AdmissionController,
    BudgetConfig,
    BudgetPool,
    RequestType,
)


@pytest.fixture
def small_configs() -> dict[RequestType, BudgetConfig]:
    """Budgets small enough to exhaust by hand."""
    return {
        # ceiling 10 at rate 2/s
        RequestType.GET: BudgetConfig(
            initial_level=5, base_rate=2, per_caller_rate=0, max_level_factor=5
        ),
        RequestType.SET_INCREMENT: BudgetConfig(
            initial_level=0, base_rate=1, per_caller_rate=1, max_level_factor=5
        ),
        RequestType.GET_SORTED: BudgetConfig(
            initial_level=0, base_rate=0.5, per_caller_rate=0, max_level_factor=4
        ),
        RequestType.ON_UPDATE: BudgetConfig(
            initial_level=1, base_rate=1, per_caller_rate=0, max_level_factor=1
        ),
    }


@pytest.fixture
def pool(small_configs) -> BudgetPool:
    """Initialized pool with the small budgets."""
    pool = BudgetPool()
    pool.initialize(small_configs, DEFAULT_DERIVED_RULES)
    return pool


@pytest.fixture
def controller(small_configs) -> AdmissionController:
    """Initialized controller with the small budgets."""
    controller = AdmissionController()
    controller.initialize(small_configs, DEFAULT_DERIVED_RULES)
    return controller

