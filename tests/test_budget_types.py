"""Tests for request types and budget configuration."""

import json

import pytest

from budgetgate.budget.errors import InvalidBudgetConfigError, UnknownRequestTypeError
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


class TestRequestType:
    """Tests for RequestType enum."""

    def test_values(self) -> None:
        """Test enum values are the wire names."""
        assert RequestType.GET.value == "get"
        assert RequestType.SET_INCREMENT_SORTED.value == "set_increment_sorted"
        assert str(RequestType.UPDATE) == "update"

    def test_parse_string(self) -> None:
        assert RequestType.parse("get_sorted") is RequestType.GET_SORTED

    def test_parse_passthrough(self) -> None:
        assert RequestType.parse(RequestType.ON_UPDATE) is RequestType.ON_UPDATE

    def test_parse_unknown(self) -> None:
        """Test unknown names raise a descriptive error."""
        with pytest.raises(UnknownRequestTypeError, match="bogus"):
            RequestType.parse("bogus")


class TestBudgetConfig:
    """Tests for BudgetConfig dataclass."""

    def test_effective_rate_scales_with_callers(self) -> None:
        config = BudgetConfig(
            initial_level=0, base_rate=60, per_caller_rate=10, max_level_factor=3
        )
        assert config.effective_rate(0) == 60
        assert config.effective_rate(4) == 100

    def test_ceiling_tracks_effective_rate(self) -> None:
        """Test the ceiling is a multiple of the current rate, not a constant."""
        config = BudgetConfig(
            initial_level=0, base_rate=60, per_caller_rate=10, max_level_factor=3
        )
        assert config.ceiling(0) == 180
        assert config.ceiling(2) == 240

    def test_validate_accepts_defaults(self) -> None:
        for request_type, config in DEFAULT_BUDGETS.items():
            config.validate(request_type)

    def test_validate_negative(self) -> None:
        config = BudgetConfig(
            initial_level=-1, base_rate=1, per_caller_rate=0, max_level_factor=2
        )
        with pytest.raises(InvalidBudgetConfigError, match="initial_level"):
            config.validate(RequestType.GET)

    def test_validate_non_numeric(self) -> None:
        config = BudgetConfig(
            initial_level=0, base_rate="fast", per_caller_rate=0, max_level_factor=2
        )
        with pytest.raises(InvalidBudgetConfigError, match="base_rate"):
            config.validate(RequestType.GET)

    def test_validate_ceiling_below_one(self) -> None:
        """Test a ceiling that could never grant one unit is rejected."""
        config = BudgetConfig(
            initial_level=0, base_rate=0.2, per_caller_rate=1, max_level_factor=2
        )
        with pytest.raises(InvalidBudgetConfigError, match="below 1"):
            config.validate(RequestType.GET)

    def test_to_dict(self) -> None:
        config = BudgetConfig(
            initial_level=5, base_rate=2, per_caller_rate=0, max_level_factor=5
        )
        assert config.to_dict() == {
            "initial_level": 5,
            "base_rate": 2,
            "per_caller_rate": 0,
            "max_level_factor": 5,
        }

    def test_from_dict_missing_field(self) -> None:
        """Test missing rate or ceiling fields are reported by name."""
        with pytest.raises(InvalidBudgetConfigError, match="max_level_factor"):
            BudgetConfig.from_dict(
                {"initial_level": 1, "base_rate": 1, "per_caller_rate": 0},
                request_type="get",
            )


class TestDerivedBudgetRule:
    """Tests for DerivedBudgetRule."""

    def test_default_rule(self) -> None:
        (rule,) = DEFAULT_DERIVED_RULES
        assert rule.target is RequestType.UPDATE
        assert rule.sources == (RequestType.GET, RequestType.SET_INCREMENT)

    def test_unconfigured_source(self) -> None:
        rule = DerivedBudgetRule(
            target=RequestType.UPDATE,
            sources=(RequestType.GET, RequestType.SET_INCREMENT),
        )
        with pytest.raises(InvalidBudgetConfigError, match="set_increment"):
            rule.validate([RequestType.GET])

    def test_target_configured_directly(self) -> None:
        rule = DerivedBudgetRule(
            target=RequestType.UPDATE,
            sources=(RequestType.GET, RequestType.SET_INCREMENT),
        )
        with pytest.raises(InvalidBudgetConfigError, match="cannot also be configured"):
            rule.validate([RequestType.GET, RequestType.SET_INCREMENT, RequestType.UPDATE])

    def test_rules_for_full_defaults(self) -> None:
        assert derived_rules_for(DEFAULT_BUDGETS) == DEFAULT_DERIVED_RULES

    def test_rules_for_partial_configs(self) -> None:
        configs = {RequestType.GET: DEFAULT_BUDGETS[RequestType.GET]}
        assert derived_rules_for(configs) == ()


class TestParseBudgetConfigs:
    """Tests for parsing and loading config files."""

    def test_parse(self) -> None:
        configs = parse_budget_configs({
            "get": {
                "initial_level": 10,
                "base_rate": 5,
                "per_caller_rate": 1,
                "max_level_factor": 3,
            }
        })
        assert list(configs) == [RequestType.GET]
        assert configs[RequestType.GET].base_rate == 5

    def test_parse_not_an_object(self) -> None:
        with pytest.raises(InvalidBudgetConfigError, match="must be an object"):
            parse_budget_configs(["get"])

    def test_parse_unknown_type(self) -> None:
        with pytest.raises(InvalidBudgetConfigError, match="Unknown request type"):
            parse_budget_configs({"delete": {}})

    def test_load_from_file(self, tmp_path) -> None:
        path = tmp_path / "budgets.json"
        path.write_text(json.dumps({
            name.value: config.to_dict() for name, config in DEFAULT_BUDGETS.items()
        }))

        configs = load_budget_configs(path)

        assert configs == DEFAULT_BUDGETS

    def test_load_malformed_file(self, tmp_path) -> None:
        """Test malformed JSON is a startup-fatal config error naming the file."""
        path = tmp_path / "budgets.json"
        path.write_text("{not json")

        with pytest.raises(InvalidBudgetConfigError, match="budgets.json"):
            load_budget_configs(path)

    def test_load_missing_file(self, tmp_path) -> None:
        with pytest.raises(InvalidBudgetConfigError):
            load_budget_configs(tmp_path / "missing.json")
