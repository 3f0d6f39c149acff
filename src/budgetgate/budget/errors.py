"""Exceptions raised by the admission-control core."""


class BudgetError(Exception):
    """Base class for budget and admission errors."""


class InvalidBudgetConfigError(BudgetError, ValueError):
    """Budget configuration is missing fields or holds unusable values."""


class BudgetNotInitializedError(BudgetError, RuntimeError):
    """An operation ran before the budget pools were initialized."""


class EmptyRequestError(BudgetError, ValueError):
    """An acquisition named no request types."""


class UnknownRequestTypeError(BudgetError, ValueError):
    """An acquisition named a request type with no configured pool."""


class BudgetExhaustedError(BudgetError):
    """A fail-fast acquisition was rejected for lack of budget."""

    def __init__(self, request_types: frozenset, key: str | None = None) -> None:
        self.request_types = request_types
        self.key = key
        names = ", ".join(sorted(str(t) for t in request_types))
        message = f"Request rejected due to lack of budget for: {names}"
        if key is not None:
            message += f" (key={key})"
        super().__init__(message)
