"""API package for the budget gate."""

from budgetgate.api.app import create_app
from budgetgate.api.routes import router

__all__ = ["create_app", "router"]
