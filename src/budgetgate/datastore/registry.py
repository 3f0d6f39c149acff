"""In-memory bookkeeping of store data and the handles that wrap it."""

from __future__ import annotations

from typing import Any


class DataRegistry:
    """
    Nested maps holding every store's records.

    Layout is global data, then name -> scope -> records for regular
    and ordered stores. Maps are created on first access. Handles are
    registered per data map so each map is wrapped by one interface.
    """

    def __init__(self) -> None:
        self._global: dict[str, Any] = {}
        self._stores: dict[str, dict[str, dict[str, Any]]] = {}
        self._ordered: dict[str, dict[str, dict[str, Any]]] = {}
        self._interfaces: dict[int, Any] = {}

    def get_global_data(self) -> dict[str, Any]:
        return self._global

    @staticmethod
    def _nested(
        root: dict[str, dict[str, dict[str, Any]]], name: str, scope: str
    ) -> dict[str, Any]:
        if not isinstance(name, str):
            raise TypeError(f"name must be a string, got {type(name).__name__}")
        if not isinstance(scope, str):
            raise TypeError(f"scope must be a string, got {type(scope).__name__}")
        return root.setdefault(name, {}).setdefault(scope, {})

    def get_data(self, name: str, scope: str = "global") -> dict[str, Any]:
        """Records of a named store within a scope."""
        return self._nested(self._stores, name, scope)

    def get_ordered_data(self, name: str, scope: str = "global") -> dict[str, Any]:
        """Records of a named ordered store within a scope."""
        return self._nested(self._ordered, name, scope)

    def get_interface(self, data: dict[str, Any]) -> Any | None:
        return self._interfaces.get(id(data))

    def set_interface(self, data: dict[str, Any], interface: Any) -> None:
        if not isinstance(data, dict):
            raise TypeError(f"data must be a dict, got {type(data).__name__}")
        if interface is None:
            raise TypeError("interface must not be None")
        self._interfaces[id(data)] = interface
