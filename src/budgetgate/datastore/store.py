"""
Key/value store whose operations are gated by admission control.

Every read or write first acquires the budgets its request type
requires, waiting in the fair queue when they are short. Change
subscriptions fail fast instead of waiting.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable

from budgetgate.budget.errors import BudgetExhaustedError
from budgetgate.budget.service import AdmissionController
from budgetgate.budget.types import RequestType
from budgetgate.datastore.registry import DataRegistry

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Any], None]
Transform = Callable[[Any], Any]


def _check_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeError(f"key must be a string, got {type(key).__name__}")
    if not key:
        raise ValueError("key must not be empty")
    return key


class BudgetedDataStore:
    """
    A single named store over a registry data map.

    Values are deep-copied on the way in and out so callers never share
    state with the stored records.
    """

    def __init__(
        self,
        controller: AdmissionController,
        data: dict[str, Any],
        name: str = "global",
        ordered: bool = False,
    ) -> None:
        self._controller = controller
        self._data = data
        self._name = name
        self._ordered = ordered
        self._read_type = RequestType.GET_SORTED if ordered else RequestType.GET
        self._write_type = (
            RequestType.SET_INCREMENT_SORTED if ordered else RequestType.SET_INCREMENT
        )
        self._callbacks: dict[str, list[UpdateCallback]] = {}

    @classmethod
    def open(
        cls,
        controller: AdmissionController,
        registry: DataRegistry,
        name: str,
        scope: str = "global",
        ordered: bool = False,
    ) -> BudgetedDataStore:
        """
        Return the registered handle for name/scope, creating it once.

        Ordered stores live in their own maps and spend the sorted
        budgets instead of the plain ones.
        """
        if ordered:
            data = registry.get_ordered_data(name, scope)
        else:
            data = registry.get_data(name, scope)
        return cls._registered(controller, registry, data, name, ordered)

    @classmethod
    def open_global(
        cls, controller: AdmissionController, registry: DataRegistry
    ) -> BudgetedDataStore:
        """Handle over the registry's single global data map."""
        return cls._registered(controller, registry, registry.get_global_data(), "global")

    @classmethod
    def _registered(
        cls,
        controller: AdmissionController,
        registry: DataRegistry,
        data: dict[str, Any],
        name: str,
        ordered: bool = False,
    ) -> BudgetedDataStore:
        interface = registry.get_interface(data)
        if interface is None:
            interface = cls(controller, data, name=name, ordered=ordered)
            registry.set_interface(data, interface)
        return interface

    @property
    def name(self) -> str:
        return self._name

    @property
    def ordered(self) -> bool:
        return self._ordered

    async def get_async(self, key: str) -> Any:
        key = _check_key(key)
        await self._controller.acquire_all_blocking(key, [self._read_type])
        return copy.deepcopy(self._data.get(key))

    async def set_async(self, key: str, value: Any) -> None:
        key = _check_key(key)
        await self._controller.acquire_all_blocking(key, [self._write_type])
        self._write(key, copy.deepcopy(value))

    async def increment_async(self, key: str, delta: int | float = 1) -> int | float:
        """Add delta to a numeric record, treating a missing one as 0."""
        key = _check_key(key)
        if isinstance(delta, bool) or not isinstance(delta, (int, float)):
            raise TypeError(f"delta must be a number, got {type(delta).__name__}")

        await self._controller.acquire_all_blocking(key, [self._write_type])
        current = self._data.get(key, 0)
        if isinstance(current, bool) or not isinstance(current, (int, float)):
            raise TypeError(f"Cannot increment non-numeric value stored at {key!r}")
        value = current + delta
        self._write(key, value)
        return value

    async def update_async(self, key: str, transform: Transform) -> Any:
        """
        Read-modify-write a record.

        Needs both a read and a write unit, taken together. If the
        transform returns None the record is left unchanged.
        """
        key = _check_key(key)
        await self._controller.acquire_all_blocking(
            key, [self._read_type, self._write_type]
        )
        result = transform(copy.deepcopy(self._data.get(key)))
        if result is None:
            return copy.deepcopy(self._data.get(key))
        self._write(key, copy.deepcopy(result))
        return copy.deepcopy(result)

    async def remove_async(self, key: str) -> Any:
        """Delete a record and return its previous value."""
        key = _check_key(key)
        await self._controller.acquire_all_blocking(key, [self._write_type])
        previous = self._data.pop(key, None)
        if previous is not None:
            self._notify(key, None)
        return previous

    async def on_update(self, key: str, callback: UpdateCallback) -> Callable[[], None]:
        """
        Subscribe to changes of one record.

        Raises:
            BudgetExhaustedError: If no on_update budget is left

        Returns:
            Function that removes the subscription
        """
        key = _check_key(key)
        if not callable(callback):
            raise TypeError("callback must be callable")
        if not await self._controller.try_acquire_all([RequestType.ON_UPDATE]):
            raise BudgetExhaustedError(frozenset({RequestType.ON_UPDATE}), key=key)

        self._callbacks.setdefault(key, []).append(callback)

        def disconnect() -> None:
            callbacks = self._callbacks.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return disconnect

    def _write(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._notify(key, value)

    def _notify(self, key: str, value: Any) -> None:
        for callback in list(self._callbacks.get(key, [])):
            try:
                callback(copy.deepcopy(value))
            except Exception as e:
                logger.error(f"OnUpdate callback for {self._name}/{key} failed: {e}")
