"""Tests for the budgeted data store and its registry."""

import asyncio

import pytest

from budgetgate.budget import (
    AdmissionController,
    BudgetConfig,
    BudgetExhaustedError,
    RequestType,
)
from budgetgate.datastore import BudgetedDataStore, DataRegistry


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def registry() -> DataRegistry:
    return DataRegistry()


@pytest.fixture
def sorted_controller(small_configs) -> AdmissionController:
    """Controller that also budgets sorted writes."""
    configs = dict(small_configs)
    configs[RequestType.SET_INCREMENT_SORTED] = BudgetConfig(
        initial_level=2, base_rate=1, per_caller_rate=0, max_level_factor=5
    )
    controller = AdmissionController()
    controller.initialize(configs)
    return controller


@pytest.fixture
def store(controller: AdmissionController, registry: DataRegistry) -> BudgetedDataStore:
    return BudgetedDataStore.open(controller, registry, "players")


class TestDataRegistry:
    """Tests for DataRegistry bookkeeping."""

    def test_get_data_creates_nested_maps(self, registry: DataRegistry) -> None:
        data = registry.get_data("players", "season1")
        data["a"] = 1

        assert registry.get_data("players", "season1") is data
        assert registry.get_data("players", "season2") == {}

    def test_ordered_data_is_separate(self, registry: DataRegistry) -> None:
        registry.get_data("scores")["a"] = 1
        assert registry.get_ordered_data("scores") == {}

    def test_global_data(self, registry: DataRegistry) -> None:
        registry.get_global_data()["x"] = 1
        assert registry.get_global_data() == {"x": 1}

    def test_name_and_scope_must_be_strings(self, registry: DataRegistry) -> None:
        with pytest.raises(TypeError):
            registry.get_data(1, "global")
        with pytest.raises(TypeError):
            registry.get_ordered_data("name", None)

    def test_interfaces(self, registry: DataRegistry) -> None:
        data = registry.get_data("players")
        handle = object()

        assert registry.get_interface(data) is None
        registry.set_interface(data, handle)
        assert registry.get_interface(data) is handle

    def test_set_interface_validates(self, registry: DataRegistry) -> None:
        with pytest.raises(TypeError):
            registry.set_interface([], object())


class TestBudgetedDataStore:
    """Tests for gated store operations."""

    def test_open_returns_same_handle(
        self, controller: AdmissionController, registry: DataRegistry
    ) -> None:
        first = BudgetedDataStore.open(controller, registry, "players")
        second = BudgetedDataStore.open(controller, registry, "players")
        other = BudgetedDataStore.open(controller, registry, "players", scope="beta")

        assert first is second
        assert other is not first

    @pytest.mark.asyncio
    async def test_get_consumes_get_budget(self, store: BudgetedDataStore,
                                           controller: AdmissionController) -> None:
        assert await store.get_async("missing") is None
        assert controller.level(RequestType.GET) == 4

    @pytest.mark.asyncio
    async def test_set_waits_for_write_budget(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        """Test writes queue until the tick replenishes set_increment."""
        task = asyncio.create_task(store.set_async("alice", {"coins": 5}))
        await settle()
        assert not task.done()

        await controller.tick(1.0, 0)
        await task

        assert await store.get_async("alice") == {"coins": 5}

    @pytest.mark.asyncio
    async def test_values_are_copied(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        await controller.tick(5.0, 0)
        value = {"items": ["sword"]}
        await store.set_async("alice", value)
        value["items"].append("shield")

        stored = await store.get_async("alice")
        assert stored == {"items": ["sword"]}

    @pytest.mark.asyncio
    async def test_increment(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        await controller.tick(5.0, 0)

        assert await store.increment_async("visits") == 1
        assert await store.increment_async("visits", 4) == 5

    @pytest.mark.asyncio
    async def test_increment_non_numeric(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        await controller.tick(5.0, 0)
        await store.set_async("name", "alice")

        with pytest.raises(TypeError):
            await store.increment_async("name")
        with pytest.raises(TypeError):
            await store.increment_async("visits", "1")

    @pytest.mark.asyncio
    async def test_update_uses_both_budgets(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        await controller.tick(2.0, 0)
        get_before = controller.level(RequestType.GET)
        set_before = controller.level(RequestType.SET_INCREMENT)

        result = await store.update_async("score", lambda old: (old or 0) + 10)

        assert result == 10
        assert controller.level(RequestType.GET) == get_before - 1
        assert controller.level(RequestType.SET_INCREMENT) == set_before - 1

    @pytest.mark.asyncio
    async def test_update_returning_none_keeps_value(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        await controller.tick(5.0, 0)
        await store.set_async("score", 3)

        assert await store.update_async("score", lambda old: None) == 3

    @pytest.mark.asyncio
    async def test_remove(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        await controller.tick(5.0, 0)
        await store.set_async("alice", 1)

        assert await store.remove_async("alice") == 1
        assert await store.get_async("alice") is None

    @pytest.mark.asyncio
    async def test_invalid_key_rejected_before_budget(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        with pytest.raises(ValueError):
            await store.get_async("")
        with pytest.raises(TypeError):
            await store.get_async(42)
        assert controller.level(RequestType.GET) == 5

    @pytest.mark.asyncio
    async def test_on_update_callbacks(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        await controller.tick(5.0, 0)
        seen: list = []

        disconnect = await store.on_update("alice", seen.append)
        await store.set_async("alice", 1)
        await store.increment_async("alice")
        await store.set_async("bob", 9)
        disconnect()
        await store.set_async("alice", 3)

        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_on_update_fails_fast_without_budget(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        """Test subscriptions are rejected rather than queued."""
        await store.on_update("alice", lambda value: None)

        with pytest.raises(BudgetExhaustedError) as exc_info:
            await store.on_update("alice", lambda value: None)

        assert RequestType.ON_UPDATE in exc_info.value.request_types
        assert controller.queue_depth == 0

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_write(
        self, store: BudgetedDataStore, controller: AdmissionController
    ) -> None:
        await controller.tick(5.0, 0)

        def broken(value) -> None:
            raise RuntimeError("boom")

        await store.on_update("alice", broken)
        await store.set_async("alice", 1)

        assert await store.get_async("alice") == 1


class TestOrderedAndGlobalStores:
    """Tests for ordered and global store handles."""

    @pytest.mark.asyncio
    async def test_ordered_store_spends_sorted_budgets(
        self, sorted_controller: AdmissionController, registry: DataRegistry
    ) -> None:
        controller = sorted_controller
        scores = BudgetedDataStore.open(controller, registry, "scores", ordered=True)

        await scores.set_async("alice", 10)
        assert controller.level(RequestType.SET_INCREMENT_SORTED) == 1

        await controller.tick(2.0, 0)
        assert await scores.get_async("alice") == 10

        assert controller.level(RequestType.GET_SORTED) == 0
        assert controller.level(RequestType.SET_INCREMENT_SORTED) == 3
        assert controller.level(RequestType.GET) == 9
        assert controller.level(RequestType.SET_INCREMENT) == 2

    @pytest.mark.asyncio
    async def test_ordered_read_waits_for_sorted_budget(
        self, sorted_controller: AdmissionController, registry: DataRegistry
    ) -> None:
        scores = BudgetedDataStore.open(sorted_controller, registry, "scores", ordered=True)

        task = asyncio.create_task(scores.get_async("alice"))
        await settle()
        assert not task.done()

        await sorted_controller.tick(2.0, 0)
        assert await task is None

    def test_ordered_data_kept_apart(
        self, sorted_controller: AdmissionController, registry: DataRegistry
    ) -> None:
        plain = BudgetedDataStore.open(sorted_controller, registry, "scores")
        ordered = BudgetedDataStore.open(sorted_controller, registry, "scores", ordered=True)

        assert plain is not ordered
        assert ordered.ordered is True
        assert plain.ordered is False
        assert registry.get_interface(registry.get_ordered_data("scores")) is ordered

    @pytest.mark.asyncio
    async def test_global_store(
        self, controller: AdmissionController, registry: DataRegistry
    ) -> None:
        store = BudgetedDataStore.open_global(controller, registry)
        assert BudgetedDataStore.open_global(controller, registry) is store

        await controller.tick(1.0, 0)
        await store.set_async("motd", "hello")

        assert registry.get_global_data() == {"motd": "hello"}
        assert controller.level(RequestType.SET_INCREMENT) == 0
