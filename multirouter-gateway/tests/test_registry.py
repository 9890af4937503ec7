"""Tests for the provider registry."""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import pytest

from multirouter.providers.models import (
    AUTO_MODEL_ID,
    InstanceStatus,
    ProvidersConfig,
    ProviderType,
    RoutingConfig,
    RoutingStrategy,
)
from multirouter.routing.registry import ProviderRegistry
from tests.fakes import FakeBackend, instance_config, make_registry


class TestActiveFiltering:
    """Tests for get_active_for_model."""

    def test_returns_declaration_order(self):
        """Should list instances serving the model in declaration order."""
        registry = make_registry(
            [
                ("c", ["m1"], FakeBackend()),
                ("a", ["m1", "m2"], FakeBackend()),
                ("b", ["m2"], FakeBackend()),
            ]
        )

        assert [i.id for i in registry.get_active_for_model("m1")] == ["c", "a"]
        assert [i.id for i in registry.get_active_for_model("m2")] == ["a", "b"]

    def test_unknown_model_yields_empty_list(self):
        """Should return nothing for a model no instance declares."""
        registry = make_registry([("a", ["m1"], FakeBackend())])

        assert registry.get_active_for_model("other") == []


class TestFailureAndRecovery:
    """Tests for mark_failed and lazy recovery."""

    def test_mark_failed_excludes_until_window_elapses(self, clock):
        """Should exclude a failed instance until retry_after_seconds pass."""
        registry = make_registry(
            [("a", ["m"], FakeBackend()), ("b", ["m"], FakeBackend())],
            retry_after_seconds=60,
            clock=clock,
        )

        registry.mark_failed("a")
        instance = registry.get_instance("a")
        assert instance.status == InstanceStatus.RATE_LIMITED
        assert instance.error_count == 1
        assert instance.last_error_at == clock.now

        clock.advance(59)
        assert [i.id for i in registry.get_active_for_model("m")] == ["b"]

        clock.advance(1)
        assert [i.id for i in registry.get_active_for_model("m")] == ["a", "b"]
        assert instance.status == InstanceStatus.ACTIVE
        assert instance.error_count == 0
        assert instance.last_error_at is None

    def test_repeated_failures_count_up(self, clock):
        """Should count every failure while rate-limited."""
        registry = make_registry([("a", ["m"], FakeBackend())], clock=clock)

        registry.mark_failed("a")
        clock.advance(10)
        registry.mark_failed("a")

        instance = registry.get_instance("a")
        assert instance.error_count == 2
        assert instance.last_error_at == clock.now

    def test_concurrent_failures_are_all_counted(self, clock):
        """Should record every failure report made from concurrent callers."""
        registry = make_registry(
            [("a", ["m"], FakeBackend()), ("b", ["m"], FakeBackend())],
            retry_after_seconds=60,
            clock=clock,
        )
        reports = 200

        def report(n: int) -> None:
            registry.mark_failed("a")
            registry.get_active_for_model("m")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(report, range(reports)))

        instance = registry.get_instance("a")
        assert instance.status == InstanceStatus.RATE_LIMITED
        assert instance.error_count == reports
        assert [i.id for i in registry.get_active_for_model("m")] == ["b"]

    def test_mark_failed_unknown_id_is_noop(self):
        """Should ignore ids that are not registered."""
        registry = make_registry([("a", ["m"], FakeBackend())])

        registry.mark_failed("missing")

        assert registry.get_instance("a").status == InstanceStatus.ACTIVE

    def test_recovery_applies_to_round_robin(self, clock):
        """Should recover instances before a round-robin selection too."""
        registry = make_registry(
            [("a", ["m"], FakeBackend())],
            retry_after_seconds=5,
            clock=clock,
        )
        registry.mark_failed("a")
        assert registry.get_next_round_robin() is None

        clock.advance(5)
        selection = registry.get_next_round_robin()
        assert selection is not None
        assert selection.instance.id == "a"


class TestRoundRobin:
    """Tests for get_next_round_robin."""

    @pytest.mark.parametrize("count", [1, 2, 3, 5])
    def test_every_instance_once_per_cycle(self, count):
        """Should select each active instance exactly once per N calls."""
        ids = [f"p{i}" for i in range(count)]
        registry = make_registry([(i, ["m"], FakeBackend()) for i in ids])

        for _ in range(3):
            picked = [registry.get_next_round_robin().instance.id for _ in range(count)]
            assert sorted(picked) == sorted(ids)

    def test_rotation_order(self):
        """Should rotate in declaration order."""
        registry = make_registry(
            [("a", ["m"], FakeBackend()), ("b", ["m"], FakeBackend()), ("c", ["m"], FakeBackend())]
        )

        picked = [registry.get_next_round_robin().instance.id for _ in range(6)]

        assert picked == ["a", "b", "c", "a", "b", "c"]

    def test_selection_uses_first_declared_model(self):
        """Should pair the instance with its first declared model."""
        registry = make_registry([("a", ["first", "second"], FakeBackend())])

        selection = registry.get_next_round_robin()

        assert selection.model == "first"

    def test_none_when_nothing_active(self):
        """Should return None when no instance is active."""
        registry = make_registry([("a", ["m"], FakeBackend())])
        registry.mark_failed("a")

        assert registry.get_next_round_robin() is None

    def test_none_for_empty_registry(self):
        """Should return None when no instance is registered."""
        registry = make_registry([])

        assert registry.get_next_round_robin() is None

    def test_skips_rate_limited_instances(self):
        """Should rotate only over the currently active subset."""
        registry = make_registry(
            [("a", ["m"], FakeBackend()), ("b", ["m"], FakeBackend()), ("c", ["m"], FakeBackend())]
        )
        registry.mark_failed("b")

        picked = [registry.get_next_round_robin().instance.id for _ in range(4)]

        assert "b" not in picked
        assert Counter(picked) == {"a": 2, "c": 2}

    def test_concurrent_selection_is_fair(self):
        """Should never lose a cursor advance under concurrent callers."""
        registry = make_registry(
            [("a", ["m"], FakeBackend()), ("b", ["m"], FakeBackend()), ("c", ["m"], FakeBackend())]
        )

        with ThreadPoolExecutor(max_workers=8) as pool:
            picked = list(
                pool.map(lambda _: registry.get_next_round_robin().instance.id, range(300))
            )

        assert Counter(picked) == {"a": 100, "b": 100, "c": 100}


class TestModelQueries:
    """Tests for get_all_models and has_model."""

    def test_virtual_model_listed_first(self):
        """Should list the round-robin model before declared models."""
        registry = make_registry([("a", ["m1"], FakeBackend())])

        cards = registry.get_all_models()

        assert cards[0].id == AUTO_MODEL_ID
        assert cards[0].owned_by == "multirouter"
        assert all(card.object == "model" for card in cards)

    def test_models_deduplicated_and_attributed_to_first_declarer(self):
        """Should list each model once, owned by the first declaring kind."""
        config = ProvidersConfig(
            providers=(
                instance_config("a", ["shared", "only-a"]),
                instance_config("b", ["shared", "only-b"], ProviderType.CEREBRAS),
            ),
        )
        registry = ProviderRegistry(config, lambda c: FakeBackend())

        cards = registry.get_all_models()

        assert [c.id for c in cards] == [AUTO_MODEL_ID, "shared", "only-a", "only-b"]
        owners = {c.id: c.owned_by for c in cards}
        assert owners["shared"] == "groq"
        assert owners["only-b"] == "cerebras"

    def test_has_model_ignores_status(self):
        """Should report declared models even when every server is rate-limited."""
        registry = make_registry([("a", ["m"], FakeBackend())])
        registry.mark_failed("a")

        assert registry.has_model("m")
        assert not registry.has_model("other")


class TestConstruction:
    """Tests for registry construction and lifecycle."""

    def test_factory_failure_omits_instance(self):
        """Should skip an instance whose backend cannot be built."""
        config = ProvidersConfig(
            providers=(instance_config("bad"), instance_config("good")),
        )

        def builder(c):
            if c.id == "bad":
                raise ValueError("cannot build")
            return FakeBackend()

        registry = ProviderRegistry(config, builder)

        assert [i.id for i in registry.get_all_instances()] == ["good"]
        assert registry.size == 1

    def test_duplicate_id_keeps_first(self):
        """Should keep the first declaration of a duplicated id."""
        config = ProvidersConfig(
            providers=(
                instance_config("dup", ["first"]),
                instance_config("dup", ["second"]),
            ),
        )
        registry = ProviderRegistry(config, lambda c: FakeBackend())

        assert registry.size == 1
        assert registry.get_instance("dup").config.models == ("first",)

    def test_empty_registry_is_valid(self):
        """Should accept a configuration with no providers."""
        registry = ProviderRegistry(ProvidersConfig(), lambda c: FakeBackend())

        assert registry.size == 0
        assert registry.get_all_models()[0].id == AUTO_MODEL_ID

    def test_exposes_routing_config(self):
        """Should surface the configured default strategy."""
        config = ProvidersConfig(
            routing=RoutingConfig(default_strategy=RoutingStrategy.ROUND_ROBIN),
        )
        registry = ProviderRegistry(config, lambda c: FakeBackend())

        assert registry.default_strategy == RoutingStrategy.ROUND_ROBIN

    @pytest.mark.asyncio
    async def test_aclose_closes_backends(self):
        """Should close every backend on shutdown."""
        backends = [FakeBackend(), FakeBackend()]
        registry = make_registry([("a", ["m"], backends[0]), ("b", ["m"], backends[1])])

        await registry.aclose()

        assert all(b.closed for b in backends)
