"""Unit tests for testing utilities."""

import pytest

from miraveja_broker.application import Broker
from miraveja_broker.domain import ComponentKind, ConfigurationError
from miraveja_broker.infrastructure.testing.utilities import TestBroker, create_mock_broker


def service_config(events):
    return {
        "singletons": {
            "db": {"start": lambda deps: "real-db", "stop": lambda instance: events.append(f"stop {instance}")},
        },
        "actions": {
            "count": {"singletons": ["db"], "fn": lambda deps: lambda: f"count from {deps.singletons['db']}"},
        },
        "services": {
            "api": {
                "singletons": ["db"],
                "actions": ["count"],
                "start": lambda deps: events.append(deps.actions["count"]()),
                "stop": lambda: events.append("stop api"),
            },
        },
    }


class TestTestBroker:
    """Test cases for TestBroker class."""

    def test_is_a_broker(self):
        """Test that TestBroker is a drop-in Broker."""
        assert isinstance(TestBroker(), Broker)

    @pytest.mark.asyncio
    async def test_override_singleton(self):
        """Test that overridden singletons replace real instances."""
        events = []
        broker = TestBroker(service_config(events))
        broker.override_singleton("db", "fake-db")

        await broker.start_service("api")

        assert events == ["count from fake-db"]

    @pytest.mark.asyncio
    async def test_overridden_singleton_is_not_stopped(self):
        """Test that stopping a service never stops an override."""
        events = []
        broker = TestBroker(service_config(events))
        broker.override_singleton("db", "fake-db")
        await broker.start_service("api")

        await broker.stop_service("api")

        assert events == ["count from fake-db", "stop api"]
        assert broker.cache.get_instance(ComponentKind.SINGLETON, "db") == "fake-db"

    def test_override_unknown_singleton(self):
        """Test that only known singletons can be overridden."""
        with pytest.raises(ConfigurationError, match='Unknown singleton "nope"'):
            TestBroker().override_singleton("nope", 1)

    @pytest.mark.asyncio
    async def test_override_started_singleton(self):
        """Test that a started singleton cannot be overridden."""
        broker = TestBroker(service_config([]))
        await broker.start_service("api")

        with pytest.raises(ConfigurationError, match="already started"):
            broker.override_singleton("db", "fake-db")

    @pytest.mark.asyncio
    async def test_mock_action_sees_overrides(self):
        """Test that mock_action starts from the overridden singletons."""
        broker = TestBroker(service_config([]))
        broker.override_singleton("db", "fake-db")

        count = await broker.mock_action("count", {})

        assert count() == "count from fake-db"

    @pytest.mark.asyncio
    async def test_context_manager_stops_services(self):
        """Test that leaving the context stops running services."""
        events = []

        async with TestBroker(service_config(events)) as broker:
            await broker.start_service("api")
            assert broker.is_service_running("api")

        assert not broker.is_service_running("api")
        assert events == ["count from real-db", "stop api", "stop real-db"]

    @pytest.mark.asyncio
    async def test_context_manager_resets_overrides(self):
        """Test that overrides are dropped on exit."""
        async with TestBroker(service_config([])) as broker:
            broker.override_singleton("db", "fake-db")

        assert not broker.cache.is_started(ComponentKind.SINGLETON, "db")


class TestCreateMockBroker:
    """Test cases for create_mock_broker function."""

    @pytest.mark.asyncio
    async def test_singletons_are_plain_values(self):
        """Test wiring actions against fixed singleton values."""
        broker = create_mock_broker(
            singletons={"db": {"users": 3}},
            actions={"count": {"singletons": ["db"], "fn": lambda deps: lambda: deps.singletons["db"]["users"]}},
        )

        count = await broker.mock_action("count", {})

        assert isinstance(broker, TestBroker)
        assert count() == 3

    @pytest.mark.asyncio
    async def test_services(self):
        """Test that services run against the mocked singletons."""
        seen = []
        broker = create_mock_broker(
            singletons={"clock": 1700000000},
            services={"srv": {"singletons": ["clock"], "start": lambda deps: seen.append(deps.singletons["clock"])}},
        )

        await broker.start_service("srv")

        assert seen == [1700000000]

    def test_empty(self):
        """Test that no arguments give an empty test broker."""
        broker = create_mock_broker()

        assert broker.registry.singletons == {}
