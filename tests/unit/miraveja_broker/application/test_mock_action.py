"""Unit tests for Broker.mock_action."""

import pytest

from miraveja_broker.application.broker import Broker
from miraveja_broker.domain import ActionOverrides, ComponentKind, ConfigurationError, CycleError, NotFoundError


def do_it_broker():
    return Broker({"actions": {"doIt": {"fn": lambda deps: lambda: None}}})


class TestMockActionValidation:
    """Test cases for invalid mock requests."""

    @pytest.mark.asyncio
    async def test_unknown_action(self):
        """Test that unknown actions are rejected."""
        with pytest.raises(NotFoundError, match="Unknown action"):
            await Broker({}).mock_action("a", {})

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name, overrides, error",
        [
            (None, None, TypeError),
            (None, {}, TypeError),
            ("doIt", None, ConfigurationError),
            ("doIt", {"actions": 1}, ConfigurationError),
            ("doIt", {"singletons": 1}, ConfigurationError),
            ("doIt", {"plugins": 1}, ConfigurationError),
            ("doIt", {"scripts": {}}, ConfigurationError),
            ("doIt", {"actions": {"other": "not callable"}}, ConfigurationError),
        ],
    )
    async def test_invalid_params(self, name, overrides, error):
        """Test that malformed names and overrides are rejected."""
        with pytest.raises(error):
            await do_it_broker().mock_action(name, overrides)

    @pytest.mark.asyncio
    async def test_cycle(self):
        """Test that mocking resolves the action graph like a service start."""
        broker = Broker(
            {
                "actions": {
                    "a": {"fn": lambda deps: len, "actions": ["b"]},
                    "b": {"fn": lambda deps: len, "actions": ["a"]},
                }
            }
        )

        with pytest.raises(CycleError):
            await broker.mock_action("a", {"actions": {"b": len}})


class TestMockAction:
    """Test cases for mocking actions."""

    @pytest.mark.asyncio
    async def test_mock_with_nothing(self):
        """Test mocking an action without dependencies."""
        broker = Broker({"actions": {"doIt": {"fn": lambda deps: lambda: 1}}})

        action = await broker.mock_action("doIt", {})

        assert callable(action)
        assert action() == 1

    @pytest.mark.asyncio
    async def test_mock_one_action(self):
        """Test overriding a required action."""
        broker = Broker(
            {
                "actions": {
                    "doIt": {"fn": lambda deps: lambda: 1},
                    "doThat": {"actions": ["doIt"], "fn": lambda deps: lambda: deps.actions["doIt"]() + 1},
                }
            }
        )

        action = await broker.mock_action("doThat", {})
        assert action() == 2

        action2 = await broker.mock_action("doThat", {"actions": {"doIt": lambda: 5}})
        assert action2() == 6

    @pytest.mark.asyncio
    async def test_mock_singleton_for_action(self):
        """Test overriding a required singleton."""
        broker = Broker(
            {
                "singletons": {"s1": {"start": lambda deps: 1}},
                "actions": {"doThat": {"singletons": ["s1"], "fn": lambda deps: lambda: deps.singletons["s1"] + 2}},
            }
        )

        action = await broker.mock_action("doThat", {})
        assert action() == 3

        action2 = await broker.mock_action("doThat", {"singletons": {"s1": 3}})
        assert action2() == 5

    @pytest.mark.asyncio
    async def test_mock_plugin_for_action(self):
        """Test overriding a required plugin value."""
        broker = Broker(
            {
                "plugins": {"p1": {"start": lambda deps: lambda p: p}},
                "actions": {"doThat": {"plugins": {"p1": 5}, "fn": lambda deps: lambda: deps.plugins["p1"] + 2}},
            }
        )

        action = await broker.mock_action("doThat", {})
        assert action() == 7

        action2 = await broker.mock_action("doThat", {"plugins": {"p1": 10}})
        assert action2() == 12

    @pytest.mark.asyncio
    async def test_mock_everything(self):
        """Test a mix of real and overridden actions, singletons and plugins."""
        broker = Broker(
            {
                "plugins": {"p1": {"start": lambda deps: lambda p: p}},
                "singletons": {"s1": {"start": lambda deps: 2}},
                "actions": {
                    "a1": {"plugins": {"p1": 4}, "fn": lambda deps: lambda: deps.plugins["p1"] + 8},
                    "doThat": {
                        "plugins": {"p1": 16},
                        "actions": ["a1"],
                        "singletons": ["s1"],
                        "fn": lambda deps: lambda: deps.actions["a1"]() + deps.plugins["p1"] + deps.singletons["s1"],
                    },
                },
            }
        )

        action = await broker.mock_action("doThat", {})
        assert action() == 30

        action2 = await broker.mock_action(
            "doThat",
            {"actions": {"a1": lambda: 1}, "singletons": {"s1": 10}, "plugins": {"p1": 100}},
        )
        assert action2() == 111

    @pytest.mark.asyncio
    async def test_accepts_overrides_model(self):
        """Test that ActionOverrides instances are accepted as they are."""
        broker = Broker(
            {
                "actions": {
                    "doIt": {"fn": lambda deps: lambda: 1},
                    "doThat": {"actions": ["doIt"], "fn": lambda deps: lambda: deps.actions["doIt"]() * 10},
                }
            }
        )

        action = await broker.mock_action("doThat", ActionOverrides(actions={"doIt": lambda: 3}))

        assert action() == 30

    @pytest.mark.asyncio
    async def test_overridden_dependencies_are_not_instantiated(self):
        """Test that overridden components never run their routines."""
        calls = []
        broker = Broker(
            {
                "singletons": {"s1": {"start": lambda deps: calls.append("s1")}},
                "actions": {
                    "doIt": {"singletons": ["s1"], "fn": lambda deps: calls.append("doIt") or (lambda: 1)},
                    "doThat": {"actions": ["doIt"], "fn": lambda deps: lambda: deps.actions["doIt"]()},
                },
            }
        )

        action = await broker.mock_action("doThat", {"actions": {"doIt": lambda: 9}})

        assert action() == 9
        assert calls == []

    @pytest.mark.asyncio
    async def test_shared_cache_is_untouched(self):
        """Test that mocking never starts shared instances."""
        broker = Broker(
            {
                "singletons": {"s1": {"start": lambda deps: 1}},
                "actions": {"doThat": {"singletons": ["s1"], "fn": lambda deps: lambda: deps.singletons["s1"]}},
            }
        )

        await broker.mock_action("doThat", {})

        assert not broker.cache.is_started(ComponentKind.SINGLETON, "s1")
        assert not broker.cache.is_started(ComponentKind.ACTION, "doThat")

    @pytest.mark.asyncio
    async def test_transitive_singletons_are_started(self):
        """Test that singletons required by dependencies are started for the mock."""
        broker = Broker(
            {
                "singletons": {
                    "config": {"start": lambda deps: 20},
                    "db": {"start": lambda deps: deps.singletons["config"] + 1, "singletons": ["config"]},
                },
                "actions": {
                    "query": {"singletons": ["db"], "fn": lambda deps: lambda: deps.singletons["db"]},
                    "report": {"actions": ["query"], "fn": lambda deps: lambda: deps.actions["query"]() * 2},
                },
            }
        )

        action = await broker.mock_action("report", {})

        assert action() == 42
