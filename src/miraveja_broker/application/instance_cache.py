"""Application layer - Lazy, exactly-once component instantiation."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Set, Tuple

from miraveja_broker.application.registry import ComponentRegistry
from miraveja_broker.domain import (
    ActionOverrides,
    ComponentKind,
    ContractViolationError,
    Dependencies,
    IInstanceCache,
    strip_namespace,
)

logger = logging.getLogger(__name__)

_Key = Tuple[ComponentKind, str]


class _StartAbandoned(Exception):
    """Raised to waiters when the caller running a start routine is cancelled."""


async def invoke(routine: Callable[..., Any], *args: Any) -> Any:
    """Call a routine and await its result when it is awaitable."""
    result = routine(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class InstanceCache(IInstanceCache):
    """Single-flight cache of singleton instances, plugin transforms and composed actions.

    A pending future is stored the moment an instantiation begins, before the
    start routine can suspend. Every later request for the same component,
    concurrent or not, awaits that future, so a start routine runs at most
    once per lifetime. A failed instantiation hands its error to every waiter
    and leaves the component unstarted.

    Attributes:
        _registry: Definitions to instantiate.
        _pending: Futures of started components keyed by kind and name.
        _closures: Singletons each composed action or plugin closes over.
        _seeded: Ready values that replace instantiation altogether.
    """

    def __init__(self, registry: ComponentRegistry, seeded: Optional[Dict[_Key, Any]] = None) -> None:
        self._registry = registry
        self._pending: Dict[_Key, asyncio.Future] = {}
        self._closures: Dict[_Key, Set[str]] = {}
        self._seeded: Dict[_Key, Any] = dict(seeded or {})

    def spawn(self) -> "InstanceCache":
        """Create an empty cache over the same registry, keeping seeded values."""
        return InstanceCache(self._registry, self._seeded)

    def seed(self, kind: ComponentKind, name: str, value: Any) -> None:
        """Hand out a ready value for a component instead of starting it."""
        self._seeded[(kind, name)] = value

    async def _get_or_start(self, key: _Key, factory: Callable[[], Awaitable[Any]]) -> Any:
        while True:
            if key in self._seeded:
                return self._seeded[key]

            future = self._pending.get(key)
            if future is None:
                break
            logger.debug("Reusing %s %r", key[0], key[1])
            try:
                return await asyncio.shield(future)
            except _StartAbandoned:
                # The starting caller was cancelled; the next waiter takes over.
                continue

        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            value = await factory()
        except asyncio.CancelledError:
            self._discard(key, future)
            future.set_exception(_StartAbandoned())
            future.exception()
            raise
        except Exception as e:
            self._discard(key, future)
            future.set_exception(e)
            # The first caller re-raises; waiters, if any, get the same error.
            future.exception()
            raise
        future.set_result(value)
        return value

    def _discard(self, key: _Key, future: asyncio.Future) -> None:
        if self._pending.get(key) is future:
            del self._pending[key]
            self._closures.pop(key, None)

    def is_started(self, kind: ComponentKind, name: str) -> bool:
        return (kind, name) in self._pending or (kind, name) in self._seeded

    def get_instance(self, kind: ComponentKind, name: str) -> Any:
        """Return the ready value of a started component.

        Raises:
            RuntimeError: If the component is not started or still starting.
        """
        if (kind, name) in self._seeded:
            return self._seeded[(kind, name)]
        future = self._pending.get((kind, name))
        if future is None or not future.done():
            raise RuntimeError(f'{kind.value.capitalize()} "{name}" is not started')
        return future.result()

    async def start_singletons(self, names: Sequence[str]) -> Dict[str, Any]:
        """Start singletons in the given order.

        Args:
            names: Singleton names, dependencies first.

        Returns:
            Instances keyed by singleton name.
        """
        return {name: await self._start_singleton(name) for name in names}

    async def _start_singleton(self, name: str) -> Any:
        singleton = self._registry.singletons[name]

        async def factory() -> Any:
            bag = Dependencies(singletons={dep: await self._start_singleton(dep) for dep in singleton.singletons})
            logger.debug("Starting singleton %r", name)
            return await invoke(singleton.start, bag)

        return await self._get_or_start((ComponentKind.SINGLETON, name), factory)

    async def start_plugins(self, names: Sequence[str]) -> Dict[str, Any]:
        """Start plugins and return their transforms keyed by plugin name."""
        return {name: await self._start_plugin(name) for name in names}

    async def _start_plugin(self, name: str) -> Any:
        plugin = self._registry.plugins[name]
        key = (ComponentKind.PLUGIN, name)

        async def factory() -> Any:
            bag = Dependencies(singletons={dep: await self._start_singleton(dep) for dep in plugin.singletons})
            self._closures[key] = set(plugin.singletons)
            logger.debug("Starting plugin %r", name)
            transform = await invoke(plugin.start, bag)
            if not callable(transform):
                raise ContractViolationError(name, transform, kind=ComponentKind.PLUGIN.value)
            return transform

        return await self._get_or_start(key, factory)

    async def start_actions(self, names: Sequence[str]) -> Dict[str, Any]:
        """Compose actions in the given order.

        Args:
            names: Action names, dependencies first.

        Returns:
            Composed functions keyed by registry name (namespaces kept).
        """
        return {name: await self._start_action(name) for name in names}

    async def _start_action(self, name: str) -> Any:
        key = (ComponentKind.ACTION, name)

        async def factory() -> Any:
            return await self.compose_action(name)

        return await self._get_or_start(key, factory)

    async def build_action_bag(self, name: str, overrides: Optional[ActionOverrides] = None) -> Dependencies:
        """Assemble the dependency bag of an action.

        Overridden dependencies are taken from ``overrides`` as they are;
        the rest comes from this cache.

        Args:
            name: Registry name of the action.
            overrides: Values to substitute for declared dependencies.

        Returns:
            Bag keyed by logical dependency name.
        """
        action = self._registry.actions[name]
        overrides = overrides or ActionOverrides()
        closure: Set[str] = set()

        actions: Dict[str, Any] = {}
        for dep in action.actions:
            if dep in overrides.actions:
                actions[strip_namespace(dep)] = overrides.actions[dep]
                continue
            actions[strip_namespace(dep)] = await self._start_action(dep)
            closure |= self._closures.get((ComponentKind.ACTION, dep), set())

        singletons: Dict[str, Any] = {}
        for dep in action.singletons:
            if dep in overrides.singletons:
                singletons[dep] = overrides.singletons[dep]
                continue
            singletons[dep] = await self._start_singleton(dep)
            closure.add(dep)

        plugins: Dict[str, Any] = {}
        for plugin_name, parameter in action.plugins.items():
            if plugin_name in overrides.plugins:
                plugins[plugin_name] = overrides.plugins[plugin_name]
                continue
            transform = await self._start_plugin(plugin_name)
            plugins[plugin_name] = transform(parameter)
            closure |= self._closures.get((ComponentKind.PLUGIN, plugin_name), set())

        self._closures[(ComponentKind.ACTION, name)] = closure
        return Dependencies(singletons=singletons, actions=actions, plugins=plugins)

    async def compose_action(self, name: str, overrides: Optional[ActionOverrides] = None) -> Callable[..., Any]:
        """Run an action's compose routine without caching the result.

        Raises:
            ContractViolationError: If the routine does not return a callable.
        """
        bag = await self.build_action_bag(name, overrides)
        logger.debug("Composing action %r", name)
        composed = await invoke(self._registry.actions[name].fn, bag)
        if not callable(composed):
            raise ContractViolationError(name, composed)
        return composed

    async def stop_singleton(self, name: str) -> None:
        """Stop a started singleton and forget everything composed on top of it.

        Cached actions and plugins closing over the singleton are dropped so
        they are composed again against the next instance.

        Args:
            name: Singleton name. Unstarted singletons are ignored.
        """
        key = (ComponentKind.SINGLETON, name)
        future = self._pending.pop(key, None)
        if future is None:
            return

        self._forget_dependents(name)

        try:
            instance = await asyncio.shield(future)
        except Exception:
            # Failed starts have already been reported to their callers.
            return

        singleton = self._registry.singletons[name]
        if singleton.stop is not None:
            await invoke(singleton.stop, instance)
        logger.info("Stopped singleton %r", name)

    def clear(self) -> None:
        """Forget every cached instance without running stop routines."""
        self._pending.clear()
        self._closures.clear()
        self._seeded.clear()

    def _forget_dependents(self, singleton: str) -> None:
        for dependent in [k for k, closure in self._closures.items() if singleton in closure]:
            logger.debug("Dropping %s %r composed over singleton %r", dependent[0], dependent[1], singleton)
            self._pending.pop(dependent, None)
            self._closures.pop(dependent, None)
