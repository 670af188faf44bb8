import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

from pydantic import ValidationError

from miraveja_broker.application.graph_resolver import DependencyGraphResolver, check_action_singletons
from miraveja_broker.application.instance_cache import InstanceCache, invoke
from miraveja_broker.application.registry import ComponentRegistry
from miraveja_broker.domain import (
    ActionOverrides,
    BrokerConfig,
    ComponentKind,
    ConfigurationError,
    Dependencies,
    IBroker,
    IGraphResolver,
    Service,
    ServiceDependencies,
    strip_namespace,
)

logger = logging.getLogger(__name__)


class Broker(IBroker):
    """Dependency broker driving the lifecycle of services.

    Resolves the singletons and actions a service needs, starts them in
    dependency order through a shared instance cache and hands the service
    the components it declared. Singletons are shared by every service and
    only stopped once no running service needs them any more.

    Attributes:
        _registry: Validated component definitions.
        _resolver: Component computing initialization orders.
        _cache: Shared cache of started components.
        _start_order: Names of running services in the order they started.
    """

    def __init__(self, config: Optional[Union[BrokerConfig, Mapping[str, Any]]] = None) -> None:
        """Validate the configuration and build an idle broker.

        Args:
            config: A BrokerConfig or a mapping with optional ``singletons``,
                ``actions``, ``plugins`` and ``services`` sections.

        Raises:
            ConfigurationError: If the configuration is malformed.

        Example:
            >>> broker = Broker({
            ...     "singletons": {"db": {"start": lambda deps: connect()}},
            ...     "services": {"api": {"singletons": ["db"], "start": run_api}},
            ... })
            >>> await broker.start_service("api")
        """
        self._registry = ComponentRegistry(config)
        self._resolver: IGraphResolver = DependencyGraphResolver()
        self._cache = InstanceCache(self._registry)
        self._start_order: List[str] = []

    @property
    def registry(self) -> ComponentRegistry:
        return self._registry

    @property
    def cache(self) -> InstanceCache:
        return self._cache

    def resolve_service(self, name: str) -> ServiceDependencies:
        """Resolve the singleton and action orderings of a service.

        Args:
            name: Service name.

        Returns:
            Singletons and actions needed by the service, dependencies first.

        Raises:
            NotFoundError: If the service is unknown.
            CycleError: If singletons or actions depend on themselves.
            UnresolvedDependencyError: If an action needs a singleton the
                service does not require.
        """
        service = self._registry.get_service(name)

        singletons = self._resolver.resolve(
            service.singletons,
            self._registry.singletons,
            ComponentKind.SINGLETON,
            lambda singleton: singleton.singletons,
        )
        actions = self._resolver.resolve(
            self._registry.service_action_names(name),
            self._registry.actions,
            ComponentKind.ACTION,
            lambda action: action.actions,
        )
        check_action_singletons(actions, self._registry.actions, self._registry.plugins, singletons)

        return ServiceDependencies(singletons=singletons, actions=actions)

    async def start_service(self, name: str) -> None:
        """Start a service and everything it depends on.

        Starting a running service does nothing. When starting fails the
        service is left stopped, while the components that did start stay
        started for other services.

        Args:
            name: Service name.

        Raises:
            TypeError: If the name is not a string.
            NotFoundError: If the service is unknown.
            CycleError: If the service dependencies contain a cycle.
            UnresolvedDependencyError: If an action needs a singleton the
                service does not require.
            ContractViolationError: If an action does not compose a function.
        """
        if not isinstance(name, str):
            raise TypeError(f"Service name must be a string, got {type(name).__name__}")

        service = self._registry.get_service(name)
        while service.transition is not None and not service.is_running():
            # A stop is tearing the service down.
            await asyncio.shield(service.transition)
        if service.is_running():
            return

        # Marked before any await so concurrent duplicate starts return early.
        service.mark_running()
        transition = asyncio.get_running_loop().create_future()
        service.set_transition(transition)
        try:
            dependencies = self.resolve_service(name)
            service.set_dependencies(dependencies)
            self._start_order.append(name)

            logger.info("Starting service %r", name)
            singletons = await self._cache.start_singletons(dependencies.singletons)
            plugins = sorted({p for a in dependencies.actions for p in self._registry.actions[a].plugins})
            await self._cache.start_plugins(plugins)
            actions = await self._cache.start_actions(dependencies.actions)

            bag = self._service_bag(name, service, singletons, actions)
            await invoke(service.start, bag)
        except BaseException:
            service.mark_stopped()
            if name in self._start_order:
                self._start_order.remove(name)
            raise
        finally:
            service.set_transition(None)
            transition.set_result(None)

        logger.info("Service %r started", name)

    def _service_bag(
        self,
        name: str,
        service: Service,
        singletons: Dict[str, Any],
        actions: Dict[str, Any],
    ) -> Dependencies:
        local = {
            strip_namespace(action_name): actions[action_name]
            for action_name in self._registry.service_action_names(name)
            if action_name not in service.actions
        }
        return Dependencies(
            singletons={singleton: singletons[singleton] for singleton in service.singletons},
            actions={strip_namespace(action_name): actions[action_name] for action_name in service.actions},
            local_actions=local,
        )

    async def stop_service(self, name: str) -> None:
        """Stop a service and the singletons no other running service needs.

        Stopping a stopped service does nothing. A start still in progress
        is awaited first, so the teardown always follows the start handler.
        The service counts as stopped as soon as the teardown begins.

        Args:
            name: Service name.

        Raises:
            TypeError: If the name is not a string.
            NotFoundError: If the service is unknown.
        """
        if not isinstance(name, str):
            raise TypeError(f"Service name must be a string, got {type(name).__name__}")

        service = self._registry.get_service(name)
        while service.transition is not None:
            await asyncio.shield(service.transition)
        if not service.is_running():
            return

        # Leaves the in-use accounting before any await so that concurrent
        # stops of services sharing a singleton see each other as stopped.
        dependencies = service.dependencies or ServiceDependencies()
        service.mark_stopped()
        if name in self._start_order:
            self._start_order.remove(name)
        transition = asyncio.get_running_loop().create_future()
        service.set_transition(transition)
        try:
            logger.info("Stopping service %r", name)
            if service.stop is not None:
                await invoke(service.stop)

            for singleton in reversed(dependencies.singletons):
                if singleton not in self._singletons_in_use():
                    await self._cache.stop_singleton(singleton)
        finally:
            service.set_transition(None)
            transition.set_result(None)
        logger.info("Service %r stopped", name)

    def _singletons_in_use(self) -> Set[str]:
        """Singletons resolved for every running or starting service."""
        in_use: Set[str] = set()
        for service in self._registry.services.values():
            if not service.is_running() or service.dependencies is None:
                continue
            in_use.update(service.dependencies.singletons)
        return in_use

    async def start_all(self) -> None:
        """Start every registered service in declaration order."""
        for name in self._registry.services:
            await self.start_service(name)

    async def stop_all(self) -> None:
        """Stop every running service, latest started first."""
        for name in reversed(list(self._start_order)):
            await self.stop_service(name)

    def get_service_by_name(self, name: str) -> Service:
        """Return the service registered under the name.

        Raises:
            TypeError: If the name is not a string.
            NotFoundError: If the service is unknown.
        """
        if not isinstance(name, str):
            raise TypeError(f"Service name must be a string, got {type(name).__name__}")
        return self._registry.get_service(name)

    def is_service_running(self, name: str) -> bool:
        if not isinstance(name, str):
            raise TypeError(f"Service name must be a string, got {type(name).__name__}")
        service = self._registry.services.get(name)
        return service is not None and service.is_running()

    def running_services(self) -> List[str]:
        """Names of running services in the order they started."""
        return list(self._start_order)

    async def mock_action(
        self,
        name: str,
        overrides: Optional[Mapping[str, Any]],
    ) -> Callable[..., Any]:
        """Compose an action against substituted dependencies.

        Runs the same resolution as a service start on a throw-away cache, so
        the shared instances are never touched. Declared dependencies found in
        ``overrides`` are used as they are instead of being instantiated.

        Args:
            name: Action name.
            overrides: Mapping with optional ``actions``, ``singletons`` and
                ``plugins`` mappings of substitute values.

        Returns:
            The composed action function.

        Raises:
            TypeError: If the name is not a string.
            NotFoundError: If the action is unknown.
            ConfigurationError: If the overrides are malformed.

        Example:
            >>> do_that = await broker.mock_action("doThat", {"actions": {"doIt": lambda: 5}})
            >>> do_that()
            6
        """
        if not isinstance(name, str):
            raise TypeError(f"Action name must be a string, got {type(name).__name__}")
        action = self._registry.get_action(name)
        parsed = self._parse_overrides(overrides)

        # Full resolution first so cycles are reported before anything starts.
        self._resolver.resolve([name], self._registry.actions, ComponentKind.ACTION, lambda a: a.actions)

        action_roots = [dep for dep in action.actions if dep not in parsed.actions]
        actions = self._resolver.resolve(
            action_roots,
            self._registry.actions,
            ComponentKind.ACTION,
            lambda a: a.actions,
        )

        needed = {s for a in actions for s in self._singletons_of(a)}
        needed.update(s for s in action.singletons if s not in parsed.singletons)
        needed.update(
            s for p in action.plugins if p not in parsed.plugins for s in self._registry.plugins[p].singletons
        )
        singletons = self._resolver.resolve(
            sorted(needed),
            self._registry.singletons,
            ComponentKind.SINGLETON,
            lambda singleton: singleton.singletons,
        )

        scratch = self._cache.spawn()
        await scratch.start_singletons(singletons)
        await scratch.start_actions(actions)
        return await scratch.compose_action(name, parsed)

    def _singletons_of(self, action_name: str) -> List[str]:
        action = self._registry.actions[action_name]
        plugin_singletons = [s for p in action.plugins for s in self._registry.plugins[p].singletons]
        return list(action.singletons) + plugin_singletons

    @staticmethod
    def _parse_overrides(overrides: Optional[Mapping[str, Any]]) -> ActionOverrides:
        if isinstance(overrides, ActionOverrides):
            return overrides
        if not isinstance(overrides, Mapping):
            raise ConfigurationError(f"Mock overrides must be a mapping, got {type(overrides).__name__}")
        try:
            return ActionOverrides.model_validate(dict(overrides))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid mock overrides: {e}") from e
