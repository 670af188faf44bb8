from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from miraveja_broker.domain.enums import ComponentKind
from miraveja_broker.domain.models import Service


class IGraphResolver(ABC):
    """Abstract interface for dependency graph resolution."""

    @abstractmethod
    def resolve(
        self,
        roots: Sequence[str],
        definitions: Mapping[str, Any],
        kind: ComponentKind,
        get_dependencies: Callable[[Any], Iterable[str]],
    ) -> List[str]:
        """Compute an initialization order for the roots and their dependencies.

        Args:
            roots: Names directly requested.
            definitions: Definitions of the kind being resolved, keyed by name.
            kind: Kind being resolved, used in error messages.
            get_dependencies: Returns the direct dependency names of a definition.

        Returns:
            Names ordered so that every name comes after its dependencies.

        Raises:
            CycleError: If the graph contains a cycle.
            ConfigurationError: If a name is not defined.
        """


class IInstanceCache(ABC):
    """Abstract interface for lazy, exactly-once component instantiation."""

    @abstractmethod
    async def start_singletons(self, names: Sequence[str]) -> Dict[str, Any]:
        """Start singletons in the given order and return their instances."""

    @abstractmethod
    async def start_plugins(self, names: Sequence[str]) -> Dict[str, Any]:
        """Start plugins and return their transforms."""

    @abstractmethod
    async def start_actions(self, names: Sequence[str]) -> Dict[str, Any]:
        """Compose actions in the given order and return their functions."""

    @abstractmethod
    async def stop_singleton(self, name: str) -> None:
        """Tear a started singleton down so it may be started again later."""

    @abstractmethod
    def is_started(self, kind: ComponentKind, name: str) -> bool:
        """Tell whether a component has a pending or ready instance."""


class IBroker(ABC):
    """Abstract interface for service lifecycle orchestration."""

    @abstractmethod
    async def start_service(self, name: str) -> None:
        """Start a service and everything it depends on."""

    @abstractmethod
    async def stop_service(self, name: str) -> None:
        """Stop a service and the singletons no other running service needs."""

    @abstractmethod
    def get_service_by_name(self, name: str) -> Service:
        """Return the service registered under the name."""

    @abstractmethod
    def is_service_running(self, name: str) -> bool:
        """Tell whether the service is running."""

    @abstractmethod
    async def mock_action(self, name: str, overrides: Optional[Mapping[str, Any]]) -> Callable[..., Any]:
        """Compose an action against substituted dependencies."""
