import asyncio
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

LOCAL_ACTION_SEPARATOR = "#"


class Singleton(BaseModel):
    """Declaration of a process-scoped shared component.

    Attributes:
        start: Routine receiving a Dependencies bag and returning the instance.
        stop: Optional routine receiving the instance on teardown.
        singletons: Names of singletons required by this one.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    start: Callable[..., Any] = Field(..., description="Routine producing the singleton instance.")
    stop: Optional[Callable[..., Any]] = Field(default=None, description="Routine tearing the instance down.")
    singletons: List[str] = Field(default_factory=list, description="Required singleton names.")


class Plugin(BaseModel):
    """Declaration of a singleton-like component exposing a transformation function.

    The callable returned by ``start`` is applied to the parameter value each
    action declares for the plugin.

    Attributes:
        start: Routine receiving a Dependencies bag and returning the transform.
        singletons: Names of singletons required by the plugin.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    start: Callable[..., Any] = Field(..., description="Routine producing the plugin transform.")
    singletons: List[str] = Field(default_factory=list, description="Required singleton names.")


class Action(BaseModel):
    """Declaration of a composable unit of business logic.

    Attributes:
        fn: Compose routine receiving a Dependencies bag and returning a function.
        actions: Names of actions required by this one.
        singletons: Names of singletons required by this one.
        plugins: Plugin names mapped to the parameter passed to the plugin transform.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    fn: Callable[..., Any] = Field(..., description="Compose routine returning the action function.")
    actions: List[str] = Field(default_factory=list, description="Required action names.")
    singletons: List[str] = Field(default_factory=list, description="Required singleton names.")
    plugins: Dict[str, Any] = Field(default_factory=dict, description="Required plugins and their parameters.")


class ServiceDependencies(BaseModel):
    """Resolved dependency orderings of a running service.

    Attributes:
        singletons: Singleton names, dependencies first.
        actions: Action names, dependencies first.
    """

    model_config = ConfigDict(frozen=True)

    singletons: List[str] = Field(default_factory=list)
    actions: List[str] = Field(default_factory=list)


class Service(BaseModel):
    """Declaration of a top-level unit with its own lifecycle.

    Local actions are registered in the broker as ``<service>#<action>`` and
    handed to the start handler under their plain name.

    Attributes:
        start: Handler receiving the service Dependencies bag.
        stop: Optional handler called without arguments.
        singletons: Names of singletons required by the service.
        actions: Names of actions required by the service.
        local_actions: Actions owned by this service.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    start: Callable[..., Any] = Field(..., description="Handler starting the service.")
    stop: Optional[Callable[..., Any]] = Field(default=None, description="Handler stopping the service.")
    singletons: List[str] = Field(default_factory=list, description="Required singleton names.")
    actions: List[str] = Field(default_factory=list, description="Required action names.")
    local_actions: Dict[str, Action] = Field(default_factory=dict, description="Actions owned by the service.")

    _is_running: bool = PrivateAttr(default=False)
    _dependencies: Optional[ServiceDependencies] = PrivateAttr(default=None)
    _transition: Optional[asyncio.Future] = PrivateAttr(default=None)

    def is_running(self) -> bool:
        return self._is_running

    @property
    def dependencies(self) -> Optional[ServiceDependencies]:
        """Orderings resolved at the last start, None while stopped."""
        return self._dependencies

    @property
    def transition(self) -> Optional[asyncio.Future]:
        """Future resolved when the start or stop in progress settles."""
        return self._transition

    def set_transition(self, transition: Optional[asyncio.Future]) -> None:
        self._transition = transition

    def mark_running(self) -> None:
        self._is_running = True

    def mark_stopped(self) -> None:
        self._is_running = False
        self._dependencies = None

    def set_dependencies(self, dependencies: ServiceDependencies) -> None:
        self._dependencies = dependencies


class Dependencies(BaseModel):
    """Dependency bag injected into start, compose and handler routines.

    Every mapping is keyed by logical component name.

    Attributes:
        singletons: Singleton instances.
        actions: Composed action functions.
        plugins: Plugin transforms applied to their declared parameters.
        local_actions: Composed local actions (services only).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    singletons: Dict[str, Any] = Field(default_factory=dict)
    actions: Dict[str, Any] = Field(default_factory=dict)
    plugins: Dict[str, Any] = Field(default_factory=dict)
    local_actions: Dict[str, Any] = Field(default_factory=dict)


class ActionOverrides(BaseModel):
    """Values substituted for an action's dependencies when mocking it.

    Attributes:
        actions: Replacement functions keyed by action name.
        singletons: Replacement instances keyed by singleton name.
        plugins: Replacement plugin values keyed by plugin name.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    actions: Dict[str, Callable[..., Any]] = Field(default_factory=dict)
    singletons: Dict[str, Any] = Field(default_factory=dict)
    plugins: Dict[str, Any] = Field(default_factory=dict)


class BrokerConfig(BaseModel):
    """Construction input of a broker.

    Each section maps a unique name to a component model or a raw mapping
    validated against the model of its kind.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    singletons: Dict[str, Singleton] = Field(default_factory=dict)
    actions: Dict[str, Action] = Field(default_factory=dict)
    plugins: Dict[str, Plugin] = Field(default_factory=dict)
    services: Dict[str, Service] = Field(default_factory=dict)


def local_action_name(service_name: str, action_name: str) -> str:
    """Build the registry name of a service local action."""
    return f"{service_name}{LOCAL_ACTION_SEPARATOR}{action_name}"


def strip_namespace(name: str) -> str:
    """Drop a service namespace prefix: ``service#action`` -> ``action``."""
    return name.rsplit(LOCAL_ACTION_SEPARATOR, 1)[-1]
