"""Application layer - Component registry."""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from miraveja_broker.domain import (
    LOCAL_ACTION_SEPARATOR,
    Action,
    BrokerConfig,
    ComponentKind,
    ConfigurationError,
    NotFoundError,
    Plugin,
    Service,
    Singleton,
    local_action_name,
)

_SECTION_KINDS = {
    "singletons": ComponentKind.SINGLETON,
    "actions": ComponentKind.ACTION,
    "plugins": ComponentKind.PLUGIN,
    "services": ComponentKind.SERVICE,
}


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = first.get("loc", ())
    if not location:
        return f"Invalid broker configuration: {first.get('msg')}"

    section = str(location[0])
    kind = _SECTION_KINDS.get(section)
    if kind is None:
        return f'Unknown configuration section "{section}"'
    if len(location) == 1:
        return f'Parameter "{section}" must be a mapping of names to {kind} definitions'

    field = ".".join(str(part) for part in location[2:])
    detail = f" (field '{field}')" if field else ""
    return f'Invalid {kind} definition "{location[1]}"{detail}: {first.get("msg")}'


class ComponentRegistry:
    """Holds the named definitions of every component kind.

    Service local actions are registered among the actions under
    ``<service>#<action>``. Every referenced name is checked on
    construction, so lookups done during resolution never miss.

    Attributes:
        singletons: Singleton definitions keyed by name.
        actions: Action definitions keyed by name, local actions included.
        plugins: Plugin definitions keyed by name.
        services: Service declarations keyed by name.
    """

    def __init__(self, config: Optional[Union[BrokerConfig, Mapping[str, Any]]] = None) -> None:
        """Validate the configuration and build the registry.

        Args:
            config: A BrokerConfig or a mapping with optional ``singletons``,
                ``actions``, ``plugins`` and ``services`` sections.

        Raises:
            ConfigurationError: If the configuration is malformed or references
                unknown names.
        """
        config = self._validate(config)

        self.singletons: Dict[str, Singleton] = dict(config.singletons)
        self.actions: Dict[str, Action] = dict(config.actions)
        self.plugins: Dict[str, Plugin] = dict(config.plugins)
        # Each registry owns its services so runtime state is never shared.
        self.services: Dict[str, Service] = {}

        for service_name, service in config.services.items():
            self._check_name(ComponentKind.SERVICE, service_name)
            copy = service.model_copy()
            copy.mark_stopped()
            copy.set_transition(None)
            self.services[service_name] = copy
            self._register_local_actions(service_name, copy)

        self._check_references()

    @staticmethod
    def _validate(config: Optional[Union[BrokerConfig, Mapping[str, Any]]]) -> BrokerConfig:
        if config is None:
            return BrokerConfig()
        if isinstance(config, BrokerConfig):
            return config
        if not isinstance(config, Mapping):
            raise ConfigurationError(f"Broker configuration must be a mapping, got {type(config).__name__}")
        try:
            return BrokerConfig.model_validate(dict(config))
        except ValidationError as e:
            raise ConfigurationError(_describe_validation_error(e)) from e

    @staticmethod
    def _check_name(kind: ComponentKind, name: Any) -> None:
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"{kind.value.capitalize()} names must be non-empty strings, got {name!r}")

    def _register_local_actions(self, service_name: str, service: Service) -> None:
        for action_name, action in service.local_actions.items():
            if LOCAL_ACTION_SEPARATOR in action_name:
                raise ConfigurationError(
                    f'Local action "{action_name}" of service "{service_name}" '
                    f'must not contain "{LOCAL_ACTION_SEPARATOR}"'
                )
            full_name = local_action_name(service_name, action_name)
            if full_name in self.actions:
                raise ConfigurationError(f'Duplicate action name "{full_name}"')
            self.actions[full_name] = self._namespace_local_action(service_name, service, action)

    @staticmethod
    def _namespace_local_action(service_name: str, service: Service, action: Action) -> Action:
        """Point bare references to sibling local actions at their namespaced names."""
        actions = [
            local_action_name(service_name, name) if name in service.local_actions else name for name in action.actions
        ]
        return action.model_copy(update={"actions": actions})

    def _check_references(self) -> None:
        for kind, definitions in (
            (ComponentKind.SINGLETON, self.singletons),
            (ComponentKind.ACTION, self.actions),
            (ComponentKind.PLUGIN, self.plugins),
        ):
            for name in definitions:
                self._check_name(kind, name)

        for name, singleton in self.singletons.items():
            self._require(ComponentKind.SINGLETON, singleton.singletons, self.singletons, name)
        for name, plugin in self.plugins.items():
            self._require(ComponentKind.SINGLETON, plugin.singletons, self.singletons, name)
        for name, action in self.actions.items():
            self._require(ComponentKind.ACTION, action.actions, self.actions, name)
            self._require(ComponentKind.SINGLETON, action.singletons, self.singletons, name)
            self._require(ComponentKind.PLUGIN, action.plugins, self.plugins, name)
        for name, service in self.services.items():
            self._require(ComponentKind.SINGLETON, service.singletons, self.singletons, name)
            self._require(ComponentKind.ACTION, service.actions, self.actions, name)

    @staticmethod
    def _require(kind: ComponentKind, names: Iterable[str], definitions: Mapping[str, Any], owner: str) -> None:
        for name in names:
            if name not in definitions:
                raise ConfigurationError(f'Unknown {kind} "{name}" required by "{owner}"')

    def get_service(self, name: str) -> Service:
        service = self.services.get(name)
        if service is None:
            raise NotFoundError(ComponentKind.SERVICE.value, name)
        return service

    def get_action(self, name: str) -> Action:
        action = self.actions.get(name)
        if action is None:
            raise NotFoundError(ComponentKind.ACTION.value, name)
        return action

    def service_action_names(self, name: str) -> List[str]:
        """Declared actions of a service followed by its namespaced local actions."""
        service = self.get_service(name)
        local = [local_action_name(name, action_name) for action_name in service.local_actions]
        return list(dict.fromkeys(list(service.actions) + local))
