from typing import Any, List


class BrokerException(Exception):
    """Base exception for broker-related errors."""


class ConfigurationError(BrokerException):
    """Raised for malformed broker configuration.

    This occurs when:
    - A definition does not match the shape expected for its kind.
    - A definition references a component name that does not exist.
    - Two components of the same kind share a name.
    - Mock overrides do not match the recognized shape.
    """


class CycleError(BrokerException):
    """Raised when a circular dependency is detected.

    Attributes:
        dependency_chain: Names involved in the cycle, first name repeated at the end.
    """

    def __init__(self, dependency_chain: List[str]) -> None:
        self.dependency_chain = dependency_chain
        message = f"Circular dependency detected: {' -> '.join(dependency_chain)}"
        super().__init__(message)


class UnresolvedDependencyError(BrokerException):
    """Raised when an action requires a singleton its owning service does not require.

    Attributes:
        component: Name of the action (or plugin) declaring the requirement.
        singleton: Name of the singleton missing from the service.
    """

    def __init__(self, component: str, singleton: str) -> None:
        self.component = component
        self.singleton = singleton
        super().__init__(
            f'"{component}" requires singleton "{singleton}", '
            f"which is not required by the service. Add it to the service singletons."
        )


class ContractViolationError(BrokerException):
    """Raised when an action's compose routine does not return a callable.

    Attributes:
        component: Name of the offending action.
        value: The value actually returned.
        kind: Kind of the offending component.
    """

    def __init__(self, component: str, value: Any, kind: str = "action") -> None:
        self.component = component
        self.value = value
        self.kind = kind
        super().__init__(f'{kind.capitalize()} "{component}" must return a function, got {type(value).__name__}')


class NotFoundError(BrokerException):
    """Raised when a caller requests an unknown service or action.

    Attributes:
        kind: Kind of the requested component.
        name: The requested name.
    """

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f'Unknown {kind} "{name}"')
