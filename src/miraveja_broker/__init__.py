"""
miraveja-broker: Dependency broker for singletons, actions, plugins and services.

Public API exports for the miraveja-broker package.
"""

# Application exports
from miraveja_broker.application.broker import Broker

# Domain exports
from miraveja_broker.domain.enums import ComponentKind
from miraveja_broker.domain.exceptions import (
    BrokerException,
    ConfigurationError,
    ContractViolationError,
    CycleError,
    NotFoundError,
    UnresolvedDependencyError,
)
from miraveja_broker.domain.models import (
    Action,
    ActionOverrides,
    BrokerConfig,
    Dependencies,
    Plugin,
    Service,
    Singleton,
)

__version__ = "0.1.0"

__all__ = [
    # Broker
    "Broker",
    # Components
    "Singleton",
    "Action",
    "Plugin",
    "Service",
    "Dependencies",
    "ActionOverrides",
    "BrokerConfig",
    # Enums
    "ComponentKind",
    # Exceptions
    "BrokerException",
    "ConfigurationError",
    "CycleError",
    "UnresolvedDependencyError",
    "ContractViolationError",
    "NotFoundError",
]
