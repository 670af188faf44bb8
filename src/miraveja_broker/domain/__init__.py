"""
Domain layer - Core models and rules.

This layer contains component declarations, the error taxonomy and the
abstract interfaces of the broker. It has no dependencies on other layers.
"""

from .enums import ComponentKind
from .exceptions import (
    BrokerException,
    ConfigurationError,
    ContractViolationError,
    CycleError,
    NotFoundError,
    UnresolvedDependencyError,
)
from .interfaces import IBroker, IGraphResolver, IInstanceCache
from .models import (
    LOCAL_ACTION_SEPARATOR,
    Action,
    ActionOverrides,
    BrokerConfig,
    Dependencies,
    Plugin,
    Service,
    ServiceDependencies,
    Singleton,
    local_action_name,
    strip_namespace,
)

__all__ = [
    # Enums
    "ComponentKind",
    # Exceptions
    "BrokerException",
    "ConfigurationError",
    "CycleError",
    "UnresolvedDependencyError",
    "ContractViolationError",
    "NotFoundError",
    # Interfaces
    "IBroker",
    "IGraphResolver",
    "IInstanceCache",
    # Models
    "Singleton",
    "Action",
    "Plugin",
    "Service",
    "ServiceDependencies",
    "Dependencies",
    "ActionOverrides",
    "BrokerConfig",
    "LOCAL_ACTION_SEPARATOR",
    "local_action_name",
    "strip_namespace",
]
