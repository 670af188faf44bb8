from enum import Enum


class ComponentKind(str, Enum):
    """Defines the kinds of components a broker can hold.

    Attributes:
        SINGLETON: Process-scoped shared component started at most once.
        ACTION: Composable unit of business logic yielding a reusable function.
        PLUGIN: Singleton-like component exposing a transformation function.
        SERVICE: Top-level unit with its own start/stop lifecycle.
    """

    SINGLETON = "singleton"
    ACTION = "action"
    PLUGIN = "plugin"
    SERVICE = "service"

    def __str__(self) -> str:
        return self.value
