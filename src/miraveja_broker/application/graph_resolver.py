"""Application layer - Dependency graph resolution."""

import logging
from graphlib import TopologicalSorter
from typing import Any, Callable, Collection, Dict, Iterable, List, Mapping, Sequence

from miraveja_broker.application.circular_detector import CycleDetector
from miraveja_broker.domain import (
    Action,
    ComponentKind,
    ConfigurationError,
    IGraphResolver,
    Plugin,
    UnresolvedDependencyError,
)

logger = logging.getLogger(__name__)

# Synthetic node standing for the requesting entity.
_ROOT = object()


class DependencyGraphResolver(IGraphResolver):
    """Computes dependency-safe initialization orders.

    A graph is built per call by walking every root depth-first. Each
    discovered name gets an edge to each of its direct dependencies and the
    synthetic root gets an edge to every requested root, so names without
    dependencies still show up in the result. Cycles are reported from the
    active expansion chain before the graph is sorted.
    """

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
            Names ordered so that every name comes after all of its
            transitive dependencies. The synthetic root is not included.

        Raises:
            CycleError: If a name depends on itself, directly or not.
            ConfigurationError: If a name is not defined.

        Example:
            >>> resolver = DependencyGraphResolver()
            >>> resolver.resolve(
            ...     ["api"],
            ...     {"api": ["db"], "db": []},
            ...     ComponentKind.SINGLETON,
            ...     lambda deps: deps,
            ... )
            ['db', 'api']
        """
        detector = CycleDetector()
        graph: Dict[Any, List[Any]] = {}

        def expand(name: str, dependent: Any) -> None:
            if name not in definitions:
                required_by = "the requesting entity" if dependent is _ROOT else f'"{dependent}"'
                raise ConfigurationError(f'Unknown {kind} "{name}" required by {required_by}')

            detector.push(name)
            try:
                if name in graph:
                    return
                dependencies = list(dict.fromkeys(get_dependencies(definitions[name])))
                graph[name] = dependencies
                for dependency in dependencies:
                    expand(dependency, name)
            finally:
                detector.pop()

        requested = list(dict.fromkeys(roots))
        for root in requested:
            expand(root, _ROOT)
        graph[_ROOT] = requested

        order = [name for name in TopologicalSorter(graph).static_order() if name is not _ROOT]
        logger.debug("Resolved %s order for %s: %s", kind, requested, order)
        return order


def check_action_singletons(
    action_names: Iterable[str],
    actions: Mapping[str, Action],
    plugins: Mapping[str, Plugin],
    available_singletons: Collection[str],
) -> None:
    """Ensure actions and their plugins only require singletons that are available.

    Args:
        action_names: Resolved action names of the owning service.
        actions: Action definitions keyed by name.
        plugins: Plugin definitions keyed by name.
        available_singletons: Singletons resolved for the owning service.

    Raises:
        UnresolvedDependencyError: On the first singleton that is not available.
    """
    available = set(available_singletons)
    for action_name in action_names:
        action = actions[action_name]
        for singleton in action.singletons:
            if singleton not in available:
                raise UnresolvedDependencyError(action_name, singleton)
        for plugin_name in action.plugins:
            plugin = plugins.get(plugin_name)
            if plugin is None:
                raise ConfigurationError(f'Unknown plugin "{plugin_name}" required by "{action_name}"')
            for singleton in plugin.singletons:
                if singleton not in available:
                    raise UnresolvedDependencyError(plugin_name, singleton)
