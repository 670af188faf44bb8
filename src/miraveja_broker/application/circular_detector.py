"""Application layer - Circular dependency detection."""

from typing import List

from miraveja_broker.domain import CycleError


class CycleDetector:
    """Tracks the chain of names currently being expanded during resolution.

    When a name is pushed while already present in the chain, a cycle is
    reported. Resolution never suspends, so one detector per resolution
    call is enough.

    Attributes:
        _chain: Names currently being expanded, outermost first.
    """

    def __init__(self) -> None:
        self._chain: List[str] = []

    @property
    def chain(self) -> List[str]:
        """Copy of the active chain."""
        return list(self._chain)

    def push(self, name: str) -> None:
        """Add a name to the active chain.

        Args:
            name: The name being expanded.

        Raises:
            CycleError: If the name is already in the chain.

        Example:
            >>> detector = CycleDetector()
            >>> detector.push("a")
            >>> detector.push("b")
            >>> detector.push("a")  # Raises CycleError: a -> b -> a
        """
        if name in self._chain:
            cycle_start_index = self._chain.index(name)
            raise CycleError(self._chain[cycle_start_index:] + [name])

        self._chain.append(name)

    def pop(self) -> None:
        """Remove the innermost name once its expansion is complete."""
        if self._chain:
            self._chain.pop()

    def clear(self) -> None:
        self._chain.clear()
