"""
Evaluator registry for centralized evaluator management.

The registry pattern provides:
- Explicit control over which evaluators are available
- CLI integration (`dbtriage evaluators`)
- Testing isolation (register only specific evaluators)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from dbtriage.analyzer.evaluators.base import Evaluator

T = TypeVar("T", bound="Evaluator")


class EvaluatorRegistry:
    """
    Centralized registry for all signal evaluators.

    Evaluators register themselves using the @register_evaluator decorator.
    The analyzer queries the registry to get available evaluators.

    Example:
        @register_evaluator
        class HighBloat(Evaluator):
            evaluator_id = "HIGH_BLOAT"
            ...

        evaluators = get_registry().filter(exclude={"IDLE_CONNECTIONS"})
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, type[Evaluator]] = {}

    def register(self, evaluator_cls: type[T]) -> type[T]:
        """
        Register an evaluator class.

        Raises:
            ValueError: If an evaluator with the same ID is already registered
        """
        evaluator_id = evaluator_cls.evaluator_id

        if evaluator_id in self._evaluators:
            existing = self._evaluators[evaluator_id]
            raise ValueError(
                f"Evaluator '{evaluator_id}' already registered by "
                f"{existing.__module__}.{existing.__name__}. "
                f"Cannot register {evaluator_cls.__module__}.{evaluator_cls.__name__}"
            )

        self._evaluators[evaluator_id] = evaluator_cls
        return evaluator_cls

    def unregister(self, evaluator_id: str) -> bool:
        """Remove an evaluator; True if it was registered."""
        return self._evaluators.pop(evaluator_id, None) is not None

    def get(self, evaluator_id: str) -> type[Evaluator] | None:
        return self._evaluators.get(evaluator_id)

    def all(self) -> list[type[Evaluator]]:
        """All registered evaluator classes, in registration order."""
        return list(self._evaluators.values())

    def all_ids(self) -> list[str]:
        return list(self._evaluators.keys())

    def filter(
        self,
        include: set[str] | None = None,
        exclude: set[str] | None = None,
    ) -> list[type[Evaluator]]:
        """
        Get a filtered list of evaluator classes.

        Args:
            include: If provided, only include these evaluator IDs
            exclude: If provided, exclude these evaluator IDs
        """
        evaluators = self.all()

        if include is not None:
            evaluators = [e for e in evaluators if e.evaluator_id in include]

        if exclude is not None:
            evaluators = [e for e in evaluators if e.evaluator_id not in exclude]

        return evaluators

    def clear(self) -> None:
        """Remove all registered evaluators (testing only)."""
        self._evaluators.clear()

    def __len__(self) -> int:
        return len(self._evaluators)

    def __contains__(self, evaluator_id: str) -> bool:
        return evaluator_id in self._evaluators


# Global registry instance
_global_registry = EvaluatorRegistry()


def get_registry() -> EvaluatorRegistry:
    """Get the global evaluator registry."""
    return _global_registry


def register_evaluator(evaluator_cls: type[T]) -> type[T]:
    """
    Decorator to register an evaluator with the global registry.

    Example:
        @register_evaluator
        class UnusedIndex(Evaluator):
            evaluator_id = "UNUSED_INDEX"
            ...
    """
    return _global_registry.register(evaluator_cls)
