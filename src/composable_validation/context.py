"""Per-run validation state.

A ``ValidationContext`` is created for every ``validate()`` call. It holds the
stack of result nodes that are currently open, the root of the result tree and
a key/value map that validations may use to share state during the run.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, MutableMapping
from typing import Any

from composable_validation.events import (
    ObservableMixin,
    ValidationEvent,
    ValidationEventType,
    ValidationObserver,
)
from composable_validation.paths import THIS
from composable_validation.results import (
    CompoundResult,
    PathResult,
    SimpleInvalidResult,
    ValidationStateError,
    ValidationWarning,
)

__all__ = ["ValidationContext", "ValidationStateError"]


class ValidationContext(ObservableMixin, MutableMapping[str, Any]):
    """Mutable state of a single validation run.

    The context behaves as a mutable mapping of run-wide values. Nodes are
    opened with ``push`` and closed with ``pop``, ``pop_and_add_to_parent`` or
    ``close``; a node becomes part of the result only when it is added to its
    parent.

    Args:
        value: The root value being validated.
        properties: Run-wide values. The mapping is used as is, not copied.
        source: Object reported as the source of emitted events.
        observers: Observers notified of recorded failures and skipped paths.
    """

    def __init__(
        self,
        value: Any,
        properties: MutableMapping[str, Any] | None = None,
        *,
        source: object = None,
        observers: Iterable[ValidationObserver] = (),
    ) -> None:
        self._properties: MutableMapping[str, Any] = properties if properties is not None else {}
        self._root: PathResult[Any] = PathResult(THIS, value, None)
        self._stack: list[CompoundResult[Any]] = []
        self._source = source
        self._observers = list(observers)

    # Mapping protocol

    def __getitem__(self, key: str) -> Any:
        return self._properties[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._properties[key] = value

    def __delitem__(self, key: str) -> None:
        del self._properties[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._properties)

    def __len__(self) -> int:
        return len(self._properties)

    # Result stack

    @property
    def current(self) -> CompoundResult[Any]:
        """The innermost open node, or the root when nothing is open."""
        return self._stack[-1] if self._stack else self._root

    @property
    def depth(self) -> int:
        """Number of open nodes."""
        return len(self._stack)

    def push(self, factory: Callable[[CompoundResult[Any]], CompoundResult[Any]]) -> None:
        """Open a new node created by ``factory`` from the current node."""
        self._stack.append(factory(self.current))

    def add_invalid_result(
        self, factory: Callable[[CompoundResult[Any]], SimpleInvalidResult[Any]]
    ) -> None:
        """Record a leaf failure on the current node.

        Raises:
            ValidationStateError: If the current node is a path node, which
                only accepts compound children.
        """
        parent = self.current
        if isinstance(parent, PathResult):
            raise ValidationStateError(
                "Can not add a simple result to a path result, push a logical result first"
            )
        leaf = factory(parent)
        parent.add_error(leaf)
        if self._observers:
            event_type = (
                ValidationEventType.WARNING_ADDED
                if isinstance(leaf, ValidationWarning)
                else ValidationEventType.ERROR_ADDED
            )
            self.emit(
                event_type,
                message=leaf.message,
                data_path=str(leaf.data_path),
                value=leaf.value,
            )

    def pop(self) -> CompoundResult[Any]:
        """Close the current node and discard it.

        Raises:
            ValidationStateError: If no node is open.
        """
        if not self._stack:
            raise ValidationStateError("Can not pop from an empty validation stack")
        return self._stack.pop()

    def pop_and_add_to_parent(self) -> CompoundResult[Any]:
        """Close the current node and attach it to its parent."""
        node = self.pop()
        if node.parent is None:
            raise ValidationStateError("The popped result has no parent to attach to")
        node.parent.add_error(node)
        return node

    def close(self, valid: bool, keep_warnings: bool = False) -> bool:
        """Close the current node according to the outcome of its checks.

        Invalid nodes are attached to their parent. Valid nodes are discarded,
        unless ``keep_warnings`` is set and the node recorded warnings.

        Returns:
            ``valid``, so callers can ``return ctx.close(...)``.
        """
        node = self._stack[-1] if self._stack else None
        if not valid or (keep_warnings and node is not None and node.flat_errors):
            self.pop_and_add_to_parent()
        else:
            self.pop()
        return valid

    def finish(self) -> PathResult[Any]:
        """End the run and return the root of the result tree.

        Raises:
            ValidationStateError: If nodes are still open.
        """
        if self._stack:
            raise ValidationStateError(
                f"Validation finished with {len(self._stack)} open result(s) on the stack"
            )
        return self._root

    # Derived contexts and events

    def for_condition(self, value: Any) -> ValidationContext:
        """Context for evaluating a guard against ``value``.

        The new context shares this run's values but has its own result stack
        and notifies no observers.
        """
        return ValidationContext(value, self._properties, source=self._source)

    def emit(self, event_type: ValidationEventType, **data: Any) -> None:
        """Notify this run's observers."""
        if not self._observers:
            return
        self.notify(ValidationEvent(event_type=event_type, source=self._source, data=data))

    def __repr__(self) -> str:
        return f"ValidationContext(depth={len(self._stack)}, keys={list(self._properties)!r})"
