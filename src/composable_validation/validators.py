"""Validations: the compiled, immutable rule tree.

``Validation`` is the base of every node. ``ObjectValidation`` combines
constraints and nested validations with "and"/"or"; the path validations
navigate to a child value and the collection validations apply a validation
to every element of a collection.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from composable_validation.constraints import Constraint
from composable_validation.context import ValidationContext
from composable_validation.events import (
    ObservableMixin,
    ValidationEvent,
    ValidationEventType,
)
from composable_validation.paths import (
    ConditionalPath,
    Entry,
    IndexPath,
    MapEntryPath,
    PathDescriptor,
)
from composable_validation.results import (
    AndResult,
    OrResult,
    PathResult,
    Valid,
    ValidationError,
    ValidationResult,
    ValidationWarning,
)

if TYPE_CHECKING:
    from composable_validation.builder import AndValidationBuilder, OrValidationBuilder

__all__ = [
    "ArrayValidation",
    "IterableValidation",
    "MapValidation",
    "ObjectValidation",
    "OptionalPathValidation",
    "PathValidation",
    "RequiredPathValidation",
    "UndefinedPathValidation",
    "Validation",
]

T = TypeVar("T")
R = TypeVar("R")


class Validation(ObservableMixin, ABC, Generic[T]):
    """Base class of all validations.

    Generic over T, the type of value being validated. Subclass this and
    implement ``evaluate`` to write a custom validation; use ``Validation.of``
    to declare one with a builder.

    Supports the Observer pattern: observers added to the validation on which
    ``validate`` is called receive VALIDATION_STARTED, ERROR_ADDED,
    WARNING_ADDED, PATH_SKIPPED and VALIDATION_COMPLETED events.

    Example:
        from composable_validation import Validation

        user_validation = Validation.of(
            lambda b: (
                b.has("name").min_length(2),
                b.has("age").minimum(0),
            )
        )
        result = user_validation.validate(User(name="", age=-1))
        result.errors_at("age")  # [ValidationError(... must be at least '0')]
    """

    @abstractmethod
    def evaluate(self, value: T, context: ValidationContext) -> bool:
        """Check ``value`` and record failures on ``context``.

        Implementations must leave the context's result stack as they found
        it: every pushed node is popped again.

        Args:
            value: Value to check.
            context: State of the current run.

        Returns:
            True if the value passed.
        """
        ...

    def validate(self, value: T, context: Mapping[str, Any] | None = None) -> ValidationResult[T]:
        """Validate a value.

        Args:
            value: Value to validate.
            context: Initial run-wide values, copied into the run's context.

        Returns:
            ``Valid`` or the root of the failure tree.

        Note:
            Emits VALIDATION_STARTED event before validation begins and
            VALIDATION_COMPLETED event after validation finishes.
        """
        start_time = time.perf_counter()

        self.notify(
            ValidationEvent(
                event_type=ValidationEventType.VALIDATION_STARTED,
                source=self,
                data={"value": value, "validation": self.__class__.__name__},
            )
        )

        run_context = ValidationContext(
            value, dict(context or {}), source=self, observers=self.observers
        )
        passed = self.evaluate(value, run_context)
        root = run_context.finish()
        result: ValidationResult[T] = Valid(value, warnings=root.warnings) if passed else root

        duration_ms = (time.perf_counter() - start_time) * 1000

        self.notify(
            ValidationEvent(
                event_type=ValidationEventType.VALIDATION_COMPLETED,
                source=self,
                data={
                    "value": value,
                    "validation": self.__class__.__name__,
                    "is_valid": result.is_valid,
                    "error_count": sum(
                        1 for leaf in result.flat_errors if isinstance(leaf, ValidationError)
                    ),
                    "warning_count": len(result.warnings),
                    "duration_ms": duration_ms,
                    "result": result,
                },
            )
        )

        return result

    def __call__(self, value: T, context: Mapping[str, Any] | None = None) -> ValidationResult[T]:
        return self.validate(value, context)

    @classmethod
    def and_(cls, init: Callable[[AndValidationBuilder[Any]], object]) -> Validation[Any]:
        """Declare a validation whose checks must all pass.

        Args:
            init: Called with a fresh ``AndValidationBuilder`` to declare rules.

        Returns:
            The compiled validation.
        """
        from composable_validation.builder import AndValidationBuilder

        builder: AndValidationBuilder[Any] = AndValidationBuilder()
        init(builder)
        return builder.build()

    of = and_

    @classmethod
    def or_(cls, init: Callable[[OrValidationBuilder[Any]], object]) -> Validation[Any]:
        """Declare a validation of which any one check has to pass."""
        from composable_validation.builder import OrValidationBuilder

        builder: OrValidationBuilder[Any] = OrValidationBuilder()
        init(builder)
        return builder.build()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class ObjectValidation(Validation[T]):
    """Runs constraints and nested validations on the same value.

    With ``combine_with_or`` unset every check has to pass; failing
    warning constraints are recorded but do not fail the group. With
    ``combine_with_or`` set one passing check is enough, and a failing
    warning constraint counts as a pass.

    ``short_circuit`` stops at the first failure ("and") or the first pass
    ("or").
    """

    def __init__(
        self,
        constraints: Sequence[Constraint[T]] = (),
        sub_validations: Sequence[Validation[T]] = (),
        *,
        combine_with_or: bool = False,
        short_circuit: bool = False,
    ) -> None:
        self.constraints = tuple(constraints)
        self.sub_validations = tuple(sub_validations)
        self.combine_with_or = combine_with_or
        self.short_circuit = short_circuit

    def evaluate(self, value: T, context: ValidationContext) -> bool:
        if self.combine_with_or:
            context.push(lambda parent: OrResult(value, parent))
            return context.close(self._evaluate_or(value, context))
        context.push(lambda parent: AndResult(value, parent))
        return context.close(self._evaluate_and(value, context), keep_warnings=True)

    def _record_failure(self, constraint: Constraint[T], value: T, context: ValidationContext) -> None:
        leaf_type = ValidationError if constraint.is_error else ValidationWarning
        message = constraint.render(value)
        context.add_invalid_result(lambda parent: leaf_type(message, value, parent))

    def _evaluate_and(self, value: T, context: ValidationContext) -> bool:
        valid = True
        for constraint in self.constraints:
            if constraint.test(value, context):
                continue
            self._record_failure(constraint, value, context)
            if constraint.is_error:
                valid = False
                if self.short_circuit:
                    return False

        for validation in self.sub_validations:
            if not validation.evaluate(value, context):
                valid = False
                if self.short_circuit:
                    return False
        return valid

    def _evaluate_or(self, value: T, context: ValidationContext) -> bool:
        # None until a check has run; an empty group passes.
        passed: bool | None = None
        for constraint in self.constraints:
            # A failed warning is recorded but never satisfies the group.
            if constraint.test(value, context):
                if self.short_circuit:
                    return True
                passed = True
                continue
            self._record_failure(constraint, value, context)
            if passed is None:
                passed = False

        for validation in self.sub_validations:
            if validation.evaluate(value, context):
                if self.short_circuit:
                    return True
                passed = True
            elif passed is None:
                passed = False
        return True if passed is None else passed

    def __repr__(self) -> str:
        return (
            f"ObjectValidation(constraints={len(self.constraints)}, "
            f"sub_validations={len(self.sub_validations)}, "
            f"combine_with_or={self.combine_with_or}, short_circuit={self.short_circuit})"
        )


class PathValidation(Validation[T], Generic[T, R]):
    """Base of validations that navigate to a child value through ``path``."""

    def __init__(self, path: PathDescriptor[T, R], validation: Validation[R]) -> None:
        self.path = path
        self.validation = validation

    @property
    def recorded_path(self) -> PathDescriptor[T, R]:
        """The descriptor that appears in results."""
        return self.path.unwrap()

    def _guard_passes(self, value: T, context: ValidationContext) -> bool:
        path: PathDescriptor[Any, Any] = self.path
        while isinstance(path, ConditionalPath):
            guard_context = context.for_condition(value)
            passed = path.condition.evaluate(value, guard_context)
            guard_context.finish()
            if not passed:
                context.emit(
                    ValidationEventType.PATH_SKIPPED,
                    path=self.recorded_path.name,
                    data_path=str(context.current.data_path),
                    value=value,
                )
                return False
            path = path.descriptor
        return True

    def _descend(self, child: R, context: ValidationContext) -> bool:
        recorded = self.recorded_path
        context.push(lambda parent: PathResult(recorded, child, parent))
        return context.close(self.validation.evaluate(child, context), keep_warnings=True)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(path={self.path!r}, validation={self.validation!r})"


class UndefinedPathValidation(PathValidation[T, R]):
    """Validates the child value whatever it is, None included."""

    def evaluate(self, value: T, context: ValidationContext) -> bool:
        if not self._guard_passes(value, context):
            return True
        return self._descend(self.path.get(value), context)


class OptionalPathValidation(PathValidation[T, R]):
    """Validates the child value if it is not None."""

    def evaluate(self, value: T, context: ValidationContext) -> bool:
        if not self._guard_passes(value, context):
            return True
        child = self.path.get(value)
        if child is None:
            return True
        return self._descend(child, context)


class RequiredPathValidation(PathValidation[T, R]):
    """Validates the child value, which must not be None."""

    def evaluate(self, value: T, context: ValidationContext) -> bool:
        if not self._guard_passes(value, context):
            return True
        child = self.path.get(value)
        if child is not None:
            return self._descend(child, context)

        recorded = self.recorded_path
        context.push(lambda parent: PathResult(recorded, None, parent))
        context.push(lambda parent: AndResult(None, parent))
        context.add_invalid_result(lambda parent: ValidationError("is required", None, parent))
        context.pop_and_add_to_parent()
        context.pop_and_add_to_parent()
        return False


class _ElementsValidation(Validation[T]):
    """Applies ``validation`` to selected elements of a collection.

    Each element is validated under its own path node; all element nodes are
    grouped under one "and" node for the collection. A failing element never
    stops the validation of later elements.
    """

    def __init__(self, validation: Validation[Any]) -> None:
        self.validation = validation

    @abstractmethod
    def _elements(self, value: T) -> Iterable[tuple[PathDescriptor[Any, Any], Any]]:
        """Yield ``(path, element)`` for every element to validate."""
        ...

    def evaluate(self, value: T, context: ValidationContext) -> bool:
        context.push(lambda parent: AndResult(value, parent))
        valid = True
        for path, element in self._elements(value):
            context.push(lambda parent: PathResult(path, element, parent))
            element_valid = self.validation.evaluate(element, context)
            valid = context.close(element_valid, keep_warnings=True) and valid
        return context.close(valid, keep_warnings=True)


class IterableValidation(_ElementsValidation[Iterable[Any]]):
    """Validates the elements of any iterable, optionally only at ``indices``."""

    def __init__(self, validation: Validation[Any], indices: Iterable[int] = ()) -> None:
        super().__init__(validation)
        self.indices = frozenset(indices)

    def _elements(self, value: Iterable[Any]) -> Iterable[tuple[PathDescriptor[Any, Any], Any]]:
        for index, element in enumerate(value):
            if self.indices and index not in self.indices:
                continue
            yield IndexPath(index), element


class ArrayValidation(_ElementsValidation[Sequence[Any]]):
    """Validates the elements of a sequence by position, optionally only at ``indices``."""

    def __init__(self, validation: Validation[Any], indices: Iterable[int] = ()) -> None:
        super().__init__(validation)
        self.indices = frozenset(indices)

    def _elements(self, value: Sequence[Any]) -> Iterable[tuple[PathDescriptor[Any, Any], Any]]:
        for index in range(len(value)):
            if self.indices and index not in self.indices:
                continue
            yield IndexPath(index), value[index]


class MapValidation(_ElementsValidation[Mapping[Any, Any]]):
    """Validates the entries of a mapping, optionally only those with ``keys``.

    The inner validation receives an ``Entry`` per key.
    """

    def __init__(self, validation: Validation[Entry], keys: Iterable[Any] = ()) -> None:
        super().__init__(validation)
        self.keys = tuple(keys)

    def _elements(self, value: Mapping[Any, Any]) -> Iterable[tuple[PathDescriptor[Any, Any], Any]]:
        for key, item in value.items():
            if self.keys and key not in self.keys:
                continue
            yield MapEntryPath(key), Entry(key, item)
