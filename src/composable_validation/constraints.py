"""Constraints: named predicates with a message template and a severity.

Also provides ``ConstraintCatalog``, the set of common constraints mixed into
every validation builder.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sized
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

__all__ = ["Constraint", "ConstraintCatalog", "ConstraintTest"]

T = TypeVar("T")

ConstraintTest = Callable[[Any, Mapping[str, Any]], bool]
"""Signature of a constraint check: ``(value, context) -> passed``."""


@dataclass(frozen=True, eq=False)
class Constraint(Generic[T]):
    """A single check on a value.

    Attributes:
        hint: Message template. ``{value}`` is replaced with the checked value
            and ``{0}``, ``{1}``, ... with the template values.
        template_values: Values substituted into the hint by position.
        test: Returns True if the value passes.
        is_error: False turns a failure into a non-blocking warning.
    """

    hint: str
    template_values: tuple[str, ...]
    test: ConstraintTest
    is_error: bool = True

    def render(self, value: Any) -> str:
        """Build the failure message for ``value``."""
        message = self.hint.replace("{value}", str(value))
        for index, template_value in enumerate(self.template_values):
            message = message.replace(f"{{{index}}}", template_value)
        return message

    def with_hint(self, hint: str) -> Constraint[T]:
        """Copy of this constraint with another message template."""
        return replace(self, hint=hint)

    def as_warning(self) -> Constraint[T]:
        """Copy of this constraint that reports warnings instead of errors."""
        return replace(self, is_error=False)


def _count(value: Iterable[Any]) -> int:
    if isinstance(value, Sized):
        return len(value)
    return sum(1 for _ in value)


def _all_distinct(items: Iterable[Any]) -> bool:
    items = list(items)
    try:
        return len(set(items)) == len(items)
    except TypeError:
        pass
    # Unhashable items fall back to equality scans.
    seen: list[Any] = []
    for item in items:
        if item in seen:
            return False
        seen.append(item)
    return True


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


class ConstraintCatalog(ABC, Generic[T]):
    """Common constraints, available on every validation builder.

    Every method registers the constraint on the builder and returns it, so
    it can be passed on to ``hint`` or ``as_warning``.
    """

    @abstractmethod
    def add_constraint(
        self, message: str, *template_values: str, test: ConstraintTest
    ) -> Constraint[T]:
        """Register a new constraint."""
        ...

    @abstractmethod
    def hint(self, constraint: Constraint[T], message: str) -> Constraint[T]:
        """Replace the message of a registered constraint."""
        ...

    # General

    def is_not_none(self) -> Constraint[T]:
        """The value may not be None."""
        return self.add_constraint("may not be None", test=lambda value, _: value is not None)

    def is_none(self) -> Constraint[T]:
        """The value must be None."""
        return self.add_constraint("must be None", test=lambda value, _: value is None)

    def is_instance(self, *types: type) -> Constraint[T]:
        """The value must be an instance of one of ``types``."""
        return self.add_constraint(
            "must be of the correct type", test=lambda value, _: isinstance(value, types)
        )

    def one_of(self, *allowed: Any) -> Constraint[T]:
        """The value must equal one of ``allowed``."""
        listed = ", ".join(f"'{item}'" for item in allowed)
        return self.add_constraint(
            "must be one of: {0}", listed, test=lambda value, _: value in allowed
        )

    def const(self, expected: Any) -> Constraint[T]:
        """The value must equal ``expected``."""
        shown = "None" if expected is None else f"'{expected}'"
        return self.add_constraint("must be {0}", shown, test=lambda value, _: value == expected)

    def custom(
        self,
        test: Callable[[Any, Mapping[str, Any]], bool],
        message: str = "custom constraint failed",
    ) -> Constraint[T]:
        """A custom check that also receives the run's context values."""
        return self.add_constraint(message, test=test)

    def simple_custom(
        self, test: Callable[[Any], bool], message: str = "custom constraint failed"
    ) -> Constraint[T]:
        """A custom check on the value alone."""
        return self.add_constraint(message, test=lambda value, _: test(value))

    def in_range(self, start: Any, end: Any) -> Constraint[T]:
        """The value must lie in the closed range ``[start, end]``."""
        return self.add_constraint(
            "must be at least '{0}' and not greater than '{1}'",
            str(start),
            str(end),
            test=lambda value, _: start <= value <= end,
        )

    # Strings

    def min_length(self, length: int) -> Constraint[T]:
        """The string must have at least ``length`` characters."""
        if length < 0:
            raise ValueError("min_length requires the length to be >= 0")
        return self.add_constraint(
            "must have at least {0} characters",
            str(length),
            test=lambda value, _: len(value) >= length,
        )

    def max_length(self, length: int) -> Constraint[T]:
        """The string must have at most ``length`` characters."""
        if length < 0:
            raise ValueError("max_length requires the length to be >= 0")
        return self.add_constraint(
            "must have at most {0} characters",
            str(length),
            test=lambda value, _: len(value) <= length,
        )

    def pattern(self, pattern: str | re.Pattern[str]) -> Constraint[T]:
        """The whole string must match ``pattern``."""
        compiled = re.compile(pattern)
        return self.add_constraint(
            "must match the expected pattern",
            compiled.pattern,
            test=lambda value, _: compiled.fullmatch(value) is not None,
        )

    # Numbers

    def minimum(self, minimum: Any, exclusive: bool = False) -> Constraint[T]:
        """The number must be >= ``minimum`` (> if ``exclusive``)."""
        if exclusive:
            return self.add_constraint(
                "must be greater than '{0}'", str(minimum), test=lambda value, _: value > minimum
            )
        return self.add_constraint(
            "must be at least '{0}'", str(minimum), test=lambda value, _: value >= minimum
        )

    def maximum(self, maximum: Any, exclusive: bool = False) -> Constraint[T]:
        """The number must be <= ``maximum`` (< if ``exclusive``)."""
        if exclusive:
            return self.add_constraint(
                "must be less than '{0}'", str(maximum), test=lambda value, _: value < maximum
            )
        return self.add_constraint(
            "must be at most '{0}'", str(maximum), test=lambda value, _: value <= maximum
        )

    def between(self, start: Any, end: Any, exclusive: bool = False) -> Constraint[T]:
        """The number must lie between ``start`` and ``end``."""
        if exclusive:
            return self.add_constraint(
                "must be greater than '{0}' and less than '{1}'",
                str(start),
                str(end),
                test=lambda value, _: start < value < end,
            )
        return self.in_range(start, end)

    def positive(self, allow_zero: bool = False) -> Constraint[T]:
        """The number must be > 0 (>= 0 with ``allow_zero``)."""
        constraint = self.minimum(0, exclusive=not allow_zero)
        return self.hint(constraint, "must be positive or 0" if allow_zero else "must be positive")

    def negative(self, allow_zero: bool = False) -> Constraint[T]:
        """The number must be < 0 (<= 0 with ``allow_zero``)."""
        constraint = self.maximum(0, exclusive=not allow_zero)
        return self.hint(constraint, "must be negative or 0" if allow_zero else "must be negative")

    # Booleans

    def is_true(self) -> Constraint[T]:
        """The value must be True."""
        return self.add_constraint("must be true", test=lambda value, _: value is True)

    def is_false(self) -> Constraint[T]:
        """The value must be False."""
        return self.add_constraint("must be false", test=lambda value, _: value is False)

    # Collections

    def min_items(self, min_size: int) -> Constraint[T]:
        """The collection must have at least ``min_size`` items."""
        return self.add_constraint(
            f"must have at least {{0}} {_plural(min_size, 'item')}",
            str(min_size),
            test=lambda value, _: _count(value) >= min_size,
        )

    def max_items(self, max_size: int) -> Constraint[T]:
        """The collection must have at most ``max_size`` items."""
        return self.add_constraint(
            f"must have at most {{0}} {_plural(max_size, 'item')}",
            str(max_size),
            test=lambda value, _: _count(value) <= max_size,
        )

    def unique_items(self, unique: bool = True) -> Constraint[T]:
        """All items of the collection must be distinct."""
        return self.add_constraint(
            "all items must be unique", test=lambda value, _: not unique or _all_distinct(value)
        )

    def unique_values(self, unique: bool = True) -> Constraint[T]:
        """All values of the mapping must be distinct."""
        return self.add_constraint(
            "all values must be unique",
            test=lambda value, _: not unique or _all_distinct(value.values()),
        )
