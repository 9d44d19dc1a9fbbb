"""Validation result tree.

A validation run produces either ``Valid`` or an ``Invalid`` tree. Internal
nodes of the tree are ``PathResult`` (one child, reached via a path) and
``LogicalResult`` groups combined with "and"/"or"; leaves are single
``ValidationError`` or ``ValidationWarning`` messages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, ClassVar, Generic, Literal, TypeVar

from composable_validation.paths import PathDescriptor, ThisPath, ValidationPath

__all__ = [
    "AndResult",
    "CompoundResult",
    "Invalid",
    "LogicalResult",
    "OrResult",
    "PathResult",
    "SimpleInvalidResult",
    "Valid",
    "ValidationError",
    "ValidationResult",
    "ValidationStateError",
    "ValidationWarning",
]

T = TypeVar("T")


class ValidationStateError(RuntimeError):
    """Raised when the engine's own push/pop discipline is violated.

    This signals a defect in a validation implementation, never invalid data.
    """


def _indented(text: str) -> str:
    return "\n".join(f"\t{line}" for line in text.split("\n"))


class ValidationResult(ABC, Generic[T]):
    """Result of validating ``value``."""

    def __init__(self, value: T) -> None:
        self.value = value

    @property
    @abstractmethod
    def is_valid(self) -> bool:
        """Whether the validated value was accepted."""
        ...

    @property
    @abstractmethod
    def flat_errors(self) -> list[SimpleInvalidResult[Any]]:
        """All leaf failures (errors and warnings) in evaluation order."""
        ...

    @abstractmethod
    def errors_at(
        self, *segments: object, include_sub_errors: bool = False
    ) -> list[SimpleInvalidResult[Any]]:
        """Leaf failures recorded at the path described by ``segments``.

        Segments are matched level by level against the recorded paths: a
        ``str`` matches a property or function name, an ``int`` matches an
        index, other values match map keys or custom identifiers, and a
        ``PathDescriptor`` matches an equal descriptor.

        Args:
            *segments: Path segments from the root value.
            include_sub_errors: Also return failures recorded below the path.

        Returns:
            Matching leaves; empty when nothing matches.
        """
        ...

    @abstractmethod
    def print(self) -> str:
        """Render the result following the structure of the validation."""
        ...

    @property
    def warnings(self) -> list[ValidationWarning[Any]]:
        """Leaf warnings collected during the run."""
        return [e for e in self.flat_errors if isinstance(e, ValidationWarning)]

    @property
    def grouped_errors(self) -> dict[ValidationPath, list[SimpleInvalidResult[Any]]]:
        """Leaf failures grouped by the path they were recorded at."""
        grouped: dict[ValidationPath, list[SimpleInvalidResult[Any]]] = {}
        for error in self.flat_errors:
            grouped.setdefault(error.data_path, []).append(error)
        return grouped


class Valid(ValidationResult[T]):
    """The validated value was accepted.

    Warnings raised by passing checks are kept in ``warnings``.
    """

    def __init__(self, value: T, warnings: Sequence[ValidationWarning[Any]] = ()) -> None:
        super().__init__(value)
        self._warnings = list(warnings)

    @property
    def is_valid(self) -> bool:
        return True

    @property
    def flat_errors(self) -> list[SimpleInvalidResult[Any]]:
        return []

    @property
    def warnings(self) -> list[ValidationWarning[Any]]:
        return list(self._warnings)

    def errors_at(
        self, *segments: object, include_sub_errors: bool = False
    ) -> list[SimpleInvalidResult[Any]]:
        return []

    def print(self) -> str:
        return "valid"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Valid) and bool(other.value == self.value)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Valid({self.value!r})"


class Invalid(ValidationResult[T]):
    """The validated value was rejected. Base of every failure tree node."""

    def __init__(self, value: T, parent: CompoundResult[Any] | None) -> None:
        super().__init__(value)
        self.parent = parent

    @property
    def is_valid(self) -> bool:
        return False

    @property
    @abstractmethod
    def message(self) -> str:
        """Human readable description of the failure."""
        ...

    @property
    @abstractmethod
    def data_path(self) -> ValidationPath:
        """Path from the root value to the value this node describes."""
        ...

    def __str__(self) -> str:
        return self.message


class SimpleInvalidResult(Invalid[T]):
    """A single failure message."""

    severity: ClassVar[Literal["error", "warning"]]

    def __init__(self, message: str, value: T, parent: CompoundResult[Any]) -> None:
        super().__init__(value, parent)
        self._message = message

    @property
    def message(self) -> str:
        return self._message

    @property
    def data_path(self) -> ValidationPath:
        return self.parent.data_path if self.parent is not None else ValidationPath()

    @property
    def flat_errors(self) -> list[SimpleInvalidResult[Any]]:
        return [self]

    def errors_at(
        self, *segments: object, include_sub_errors: bool = False
    ) -> list[SimpleInvalidResult[Any]]:
        return [self] if not segments else []

    def print(self) -> str:
        return self._message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(data_path={str(self.data_path)!r}, message={self._message!r})"


class ValidationError(SimpleInvalidResult[T]):
    """A blocking failure."""

    severity = "error"


class ValidationWarning(SimpleInvalidResult[T]):
    """A non-blocking failure."""

    severity = "warning"


class CompoundResult(Invalid[T]):
    """A node wrapping other failure nodes."""

    combination_sign: ClassVar[str]

    def __init__(self, value: T, parent: CompoundResult[Any] | None) -> None:
        super().__init__(value, parent)
        self._children: list[Invalid[Any]] = []

    @property
    def children(self) -> list[Invalid[Any]]:
        """Direct child nodes."""
        return list(self._children)

    @property
    def flat_errors(self) -> list[SimpleInvalidResult[Any]]:
        return [leaf for child in self._children for leaf in child.flat_errors]

    @property
    def data_path(self) -> ValidationPath:
        return self.parent.data_path if self.parent is not None else ValidationPath()

    @property
    def message(self) -> str:
        if len(self._children) == 1:
            return self._children[0].message
        joined = f" {self.combination_sign} ".join(child.message for child in self._children)
        return f"({joined})"

    @abstractmethod
    def add_error(self, error: Invalid[Any]) -> None:
        """Attach a child node."""
        ...

    def errors_at(
        self, *segments: object, include_sub_errors: bool = False
    ) -> list[SimpleInvalidResult[Any]]:
        return [
            leaf
            for child in self._children
            for leaf in child.errors_at(*segments, include_sub_errors=include_sub_errors)
        ]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(children={len(self._children)})"


class PathResult(CompoundResult[T]):
    """Failures of the value reached through ``path``. Holds exactly one child."""

    combination_sign = ","

    def __init__(
        self, path: PathDescriptor[Any, Any], value: T, parent: CompoundResult[Any] | None
    ) -> None:
        super().__init__(value, parent)
        self.path = path

    @property
    def data_path(self) -> ValidationPath:
        return ValidationPath((*super().data_path.segments, self.path))

    def add_error(self, error: Invalid[Any]) -> None:
        if self._children:
            raise ValidationStateError("A path result can not have more than one sub path")
        self._children.append(error)

    def errors_at(
        self, *segments: object, include_sub_errors: bool = False
    ) -> list[SimpleInvalidResult[Any]]:
        if not self._children:
            return []
        child = self._children[0]
        if not segments:
            if include_sub_errors:
                return child.errors_at(include_sub_errors=True)
            return []
        if isinstance(self.path, ThisPath):
            return child.errors_at(*segments, include_sub_errors=include_sub_errors)
        current, *remaining = segments
        if not self.path.matches(current):
            return []
        return child.errors_at(*remaining, include_sub_errors=include_sub_errors)

    def print(self) -> str:
        printed_child = self._children[0].print() if self._children else ""
        if isinstance(self.path, ThisPath):
            return printed_child
        return f"{self.path.name}:\n{_indented(printed_child)}"

    def __repr__(self) -> str:
        return f"PathResult(path={self.path!r})"


class LogicalResult(CompoundResult[T]):
    """Failures combined by a logical operator.

    Adding a group with the same operator splices its children in, which keeps
    the tree shallow.
    """

    def add_error(self, error: Invalid[Any]) -> None:
        if isinstance(error, LogicalResult) and error.combination_sign == self.combination_sign:
            for child in error._children:
                child.parent = self
                self._children.append(child)
        else:
            self._children.append(error)

    def print(self) -> str:
        if len(self._children) == 1:
            return self._children[0].print()
        lines = [f"{self.combination_sign} {{"]
        lines.extend(_indented(child.print()) for child in self._children)
        lines.append("}")
        return "\n".join(lines)


class AndResult(LogicalResult[T]):
    """Failures that all have to be fixed."""

    combination_sign = "and"


class OrResult(LogicalResult[T]):
    """Failures of which fixing any one is enough."""

    combination_sign = "or"
