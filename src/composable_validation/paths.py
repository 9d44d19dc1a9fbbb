"""Path descriptors for navigating from a value to one of its parts.

A path descriptor knows how to extract a child value from a parent value and
carries a stable name. The name is used for rendering error locations, for
matching segments in ``errors_at`` queries and for merging builder
declarations that navigate to the same place.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from itertools import islice
from operator import attrgetter
from typing import TYPE_CHECKING, Any, Generic, NamedTuple, TypeVar

if TYPE_CHECKING:
    from composable_validation.validators import Validation

__all__ = [
    "THIS",
    "ConditionalPath",
    "CustomPath",
    "Entry",
    "FunctionPath",
    "IndexPath",
    "MapEntryPath",
    "PathDescriptor",
    "PropertyPath",
    "ThisPath",
    "ValidationPath",
    "as_path",
]

T = TypeVar("T")
R = TypeVar("R")


class Entry(NamedTuple):
    """A single key/value pair of a mapping, as seen by per-entry validations."""

    key: Any
    value: Any


class PathDescriptor(ABC, Generic[T, R]):
    """Describes how to get from a parent value to the next value to validate.

    Two descriptors are equal when they are of the same kind and have the
    same name. The extractor takes no part in equality.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable name of this path segment."""
        ...

    @abstractmethod
    def get(self, value: T) -> R:
        """Extract the child value from ``value``."""
        ...

    def unwrap(self) -> PathDescriptor[T, R]:
        """Return the descriptor that is recorded in results for this path."""
        return self

    def render(self, prefix: str) -> str:
        """Append this segment to an already rendered path prefix."""
        return f"{prefix}.{self.name}"

    def matches(self, segment: object) -> bool:
        """Check whether a query segment addresses this path."""
        if isinstance(segment, PathDescriptor):
            return segment.unwrap() == self
        return False

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.name == self.name  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"


class ThisPath(PathDescriptor[Any, Any]):
    """The identity path. Renders as an empty segment."""

    _instance: ThisPath | None = None

    def __new__(cls) -> ThisPath:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def name(self) -> str:
        return ""

    def get(self, value: Any) -> Any:
        return value

    def render(self, prefix: str) -> str:
        return prefix

    def __repr__(self) -> str:
        return "THIS"


THIS = ThisPath()


class PropertyPath(PathDescriptor[T, R]):
    """Path to an attribute of the parent value.

    Example:
        PropertyPath("email")                       # getattr(value, "email")
        PropertyPath("email", itemgetter("email"))  # value["email"]
    """

    def __init__(self, name: str, extractor: Callable[[T], R] | None = None) -> None:
        self._name = name
        self._extractor: Callable[[T], R] = extractor or attrgetter(name)

    @property
    def name(self) -> str:
        return self._name

    def get(self, value: T) -> R:
        return self._extractor(value)

    def matches(self, segment: object) -> bool:
        if isinstance(segment, str):
            return segment == self._name
        return super().matches(segment)


class FunctionPath(PathDescriptor[T, R]):
    """Path to the result of a function applied to the parent value.

    Without an explicit function the zero-argument method ``name`` of the
    parent value is called.
    """

    def __init__(self, name: str, function: Callable[[T], R] | None = None) -> None:
        self._name = name
        self._function = function

    @property
    def name(self) -> str:
        return self._name

    def get(self, value: T) -> R:
        if self._function is not None:
            return self._function(value)
        return getattr(value, self._name)()

    def matches(self, segment: object) -> bool:
        if isinstance(segment, str):
            return segment == self._name
        return super().matches(segment)


class MapEntryPath(PathDescriptor[Mapping[Any, Any], Entry]):
    """Path to the entry of a mapping with the given key."""

    def __init__(self, key: Any) -> None:
        self.key = key

    @property
    def name(self) -> str:
        if isinstance(self.key, str):
            return f'["{self.key}"]'
        return f"[{self.key!r}]"

    def get(self, value: Mapping[Any, Any]) -> Entry:
        if self.key not in value:
            raise KeyError(f"No mapping for {self.key!r} found in map")
        return Entry(self.key, value[self.key])

    def render(self, prefix: str) -> str:
        return f"{prefix}{self.name}"

    def matches(self, segment: object) -> bool:
        if isinstance(segment, PathDescriptor):
            return super().matches(segment)
        return bool(segment == self.key)


class IndexPath(PathDescriptor[Any, Any]):
    """Path to the element at ``position`` of a sequence or iterable."""

    def __init__(self, position: int) -> None:
        self.position = position

    @property
    def name(self) -> str:
        return f"[{self.position}]"

    def get(self, value: Any) -> Any:
        if isinstance(value, Sequence):
            return value[self.position]
        try:
            return next(islice(iter(value), self.position, None))
        except StopIteration:
            raise IndexError(f"No element at index {self.position}") from None

    def render(self, prefix: str) -> str:
        return f"{prefix}{self.name}"

    def matches(self, segment: object) -> bool:
        if isinstance(segment, int) and not isinstance(segment, bool):
            return segment == self.position
        return super().matches(segment)


class CustomPath(PathDescriptor[T, R]):
    """A path with a caller supplied identifier and extractor.

    The identifier is compared for equality; ``str(identifier)`` is the name.
    """

    def __init__(self, identifier: Any, extractor: Callable[[T], R]) -> None:
        self.identifier = identifier
        self._extractor = extractor

    @property
    def name(self) -> str:
        return str(self.identifier)

    def get(self, value: T) -> R:
        return self._extractor(value)

    def render(self, prefix: str) -> str:
        return f"{prefix}.`{self.name}`"

    def matches(self, segment: object) -> bool:
        if isinstance(segment, PathDescriptor):
            return super().matches(segment)
        return bool(segment == self.identifier)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CustomPath) and other.identifier == self.identifier

    def __hash__(self) -> int:
        return hash(self.name)


class ConditionalPath(PathDescriptor[T, R]):
    """A path that is only followed when ``condition`` accepts the parent value.

    Extraction and naming are delegated to the wrapped descriptor.
    """

    def __init__(self, descriptor: PathDescriptor[T, R], condition: Validation[T]) -> None:
        self.descriptor = descriptor
        self.condition = condition

    @property
    def name(self) -> str:
        return self.descriptor.name

    def get(self, value: T) -> R:
        return self.descriptor.get(value)

    def unwrap(self) -> PathDescriptor[T, R]:
        return self.descriptor.unwrap()

    def render(self, prefix: str) -> str:
        return self.descriptor.render(prefix)

    def matches(self, segment: object) -> bool:
        return self.descriptor.matches(segment)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, ConditionalPath)
            and other.descriptor == self.descriptor
            and other.condition is self.condition
        )

    def __hash__(self) -> int:
        return hash((self.name, id(self.condition)))

    def __repr__(self) -> str:
        return f"ConditionalPath({self.descriptor!r})"


def as_path(path: PathDescriptor[Any, Any] | str) -> PathDescriptor[Any, Any]:
    """Coerce an attribute name into a ``PropertyPath``."""
    if isinstance(path, PathDescriptor):
        return path
    if isinstance(path, str):
        return PropertyPath(path)
    raise TypeError(f"Expected a PathDescriptor or attribute name, got {type(path).__name__}")


@dataclass(frozen=True)
class ValidationPath:
    """The path from the validated root value to a nested value.

    ``ThisPath`` segments are dropped and conditional segments unwrapped, so
    two paths reaching the same place compare equal.
    """

    segments: tuple[PathDescriptor[Any, Any], ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        cleaned = tuple(s.unwrap() for s in self.segments if not isinstance(s.unwrap(), ThisPath))
        object.__setattr__(self, "segments", cleaned)

    def __str__(self) -> str:
        rendered = "this"
        for segment in self.segments:
            rendered = segment.render(rendered)
        return rendered

    def __len__(self) -> int:
        return len(self.segments)
