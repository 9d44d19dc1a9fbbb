"""Fluent builders that declare validations.

Builders collect constraints, navigation steps and prebuilt validations and
compile them into an immutable ``Validation`` with ``build()``. Navigation
methods return the nested builder for the target value; declaring the same
target twice returns the same nested builder.

Example:
    from composable_validation import Validation

    def person(b):
        b.has("name").min_length(2)
        b.if_present("email").pattern(r"[^@]+@[^@]+")
        b.all_in_iterable("addresses", lambda address: address.required("city"))

    validation = Validation.of(person)
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, ClassVar, Generic, TypeVar

from composable_validation.constraints import Constraint, ConstraintCatalog, ConstraintTest
from composable_validation.paths import (
    THIS,
    ConditionalPath,
    CustomPath,
    IndexPath,
    MapEntryPath,
    PathDescriptor,
    as_path,
)
from composable_validation.validators import (
    ArrayValidation,
    IterableValidation,
    MapValidation,
    ObjectValidation,
    OptionalPathValidation,
    RequiredPathValidation,
    UndefinedPathValidation,
    Validation,
)

__all__ = [
    "AndValidationBuilder",
    "OrValidationBuilder",
    "PathKind",
    "PathModifier",
    "PropKey",
    "ValidationBuilder",
]

T = TypeVar("T")
B = TypeVar("B", bound="ValidationBuilder[Any]")

PathLike = PathDescriptor[Any, Any] | str


class PathModifier(Enum):
    """How a navigation step treats a None child value."""

    UNDEFINED = auto()
    """The child is validated whatever it is."""

    OPTIONAL = auto()
    """A None child passes without validation."""

    REQUIRED = auto()
    """A None child fails with "is required"."""


class PathKind(Enum):
    """What a navigation step validates on the child value."""

    SINGLE = auto()
    """The child value itself."""

    ITERABLE = auto()
    """Every element of an iterable child."""

    ARRAY = auto()
    """Every element of a sequence child, by position."""

    MAP = auto()
    """Every entry of a mapping child."""


_PATH_VALIDATIONS = {
    PathModifier.UNDEFINED: UndefinedPathValidation,
    PathModifier.OPTIONAL: OptionalPathValidation,
    PathModifier.REQUIRED: RequiredPathValidation,
}


@dataclass(frozen=True)
class PropKey:
    """Identity of a navigation step declared on a builder.

    Steps with equal keys share one nested builder.

    Attributes:
        path: Where the child value is found.
        modifier: Treatment of a None child.
        kind: Whether the child itself or its elements are validated.
        selection: Indices or keys to restrict element validation to.
    """

    path: PathDescriptor[Any, Any]
    modifier: PathModifier = PathModifier.UNDEFINED
    kind: PathKind = PathKind.SINGLE
    selection: tuple[Hashable, ...] = ()

    def build(self, builder: ValidationBuilder[Any]) -> Validation[Any]:
        """Compile ``builder`` into the validation for this step."""
        inner = builder.build()
        if self.kind is PathKind.ITERABLE:
            inner = IterableValidation(inner, self.selection)  # type: ignore[arg-type]
        elif self.kind is PathKind.ARRAY:
            inner = ArrayValidation(inner, self.selection)  # type: ignore[arg-type]
        elif self.kind is PathKind.MAP:
            inner = MapValidation(inner, self.selection)
        return _PATH_VALIDATIONS[self.modifier](self.path, inner)


def _type_path(cls: type) -> CustomPath[Any, Any]:
    return CustomPath(f"as {cls.__name__}", lambda value: value)


class ValidationBuilder(ConstraintCatalog[T], Generic[T]):
    """Collects the rules for values of type T.

    Use ``AndValidationBuilder`` or ``OrValidationBuilder``; nested builders
    created by navigation are of the same kind as their parent.

    Args:
        short_circuit: Stop at the first decisive check.
    """

    combine_with_or: ClassVar[bool]

    def __init__(self, short_circuit: bool = False) -> None:
        self._short_circuit = short_circuit
        self._constraints: list[Constraint[T]] = []
        self._nested: dict[PropKey, ValidationBuilder[Any]] = {}
        self._prebuilt: list[Validation[T]] = []

    @abstractmethod
    def _new_builder(self) -> ValidationBuilder[Any]:
        """Create an empty builder of the same kind for a nested value."""
        ...

    @property
    def this_path(self) -> PathDescriptor[T, T]:
        """The identity path, for navigation steps on the value itself."""
        return THIS

    def build(self) -> Validation[T]:
        """Compile the declared rules into an immutable validation."""
        nested = [key.build(builder) for key, builder in self._nested.items()]
        return ObjectValidation(
            self._constraints,
            [*nested, *self._prebuilt],
            combine_with_or=self.combine_with_or,
            short_circuit=self._short_circuit,
        )

    # Constraints

    def add_constraint(
        self, message: str, *template_values: str, test: ConstraintTest
    ) -> Constraint[T]:
        """Register a constraint.

        Args:
            message: Message template; see ``Constraint.render``.
            *template_values: Values for ``{0}``, ``{1}``, ... in the message.
            test: Called as ``test(value, context)``; True means passed.

        Returns:
            The registered constraint.
        """
        constraint: Constraint[T] = Constraint(message, tuple(template_values), test)
        self._constraints.append(constraint)
        return constraint

    def _replace(self, constraint: Constraint[T], replacement: Constraint[T]) -> Constraint[T]:
        for index, registered in enumerate(self._constraints):
            if registered is constraint:
                self._constraints[index] = replacement
                return replacement
        raise ValueError("Constraint is not registered on this builder")

    def hint(self, constraint: Constraint[T], message: str) -> Constraint[T]:
        """Replace the message of a registered constraint, keeping its position.

        Raises:
            ValueError: If the constraint was not registered on this builder.
        """
        return self._replace(constraint, constraint.with_hint(message))

    def as_warning(self, constraint: Constraint[T]) -> Constraint[T]:
        """Turn a registered constraint into a non-blocking warning."""
        return self._replace(constraint, constraint.as_warning())

    def run(self, validation: Validation[T]) -> None:
        """Run a prebuilt validation on the value."""
        self._prebuilt.append(validation)

    def validate_if(
        self,
        path: PathLike,
        condition: Validation[T] | Callable[[AndValidationBuilder[T]], object],
    ) -> ConditionalPath[T, Any]:
        """Guard a path with a condition on the parent value.

        Navigation through the returned path only happens if ``condition``
        accepts the parent value; otherwise the step is skipped and passes.

        Args:
            path: Path to guard.
            condition: A validation, or a function declaring one on an
                ``AndValidationBuilder``.
        """
        if not isinstance(condition, Validation):
            condition_builder: AndValidationBuilder[T] = AndValidationBuilder()
            condition(condition_builder)
            condition = condition_builder.build()
        return ConditionalPath(as_path(path), condition)

    # Navigation

    def _navigate(self: B, key: PropKey, init: Callable[[B], object] | None) -> B:
        builder = self._nested.get(key)
        if builder is None:
            builder = self._nested[key] = self._new_builder()
        if init is not None:
            init(builder)  # type: ignore[arg-type]
        return builder  # type: ignore[return-value]

    def validate(self: B, path: PathLike, init: Callable[[B], object] | None = None) -> B:
        """Validate the value at ``path``, None included."""
        return self._navigate(PropKey(as_path(path)), init)

    has = validate

    def if_present(self: B, path: PathLike = THIS, init: Callable[[B], object] | None = None) -> B:
        """Validate the value at ``path`` unless it is None."""
        return self._navigate(PropKey(as_path(path), PathModifier.OPTIONAL), init)

    def required(self: B, path: PathLike = THIS, init: Callable[[B], object] | None = None) -> B:
        """Validate the value at ``path``, which must not be None."""
        return self._navigate(PropKey(as_path(path), PathModifier.REQUIRED), init)

    def all_in_iterable(self: B, path: PathLike, init: Callable[[B], object] | None = None) -> B:
        """Validate every element of the iterable at ``path``."""
        return self._navigate(PropKey(as_path(path), kind=PathKind.ITERABLE), init)

    def all_indices_in_iterable(
        self: B, path: PathLike, *indices: int, init: Callable[[B], object] | None = None
    ) -> B:
        """Validate the elements at ``indices`` of the iterable at ``path``."""
        key = PropKey(as_path(path), kind=PathKind.ITERABLE, selection=indices)
        return self._navigate(key, init)

    def all_in_array(self: B, path: PathLike, init: Callable[[B], object] | None = None) -> B:
        """Validate every element of the sequence at ``path``."""
        return self._navigate(PropKey(as_path(path), kind=PathKind.ARRAY), init)

    def all_indices_in_array(
        self: B, path: PathLike, *indices: int, init: Callable[[B], object] | None = None
    ) -> B:
        """Validate the elements at ``indices`` of the sequence at ``path``."""
        key = PropKey(as_path(path), kind=PathKind.ARRAY, selection=indices)
        return self._navigate(key, init)

    def all_in_map(self: B, path: PathLike, init: Callable[[B], object] | None = None) -> B:
        """Validate every entry of the mapping at ``path``.

        The nested builder validates ``Entry`` values; navigate to their parts
        with ``"key"`` and ``"value"``.
        """
        return self._navigate(PropKey(as_path(path), kind=PathKind.MAP), init)

    def all_keys_in_map(
        self: B, path: PathLike, *keys: Hashable, init: Callable[[B], object] | None = None
    ) -> B:
        """Validate the entries with ``keys`` of the mapping at ``path``."""
        key = PropKey(as_path(path), kind=PathKind.MAP, selection=keys)
        return self._navigate(key, init)

    def on_each(self: B, init: Callable[[B], object] | None = None) -> B:
        """Validate every element of the value, which is an iterable."""
        return self.all_in_iterable(THIS, init)

    def on_each_entry(self: B, init: Callable[[B], object] | None = None) -> B:
        """Validate every entry of the value, which is a mapping."""
        return self.all_in_map(THIS, init)

    def on_indices(self: B, *indices: int, init: Callable[[B], object] | None = None) -> list[B]:
        """Validate the elements of the value at ``indices``.

        Every index is a separate navigation step, so a missing index fails
        with ``IndexError`` when the validation runs.
        """
        return [self._navigate(PropKey(IndexPath(index)), init) for index in indices]

    def on_keys(self: B, *keys: Hashable, init: Callable[[B], object] | None = None) -> list[B]:
        """Validate the entries of the value with ``keys``.

        Every key is a separate navigation step, so a missing key fails with
        ``KeyError`` when the validation runs.
        """
        return [self._navigate(PropKey(MapEntryPath(key)), init) for key in keys]

    @abstractmethod
    def if_type(self, cls: type, init: Callable[[Any], object]) -> None:
        """Validate the value as ``cls`` if it is an instance; otherwise it passes."""
        ...

    @abstractmethod
    def require_type(self, cls: type, init: Callable[[Any], object]) -> None:
        """Validate the value as ``cls``; values of another type fail."""
        ...

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(constraints={len(self._constraints)}, "
            f"nested={len(self._nested)}, prebuilt={len(self._prebuilt)}, "
            f"short_circuit={self._short_circuit})"
        )


class AndValidationBuilder(ValidationBuilder[T]):
    """Builder whose checks must all pass. Does not short-circuit by default.

    Example:
        validation = Validation.of(
            lambda b: (
                b.has("name").min_length(1),
                b.or_(lambda o: (o.has("phone").is_not_none(), o.has("email").is_not_none())),
            )
        )
    """

    combine_with_or = False

    def _new_builder(self) -> AndValidationBuilder[Any]:
        return AndValidationBuilder()

    def short_circuit(self, init: Callable[[AndValidationBuilder[T]], object] | None = None) -> None:
        """Stop at the first failure.

        Without ``init`` this builder short-circuits; with ``init`` only the
        rules declared by ``init`` form a short-circuiting group.
        """
        if init is None:
            self._short_circuit = True
            return
        group: AndValidationBuilder[T] = AndValidationBuilder(short_circuit=True)
        init(group)
        self.run(group.build())

    def or_(self, init: Callable[[OrValidationBuilder[T]], object]) -> None:
        """Add a group of which any one check has to pass."""
        group: OrValidationBuilder[T] = OrValidationBuilder()
        init(group)
        self.run(group.build())

    def if_type(self, cls: type, init: Callable[[AndValidationBuilder[Any]], object]) -> None:
        def either(group: OrValidationBuilder[Any]) -> None:
            group.simple_custom(
                lambda value: not isinstance(value, cls), f"must not be of type {cls.__name__}"
            )
            group.and_(lambda typed: init(typed.validate(_type_path(cls))))

        self.or_(either)

    def require_type(self, cls: type, init: Callable[[AndValidationBuilder[Any]], object]) -> None:
        def checked(group: AndValidationBuilder[Any]) -> None:
            group.is_instance(cls)
            init(group.validate(_type_path(cls)))

        self.short_circuit(checked)


class OrValidationBuilder(ValidationBuilder[T]):
    """Builder of which any one check has to pass. Short-circuits by default."""

    combine_with_or = True

    def __init__(self, short_circuit: bool = True) -> None:
        super().__init__(short_circuit)

    def _new_builder(self) -> OrValidationBuilder[Any]:
        return OrValidationBuilder()

    def non_short_circuit(
        self, init: Callable[[OrValidationBuilder[T]], object] | None = None
    ) -> None:
        """Run every check even after one passed.

        Without ``init`` this builder stops short-circuiting; with ``init``
        only the rules declared by ``init`` form a non-short-circuiting group.
        """
        if init is None:
            self._short_circuit = False
            return
        group: OrValidationBuilder[T] = OrValidationBuilder(short_circuit=False)
        init(group)
        self.run(group.build())

    def and_(self, init: Callable[[AndValidationBuilder[T]], object]) -> None:
        """Add a group whose checks must all pass."""
        group: AndValidationBuilder[T] = AndValidationBuilder()
        init(group)
        self.run(group.build())

    def if_type(self, cls: type, init: Callable[[OrValidationBuilder[Any]], object]) -> None:
        self.simple_custom(
            lambda value: not isinstance(value, cls), f"must not be of type {cls.__name__}"
        )
        init(self.validate(_type_path(cls)))

    def require_type(self, cls: type, init: Callable[[OrValidationBuilder[Any]], object]) -> None:
        def checked(group: AndValidationBuilder[Any]) -> None:
            group.short_circuit()
            group.is_instance(cls)
            group.or_(lambda typed: init(typed.validate(_type_path(cls))))

        self.and_(checked)
