"""Rule registry for pydantic models.

Rules are registered per model class, for the whole model or for single
fields. ``full_validation`` compiles them into one validation that also
follows fields holding other models, recursively, and refuses to validate the
same model instance twice within a run, which keeps cyclic object graphs from
recursing forever.
"""

from __future__ import annotations

import threading
import types
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict
from pydantic_core import PydanticCustomError

from composable_validation.builder import AndValidationBuilder
from composable_validation.context import ValidationContext
from composable_validation.events import ObservableMixin
from composable_validation.results import AndResult, ValidationError, ValidationResult
from composable_validation.validators import Validation

__all__ = [
    "VISITED_MODELS_KEY",
    "ModelValidation",
    "ModelValidationRegistry",
    "ValidatedModel",
    "clear",
    "default_registry",
    "full_validation",
    "validated",
    "validated_field",
]

M = TypeVar("M", bound=BaseModel)

VISITED_MODELS_KEY = "composable_validation.visited_models"
"""Context key of the set of model instance ids visited during a run."""

RuleInit = Callable[[AndValidationBuilder[Any]], object]

_COLLECTION_ORIGINS = (list, set, tuple, frozenset, Sequence)


def _relation_target(annotation: Any) -> tuple[type[BaseModel] | None, bool]:
    """Find the model class a field annotation refers to.

    Returns:
        ``(model_cls, is_collection)``; ``model_cls`` is None for fields
        that hold no model.
    """
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return _relation_target(members[0])
        return None, False
    if origin in _COLLECTION_ORIGINS:
        members = [arg for arg in get_args(annotation) if arg is not Ellipsis]
        if len(members) == 1:
            target, nested = _relation_target(members[0])
            if target is not None and not nested:
                return target, True
        return None, False
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation, False
    return None, False


def _as_validation(rule: Validation[Any] | RuleInit) -> Validation[Any]:
    if isinstance(rule, Validation):
        return rule
    return Validation.of(rule)


class ModelValidation(Validation[M]):
    """Full validation of one model class, looked up in its registry per run.

    Every visit first records the instance in the run's context; visiting
    the same instance again fails with "already validated" instead of
    validating it again.
    """

    def __init__(self, registry: ModelValidationRegistry, model_cls: type[M]) -> None:
        self.registry = registry
        self.model_cls = model_cls

    def evaluate(self, value: M, context: ValidationContext) -> bool:
        visited: set[int] = context.setdefault(VISITED_MODELS_KEY, set())
        if id(value) in visited:
            context.push(lambda parent: AndResult(value, parent))
            context.add_invalid_result(
                lambda parent: ValidationError("already validated", value, parent)
            )
            context.pop_and_add_to_parent()
            return False
        visited.add(id(value))

        compiled = self.registry.compiled(self.model_cls)
        if compiled is None:
            return True
        return compiled.evaluate(value, context)

    def __repr__(self) -> str:
        return f"ModelValidation({self.model_cls.__name__})"


class ModelValidationRegistry:
    """Holds validation rules for pydantic model classes.

    Rules of a class also apply to its subclasses. Compiled validations are
    cached per class until another rule is registered.

    Example:
        registry = ModelValidationRegistry()

        @registry.validated(Person)
        def person_rules(b):
            b.has("name").min_length(1)

        registry.validated_field(Person, "age", lambda b: b.minimum(0))
        result = registry.full_validation(Person).validate(person)
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._class_rules: dict[type[BaseModel], list[Validation[Any]]] = {}
        self._field_rules: dict[type[BaseModel], dict[str, list[Validation[Any]]]] = {}
        # None marks a class whose compilation is in progress.
        self._cache: dict[type[BaseModel], Validation[Any] | None] = {}

    def validated(
        self, model_cls: type[M], rule: Validation[Any] | RuleInit | None = None
    ) -> Any:
        """Register a rule on the whole model.

        Without ``rule`` this returns a decorator that registers the decorated
        function and returns it unchanged.

        Args:
            model_cls: Model class the rule applies to.
            rule: A validation, or a function declaring one on an
                ``AndValidationBuilder``.
        """
        if rule is None:

            def decorator(init: RuleInit) -> RuleInit:
                self.validated(model_cls, init)
                return init

            return decorator
        with self._lock:
            self._class_rules.setdefault(model_cls, []).append(_as_validation(rule))
            self._cache.clear()
        return None

    def validated_field(
        self, model_cls: type[M], field: str, rule: Validation[Any] | RuleInit
    ) -> None:
        """Register a rule on one field of the model.

        Raises:
            ValueError: If the model has no such field.
        """
        if field not in model_cls.model_fields:
            raise ValueError(f"{model_cls.__name__} has no field named {field!r}")
        with self._lock:
            rules = self._field_rules.setdefault(model_cls, {})
            rules.setdefault(field, []).append(_as_validation(rule))
            self._cache.clear()

    def full_validation(self, model_cls: type[M]) -> Validation[M]:
        """Validation running every rule that applies to ``model_cls`` instances."""
        with self._lock:
            if model_cls not in self._cache:
                self._compile(model_cls)
        return ModelValidation(self, model_cls)

    def compiled(self, model_cls: type[M]) -> Validation[M] | None:
        """The compiled rules of ``model_cls``, compiling them if needed."""
        with self._lock:
            if model_cls not in self._cache:
                self._compile(model_cls)
            return self._cache[model_cls]

    def clear(self) -> None:
        """Remove all rules and compiled validations."""
        with self._lock:
            self._class_rules.clear()
            self._field_rules.clear()
            self._cache.clear()

    def _bases(self, model_cls: type[BaseModel]) -> Iterable[type[BaseModel]]:
        for base in model_cls.__mro__:
            if isinstance(base, type) and issubclass(base, BaseModel) and base is not BaseModel:
                yield base

    def _compile(self, model_cls: type[BaseModel]) -> None:
        self._cache[model_cls] = None
        try:
            self._cache[model_cls] = self._build(model_cls)
        except Exception:
            self._cache.pop(model_cls, None)
            raise

    def _build(self, model_cls: type[BaseModel]) -> Validation[Any]:
        bases = list(self._bases(model_cls))
        builder: AndValidationBuilder[Any] = AndValidationBuilder()

        for base in bases:
            for rule in self._class_rules.get(base, []):
                builder.run(rule)

        for name, field_info in model_cls.model_fields.items():
            for base in bases:
                for rule in self._field_rules.get(base, {}).get(name, []):
                    builder.has(name).run(rule)

            target, is_collection = _relation_target(field_info.annotation)
            if target is None:
                continue
            nested = self.full_validation(target)
            if is_collection:
                builder.if_present(name).on_each().run(nested)
            else:
                builder.if_present(name).run(nested)

        return builder.build()

    def __repr__(self) -> str:
        return (
            f"ModelValidationRegistry(classes={len(self._class_rules)}, "
            f"fields={sum(len(rules) for rules in self._field_rules.values())})"
        )


default_registry = ModelValidationRegistry()
"""Registry used by the module level functions and ``ValidatedModel``."""

validated = default_registry.validated
validated_field = default_registry.validated_field
full_validation = default_registry.full_validation
clear = default_registry.clear


class ValidatedModel(ObservableMixin, BaseModel):
    """Pydantic base model that can run its registered validation rules.

    Observers added to the model receive the events of its validation runs.

    Example:
        class Person(ValidatedModel):
            name: str
            age: int

        validated_field(Person, "age", lambda b: b.minimum(0))
        Person(name="Ada", age=-1).run_validation().is_valid  # False
    """

    model_config = ConfigDict(
        # Subclasses can override this
        extra="ignore",
    )

    def run_validation(
        self,
        context: Mapping[str, Any] | None = None,
        *,
        registry: ModelValidationRegistry | None = None,
        raise_on_invalid: bool = False,
    ) -> ValidationResult[Any]:
        """Validate this model with the rules registered for its class.

        Args:
            context: Initial run-wide values.
            registry: Registry to take the rules from. Defaults to
                ``default_registry``.
            raise_on_invalid: If True, raise instead of returning a failure.

        Returns:
            ``Valid`` or the failure tree.

        Raises:
            PydanticCustomError: If ``raise_on_invalid`` is set and the model
                failed validation.
        """
        validation = (registry or default_registry).full_validation(type(self))
        for observer in self.observers:
            validation.add_observer(observer)
        result = validation.validate(self, context)
        if raise_on_invalid and not result.is_valid:
            raise PydanticCustomError(
                "model_validation",
                "{model} failed validation with {count} error(s)",
                {
                    "model": type(self).__name__,
                    "count": len(result.flat_errors),
                    "errors": [
                        {"data_path": str(leaf.data_path), "message": leaf.message}
                        for leaf in result.flat_errors
                    ],
                },
            )
        return result
