"""Tests for the pydantic model rule registry."""

from __future__ import annotations

from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from pydantic_core import PydanticCustomError

from composable_validation import (
    ModelValidationRegistry,
    Valid,
    Validation,
    ValidationEventType,
    default_registry,
    validated_field,
)
from composable_validation.models import VISITED_MODELS_KEY

from .conftest import AddressModel, EmployeeModel, NodeModel, PersonModel, RecordingObserver


@pytest.fixture
def clean_default_registry() -> Iterator[ModelValidationRegistry]:
    """Yield the default registry and remove its rules afterwards."""
    default_registry.clear()
    yield default_registry
    default_registry.clear()


# =============================================================================
# Rule Registration Unit Tests
# =============================================================================


class TestRegistrationUnit:
    """Unit tests for registering model rules."""

    def test_class_rule(self, registry: ModelValidationRegistry) -> None:
        """Test a rule on the whole model."""
        registry.validated(PersonModel, lambda b: b.has("name").min_length(2))

        result = registry.full_validation(PersonModel).validate(PersonModel(name="A"))

        assert [str(e.data_path) for e in result.flat_errors] == ["this.name"]

    def test_class_rule_as_validation(self, registry: ModelValidationRegistry) -> None:
        """Test registering a prebuilt validation."""
        registry.validated(PersonModel, Validation.of(lambda b: b.has("age").maximum(150)))

        result = registry.full_validation(PersonModel).validate(PersonModel(name="Ada", age=200))

        assert [e.message for e in result.errors_at("age")] == ["must be at most '150'"]

    def test_decorator_form(self, registry: ModelValidationRegistry) -> None:
        """Test validated used as a decorator."""

        @registry.validated(PersonModel)
        def person_rules(b):
            b.has("name").min_length(2)

        assert callable(person_rules)
        assert not registry.full_validation(PersonModel).validate(PersonModel(name="A")).is_valid

    def test_field_rule(self, registry: ModelValidationRegistry) -> None:
        """Test a rule on a single field."""
        registry.validated_field(PersonModel, "age", lambda b: b.minimum(0))

        result = registry.full_validation(PersonModel).validate(PersonModel(name="Ada", age=-1))

        assert [e.message for e in result.errors_at("age")] == ["must be at least '0'"]

    def test_unknown_field_raises(self, registry: ModelValidationRegistry) -> None:
        """Test that a field rule on a missing field raises ValueError."""
        with pytest.raises(ValueError, match="no field named 'nope'"):
            registry.validated_field(PersonModel, "nope", lambda b: b.is_not_none())

    def test_failed_compilation_is_not_cached(self) -> None:
        """Test that a compilation error leaves no placeholder behind."""

        class FailOnceRegistry(ModelValidationRegistry):
            failures = 1

            def _build(self, model_cls):
                if self.failures:
                    self.failures -= 1
                    raise RuntimeError("compilation failed")
                return super()._build(model_cls)

        registry = FailOnceRegistry()
        registry.validated(PersonModel, lambda b: b.has("name").min_length(2))

        with pytest.raises(RuntimeError, match="compilation failed"):
            registry.compiled(PersonModel)

        assert registry.compiled(PersonModel) is not None
        assert not registry.full_validation(PersonModel).validate(PersonModel(name="A")).is_valid

    def test_model_without_rules_is_valid(self, registry: ModelValidationRegistry) -> None:
        """Test that a model without rules passes."""
        result = registry.full_validation(PersonModel).validate(PersonModel(name=""))

        assert isinstance(result, Valid)

    def test_rules_added_later_apply(self, registry: ModelValidationRegistry) -> None:
        """Test that registering invalidates compiled validations."""
        validation = registry.full_validation(PersonModel)
        model = PersonModel(name="")
        assert validation.validate(model).is_valid

        registry.validated_field(PersonModel, "name", lambda b: b.min_length(1))

        assert not validation.validate(model).is_valid

    def test_clear(self, registry: ModelValidationRegistry) -> None:
        """Test that clear removes every rule."""
        registry.validated_field(PersonModel, "name", lambda b: b.min_length(1))
        registry.clear()

        assert registry.full_validation(PersonModel).validate(PersonModel(name="")).is_valid

    def test_registries_are_independent(self, registry: ModelValidationRegistry) -> None:
        """Test that rules stay in the registry they were added to."""
        other = ModelValidationRegistry()
        registry.validated_field(PersonModel, "name", lambda b: b.min_length(1))

        assert other.full_validation(PersonModel).validate(PersonModel(name="")).is_valid


# =============================================================================
# Inheritance and Relation Unit Tests
# =============================================================================


class TestInheritanceUnit:
    """Unit tests for rules of base classes."""

    def test_base_rules_apply_to_subclass(self, registry: ModelValidationRegistry) -> None:
        """Test that a subclass inherits class and field rules."""
        registry.validated_field(PersonModel, "age", lambda b: b.minimum(0))

        result = registry.full_validation(EmployeeModel).validate(
            EmployeeModel(name="Ada", age=-1)
        )

        assert [str(e.data_path) for e in result.flat_errors] == ["this.age"]

    def test_subclass_rules_do_not_apply_to_base(self, registry: ModelValidationRegistry) -> None:
        """Test that rules of a subclass stay there."""
        registry.validated_field(EmployeeModel, "employee_id", lambda b: b.min_length(1))

        assert registry.full_validation(PersonModel).validate(PersonModel(name="Ada")).is_valid
        assert not registry.full_validation(EmployeeModel).validate(
            EmployeeModel(name="Ada")
        ).is_valid

    def test_own_class_rules_first(self, registry: ModelValidationRegistry) -> None:
        """Test that the class's own rules run before inherited ones."""
        registry.validated(PersonModel, lambda b: b.simple_custom(lambda m: False, "person rule"))
        registry.validated(EmployeeModel, lambda b: b.simple_custom(lambda m: False, "employee rule"))

        result = registry.full_validation(EmployeeModel).validate(EmployeeModel(name="Ada"))

        assert [e.message for e in result.flat_errors] == ["employee rule", "person rule"]


class TestRelationsUnit:
    """Unit tests for fields holding other models."""

    def test_single_relation(self, registry: ModelValidationRegistry) -> None:
        """Test that rules of a related model apply under its field."""
        registry.validated_field(AddressModel, "city", lambda b: b.min_length(2))

        result = registry.full_validation(PersonModel).validate(
            PersonModel(name="Ada", address=AddressModel(city="X"))
        )

        assert [str(e.data_path) for e in result.flat_errors] == ["this.address.city"]
        assert len(result.errors_at("address", "city")) == 1

    def test_absent_relation_passes(self, registry: ModelValidationRegistry) -> None:
        """Test that a None relation is not validated."""
        registry.validated_field(AddressModel, "city", lambda b: b.min_length(2))

        assert registry.full_validation(PersonModel).validate(PersonModel(name="Ada")).is_valid

    def test_collection_relation(self, registry: ModelValidationRegistry) -> None:
        """Test that every model of a list field is validated."""
        registry.validated_field(AddressModel, "city", lambda b: b.min_length(2))
        model = PersonModel(
            name="Ada",
            addresses=[AddressModel(city="Berlin"), AddressModel(city="Y")],
        )

        result = registry.full_validation(PersonModel).validate(model)

        assert [str(e.data_path) for e in result.flat_errors] == ["this.addresses[1].city"]
        assert [e.value for e in result.errors_at("addresses", 1, "city")] == ["Y"]

    def test_recursive_model_rules(self, registry: ModelValidationRegistry) -> None:
        """Test rules of a self-referential model at every level."""
        registry.validated_field(NodeModel, "name", lambda b: b.min_length(2))
        tree = NodeModel(name="root", child=NodeModel(name="x", children=[NodeModel(name="y")]))

        result = registry.full_validation(NodeModel).validate(tree)

        assert [str(e.data_path) for e in result.flat_errors] == [
            "this.child.name",
            "this.child.children[0].name",
        ]


# =============================================================================
# Cycle Guard Unit Tests
# =============================================================================


class TestCycleGuardUnit:
    """Unit tests for repeated visits of one instance."""

    def test_self_reference_terminates(self, registry: ModelValidationRegistry) -> None:
        """Test that a model referring to itself fails once at the repeat."""
        node = NodeModel(name="a")
        node.child = node

        result = registry.full_validation(NodeModel).validate(node)

        assert [e.message for e in result.flat_errors] == ["already validated"]
        assert [e.message for e in result.errors_at("child")] == ["already validated"]
        assert result.errors_at("child")[0].value is node

    def test_longer_cycle(self, registry: ModelValidationRegistry) -> None:
        """Test a cycle through two instances."""
        first = NodeModel(name="a")
        second = NodeModel(name="b", child=first)
        first.child = second

        result = registry.full_validation(NodeModel).validate(first)

        assert [str(e.data_path) for e in result.flat_errors] == ["this.child.child"]

    def test_shared_instance_in_collection(self, registry: ModelValidationRegistry) -> None:
        """Test that the same instance twice in a list is visited once."""
        shared = NodeModel(name="s")
        root = NodeModel(name="r", children=[shared, shared])

        result = registry.full_validation(NodeModel).validate(root)

        assert result.errors_at("children", 0, include_sub_errors=True) == []
        assert [e.message for e in result.errors_at("children", 1)] == ["already validated"]

    def test_visited_ids_in_context(self, registry: ModelValidationRegistry) -> None:
        """Test that visited instances are kept under their context key."""
        seen: list[set[int]] = []
        registry.validated(
            NodeModel,
            lambda b: b.custom(lambda value, ctx: seen.append(set(ctx[VISITED_MODELS_KEY])) is None),
        )
        node = NodeModel(name="a")

        registry.full_validation(NodeModel).validate(node)

        assert seen == [{id(node)}]


# =============================================================================
# ValidatedModel Unit Tests
# =============================================================================


class TestValidatedModelUnit:
    """Unit tests for ValidatedModel.run_validation."""

    def test_run_validation_with_registry(self, registry: ModelValidationRegistry) -> None:
        """Test validation against an explicit registry."""
        registry.validated_field(PersonModel, "name", lambda b: b.min_length(2))

        assert not PersonModel(name="A").run_validation(registry=registry).is_valid
        assert PersonModel(name="Ada").run_validation(registry=registry).is_valid

    def test_run_validation_default_registry(
        self, clean_default_registry: ModelValidationRegistry
    ) -> None:
        """Test the module level registration functions."""
        validated_field(PersonModel, "age", lambda b: b.minimum(0))

        result = PersonModel(name="Ada", age=-5).run_validation()

        assert [e.value for e in result.errors_at("age")] == [-5]

    def test_raise_on_invalid(self, registry: ModelValidationRegistry) -> None:
        """Test that failures raise PydanticCustomError on request."""
        registry.validated_field(PersonModel, "name", lambda b: b.min_length(2))

        with pytest.raises(PydanticCustomError) as exc_info:
            PersonModel(name="A").run_validation(registry=registry, raise_on_invalid=True)

        error = exc_info.value
        assert error.type == "model_validation"
        assert error.message() == "PersonModel failed validation with 1 error(s)"
        assert error.context is not None
        assert error.context["errors"] == [
            {"data_path": "this.name", "message": "must have at least 2 characters"}
        ]

    def test_raise_on_invalid_passes_valid(self, registry: ModelValidationRegistry) -> None:
        """Test that valid models return normally."""
        result = PersonModel(name="Ada").run_validation(registry=registry, raise_on_invalid=True)

        assert result.is_valid

    def test_model_observers_receive_events(self, registry: ModelValidationRegistry) -> None:
        """Test that observers added to the model see its runs."""
        registry.validated_field(PersonModel, "name", lambda b: b.min_length(2))
        observer = RecordingObserver()
        model = PersonModel(name="A")
        model.add_observer(observer)

        model.run_validation(registry=registry)

        assert [e.event_type for e in observer.events] == [
            ValidationEventType.VALIDATION_STARTED,
            ValidationEventType.ERROR_ADDED,
            ValidationEventType.VALIDATION_COMPLETED,
        ]

    def test_observers_do_not_leak_between_models(self, registry: ModelValidationRegistry) -> None:
        """Test that an observer of one model is not told about another."""
        observer = RecordingObserver()
        watched = PersonModel(name="Ada")
        watched.add_observer(observer)

        PersonModel(name="Bob").run_validation(registry=registry)

        assert observer.events == []


# =============================================================================
# Concurrency and Property-Based Tests
# =============================================================================


class TestModelsConcurrency:
    """Tests for compiling and running from several threads."""

    def test_parallel_compilation(self, registry: ModelValidationRegistry) -> None:
        """Test that concurrent first use gives consistent results."""
        registry.validated_field(AddressModel, "city", lambda b: b.min_length(2))
        registry.validated_field(PersonModel, "name", lambda b: b.min_length(2))
        models = [
            PersonModel(name="A" * (i % 3), addresses=[AddressModel(city="Zz" * (i % 2))])
            for i in range(60)
        ]

        def error_count(model: PersonModel) -> int:
            return len(registry.full_validation(PersonModel).validate(model).flat_errors)

        with ThreadPoolExecutor(max_workers=8) as pool:
            counts = list(pool.map(error_count, models))

        assert counts == [int(i % 3 < 2) + int(i % 2 == 0) for i in range(60)]


class TestModelsPropertyBased:
    """Property-based tests for model validation."""

    @given(depth=st.integers(min_value=1, max_value=8))
    @settings(max_examples=20)
    def test_cycle_of_any_length_reports_once(self, depth: int) -> None:
        """Test that a ring of nodes fails exactly once."""
        registry = ModelValidationRegistry()
        nodes = [NodeModel(name=f"n{i}") for i in range(depth)]
        for current, following in zip(nodes, nodes[1:] + nodes[:1]):
            current.child = following

        result = registry.full_validation(NodeModel).validate(nodes[0])

        assert [e.message for e in result.flat_errors] == ["already validated"]
        assert str(result.flat_errors[0].data_path) == "this" + ".child" * depth
