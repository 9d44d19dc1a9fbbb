"""Shared fixtures, sample types and Hypothesis strategies for tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest
from hypothesis import strategies as st
from pydantic import BaseModel

from composable_validation import (
    ModelValidationRegistry,
    ValidatedModel,
    ValidationEvent,
    ValidationEventType,
)

# -----------------------------------------------------------------------------
# Hypothesis Strategies
# -----------------------------------------------------------------------------

# Strategy for attribute-like names (letters only)
attribute_names = st.text(
    min_size=1,
    max_size=20,
    alphabet=st.characters(whitelist_categories=("Ll",)),  # type: ignore[arg-type]
)

# Strategy for messages without template placeholders
messages = st.text(
    min_size=1,
    max_size=100,
    alphabet=st.characters(blacklist_characters="{}"),
)

# Strategy for lists of small integers
int_lists = st.lists(st.integers(min_value=-100, max_value=100), max_size=20)

# Strategy for run-wide context values
context_dicts = st.dictionaries(
    keys=st.text(
        min_size=1,
        max_size=20,
        alphabet=st.characters(
            whitelist_categories=("L",)  # type: ignore[arg-type]
        ),
    ),
    values=st.one_of(st.integers(), st.text(max_size=50), st.booleans()),
    max_size=5,
)


# -----------------------------------------------------------------------------
# Sample Types
# -----------------------------------------------------------------------------


@dataclass
class Person:
    """Plain object with a few fields."""

    name: str | None = "Ada"
    family_name: str | None = None
    age: int = 30
    email: str | None = None
    nicknames: list[str] = field(default_factory=list)
    scores: dict[str, int] = field(default_factory=dict)

    def display_name(self) -> str:
        return f"{self.name} {self.family_name or ''}".strip()


@dataclass
class Address:
    """Nested object used inside collections."""

    city: str | None = "Berlin"
    postal_code: str = "10115"


@dataclass
class Customer:
    """Object with nested objects and collections."""

    person: Person | None = field(default_factory=Person)
    addresses: list[Address] = field(default_factory=list)
    tags: tuple[str, ...] = ()


class AddressModel(BaseModel):
    """Pydantic model referenced by other models."""

    city: str
    postal_code: str = "10115"


class PersonModel(ValidatedModel):
    """Pydantic model with a single and a collection relation."""

    name: str
    age: int = 0
    address: AddressModel | None = None
    addresses: list[AddressModel] = []


class EmployeeModel(PersonModel):
    """Subclass inheriting the rules of PersonModel."""

    employee_id: str = ""


class NodeModel(ValidatedModel):
    """Self-referential model."""

    name: str
    child: NodeModel | None = None
    children: list[NodeModel] = []


NodeModel.model_rebuild()


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


class RecordingObserver:
    """Observer that records every event it receives."""

    def __init__(self) -> None:
        self.events: list[ValidationEvent] = []

    def on_event(self, event: ValidationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: ValidationEventType) -> list[ValidationEvent]:
        return [e for e in self.events if e.event_type == event_type]


class CallCounter:
    """Wraps a predicate and counts how often it is called."""

    def __init__(self, result: bool = True) -> None:
        self.calls = 0
        self._result = result

    def __call__(self, value: Any, context: Any = None) -> bool:
        self.calls += 1
        return self._result


def counting(result: bool = True) -> CallCounter:
    """Create a CallCounter returning ``result``."""
    return CallCounter(result)


def always(result: bool) -> Callable[[Any, Any], bool]:
    """Constraint test returning ``result`` for every value."""
    return lambda value, context: result


# -----------------------------------------------------------------------------
# Pytest Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def person() -> Person:
    """Create a fresh, valid Person."""
    return Person(name="Ada", family_name="Lovelace", age=36, email="ada@example.com")


@pytest.fixture
def customer() -> Customer:
    """Create a Customer with two addresses."""
    return Customer(
        person=Person(name="Ada", family_name="Lovelace"),
        addresses=[Address(city="London"), Address(city="Paris")],
    )


@pytest.fixture
def observer() -> RecordingObserver:
    """Create a fresh RecordingObserver."""
    return RecordingObserver()


@pytest.fixture
def registry() -> ModelValidationRegistry:
    """Create an empty ModelValidationRegistry."""
    return ModelValidationRegistry()
