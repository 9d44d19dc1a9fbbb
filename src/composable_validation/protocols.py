"""Validation protocols for type checking.

Structural type for anything that can validate a value.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from composable_validation.results import ValidationResult

__all__ = ["ValidationProtocol"]

T = TypeVar("T", contravariant=True)


@runtime_checkable
class ValidationProtocol(Protocol[T]):
    """Protocol for validation implementations.

    Use this for type hints when accepting any validation, including ones
    that do not subclass ``Validation``.
    Generic over T, the type of value being validated.
    """

    def validate(
        self, value: T, context: Mapping[str, Any] | None = None
    ) -> ValidationResult[Any]:
        """Validate a value."""
        ...
