"""Flat export of validation results.

Provides Pydantic models that turn a result tree into records, for logging,
serialization or DataFrame analysis.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from composable_validation.results import ValidationResult

__all__ = ["ErrorRecord", "ErrorReport"]


class ErrorRecord(BaseModel):
    """A single failure of a validation run.

    Attributes:
        severity: "error" for blocking failures, "warning" otherwise.
        data_path: Rendered path to the failing value, e.g. "this.addresses[0].city".
        message: The failure message.
        value: The failing value as a string, None if the value was None.
    """

    model_config = ConfigDict(frozen=True)

    severity: Literal["error", "warning"]
    data_path: str
    message: str
    value: str | None = None


class ErrorReport(BaseModel):
    """All failures of a validation run, split by severity.

    Attributes:
        is_valid: Whether the run passed.
        errors: Blocking failures in evaluation order.
        warnings: Non-blocking failures in evaluation order.
        timestamp: ISO format timestamp of when the report was created.
    """

    is_valid: bool
    errors: list[ErrorRecord] = Field(default_factory=list)
    warnings: list[ErrorRecord] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())

    @classmethod
    def from_result(cls, result: ValidationResult[Any]) -> ErrorReport:
        """Build a report from a validation result.

        Warnings of a passing run are taken from ``result.warnings``.
        """
        leaves = result.flat_errors if not result.is_valid else result.warnings
        errors: list[ErrorRecord] = []
        warnings: list[ErrorRecord] = []
        for leaf in leaves:
            record = ErrorRecord(
                severity=leaf.severity,
                data_path=str(leaf.data_path),
                message=leaf.message,
                value=str(leaf.value) if leaf.value is not None else None,
            )
            (errors if leaf.severity == "error" else warnings).append(record)
        return cls(is_valid=result.is_valid, errors=errors, warnings=warnings)

    @property
    def error_count(self) -> int:
        """Get the number of blocking failures."""
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        """Get the number of non-blocking failures."""
        return len(self.warnings)

    def audit_log(self, source: str | None = None) -> list[dict[str, Any]]:
        """Export all records for DataFrame analysis.

        Args:
            source: Optional source identifier to add to each entry.

        Returns:
            List of dicts suitable for pd.DataFrame(), errors first.
        """
        entries: list[dict[str, Any]] = []
        for record in [*self.errors, *self.warnings]:
            d = record.model_dump()
            d["timestamp"] = self.timestamp
            if source:
                d["source"] = source
            entries.append(d)
        return entries
