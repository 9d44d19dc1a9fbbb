"""Composable, path-addressed validation rules for Python objects."""

from composable_validation.builder import (
    AndValidationBuilder,
    OrValidationBuilder,
    PathKind,
    PathModifier,
    PropKey,
    ValidationBuilder,
)
from composable_validation.constraints import Constraint, ConstraintCatalog
from composable_validation.context import ValidationContext
from composable_validation.events import (
    ObservableMixin,
    ValidationEvent,
    ValidationEventType,
    ValidationObserver,
)
from composable_validation.models import (
    ModelValidation,
    ModelValidationRegistry,
    ValidatedModel,
    default_registry,
    full_validation,
    validated,
    validated_field,
)
from composable_validation.paths import (
    THIS,
    ConditionalPath,
    CustomPath,
    Entry,
    FunctionPath,
    IndexPath,
    MapEntryPath,
    PathDescriptor,
    PropertyPath,
    ThisPath,
    ValidationPath,
)
from composable_validation.protocols import ValidationProtocol
from composable_validation.report import ErrorRecord, ErrorReport
from composable_validation.results import (
    AndResult,
    CompoundResult,
    Invalid,
    LogicalResult,
    OrResult,
    PathResult,
    SimpleInvalidResult,
    Valid,
    ValidationError,
    ValidationResult,
    ValidationStateError,
    ValidationWarning,
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

# Lazy imports for optional dependencies (rich)
_RICH_NAMES = frozenset({"RichReportObserver", "render_tree"})


def __getattr__(name: str) -> object:
    """Lazy import for optional dependencies.

    This function enables lazy loading of rich components, which require the
    optional 'rich' package. The components are only loaded when first
    accessed, avoiding import errors when rich is not installed.

    Args:
        name: The attribute name being accessed.

    Returns:
        The requested object from the rich_output module.

    Raises:
        ImportError: If rich is not installed and a rich component is requested.
        AttributeError: If the requested attribute doesn't exist.
    """
    if name in _RICH_NAMES:
        try:
            from composable_validation.rich_output import RichReportObserver, render_tree

            _components = {
                "RichReportObserver": RichReportObserver,
                "render_tree": render_tree,
            }
            return _components[name]
        except ImportError as e:
            raise ImportError(
                f"{name} requires rich. Install with: pip install composable-validation[rich]"
            ) from e
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Paths
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
    # Constraints
    "Constraint",
    "ConstraintCatalog",
    # Results
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
    # Engine
    "ArrayValidation",
    "IterableValidation",
    "MapValidation",
    "ObjectValidation",
    "OptionalPathValidation",
    "RequiredPathValidation",
    "UndefinedPathValidation",
    "Validation",
    "ValidationContext",
    "ValidationProtocol",
    # Builders
    "AndValidationBuilder",
    "OrValidationBuilder",
    "PathKind",
    "PathModifier",
    "PropKey",
    "ValidationBuilder",
    # Observer pattern
    "ObservableMixin",
    "ValidationEvent",
    "ValidationEventType",
    "ValidationObserver",
    # Pydantic models
    "ModelValidation",
    "ModelValidationRegistry",
    "ValidatedModel",
    "default_registry",
    "full_validation",
    "validated",
    "validated_field",
    # Reporting
    "ErrorRecord",
    "ErrorReport",
    # Rich output (lazy-loaded, requires rich optional dependency)
    "RichReportObserver",
    "render_tree",
]

__version__ = "0.1.0"
