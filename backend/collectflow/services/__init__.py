"""Services for collectflow.

The engines that talk to the store (``mutation_engine``, ``run_engine``,
``run_lifecycle``) are imported from their modules directly.
"""

from collectflow.services.graph_validator import (
    build_version_record,
    derive_dependencies,
    validate_workflow_version,
)
from collectflow.services.json_patch import apply_patch, parse_pointer
from collectflow.services.schema_registry import (
    FieldDiagnostic,
    ItemValidator,
    SchemaRegistry,
    ValidationResult,
    compile_schema,
)

__all__ = [
    "FieldDiagnostic",
    "ItemValidator",
    "SchemaRegistry",
    "ValidationResult",
    "apply_patch",
    "build_version_record",
    "compile_schema",
    "derive_dependencies",
    "parse_pointer",
    "validate_workflow_version",
]
