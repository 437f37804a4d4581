"""SchemaRegistry - compiled JSON Schema validators for collection kinds.

Each workflow owns a collection schema mapping kind names to an item schema.
Validators are compiled once per (workflow_id, kind) and cached on the
registry instance until the store rewrites that workflow's schema.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from collectflow.errors import CollectionSchemaError, SchemaValidationError, UnknownKindError
from collectflow.models.collection import CollectionKindSchema, CollectionSchemaConfig

logger = logging.getLogger(__name__)

ROOT_PATH = "(root)"


@dataclass(frozen=True)
class FieldDiagnostic:
    """One schema violation."""

    path: str
    message: str


@dataclass
class ValidationResult:
    """Outcome of checking one payload."""

    valid: bool
    errors: list[FieldDiagnostic] = field(default_factory=list)


class ItemValidator:
    """Callable wrapper around a compiled Draft 2020-12 validator."""

    def __init__(self, schema: dict[str, Any]) -> None:
        self.schema = schema
        self._validator = Draft202012Validator(
            schema, format_checker=Draft202012Validator.FORMAT_CHECKER
        )

    def __call__(self, payload: Any) -> ValidationResult:
        diagnostics = []
        errors = sorted(
            self._validator.iter_errors(payload),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        for error in errors:
            path = ".".join(str(p) for p in error.absolute_path) or ROOT_PATH
            diagnostics.append(FieldDiagnostic(path=path, message=error.message))
        return ValidationResult(valid=not diagnostics, errors=diagnostics)


def effective_item_schema(kind_schema: CollectionKindSchema) -> dict[str, Any]:
    """The item schema with the kind-level ``required`` list merged in."""
    schema = copy.deepcopy(kind_schema.item_schema) or {"type": "object"}
    if kind_schema.required:
        required = list(schema.get("required", []))
        for name in kind_schema.required:
            if name not in required:
                required.append(name)
        schema["required"] = required
    return schema


def compile_schema(schema: dict[str, Any]) -> ItemValidator:
    """Compile a JSON Schema, raising CollectionSchemaError if it is malformed."""
    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as e:
        raise CollectionSchemaError(
            f"Invalid item schema: {e.message}",
            details={"path": ".".join(str(p) for p in e.absolute_path) or ROOT_PATH},
        ) from e
    return ItemValidator(schema)


class SchemaRegistry:
    """Cache of compiled item validators keyed by (workflow_id, kind)."""

    def __init__(self) -> None:
        self._cache: dict[tuple[str, str], ItemValidator] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def invalidate(self, workflow_id: str, kind: str | None = None) -> None:
        """Drop cached validators for a workflow, or only for one of its kinds."""
        if kind is not None:
            self._cache.pop((workflow_id, kind), None)
        else:
            for key in [k for k in self._cache if k[0] == workflow_id]:
                del self._cache[key]
        logger.debug(f"Invalidated schema cache for {workflow_id} (kind={kind or '*'})")

    def check_schema(self, schema_config: CollectionSchemaConfig) -> None:
        """Ensure every kind's item schema is a valid JSON Schema."""
        for kind, kind_schema in schema_config.kinds.items():
            try:
                compile_schema(effective_item_schema(kind_schema))
            except CollectionSchemaError as e:
                raise CollectionSchemaError(
                    f"Kind '{kind}': {e.message}", details={"kind": kind, **e.details}
                ) from e

    def get_validator(self, schema_config: CollectionSchemaConfig, kind: str) -> ItemValidator:
        kind_schema = schema_config.kinds.get(kind)
        if kind_schema is None:
            raise UnknownKindError(kind, sorted(schema_config.kinds))

        key = (schema_config.workflow_id, kind)
        validator = self._cache.get(key)
        if validator is None:
            validator = compile_schema(effective_item_schema(kind_schema))
            self._cache[key] = validator
            logger.debug(f"Compiled item schema for {schema_config.workflow_id}/{kind}")
        return validator

    def validate_item(
        self, schema_config: CollectionSchemaConfig, kind: str, payload: dict[str, Any]
    ) -> None:
        """Validate one payload; raises with every violation attached."""
        result = self.get_validator(schema_config, kind)(payload)
        if not result.valid:
            raise SchemaValidationError(kind, result.errors)

    def validate_items(
        self, schema_config: CollectionSchemaConfig, kind: str, payloads: list[dict[str, Any]]
    ) -> None:
        """Validate a batch; the first failing payload is reported with its index."""
        validator = self.get_validator(schema_config, kind)
        for index, payload in enumerate(payloads):
            result = validator(payload)
            if not result.valid:
                raise SchemaValidationError(kind, result.errors, index=index)
