"""Serialization helpers shared by the document models."""

from typing import Any

from pydantic import BaseModel


def compact_dump(model: BaseModel) -> dict[str, Any]:
    """Dump a model to JSON-ready data, omitting its unset optional fields.

    Only the model's own fields are dropped when None; nested user data such
    as item payloads or JSON Schemas keep their explicit nulls.
    """
    data = model.model_dump(mode="json", by_alias=True)
    return {key: value for key, value in data.items() if value is not None}
