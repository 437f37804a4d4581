"""JSON Patch (RFC 6902) over plain JSON documents.

Pointers (RFC 6901) are parsed into typed tokens before anything is applied:
``KeyToken`` for object members, ``IndexToken`` for array positions and
``AppendToken`` for the "-" end-of-array marker. A document is never
modified in place; ``apply_patch`` works on a deep copy.
"""

import copy
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from collectflow.errors import PatchApplyError, PatchTestFailedError
from collectflow.models.mutation import PatchOperation


@dataclass(frozen=True)
class KeyToken:
    key: str


@dataclass(frozen=True)
class IndexToken:
    index: int

    @property
    def key(self) -> str:
        return str(self.index)


@dataclass(frozen=True)
class AppendToken:
    key: str = "-"


Token = KeyToken | IndexToken | AppendToken


def _unescape(segment: str) -> str:
    if "~" in segment:
        # "~1" first so "~01" decodes to "~1", not "/"
        stripped = segment.replace("~1", "").replace("~0", "")
        if "~" in stripped:
            raise PatchApplyError(f"Invalid escape sequence in pointer segment: {segment!r}")
        segment = segment.replace("~1", "/").replace("~0", "~")
    return segment


def _is_array_index(segment: str) -> bool:
    # ASCII digits without a leading zero; str.isdigit alone accepts "²" and "٣"
    return segment.isascii() and segment.isdigit() and (segment == "0" or segment[0] != "0")


def parse_pointer(path: str) -> list[Token]:
    """Parse a JSON Pointer string into typed tokens."""
    if path == "":
        return []
    if not path.startswith("/"):
        raise PatchApplyError(f"JSON pointer must start with '/': {path!r}")

    tokens: list[Token] = []
    for raw in path[1:].split("/"):
        segment = _unescape(raw)
        if segment == "-":
            tokens.append(AppendToken())
        elif _is_array_index(segment):
            tokens.append(IndexToken(int(segment)))
        else:
            tokens.append(KeyToken(segment))
    return tokens


def format_pointer(tokens: list[Token]) -> str:
    return "".join("/" + t.key.replace("~", "~0").replace("/", "~1") for t in tokens)


def _child(container: Any, token: Token, path: str) -> Any:
    """Step into an existing child; raises if it does not exist."""
    if isinstance(container, dict):
        if token.key not in container:
            raise PatchApplyError(f"Path does not exist: {path}")
        return container[token.key]
    if isinstance(container, list):
        if not isinstance(token, IndexToken):
            raise PatchApplyError(f"Invalid array index {token.key!r} in path: {path}")
        if token.index >= len(container):
            raise PatchApplyError(f"Array index out of range in path: {path}")
        return container[token.index]
    raise PatchApplyError(f"Cannot traverse into a scalar value at path: {path}")


def get_value(document: Any, tokens: list[Token]) -> Any:
    path = format_pointer(tokens)
    current = document
    for token in tokens:
        current = _child(current, token, path)
    return current


def _parent(document: Any, tokens: list[Token]) -> Any:
    path = format_pointer(tokens)
    current = document
    for token in tokens[:-1]:
        current = _child(current, token, path)
    return current


def add_value(document: Any, tokens: list[Token], value: Any) -> Any:
    if not tokens:
        return value
    path = format_pointer(tokens)
    parent = _parent(document, tokens)
    last = tokens[-1]
    if isinstance(parent, dict):
        parent[last.key] = value
    elif isinstance(parent, list):
        if isinstance(last, AppendToken):
            parent.append(value)
        elif isinstance(last, IndexToken) and last.index <= len(parent):
            parent.insert(last.index, value)
        else:
            raise PatchApplyError(f"Invalid array index for add at path: {path}")
    else:
        raise PatchApplyError(f"Cannot add a member to a scalar value at path: {path}")
    return document


def remove_value(document: Any, tokens: list[Token]) -> tuple[Any, Any]:
    """Remove and return the value at ``tokens``."""
    if not tokens:
        raise PatchApplyError("Cannot remove the document root")
    path = format_pointer(tokens)
    parent = _parent(document, tokens)
    last = tokens[-1]
    # existence check with a uniform error
    _child(parent, last, path)
    if isinstance(parent, dict):
        return document, parent.pop(last.key)
    return document, parent.pop(last.index)


def replace_value(document: Any, tokens: list[Token], value: Any) -> Any:
    if not tokens:
        return value
    path = format_pointer(tokens)
    parent = _parent(document, tokens)
    last = tokens[-1]
    _child(parent, last, path)
    if isinstance(parent, dict):
        parent[last.key] = value
    else:
        parent[last.index] = value
    return document


def json_equal(left: Any, right: Any) -> bool:
    """Equality by JSON semantics: true is not 1, but 1 equals 1.0."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(json_equal(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(json_equal(a, b) for a, b in zip(left, right))
    return type(left) is type(right) and left == right


def _require_value(operation: PatchOperation) -> Any:
    if "value" not in operation.model_fields_set:
        raise PatchApplyError(f"'{operation.op}' requires a value")
    return copy.deepcopy(operation.value)


def _require_from(operation: PatchOperation) -> list[Token]:
    if operation.from_ is None:
        raise PatchApplyError(f"'{operation.op}' requires 'from'")
    return parse_pointer(operation.from_)


def apply_operation(document: Any, operation: PatchOperation, index: int = 0) -> Any:
    """Apply one operation and return the resulting document."""
    tokens = parse_pointer(operation.path)

    if operation.op == "add":
        return add_value(document, tokens, _require_value(operation))
    if operation.op == "remove":
        document, _ = remove_value(document, tokens)
        return document
    if operation.op == "replace":
        return replace_value(document, tokens, _require_value(operation))
    if operation.op == "move":
        source = _require_from(operation)
        if format_pointer(source) == format_pointer(tokens):
            get_value(document, source)
            return document
        source_keys = [t.key for t in source]
        if source_keys == [t.key for t in tokens][: len(source)]:
            raise PatchApplyError(f"cannot move {operation.from_} into its own child")
        document, value = remove_value(document, source)
        return add_value(document, tokens, value)
    if operation.op == "copy":
        value = copy.deepcopy(get_value(document, _require_from(operation)))
        return add_value(document, tokens, value)
    if operation.op == "test":
        expected = _require_value(operation)
        actual = get_value(document, tokens)
        if not json_equal(actual, expected):
            raise PatchTestFailedError(
                f"patch[{index}]: test failed at {operation.path}",
                details={
                    "index": index,
                    "path": operation.path,
                    "expected": expected,
                    "actual": actual,
                },
            )
        return document
    raise PatchApplyError(f"unsupported operation '{operation.op}'")


def parse_operations(patch: list[Any]) -> list[PatchOperation]:
    if not isinstance(patch, list):
        raise PatchApplyError("Patch must be an array of operations")
    operations = []
    for index, raw in enumerate(patch):
        if isinstance(raw, PatchOperation):
            operations.append(raw)
            continue
        try:
            operations.append(PatchOperation.model_validate(raw))
        except ValidationError as e:
            raise PatchApplyError(
                f"patch[{index}] is not a valid operation: {e.errors()[0]['msg']}",
                details={"index": index},
            ) from e
    return operations


def apply_patch(document: Any, patch: list[Any]) -> Any:
    """Apply all operations in order to a copy of ``document``.

    Raises:
        PatchApplyError: An operation is malformed or references a missing path.
        PatchTestFailedError: A ``test`` operation did not match.
    """
    result = copy.deepcopy(document)
    for index, operation in enumerate(parse_operations(patch)):
        try:
            result = apply_operation(result, operation, index)
        except PatchTestFailedError:
            raise
        except PatchApplyError as e:
            raise PatchApplyError(
                f"patch[{index}] ({operation.op} {operation.path}): {e.message}",
                details={"index": index, "op": operation.op, "path": operation.path},
            ) from e
    return result
