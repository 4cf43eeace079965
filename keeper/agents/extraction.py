# ABOUTME: Structured-output extraction returning Ok(parsed) or ParseError(raw, reason) instead of raising.
# ABOUTME: Pulls the JSON document out of collaborator text and validates it against a pydantic model.

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, get_origin

from pydantic import BaseModel, TypeAdapter, ValidationError

T = TypeVar("T")

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successfully parsed collaborator output"""
    value: T


@dataclass(frozen=True)
class ParseError:
    """Collaborator output that failed structural validation"""
    raw: str
    reason: str


ParseResult = Ok[T] | ParseError


def extract_json_block(text: str) -> str | None:
    """
    Find the JSON document inside free-form model output.

    Looks inside a fenced code block first, then falls back to the first
    balanced object or array in the text.

    Args:
        text: Raw collaborator output

    Returns:
        The JSON substring, or None if nothing JSON-shaped was found
    """
    fenced = _FENCE_RE.search(text)
    candidate = fenced.group(1) if fenced else text

    starts = [i for i in (candidate.find("{"), candidate.find("[")) if i != -1]
    if not starts:
        return None
    start = min(starts)
    opener = candidate[start]
    closer = "}" if opener == "{" else "]"

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(candidate)):
        char = candidate[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return candidate[start:index + 1]
    return None


def parse_structured(
    raw: Any,
    target: Any,
    unwrap_key: str | None = None,
) -> ParseResult:
    """
    Validate collaborator output against a target type.

    Args:
        raw: Collaborator output; a model instance, dict, list or JSON-bearing string
        target: Pydantic model class or any type TypeAdapter accepts (e.g. list[Model])
        unwrap_key: If the document is an object holding the payload under this key
            (e.g. {"outcomes": [...]}), validate the value under the key instead

    Returns:
        Ok(value) on success, ParseError(raw, reason) otherwise
    """
    is_model = (
        get_origin(target) is None
        and isinstance(target, type)
        and issubclass(target, BaseModel)
    )
    if is_model and isinstance(raw, target):
        return Ok(raw)

    raw_text = raw if isinstance(raw, str) else repr(raw)

    if isinstance(raw, str):
        block = extract_json_block(raw)
        if block is None:
            return ParseError(raw=raw_text, reason="no JSON document found")
        try:
            data = json.loads(block)
        except json.JSONDecodeError as e:
            return ParseError(raw=raw_text, reason=f"invalid JSON: {e.msg}")
    elif isinstance(raw, BaseModel):
        data = raw.model_dump()
    else:
        data = raw

    if unwrap_key is not None and isinstance(data, dict):
        if unwrap_key not in data:
            return ParseError(raw=raw_text, reason=f"missing '{unwrap_key}' key")
        data = data[unwrap_key]

    try:
        if is_model:
            value = target.model_validate(data)
        else:
            value = TypeAdapter(target).validate_python(data)
    except ValidationError as e:
        return ParseError(raw=raw_text, reason=f"schema mismatch: {e.error_count()} errors")

    return Ok(value)
