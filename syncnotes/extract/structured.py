"""Parsing of structured model output: fence stripping, JSON decoding and shape validation."""
import json
import re
from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from syncnotes.guardrails.errors import SchemaParseFailure

M = TypeVar("M", bound=BaseModel)

FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(raw: str) -> str:
    """Remove markdown code-fence markers (```json / ```) the model sometimes wraps around JSON, then trim whitespace."""
    return FENCE_RE.sub("", raw or "").strip()


def parse_json_object(raw: str) -> Any:
    """Decode fenced or bare JSON text. Raises SchemaParseFailure on empty or malformed output."""
    cleaned = strip_code_fences(raw)
    if not cleaned:
        raise SchemaParseFailure("Model returned no content.")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise SchemaParseFailure(f"Model output is not valid JSON: {e}") from e


def parse_structured(raw: str, model: Type[M]) -> M:
    """Parse model output into `model`. Any decoding or shape mismatch becomes SchemaParseFailure; callers decide whether that is fatal."""
    data = parse_json_object(raw)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise SchemaParseFailure(f"Model output does not match {model.__name__}: {e.error_count()} error(s)") from e
