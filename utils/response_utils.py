"""Helpers for turning raw model text into JSON payloads and validated models."""
import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from utils.exceptions import ResponseShapeError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Opening fence with optional language tag (```json, ```JSON, ```markdown, ```md)
_OPEN_FENCE = re.compile(r"^```[a-zA-Z]*[ \t]*\n?")
_CLOSE_FENCE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove a markdown code fence wrapping the whole response.

    Handles ```json ... ```, bare ``` ... ``` and ```markdown ... ```.
    Text without a leading fence is returned trimmed but otherwise unchanged.
    """
    cleaned = text.strip()
    if not cleaned.startswith("```"):
        return cleaned

    cleaned = _OPEN_FENCE.sub("", cleaned, count=1)
    cleaned = _CLOSE_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_json_response(text: str) -> Any:
    """Strip code fences and parse the response as JSON.

    Raises:
        ResponseShapeError: If the text is not valid JSON.
    """
    payload = strip_code_fences(text)
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise ResponseShapeError(f"Failed to parse AI response as JSON: {e}")


def _error_location(error: dict) -> str:
    return ".".join(str(part) for part in error.get("loc", ())) or "response"


def build_model(model_cls: type[ModelT], payload: Any) -> ModelT:
    """Validate a decoded payload against ``model_cls`` and its field policies.

    Raises:
        ResponseShapeError: If a REQUIRED field is absent or malformed. The
            message names the first failing field.
    """
    try:
        return model_cls.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        raise ResponseShapeError(
            f"Invalid response structure: {_error_location(first)} {first.get('msg', '')}".rstrip()
        )


def extract_delimited_section(text: str, start_marker: str, end_marker: str) -> str:
    """Return the trimmed text between two literal markers, or '' if absent."""
    pattern = re.escape(start_marker) + r"\s*([\s\S]*?)\s*" + re.escape(end_marker)
    match = re.search(pattern, text)
    return match.group(1).strip() if match else ""
