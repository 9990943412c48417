"""Field policies for JSON produced by the language model.

Every field on a model-output schema carries one of two policies:

    REQUIRED - no default; an absent or malformed value fails validation
    DEFAULT  - a default plus a before-validator that swaps an absent or
               malformed value for that default

Blank strings count as absent. The annotated types below are shared by the
insight and document models so each schema declares its policy inline.
"""
import logging
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, ValidationError

logger = logging.getLogger(__name__)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require_text(value: Any) -> Any:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("must be a non-empty string")
    return value.strip()


def _text_or_none(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _string_items(value: Any) -> list[str]:
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _require_string_list(value: Any) -> Any:
    if not isinstance(value, list):
        raise ValueError("must be an array")
    return _string_items(value)


def _string_list_or_empty(value: Any) -> list[str]:
    return _string_items(value) if isinstance(value, list) else []


def _object_or_empty(value: Any) -> Any:
    """Malformed nested objects become ``{}`` so each sub-field falls back on its own."""
    return value if isinstance(value, (dict, BaseModel)) else {}


def default_text(default: str) -> BeforeValidator:
    """DEFAULT policy for a string that must not be blank."""
    return BeforeValidator(lambda value: _text_or_none(value) or default)


def default_choice(enum_cls: type[Enum], default: Optional[Enum]) -> BeforeValidator:
    """DEFAULT policy for a closed value set."""
    allowed = {member.value for member in enum_cls}

    def validate(value: Any) -> Any:
        if isinstance(value, enum_cls) or (isinstance(value, str) and value in allowed):
            return value
        return default

    return BeforeValidator(validate)


def default_bool(default: bool) -> BeforeValidator:
    return BeforeValidator(lambda value: value if isinstance(value, bool) else default)


def drop_invalid(model_cls: type[BaseModel]) -> BeforeValidator:
    """DEFAULT policy for a list of objects: items that fail ``model_cls`` are skipped."""

    def validate(value: Any) -> list:
        if not isinstance(value, list):
            return []
        items = []
        for index, item in enumerate(value):
            try:
                items.append(model_cls.model_validate(item))
            except ValidationError as e:
                logger.debug(
                    f"Dropping invalid item: model={model_cls.__name__}, index={index}, "
                    f"errors={e.error_count()}"
                )
        return items

    return BeforeValidator(validate)


RequiredText = Annotated[str, BeforeValidator(_require_text)]
OptionalText = Annotated[Optional[str], BeforeValidator(_text_or_none)]
RequiredStringList = Annotated[List[str], BeforeValidator(_require_string_list)]
DefaultStringList = Annotated[List[str], BeforeValidator(_string_list_or_empty)]
DefaultObject = BeforeValidator(_object_or_empty)
