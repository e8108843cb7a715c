from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel

from cellar_core.errors import validation_error

M = TypeVar("M", bound=BaseModel)


def clean_text(value: str | None, field: str, max_length: int, min_length: int = 1) -> str:
    normalized = (value or "").strip()
    if len(normalized) < min_length:
        if not normalized:
            raise validation_error("field_required", f"{field} is required", {"field": field})
        raise validation_error(
            "field_too_short",
            f"{field} must be at least {min_length} characters long",
            {"field": field, "min_length": min_length},
        )
    if len(normalized) > max_length:
        raise validation_error(
            "field_too_long",
            f"{field} must be {max_length} characters or fewer",
            {"field": field, "max_length": max_length},
        )
    return normalized


def optional_text(value: str | None, field: str, max_length: int) -> str | None:
    if value is None or not value.strip():
        return None
    return clean_text(value, field, max_length)


def collapse_whitespace(value: str | None) -> str | None:
    if value is None:
        return None
    collapsed = " ".join(value.split())
    return collapsed or None


def to_decimal(value: Any, field: str, low: Decimal | None = None, high: Decimal | None = None) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise validation_error("invalid_number", f"{field} must be a number", {"field": field}) from exc
    if not number.is_finite():
        raise validation_error("invalid_number", f"{field} must be a number", {"field": field})
    if (low is not None and number < low) or (high is not None and number > high):
        raise validation_error(
            "out_of_range",
            f"{field} must be between {low} and {high}",
            {"field": field, "min": str(low), "max": str(high)},
        )
    return number.quantize(Decimal("0.01"))


def parse_model(model: type[M], data: Any) -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise validation_error(
            "invalid_payload",
            f"Invalid {model.__name__}",
            {"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc
