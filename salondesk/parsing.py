"""Request value parsing shared by the routes and the payment builder."""
from __future__ import annotations

from .errors import ValidationError


def parse_id(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer") from None
