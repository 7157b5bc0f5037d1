from __future__ import annotations

from typing import Any, Mapping

from ..core.exceptions import ValidationError


def require_fields(fields: Mapping[str, Any]) -> Mapping[str, Any]:
    if not isinstance(fields, Mapping):
        raise ValidationError("fields must be an object of field names to values")
    if not fields:
        raise ValidationError("at least one field must be changed")
    return fields
