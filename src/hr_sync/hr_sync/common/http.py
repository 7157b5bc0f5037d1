"""Request parsing and error translation shared by the JSON controllers."""
from __future__ import annotations

import logging
from datetime import date
from functools import wraps
from typing import Any, Iterable, Mapping, Optional

from flask import jsonify, request

from ..core.exceptions import DataSourceError, DomainError, RecordNotFoundError, ValidationError
from ..records.criteria import FilterCriteria, RangeFilter, SortOrder
from ..records.model import Identity, MergedRecord
from ..records.normalizer import RecordNormalizer, coerce_identity

logger = logging.getLogger(__name__)


def json_errors(view):
    """Translate domain and data-source errors into JSON error responses."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except ValidationError as e:
            return jsonify({"success": False, "message": str(e)}), 400
        except RecordNotFoundError as e:
            return jsonify({"success": False, "message": str(e)}), 404
        except DomainError as e:
            return jsonify({"success": False, "message": str(e)}), 409
        except DataSourceError as e:
            logger.warning("data source error in %s: %s", request.path, e)
            return jsonify({"success": False, "message": str(e)}), 502

    return wrapper


def parse_identity(value: Any) -> Identity:
    identity = coerce_identity(value)
    if identity is None:
        raise ValidationError(f"invalid record id: {value!r}")
    return identity


def json_body() -> Mapping[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, Mapping):
        raise ValidationError("request body must be a JSON object")
    return data


def _parse_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"invalid {name} date: {value!r}")


def criteria_from_args(
    normalizer: RecordNormalizer,
    args: Mapping[str, Any],
    *,
    date_field: Optional[str] = None,
    choice_fields: Iterable[str] = (),
) -> FilterCriteria:
    """FilterCriteria from query args: q, status (repeatable), from/to, sort, desc and choice fields."""
    statuses = args.getlist("status") if hasattr(args, "getlist") else args.get("status", [])
    choices = {}
    for name in choice_fields:
        values = args.getlist(name) if hasattr(args, "getlist") else args.get(name, [])
        if values:
            choices[name] = values

    ranges = []
    low = _parse_date(args.get("from"), "from")
    high = _parse_date(args.get("to"), "to")
    if date_field and (low or high):
        if low and high and low > high:
            raise ValidationError("'from' must not be after 'to'")
        ranges.append(RangeFilter(date_field, low, high))

    sort = None
    if args.get("sort"):
        sort = SortOrder(args["sort"], descending=str(args.get("desc", "")).lower() in {"1", "true", "yes"})

    return normalizer.criteria(
        search=args.get("q", ""),
        statuses=statuses,
        choices=choices,
        ranges=ranges,
        sort=sort,
    )


def records_payload(records: Iterable[MergedRecord], **extra: Any) -> dict:
    items = [r.to_dict() for r in records]
    return {"success": True, "count": len(items), "items": items, **extra}
