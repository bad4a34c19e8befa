from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


SLUG_RE = re.compile(r"^[a-z0-9-]+$")
PHONE_RE = re.compile(r"^[0-9+\-\s()]+$")

MAX_PAGE_LIMIT = 100


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: wire name -> column key clients are allowed to set (security boundary)
    - required_on_create: wire names required for POST
    - max_lengths: wire name -> limit, for Text columns that carry no length of their own
    - converters: wire name -> callable applied after type coercion (e.g. price parsing)
    """
    writable_fields: dict[str, str]
    required_on_create: set[str] = field(default_factory=set)
    max_lengths: dict[str, int] = field(default_factory=dict)
    converters: dict[str, Callable[[Any], Any]] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(name: str, col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not re.fullmatch(r"-?\d+", stripped):
                raise ValidationError(f"{name} must be an integer")
            return int(stripped)
        raise ValidationError(f"{name} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{name} must be a boolean")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int)):
            raise ValidationError(f"{name} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column name.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    Unknown keys are ignored, matching what browsers send from form state.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid request body")

    if not partial:
        missing = [f for f in sorted(policy.required_on_create) if payload.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    patch: dict = {}

    for wire_name, column_key in policy.writable_fields.items():
        if wire_name not in payload:
            continue
        raw = payload[wire_name]
        col = cols[column_key]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{wire_name} cannot be null")
            patch[column_key] = None
            continue

        converter = policy.converters.get(wire_name)
        if converter is not None:
            patch[column_key] = converter(raw)
            continue

        val = _coerce_value(wire_name, col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{wire_name} cannot be blank")

        limit = policy.max_lengths.get(wire_name)
        if limit is None and isinstance(col.type, String):
            limit = col.type.length
        if limit and isinstance(val, str) and len(val) > limit:
            raise ValidationError(f"{wire_name} exceeds max length {limit}")

        patch[column_key] = val

    return patch


def validate_slug(slug: str, max_length: int) -> str:
    if not slug:
        raise ValidationError("slug is required")
    if len(slug) > max_length:
        raise ValidationError(f"slug exceeds max length {max_length}")
    if not SLUG_RE.match(slug):
        raise ValidationError("Slug must contain only lowercase letters, numbers, and hyphens")
    return slug


def generate_slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    return re.sub(r"-+", "-", slug)


def parse_quantity(value: Any, *, field_name: str = "quantity", minimum: int = 1, maximum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer")
    if value < minimum:
        raise ValidationError(f"{field_name} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field_name} too large (max {maximum})")
    return value


def parse_pagination(args, *, default_limit: int = 10) -> tuple[int, int]:
    """page >= 1, 1 <= limit <= 100; unparsable values fall back to defaults."""
    try:
        page = int(args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit", default_limit))
    except (TypeError, ValueError):
        limit = default_limit

    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
    return page, limit


def pagination_meta(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


def parse_id(value: Any, *, field_name: str) -> int:
    """Entity ids arrive as ints or numeric strings from JSON bodies."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, str) and re.fullmatch(r"\d+", value.strip(), re.ASCII) and int(value) > 0:
        return int(value)
    raise ValidationError(f"{field_name} is required")


LIKE_ESCAPE = "\\"


def like_pattern(value: str, operator: str = "contains") -> str:
    """ILIKE pattern with %, _ and the escape character matched literally."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return {
        "contains": f"%{escaped}%",
        "starts_with": f"{escaped}%",
        "ends_with": f"%{escaped}",
    }[operator]
