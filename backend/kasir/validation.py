from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from kasir.time_utils import parse_iso_datetime


# Upper bound for any money amount or quantity. Keeps values inside a signed
# 32-bit column and rejects nonsensical input.
MAX_AMOUNT = 2_000_000_000


class ValidationError(ValueError):
    """
    400-level input problem.

    errors maps field name -> list of messages. Single-message errors that are
    not tied to one field use the "_" key.
    """

    def __init__(self, message: str = "Validation failed", errors: dict[str, list[str]] | None = None):
        super().__init__(message)
        self.errors = errors or {}


class NotFoundError(LookupError):
    """404-level: no matching non-deleted row for the tenant."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU, double completion)."""


class DomainError(Exception):
    """400-level business rule violation with a user-presentable message."""


# =============================================================================
# FIELD COERCION
# =============================================================================

def _to_int(value: Any) -> int:
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, bool):
        raise ValueError("must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValueError("must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError("must be an integer")
        # Reject scientific notation (e.g., "1e15")
        if "e" in stripped.lower():
            raise ValueError("must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValueError("must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValueError("must be an integer")
    raise ValueError("must be an integer")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
    raise ValueError("must be a boolean")


def _to_str(value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise ValueError("must be a string")
    return str(value).strip()


def _to_datetime(value: Any, end_of_day: bool = False) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value, end_of_day=end_of_day)
        except ValueError:
            raise ValueError("must be an ISO-8601 datetime")
        if dt is None:
            raise ValueError("must be an ISO-8601 datetime")
        return dt
    raise ValueError("must be an ISO-8601 datetime")


_COERCERS = {
    "int": _to_int,
    "bool": _to_bool,
    "str": _to_str,
    "datetime": _to_datetime,
    # Date-only values resolve to the last instant of that day
    "end_datetime": lambda value: _to_datetime(value, end_of_day=True),
}


@dataclass(frozen=True)
class Field:
    """
    One field of a request schema.

    source: key in the incoming payload (camelCase for the public API).
    Cleaned output is keyed by the Field's name.
    """
    kind: str
    required: bool = False
    nullable: bool = False
    default: Any = None
    min_value: int | None = None
    max_value: int | None = None
    max_length: int | None = None
    allow_blank: bool = True
    choices: tuple | None = None
    source: str | None = None


@dataclass(frozen=True)
class RequestSchema:
    name: str
    fields: dict[str, Field] = field(default_factory=dict)
    # partial=True: update semantics (required fields may be omitted, defaults not applied)
    partial: bool = False
    # Reject keys not declared in the schema
    strict: bool = True


def _check_field(name: str, spec: Field, raw: Any) -> tuple[Any, list[str]]:
    if raw is None:
        if spec.nullable:
            return None, []
        return None, [f"{name} cannot be null"]

    try:
        value = _COERCERS[spec.kind](raw)
    except ValueError as exc:
        return None, [f"{name} {exc}"]

    messages: list[str] = []
    if spec.kind == "str":
        if not spec.allow_blank and value == "":
            messages.append(f"{name} cannot be blank")
        if spec.max_length is not None and len(value) > spec.max_length:
            messages.append(f"{name} exceeds max length {spec.max_length}")
    if spec.kind == "int":
        if spec.min_value is not None and value < spec.min_value:
            messages.append(f"{name} must be >= {spec.min_value}")
        if spec.max_value is not None and value > spec.max_value:
            messages.append(f"{name} must be <= {spec.max_value}")
    if spec.choices is not None and value not in spec.choices:
        messages.append(f"{name} must be one of: {', '.join(str(c) for c in spec.choices)}")

    return value, messages


def validate_request(schema: RequestSchema, payload: Any) -> dict:
    """
    Validate and normalize a payload against an explicit request schema.

    Returns the cleaned dict keyed by field name. Raises ValidationError whose
    .errors maps each failing field to its messages; every field is checked
    so the caller gets the full picture in one round trip.
    """
    if payload is None:
        payload = {}
    if not hasattr(payload, "keys"):
        raise ValidationError("Invalid JSON payload", {"_": ["payload must be an object"]})

    errors: dict[str, list[str]] = {}
    cleaned: dict = {}

    sources = {(spec.source or name): name for name, spec in schema.fields.items()}

    if schema.strict:
        for key in payload.keys():
            if key not in sources:
                errors.setdefault(key, []).append(f"Field not allowed: {key}")

    for name, spec in schema.fields.items():
        source = spec.source or name
        if source not in payload:
            if spec.required and not schema.partial:
                errors.setdefault(name, []).append(f"{name} is required")
            elif spec.default is not None and not schema.partial:
                cleaned[name] = spec.default
            continue

        value, messages = _check_field(name, spec, payload.get(source))
        if messages:
            errors.setdefault(name, []).extend(messages)
        else:
            cleaned[name] = value

    if errors:
        raise ValidationError("Validation failed", errors)
    return cleaned


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

SORT_FIELDS = ("created_at", "name", "price", "stock")
SORT_ORDERS = ("asc", "desc")
STOCK_OPERATIONS = ("set", "add", "subtract")

PRODUCT_CREATE = RequestSchema(
    name="product_create",
    fields={
        "name": Field("str", required=True, allow_blank=False, max_length=200),
        "sku": Field("str", required=True, allow_blank=False, max_length=50),
        "description": Field("str", nullable=True, max_length=1000),
        "price": Field("int", required=True, min_value=0, max_value=MAX_AMOUNT),
        "stock": Field("int", default=0, min_value=0, max_value=MAX_AMOUNT),
        "min_stock": Field("int", default=5, min_value=0, max_value=MAX_AMOUNT),
        "is_active": Field("bool", default=True),
        "is_sellable": Field("bool", default=True),
        "is_track_stock": Field("bool", default=True),
        "brand_id": Field("int", nullable=True, min_value=1),
        "category_id": Field("int", nullable=True, min_value=1),
    },
)

PRODUCT_UPDATE = RequestSchema(
    name="product_update",
    # stock moves only through STOCK_UPDATE
    fields={k: v for k, v in PRODUCT_CREATE.fields.items() if k != "stock"},
    partial=True,
)

PRODUCT_LIST_QUERY = RequestSchema(
    name="product_list_query",
    strict=False,
    fields={
        "search": Field("str", max_length=200),
        "brand_id": Field("int", min_value=1),
        "category_id": Field("int", min_value=1),
        "is_active": Field("bool"),
        "is_sellable": Field("bool"),
        "is_track_stock": Field("bool"),
        "low_stock": Field("bool"),
        "sort_by": Field("str", choices=SORT_FIELDS, source="sortBy"),
        "sort_order": Field("str", choices=SORT_ORDERS, source="sortOrder"),
        "page": Field("int", min_value=1),
        "limit": Field("int", min_value=1, max_value=100),
    },
)

STOCK_UPDATE = RequestSchema(
    name="stock_update",
    fields={
        "product_id": Field("int", required=True, min_value=1, source="productId"),
        "quantity": Field("int", required=True, min_value=0, max_value=MAX_AMOUNT),
        "operation": Field("str", default="set", choices=STOCK_OPERATIONS),
        "notes": Field("str", nullable=True, max_length=255),
    },
)

STOCK_MOVEMENT_QUERY = RequestSchema(
    name="stock_movement_query",
    strict=False,
    fields={
        "limit": Field("int", min_value=1, max_value=100),
    },
)

TRANSACTION_ITEM = RequestSchema(
    name="transaction_item",
    fields={
        "product_id": Field("int", required=True, min_value=1, source="productId"),
        "quantity": Field("int", required=True, min_value=1, max_value=100_000),
    },
)

PAYMENT_COMPLETE = RequestSchema(
    name="payment_complete",
    fields={
        "payment_amount": Field("int", required=True, min_value=0, max_value=MAX_AMOUNT, source="paymentAmount"),
        "payment_method": Field("str", default="CASH", choices=("CASH", "QRIS", "DEBIT"), source="paymentMethod"),
    },
)

TRANSACTION_LIST_QUERY = RequestSchema(
    name="transaction_list_query",
    strict=False,
    fields={
        "start_date": Field("datetime", source="startDate"),
        "end_date": Field("end_datetime", source="endDate"),
        "cashier_id": Field("int", min_value=1, source="cashierId"),
        "status": Field("str", choices=("PENDING", "COMPLETED")),
        "page": Field("int", min_value=1),
        "limit": Field("int", min_value=1, max_value=100),
    },
)

LOGIN = RequestSchema(
    name="login",
    fields={
        "tenant_code": Field("str", required=True, allow_blank=False, max_length=32),
        "username": Field("str", required=True, allow_blank=False, max_length=64),
        "password": Field("str", required=True, allow_blank=False, max_length=255),
    },
)


def validate_many(schema: RequestSchema, raw_items: Any, name: str = "items") -> list[dict]:
    """Validate a non-empty array of payloads against one schema."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Validation failed", {name: [f"{name} must be a non-empty array"]})

    errors: dict[str, list[str]] = {}
    cleaned: list[dict] = []
    for idx, raw in enumerate(raw_items):
        try:
            cleaned.append(validate_request(schema, raw))
        except ValidationError as exc:
            for key, messages in exc.errors.items():
                errors.setdefault(f"{name}[{idx}].{key}", []).extend(messages)

    if errors:
        raise ValidationError("Validation failed", errors)
    return cleaned
