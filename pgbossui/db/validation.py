"""Input validation for values that end up in SQL statements."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum


class ValidationError(ValueError):
    """Raised when user-supplied input cannot be used in a query."""


class JobState(str, Enum):
    CREATED = "created"
    RETRY = "retry"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    # Only written by pre-v10 schemas.
    EXPIRED = "expired"


DATE_FIELDS = ("created_on", "completed_on")
GRANULARITIES = ("minute", "hour", "day")
SORT_FIELDS = ("id", "state", "priority", "created_on", "completed_on")
SORT_ORDERS = ("asc", "desc")

# PostgreSQL identifiers: letter or underscore first, at most 63 characters.
_SCHEMA_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
# pg-boss queue names commonly carry namespacing punctuation.
_QUEUE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_\-:./@]+$")
_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def validate_schema(schema: str) -> str:
    if not isinstance(schema, str) or not _SCHEMA_PATTERN.match(schema):
        raise ValidationError(f"Invalid schema name: {schema}")
    return schema


def validate_queue_name(name: str) -> str:
    if not isinstance(name, str) or not _QUEUE_NAME_PATTERN.match(name):
        raise ValidationError(f"Invalid queue name: {name}")
    return name


def validate_job_id(job_id: str) -> str:
    if not isinstance(job_id, str) or not _UUID_PATTERN.match(job_id):
        raise ValidationError(f"Invalid job ID: {job_id}")
    return job_id


def validate_job_state(state: str | JobState | None) -> JobState | None:
    if state is None:
        return None
    try:
        return JobState(state)
    except ValueError:
        allowed = ", ".join(member.value for member in JobState)
        raise ValidationError(f"Invalid job state: {state}. Must be one of: {allowed}") from None


def validate_date_field(field: str | None) -> str | None:
    if field is None:
        return None
    if field not in DATE_FIELDS:
        raise ValidationError(f"Invalid date field: {field}. Must be one of: {', '.join(DATE_FIELDS)}")
    return field


def validate_granularity(granularity: str) -> str:
    if granularity not in GRANULARITIES:
        raise ValidationError(
            f"Invalid granularity: {granularity}. Must be one of: {', '.join(GRANULARITIES)}"
        )
    return granularity


def validate_sort_by(field: str | None) -> str | None:
    if field is None:
        return None
    if field not in SORT_FIELDS:
        raise ValidationError(f"Invalid sort field: {field}. Must be one of: {', '.join(SORT_FIELDS)}")
    return field


def validate_sort_order(order: str | None) -> str | None:
    if order is None:
        return None
    lowered = order.lower()
    if lowered not in SORT_ORDERS:
        raise ValidationError(f"Invalid sort order: {order}. Must be one of: asc, desc")
    return lowered


def validate_date(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are treated as UTC."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            raise ValidationError(f"Invalid date: {value}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = [
    "DATE_FIELDS",
    "GRANULARITIES",
    "JobState",
    "SORT_FIELDS",
    "SORT_ORDERS",
    "ValidationError",
    "validate_date",
    "validate_date_field",
    "validate_granularity",
    "validate_job_id",
    "validate_job_state",
    "validate_queue_name",
    "validate_schema",
    "validate_sort_by",
    "validate_sort_order",
]
