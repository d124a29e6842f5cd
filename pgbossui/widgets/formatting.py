"""Cell formatting shared by the dashboard tables."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum

EMPTY = "—"


def format_cell(value: object) -> str:
    if value is None:
        return EMPTY
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return EMPTY
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_ms(value: float) -> str:
    """Render a millisecond duration with a unit that keeps it short."""

    if value >= 60_000:
        return f"{value / 60_000:.1f} m"
    if value >= 1_000:
        return f"{value / 1_000:.2f} s"
    return f"{value:.0f} ms"


def truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: max(width - 1, 0)] + "…"


__all__ = ["EMPTY", "format_cell", "format_ms", "format_timestamp", "truncate"]
