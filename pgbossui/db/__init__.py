"""Schema-aware access to pg-boss databases."""

from __future__ import annotations

from .columns import LOGICAL_COLUMNS, ColumnCase, ColumnMapper, UnknownColumnError
from .detection import SchemaCapabilities, SchemaInfo, detect_schema
from .pool import ConnectionTestResult, PoolRegistry
from .queries import JobActionError
from .tls import SslMode, TlsOptions, pool_key
from .validation import JobState, ValidationError

__all__ = [
    "ColumnCase",
    "ColumnMapper",
    "ConnectionTestResult",
    "JobActionError",
    "JobState",
    "LOGICAL_COLUMNS",
    "PoolRegistry",
    "SchemaCapabilities",
    "SchemaInfo",
    "SslMode",
    "TlsOptions",
    "UnknownColumnError",
    "ValidationError",
    "detect_schema",
    "pool_key",
]
