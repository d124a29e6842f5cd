"""TLS options, pool keys and ssl arguments for asyncpg."""

from __future__ import annotations

import hashlib
import ssl
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, urlsplit, urlunsplit


class SslMode(str, Enum):
    """libpq-compatible sslmode values accepted by asyncpg."""

    DISABLE = "disable"
    ALLOW = "allow"
    PREFER = "prefer"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"


@dataclass(frozen=True, slots=True)
class TlsOptions:
    """TLS settings supplied alongside a connection string."""

    allow_self_signed_cert: bool = False
    ca_certificate: str | None = None
    ssl_mode: SslMode | None = None

    def __post_init__(self) -> None:
        if self.ssl_mode is not None and not isinstance(self.ssl_mode, SslMode):
            object.__setattr__(self, "ssl_mode", SslMode(self.ssl_mode))

    @property
    def ca_material(self) -> str | None:
        """CA text with surrounding whitespace removed, ``None`` when blank."""

        if not self.ca_certificate:
            return None
        return self.ca_certificate.strip() or None


DEFAULT_TLS = TlsOptions()


def ca_fingerprint(ca_certificate: str) -> str:
    """Short, stable fingerprint of CA material."""

    digest = hashlib.sha256(ca_certificate.strip().encode("utf-8")).hexdigest()
    return digest[:16]


def tls_fingerprint(tls: TlsOptions | None, default_mode: SslMode = SslMode.PREFER) -> str:
    """Normalize TLS options into the trust behaviour they produce.

    With nothing configured asyncpg falls back to the connection string's
    ``sslmode`` (or ``prefer``), which ``default_mode`` stands in for.
    """

    tls = tls or DEFAULT_TLS
    ca = tls.ca_material
    mode = tls.ssl_mode
    if mode is None and ca is None and not tls.allow_self_signed_cert:
        mode = default_mode
    if mode is SslMode.DISABLE:
        return "disable"
    parts = [mode.value if mode else "context"]
    parts.append("noverify" if tls.allow_self_signed_cert else "verify")
    if ca:
        parts.append(f"ca:{ca_fingerprint(ca)}")
    return "/".join(parts)


def pool_key(connection_string: str, tls: TlsOptions | None = None) -> str:
    """Composite registry key for a connection target and its TLS options."""

    return f"{connection_string}#{tls_fingerprint(tls, dsn_ssl_mode(connection_string))}"


def dsn_ssl_mode(connection_string: str) -> SslMode:
    """The ``sslmode`` a connection URL asks for, ``prefer`` when absent or unknown."""

    values = parse_qs(urlsplit(connection_string).query).get("sslmode")
    if not values:
        return SslMode.PREFER
    try:
        return SslMode(values[-1])
    except ValueError:
        return SslMode.PREFER


def build_ssl(tls: TlsOptions | None) -> ssl.SSLContext | str | bool | None:
    """Return the value passed as ``ssl=`` to asyncpg for ``tls``."""

    tls = tls or DEFAULT_TLS
    if tls.ssl_mode is SslMode.DISABLE:
        return False
    ca = tls.ca_material
    if ca is None and not tls.allow_self_signed_cert:
        return tls.ssl_mode.value if tls.ssl_mode else None
    context = ssl.create_default_context(cadata=ca) if ca else ssl.create_default_context()
    if tls.allow_self_signed_cert:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif tls.ssl_mode is SslMode.VERIFY_CA:
        context.check_hostname = False
    return context


def redact_dsn(connection_string: str) -> str:
    """Drop credentials from a connection URL so it can be logged."""

    try:
        parts = urlsplit(connection_string)
        port = parts.port
    except ValueError:
        return "<unparseable dsn>"
    if not parts.scheme or parts.hostname is None:
        return "<dsn>"
    host = parts.hostname
    if port:
        host = f"{host}:{port}"
    if parts.username:
        host = f"{parts.username}@{host}"
    return urlunsplit((parts.scheme, host, parts.path, "", ""))


__all__ = [
    "DEFAULT_TLS",
    "SslMode",
    "TlsOptions",
    "build_ssl",
    "ca_fingerprint",
    "dsn_ssl_mode",
    "pool_key",
    "redact_dsn",
    "tls_fingerprint",
]
