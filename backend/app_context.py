"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Callable, Optional

_get_conn: Optional[Callable[[], Any]] = None
_get_email_provider: Optional[Callable[[], Any]] = None


def configure(
    *,
    get_conn: Callable[[], Any],
    get_email_provider: Optional[Callable[[], Any]] = None,
) -> None:
    """Register application-wide dependencies required by services and workers."""

    global _get_conn
    global _get_email_provider

    _get_conn = get_conn
    if get_email_provider is not None:
        _get_email_provider = get_email_provider


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def get_conn() -> Any:
    conn_factory = _require(_get_conn, "get_conn")
    return conn_factory()


def get_email_provider() -> Any:
    provider_factory = _require(_get_email_provider, "get_email_provider")
    return provider_factory()
