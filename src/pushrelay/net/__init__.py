"""Outbound HTTP helpers used by the full update job."""

from .fetcher import (
    DEFAULT_MAX_RETRIES,
    FetchOptions,
    Fetcher,
    is_transient_error,
    make_http_request,
    parse_json,
    resolve_max_retries,
)

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "FetchOptions",
    "Fetcher",
    "is_transient_error",
    "make_http_request",
    "parse_json",
    "resolve_max_retries",
]
