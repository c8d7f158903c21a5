from __future__ import annotations

from dataclasses import dataclass

import httpx


@dataclass(frozen=True)
class FetchErrorInfo:
    code: str
    kind: str
    message: str


def classify_fetch_error(exc: Exception) -> FetchErrorInfo:
    """Classify hour-bucket and forecast fetch failures into stable codes for logs."""

    text = str(exc) or type(exc).__name__
    lower = text.lower()

    if isinstance(exc, httpx.HTTPStatusError):
        status = int(exc.response.status_code)
        if status == 429:
            return FetchErrorInfo(
                code="rate_limited", kind="http", message=f"HTTP 429 rate limited: {text}"
            )
        if status == 404:
            return FetchErrorInfo(code="not_found", kind="http", message=f"HTTP 404: {text}")
        return FetchErrorInfo(code=f"http_{status}", kind="http", message=f"HTTP {status}: {text}")

    if isinstance(exc, httpx.TimeoutException):
        return FetchErrorInfo(code="timeout", kind="network", message=text)

    if isinstance(exc, httpx.ConnectError):
        if "name or service not known" in lower or "temporary failure in name resolution" in lower:
            return FetchErrorInfo(code="dns", kind="network", message=text)
        return FetchErrorInfo(code="connect_error", kind="network", message=text)

    if isinstance(exc, httpx.TransportError):
        return FetchErrorInfo(code="transport", kind="network", message=text)

    if isinstance(exc, (ValueError, KeyError, TypeError, IndexError)):
        # Includes json.JSONDecodeError and unexpected payload shapes.
        return FetchErrorInfo(code="bad_payload", kind="payload", message=text)

    return FetchErrorInfo(code="unknown", kind="unknown", message=text)
