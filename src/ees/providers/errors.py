"""Translate httpx failures into the provider error taxonomy.

Nothing raised by httpx escapes a provider: callers only ever see a
``ProviderError`` subclass whose ``kind`` says what went wrong.
"""
from __future__ import annotations

import httpx

from ees.domain.exceptions import (
    AuthenticationError,
    ModelError,
    ProviderConnectionError,
    ProviderError,
    RateLimitError,
)


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        err = body.get("error", body.get("detail"))
        if isinstance(err, dict):
            err = err.get("message")
        if err:
            return str(err)
    return resp.text or resp.reason_phrase


def error_for_status(
    resp: httpx.Response, *, provider: str, model_name: str | None = None
) -> ProviderError:
    """Map a non-2xx response to the matching ProviderError."""
    status = resp.status_code
    detail = _detail(resp)
    kwargs = {"provider": provider, "status_code": status, "model_name": model_name}

    if status in (401, 403):
        return AuthenticationError(f"Authentication failed ({status}): {detail}", **kwargs)
    if status == 429:
        return RateLimitError(f"Rate limit exceeded: {detail}", **kwargs)
    if status == 404:
        return ModelError(f"Model not found: {model_name or detail}", **kwargs)
    return ModelError(f"{provider} API error ({status}): {detail}", **kwargs)


def raise_for_status(
    resp: httpx.Response, *, provider: str, model_name: str | None = None
) -> None:
    if resp.is_success:
        return
    raise error_for_status(resp, provider=provider, model_name=model_name)


def translate_transport_error(
    exc: httpx.HTTPError, *, provider: str, base_url: str, model_name: str | None = None
) -> ProviderError:
    """Map a network-level httpx exception (refused, DNS, timeout) to CONNECTION."""
    if isinstance(exc, httpx.TimeoutException):
        message = f"Request to {provider} at {base_url} timed out"
    else:
        message = f"Failed to connect to {provider} at {base_url}: {exc}"
    return ProviderConnectionError(message, provider=provider, model_name=model_name)
