"""
Outbound HTTP.

Overpass is the only upstream. Queries go out as a form-encoded POST (`data=<query>`)
with an identifying User-Agent, which the public Overpass instances require.

An overloaded Overpass instance answers either with a non-2xx status or with a 200
carrying an HTML/XML error page. Both surface here as exceptions, so the caller can
pick between retrying, serving stale cache and giving up.
"""

from __future__ import annotations

from typing import Any

import httpx

DEFAULT_USER_AGENT = "metroranta/0.1.0 (route amenity finder)"


def post_form(
    url: str,
    *,
    data: dict[str, Any],
    headers: dict[str, str] | None = None,
    timeout_seconds: float = 30,
) -> Any:
    """POST a form body and decode the JSON answer.

    Raises:
        httpx.HTTPError: transport errors and non-2xx statuses.
        ValueError: the body is not JSON; the message carries the content type and the
            start of the body.
    """
    request_headers = {"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    with httpx.Client(timeout=timeout_seconds, follow_redirects=True) as client:
        resp = client.post(url, data=data, headers=request_headers)
    resp.raise_for_status()
    try:
        return resp.json()
    except ValueError as exc:
        content_type = resp.headers.get("Content-Type", "unknown")
        snippet = resp.text[:120].strip()
        raise ValueError(f"Non-JSON response from {url} ({content_type}): {snippet!r}") from exc
