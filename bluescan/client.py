from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from bluescan.models import ErrorKind, ResolverError

LOGGER = logging.getLogger(__name__)

USER_AGENT = "bluescan/0.1"


@dataclass(frozen=True)
class JsonReply:
    url: str
    body: str
    data: dict[str, Any]


def build_client(
    timeout_seconds: float,
    headers: dict[str, str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    merged = {"User-Agent": USER_AGENT}
    merged.update(headers or {})
    return httpx.Client(timeout=httpx.Timeout(timeout_seconds), headers=merged, transport=transport)


def request_json(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    payload: dict[str, Any] | None = None,
    timeout_seconds: float | None = None,
    deadline: float | None = None,
) -> JsonReply:
    """Send one request and return the decoded JSON object with its raw text.

    ``timeout_seconds`` bounds each connect/read/write step. ``deadline`` is a
    ``time.monotonic()`` instant after which the body is no longer read, so a
    server that keeps trickling bytes cannot stretch the call.

    Every failure is raised as :class:`ResolverError`; transport errors never
    leak as ``httpx`` exceptions.
    """
    request_url = url
    extra: dict[str, Any] = {}
    if timeout_seconds is not None:
        extra["timeout"] = httpx.Timeout(timeout_seconds)
    try:
        with client.stream(method, url, params=params, json=payload, **extra) as response:
            request_url = str(response.request.url)
            chunks: list[bytes] = []
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if deadline is not None and time.monotonic() > deadline:
                    raise ResolverError(ErrorKind.TIMEOUT, f"{method} {request_url} passed its deadline", url=request_url)
            status_code = response.status_code
            text = b"".join(chunks).decode(response.charset_encoding or "utf-8", errors="replace")
    except httpx.TimeoutException as exc:
        raise ResolverError(ErrorKind.TIMEOUT, f"{method} {url} timed out: {exc}", url=url) from exc
    except httpx.HTTPError as exc:
        raise ResolverError(ErrorKind.NETWORK_ERROR, f"{method} {url} failed: {exc}", url=url) from exc

    if not 200 <= status_code < 300:
        raise ResolverError(
            ErrorKind.RATE_LIMITED,
            f"{method} {request_url} returned HTTP {status_code}",
            url=request_url,
            body=text,
        )

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ResolverError(ErrorKind.PARSE_ERROR, f"Invalid JSON from {request_url}: {exc}", url=request_url, body=text) from exc
    if not isinstance(data, dict):
        raise ResolverError(ErrorKind.PARSE_ERROR, f"Unexpected JSON payload from {request_url}", url=request_url, body=text)
    return JsonReply(url=request_url, body=text, data=data)
