from __future__ import annotations

"""Minimal JSON-over-HTTP client for rate providers.

Uses stdlib urllib. Transport failures and 5xx answers are retried with
exponential backoff; 4xx answers fail at once since repeating the request
cannot help. The async wrapper runs the blocking call in a worker thread so a
rate fetch never stalls the event loop driving amount-entry sessions.
"""
import asyncio
import json
import logging
import time
import urllib.error
import urllib.request
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

logger = logging.getLogger("fxentry.http")

DEFAULT_HEADERS = {"Accept": "application/json", "User-Agent": "fxentry/0.1"}


class HttpError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def build_url(base_url: str, params: Optional[Mapping[str, str]] = None) -> str:
    if not params:
        return base_url
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}{urlencode(params)}"


def _fetch_once(url: str, timeout: float) -> Dict[str, Any]:
    req = urllib.request.Request(url, headers=DEFAULT_HEADERS)
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:  # nosec B310
            body = resp.read()
    except urllib.error.HTTPError as e:
        raise HttpError(f"HTTP {e.code} for {url}", status=e.code) from e
    try:
        data = json.loads(body.decode("utf-8"))
    except ValueError as e:
        raise HttpError(f"invalid JSON from {url}") from e
    if not isinstance(data, dict):
        raise HttpError(f"unexpected JSON document from {url}")
    return data


def get_json(
    url: str,
    params: Optional[Mapping[str, str]] = None,
    *,
    timeout: float = 5.0,
    retries: int = 2,
    backoff: float = 0.5,
) -> Dict[str, Any]:
    full_url = build_url(url, params)
    last_err: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            return _fetch_once(full_url, timeout)
        except HttpError as e:
            if e.status is not None and e.status < 500:
                raise
            last_err = e
        except (urllib.error.URLError, TimeoutError) as e:
            last_err = e
        logger.warning("GET %s failed (attempt %d/%d): %s", full_url, attempt + 1, retries + 1, last_err)
        if attempt < retries:
            time.sleep(backoff * (2**attempt))
    raise HttpError(f"giving up on {full_url}: {last_err}")


async def get_json_async(
    url: str,
    params: Optional[Mapping[str, str]] = None,
    *,
    timeout: float = 5.0,
    retries: int = 2,
    backoff: float = 0.5,
) -> Dict[str, Any]:
    return await asyncio.to_thread(
        get_json, url, params, timeout=timeout, retries=retries, backoff=backoff
    )
