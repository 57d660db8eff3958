"""HTTP client factory and buffered requests with backoff on transient failures."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from .config import Config

logger = logging.getLogger("districtmaps.net")

TRANSIENT_STATUS = (429, 500, 502, 503, 504)


def _backoff(attempt: int, base: float = 0.6, cap: float = 12.0) -> float:
    t = min(cap, base * (2**attempt))
    return t * (0.6 + random.random() * 0.8)


def make_client(cfg: Config) -> httpx.AsyncClient:
    limits = httpx.Limits(
        max_connections=cfg.max_connections, max_keepalive_connections=cfg.max_keepalive
    )
    timeout = httpx.Timeout(cfg.timeout_s, connect=15.0)
    headers = {"User-Agent": cfg.user_agent}
    return httpx.AsyncClient(
        http2=cfg.http2,
        headers=headers,
        limits=limits,
        timeout=timeout,
        follow_redirects=True,
    )


async def request_with_retries(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: Optional[dict[str, str]] = None,
    params: Optional[dict[str, Any]] = None,
    max_retries: int = 3,
) -> httpx.Response:
    last_err: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        try:
            r = await client.request(method, url, headers=headers, params=params)

            # Retry only on transient codes
            if r.status_code in TRANSIENT_STATUS:
                if attempt >= max_retries:
                    r.raise_for_status()
                await asyncio.sleep(_backoff(attempt))
                continue

            r.raise_for_status()
            return r

        except (
            httpx.TimeoutException,
            httpx.TransportError,
            httpx.HTTPStatusError,
        ) as e:
            last_err = e
            if (
                isinstance(e, httpx.HTTPStatusError)
                and e.response.status_code not in TRANSIENT_STATUS
            ):
                raise
            if attempt >= max_retries:
                break
            logger.warning("Request failed (%s), retrying: %s", e, url)
            await asyncio.sleep(_backoff(attempt))

    raise last_err if last_err else RuntimeError("request failed")
