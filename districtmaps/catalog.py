"""
Session catalog: the ordered list of congressional periods to process.

The listing page embeds its periods as a script array literal:

    var sessions = ["3/4/1789 to 3/4/1791", "3/4/1791 to 3/4/1793", ...];

Entry N (1-based) describes the N-th Congress. Resolved catalogs are cached
on disk and only refetched once the cache file is older than the freshness
window.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import httpx
from bs4 import BeautifulSoup

from .cache import is_fresh, write_json
from .net import request_with_retries

logger = logging.getLogger("districtmaps.catalog")

_ARRAY_RE = re.compile(r"[=(]\s*(\[.*?\])\s*[;)]", re.S)
_RANGE_RE = re.compile(r"\s+to\s+")
DATE_FORMAT = "%m/%d/%Y"


class CatalogError(ValueError):
    """The listing payload cannot yield any periods."""


@dataclass(frozen=True)
class Period:
    id: int
    start: date
    end: date

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Period":
        return cls(
            id=int(d["id"]),
            start=date.fromisoformat(d["start"]),
            end=date.fromisoformat(d["end"]),
        )


def congress_start(period_id: int) -> date:
    # 20th Amendment moved the start from March 4 to January 3 (74th Congress).
    if period_id < 74:
        return date(1789 + 2 * (period_id - 1), 3, 4)
    return date(1935 + 2 * (period_id - 74), 1, 3)


def static_periods(first: int, last: int) -> list[Period]:
    if first < 1 or last < first:
        raise CatalogError(f"invalid static period range: {first}..{last}")
    return [
        Period(id=i, start=congress_start(i), end=congress_start(i + 1))
        for i in range(first, last + 1)
    ]


def extract_array_literal(text: str) -> str:
    soup = BeautifulSoup(text, "lxml")
    scripts = [s.string for s in soup.find_all("script") if s.string]
    for body in scripts or [text]:
        m = _ARRAY_RE.search(body)
        if m:
            return m.group(1)
    stripped = text.strip()
    if stripped.startswith("["):
        return stripped
    raise CatalogError("no array literal found in session listing")


def parse_range(entry: str) -> tuple[date, date]:
    parts = _RANGE_RE.split(entry.strip())
    if len(parts) != 2:
        raise ValueError(f"expected 'start to end', got {entry!r}")
    start, end = (datetime.strptime(p.strip(), DATE_FORMAT).date() for p in parts)
    return start, end


def parse_listing(text: str) -> list[Period]:
    literal = extract_array_literal(text)
    try:
        entries = json.loads(literal)
    except json.JSONDecodeError as e:
        raise CatalogError(f"session listing is not valid JSON: {e}") from e
    if not isinstance(entries, list) or not all(isinstance(x, str) for x in entries):
        raise CatalogError("session listing must be an array of strings")

    periods: list[Period] = []
    for index, entry in enumerate(entries, start=1):
        try:
            start, end = parse_range(entry)
        except ValueError as e:
            logger.warning("Dropping session %d, malformed date range: %s", index, e)
            continue
        periods.append(Period(id=index, start=start, end=end))
    return periods


class SessionCatalog:
    def __init__(
        self,
        cache_file: Path,
        *,
        listing_url: Optional[str] = None,
        static_range: tuple[int, int] = (1, 116),
        max_age: timedelta = timedelta(hours=24),
    ) -> None:
        self.cache_file = cache_file
        self.listing_url = listing_url
        self.static_range = static_range
        self.max_age = max_age
        self._periods: Optional[list[Period]] = None

    def _load_cached(self) -> Optional[list[Period]]:
        if not is_fresh(self.cache_file, self.max_age):
            return None
        try:
            raw = json.loads(self.cache_file.read_text(encoding="utf-8"))
            periods = [Period.from_dict(d) for d in raw]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable session cache %s: %s", self.cache_file, e)
            return None

        if not self.listing_url:
            first, last = self.static_range
            missing = set(range(first, last + 1)) - {p.id for p in periods}
            if missing:
                logger.info(
                    "Cached session catalog lacks %d of sessions %d..%d; rebuilding",
                    len(missing),
                    first,
                    last,
                )
                return None
        return periods

    async def _fetch(self, client: httpx.AsyncClient) -> list[Period]:
        logger.info("Fetching session listing from %s", self.listing_url)
        r = await request_with_retries(
            client, "GET", self.listing_url, headers={"Accept": "text/html,*/*"}
        )
        return parse_listing(r.text)

    async def resolve(self, client: Optional[httpx.AsyncClient] = None) -> list[Period]:
        if self._periods is not None:
            return self._periods

        periods = self._load_cached()
        if periods is not None:
            logger.info("Using cached session catalog: %s", self.cache_file)
            self._periods = periods
            return periods

        if self.listing_url:
            if client is None:
                raise CatalogError("an HTTP client is required to fetch the listing")
            periods = await self._fetch(client)
        else:
            periods = static_periods(*self.static_range)

        logger.info("Resolved %d sessions", len(periods))
        write_json(self.cache_file, [p.to_dict() for p in periods])
        self._periods = periods
        return periods
