"""
Archive sources per congressional period.

Entries 1-114 are sourced from UCLA:
http://cdmaps.polisci.ucla.edu/

Entries 115+ are sourced from the Census Bureau TIGER/Line releases.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import EXPECTED_EXTENSIONS

logger = logging.getLogger("districtmaps.manifest")

UCLA_URL = "http://cdmaps.polisci.ucla.edu/shp/districts{id:03d}.zip"
UCLA_LAST = 114
CENSUS_URLS = {
    115: "https://www2.census.gov/geo/tiger/TIGER2017/CD/tl_2017_us_cd115.zip",
    116: "https://www2.census.gov/geo/tiger/TIGER2019/CD/tl_2019_us_cd116.zip",
}


@dataclass(frozen=True)
class ArchiveSource:
    period_id: int
    url: str
    extensions: frozenset[str] = EXPECTED_EXTENSIONS


def build_manifest(overrides: Optional[Path] = None) -> dict[int, ArchiveSource]:
    urls: dict[int, str] = {i: UCLA_URL.format(id=i) for i in range(1, UCLA_LAST + 1)}
    urls.update(CENSUS_URLS)

    if overrides is not None:
        raw = json.loads(overrides.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"manifest {overrides} must be a JSON object")
        for key, url in raw.items():
            urls[int(key)] = str(url)
        logger.info("Loaded %d manifest entries from %s", len(raw), overrides)

    return {i: ArchiveSource(period_id=i, url=url) for i, url in sorted(urls.items())}
