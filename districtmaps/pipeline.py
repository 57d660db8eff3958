"""
Congressional district map pipeline.

Stages:
1) Resolve the session catalog (cached for 24 hours).
2) Fetch each period's shapefile archive and convert it with ogr2ogr:
     data/fetched/congresses/session-{id}.geojson
3) Rewrite every fetched document as TopoJSON:
     data/transformed/congresses/session-{id}.topojson

Every stage skips work whose artifact already exists, so re-running is cheap.

Run:
    python3 -m districtmaps.pipeline --project-root .
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx
from tqdm import tqdm

from .catalog import CatalogError, Period, SessionCatalog
from .config import STATIC_PERIODS, Config, build_config, parse_args
from .fetcher import ArchiveFetcher
from .geometry import GeometryConverter, collect_documents
from .manifest import ArchiveSource, build_manifest
from .net import make_client
from .retry import run_with_retries

logger = logging.getLogger("districtmaps")


# -----------------------------
# Worker pool (sequential when concurrency == 1)
# -----------------------------
async def run_job_pool(
    jobs: list[ArchiveSource],
    handler: Callable[[ArchiveSource], Awaitable[bool]],
    concurrency: int,
    desc: str,
) -> tuple[int, int]:
    if not jobs:
        return 0, 0

    q: asyncio.Queue[Optional[ArchiveSource]] = asyncio.Queue()
    for job in jobs:
        q.put_nowait(job)
    for _ in range(concurrency):
        q.put_nowait(None)

    ok = 0
    fail = 0
    pbar = tqdm(total=len(jobs), desc=desc, unit="period")

    async def worker() -> None:
        nonlocal ok, fail
        while True:
            job = await q.get()
            try:
                if job is None:
                    return
                if await handler(job):
                    ok += 1
                else:
                    fail += 1
                pbar.update(1)
            finally:
                q.task_done()

    tasks = [asyncio.create_task(worker()) for _ in range(concurrency)]
    try:
        await q.join()
    finally:
        for t in tasks:
            t.cancel()
        pbar.close()

    return ok, fail


# -----------------------------
# Stages
# -----------------------------
def select_periods(cfg: Config, periods: list[Period]) -> list[Period]:
    return [p for p in periods if cfg.first_period <= p.id <= cfg.last_period]


async def fetch_stage(
    cfg: Config,
    client: httpx.AsyncClient,
    periods: list[Period],
    manifest: dict[int, ArchiveSource],
    fetcher: Optional[ArchiveFetcher] = None,
) -> tuple[int, int]:
    fetcher = fetcher or ArchiveFetcher(cfg, client)

    sources: list[ArchiveSource] = []
    for period in periods:
        source = manifest.get(period.id)
        if source is None:
            logger.info("No archive source for district %d; skipping", period.id)
            continue
        sources.append(source)

    async def handler(source: ArchiveSource) -> bool:
        return await run_with_retries(
            f"congressional district {source.period_id}",
            lambda: fetcher.fetch(source),
            max_attempts=cfg.retries,
        )

    logger.info("Archives to fetch: %d", len(sources))
    return await run_job_pool(sources, handler, cfg.concurrency, "District archives")


def transform_stage(cfg: Config, converter: Optional[GeometryConverter] = None) -> tuple[int, int]:
    converter = converter or GeometryConverter(cfg.quantization or None)
    written = 0
    skipped = 0

    documents = collect_documents(cfg.geojson_dir)
    for period_id, document in tqdm(documents, desc="TopoJSON", unit="period"):
        logger.info("Processing congressional district %d: %s", period_id, document)
        try:
            if converter.convert(document, cfg.topojson_file(period_id)):
                written += 1
            else:
                skipped += 1
        except (OSError, ValueError, TypeError):
            logger.exception("Failed to convert congressional district %d", period_id)
            skipped += 1
    return written, skipped


# -----------------------------
# Main pipeline
# -----------------------------
async def main_async(cfg: Config) -> int:
    logger.info("Project root: %s", cfg.project_root)

    catalog = SessionCatalog(
        cfg.catalog_file,
        listing_url=cfg.catalog_url,
        static_range=(STATIC_PERIODS[0], max(STATIC_PERIODS[1], cfg.last_period)),
        max_age=cfg.catalog_max_age,
    )

    async with make_client(cfg) as client:
        try:
            periods = select_periods(cfg, await catalog.resolve(client))
        except (CatalogError, httpx.HTTPError):
            logger.exception("Failed to resolve the session catalog")
            return 1
        logger.info("Sessions selected: %d", len(periods))

        if not cfg.fetch:
            logger.info("Skipping fetch.")
        else:
            try:
                manifest = build_manifest(cfg.manifest_path)
            except (OSError, ValueError, TypeError):
                logger.exception("Failed to load the archive manifest %s", cfg.manifest_path)
                return 1

            if shutil.which(cfg.converter) is None:
                logger.error("%s not found; install GDAL to fetch district maps", cfg.converter)
            else:
                ok, fail = await fetch_stage(cfg, client, periods, manifest)
                logger.info("District archives OK=%d FAIL=%d", ok, fail)

    if cfg.transform:
        written, skipped = transform_stage(cfg)
        logger.info("TopoJSON written=%d skipped=%d", written, skipped)
    else:
        logger.info("Skipping transform.")

    return 0


def setup_logging(logs_dir: Path) -> Path:
    logs_dir.mkdir(parents=True, exist_ok=True)
    run_tag = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = logs_dir / f"districtmaps_{run_tag}.log"

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logger.info("Log file: %s", log_path)
    return log_path


def main(argv: Optional[list[str]] = None) -> int:
    cfg = build_config(parse_args(argv))
    setup_logging(cfg.logs_dir)

    try:
        return asyncio.run(main_async(cfg))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
