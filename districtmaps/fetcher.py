"""
Fetches congressional district shapefile archives and converts them to GeoJSON.

Each archive is streamed and unzipped on the fly. Only the shapefile members
(``.dbf .prj .shp .shx``) are written to the period's staging directory, and
the transfer is cancelled as soon as the last of them is on disk. ``ogr2ogr``
then turns the staging directory into a single GeoJSON document.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence

import httpx

from .archive import ArchiveMember, TruncatedArchive, extract_members
from .cache import is_cached, remove_dir, reset_dir
from .config import Config
from .manifest import ArchiveSource

logger = logging.getLogger("districtmaps.fetcher")

Converter = Callable[[Path, Path], Awaitable[None]]


class TransferError(RuntimeError):
    """The archive download ended before all of its bytes arrived."""


class ConverterError(RuntimeError):
    """The external geometry converter exited with a non-zero status."""


def ogr2ogr_argv(executable: str, output: Path, source_dir: Path) -> list[str]:
    return [
        executable,
        "-f",
        "GeoJSON",
        "-t_srs",
        "crs:84",
        str(output),
        str(source_dir),
    ]


async def run_converter(argv: Sequence[str]) -> None:
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        logger.error(
            "Failed to process %s map conversion: %s",
            Path(argv[0]).name,
            stderr.decode("utf-8", errors="replace").strip(),
        )
        raise ConverterError(f"{argv[0]} exited with error code {proc.returncode}")


def member_name(member: ArchiveMember) -> PurePosixPath:
    return PurePosixPath(member.name.replace("\\", "/"))


async def _body(response: httpx.Response, cancel: asyncio.Event) -> AsyncIterator[bytes]:
    async for chunk in response.aiter_bytes():
        if cancel.is_set():
            return
        yield chunk


class ArchiveFetcher:
    def __init__(
        self,
        cfg: Config,
        client: httpx.AsyncClient,
        converter: Optional[Converter] = None,
    ) -> None:
        self.cfg = cfg
        self.client = client
        self.converter = converter or self._ogr2ogr

    async def _ogr2ogr(self, staging: Path, output: Path) -> None:
        await run_converter(ogr2ogr_argv(self.cfg.converter, output, staging))

    async def fetch(self, source: ArchiveSource) -> Path:
        """Fetch one period's archive and convert it; returns the GeoJSON path."""
        period_id = source.period_id
        geojson = self.cfg.geojson_file(period_id)

        if is_cached(geojson):
            logger.info("District %d GeoJSON already cached; skipping", period_id)
            return geojson

        logger.info("Fetching district %d from %s", period_id, source.url)
        staging = self.cfg.staging_dir(period_id)
        reset_dir(staging)
        try:
            missing = await self.extract(source, staging)
            if missing:
                logger.warning(
                    "District %d archive expected to contain one of each of %s; missing: %s",
                    period_id,
                    ", ".join(sorted(source.extensions)),
                    ", ".join(sorted(missing)),
                )

            geojson.parent.mkdir(parents=True, exist_ok=True)
            try:
                await self.converter(staging, geojson)
            except BaseException:
                # never leave a partial document behind to pass as a cache hit
                geojson.unlink(missing_ok=True)
                raise
        finally:
            remove_dir(staging)

        logger.info("District %d written to %s", period_id, geojson)
        return geojson

    async def extract(self, source: ArchiveSource, staging: Path) -> set[str]:
        """Stream the archive into ``staging``; returns the extensions never seen."""
        remaining = set(source.extensions)
        cancel = asyncio.Event()

        def take(member: ArchiveMember) -> bool:
            name = member_name(member)
            extension = name.suffix.lower()
            if member.is_dir or extension not in remaining:
                return False
            member.save(staging / name.name)
            remaining.discard(extension)
            return not remaining

        async with self.client.stream("GET", source.url) as response:
            response.raise_for_status()
            async with aclosing(_body(response, cancel)) as body:
                try:
                    if await extract_members(body, take):
                        # all members collected; the rest of the archive is wasted bandwidth
                        cancel.set()
                        logger.debug("District %d: cancelling transfer", source.period_id)
                except (TruncatedArchive, httpx.RemoteProtocolError) as e:
                    raise TransferError("stream unexpectedly closed") from e

        return remaining
