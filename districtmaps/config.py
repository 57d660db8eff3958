"""
Run configuration: defaults, command-line flags and derived artifact paths.

All paths hang off ``--project-root``:
    data/fetched/congresses/session-{id}.geojson
    data/transformed/congresses/session-{id}.topojson
    temp/congress/{id}/            (per-period staging, removed after each fetch)
    logs/
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

# -----------------------------
# Defaults
# -----------------------------
EXPECTED_EXTENSIONS: frozenset[str] = frozenset({".dbf", ".prj", ".shp", ".shx"})
FETCH_RETRIES = 3
QUANTIZATION = 10_000
CATALOG_MAX_AGE = timedelta(hours=24)
STATIC_PERIODS = (1, 116)
LAYER_NAME = "congressional_districts"


@dataclass(frozen=True)
class Config:
    project_root: Path
    data_dir: Path
    fetched_dir: Path
    transformed_dir: Path
    temp_dir: Path
    logs_dir: Path

    user_agent: str
    http2: bool
    timeout_s: float
    max_connections: int
    max_keepalive: int

    catalog_url: Optional[str]
    catalog_max_age: timedelta
    first_period: int
    last_period: int
    manifest_path: Optional[Path]

    retries: int
    concurrency: int
    quantization: int
    converter: str

    fetch: bool
    transform: bool

    @property
    def geojson_dir(self) -> Path:
        return self.fetched_dir / "congresses"

    @property
    def topojson_dir(self) -> Path:
        return self.transformed_dir / "congresses"

    @property
    def catalog_file(self) -> Path:
        return self.fetched_dir / "sessions.json"

    def geojson_file(self, period_id: int) -> Path:
        return self.geojson_dir / f"session-{period_id}.geojson"

    def topojson_file(self, period_id: int) -> Path:
        return self.topojson_dir / f"session-{period_id}.topojson"

    def staging_dir(self, period_id: int) -> Path:
        return self.temp_dir / "congress" / f"{period_id}"


def default_config(project_root: Path, **overrides) -> Config:
    project_root = Path(project_root).expanduser().resolve()
    data_dir = project_root / "data"
    values = dict(
        project_root=project_root,
        data_dir=data_dir,
        fetched_dir=data_dir / "fetched",
        transformed_dir=data_dir / "transformed",
        temp_dir=project_root / "temp",
        logs_dir=project_root / "logs",
        user_agent="districtmaps/0.1 (research)",
        http2=True,
        timeout_s=120.0,
        max_connections=8,
        max_keepalive=4,
        catalog_url=None,
        catalog_max_age=CATALOG_MAX_AGE,
        first_period=STATIC_PERIODS[0],
        last_period=STATIC_PERIODS[1],
        manifest_path=None,
        retries=FETCH_RETRIES,
        concurrency=1,
        quantization=QUANTIZATION,
        converter="ogr2ogr",
        fetch=True,
        transform=True,
    )
    values.update(overrides)
    return Config(**values)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Fetch congressional district archives and convert them to TopoJSON."
    )
    p.add_argument(
        "--project-root", default=".", help="Project root (default: current dir)"
    )
    p.add_argument(
        "--catalog-url",
        default=None,
        help="Session listing URL; without it periods come from --first/--last",
    )
    p.add_argument("--first", type=int, default=STATIC_PERIODS[0], help="First period id")
    p.add_argument("--last", type=int, default=STATIC_PERIODS[1], help="Last period id")
    p.add_argument(
        "--manifest",
        default=None,
        help="JSON file mapping period id to archive URL (extends the built-in manifest)",
    )
    p.add_argument(
        "--user-agent",
        default="districtmaps/0.1 (research)",
        help="User-Agent header",
    )
    p.add_argument(
        "--timeout", type=float, default=120.0, help="Per-request timeout in seconds"
    )
    p.add_argument(
        "--retries",
        type=int,
        default=FETCH_RETRIES,
        help=f"Fetch attempts per period (default {FETCH_RETRIES})",
    )
    p.add_argument(
        "--concurrency",
        type=int,
        default=1,
        help="Periods fetched in parallel (default 1, sequential)",
    )
    p.add_argument(
        "--quantization",
        type=int,
        default=QUANTIZATION,
        help=f"TopoJSON quantization, 0 disables (default {QUANTIZATION})",
    )
    p.add_argument(
        "--converter", default="ogr2ogr", help="ogr2ogr executable (default ogr2ogr)"
    )

    p.add_argument("--http2", action="store_true", help="Enable HTTP/2 (default on)")
    p.add_argument(
        "--no-http2", dest="http2", action="store_false", help="Disable HTTP/2"
    )
    p.set_defaults(http2=True)

    p.add_argument(
        "--skip-fetch", dest="fetch", action="store_false", help="Skip archive fetching"
    )
    p.add_argument(
        "--skip-transform",
        dest="transform",
        action="store_false",
        help="Skip TopoJSON conversion",
    )
    p.set_defaults(fetch=True, transform=True)
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    return default_config(
        Path(args.project_root),
        user_agent=args.user_agent,
        http2=bool(args.http2),
        timeout_s=float(args.timeout),
        catalog_url=args.catalog_url or None,
        first_period=int(args.first),
        last_period=int(args.last),
        manifest_path=Path(args.manifest).expanduser() if args.manifest else None,
        retries=max(1, int(args.retries)),
        concurrency=max(1, int(args.concurrency)),
        quantization=int(args.quantization),
        converter=args.converter,
        fetch=bool(args.fetch),
        transform=bool(args.transform),
    )
