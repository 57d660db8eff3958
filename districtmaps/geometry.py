"""
Converts fetched district GeoJSON documents into TopoJSON.

Every node is rewritten to its canonical GeoJSON members only, coordinates
are rounded to 4 decimal places (about 11 m) and the districts are folded into
a single shared-boundary layer. Both reductions are lossy on purpose: they
bound the size of what the browser has to download.
"""

from __future__ import annotations

import json
import logging
import math
import re
from pathlib import Path
from typing import Any, Callable, Optional

from .cache import is_cached, write_json
from .config import LAYER_NAME, QUANTIZATION
from .topology import build_topology

logger = logging.getLogger("districtmaps.geometry")

COORDINATE_SCALE = 10_000
GEOJSON_FILE_RE = re.compile(r"^session-(?P<id>\d+)\.geojson$")


class GeometryError(TypeError):
    """A node in the document is not a GeoJSON object."""


def round_coordinate(value: float) -> float:
    # half-up, like Math.round
    return math.floor(value * COORDINATE_SCALE + 0.5) / COORDINATE_SCALE


def trim_coordinates(coordinates: Any) -> Any:
    if isinstance(coordinates, list):
        return [trim_coordinates(c) for c in coordinates]
    return round_coordinate(coordinates)


def _rewrite_feature_collection(node: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [rewrite(f) for f in node.get("features") or []],
    }


def _rewrite_feature(node: dict[str, Any]) -> dict[str, Any]:
    feature: dict[str, Any] = {"type": "Feature"}
    if node.get("id") is not None:
        feature["id"] = node["id"]
    feature["geometry"] = rewrite(node.get("geometry"))
    if "properties" in node:
        feature["properties"] = node["properties"]
    return feature


def _rewrite_geometry_collection(node: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "GeometryCollection",
        "geometries": [rewrite(g) for g in node.get("geometries") or []],
    }


def _rewrite_terminal(node: dict[str, Any]) -> dict[str, Any]:
    geometry = {
        "type": node["type"],
        "coordinates": trim_coordinates(node.get("coordinates") or []),
    }
    if node.get("bbox") is not None:
        geometry["bbox"] = node["bbox"]
    return geometry


_REWRITERS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "FeatureCollection": _rewrite_feature_collection,
    "Feature": _rewrite_feature,
    "GeometryCollection": _rewrite_geometry_collection,
    "Point": _rewrite_terminal,
    "MultiPoint": _rewrite_terminal,
    "LineString": _rewrite_terminal,
    "MultiLineString": _rewrite_terminal,
    "Polygon": _rewrite_terminal,
    "MultiPolygon": _rewrite_terminal,
}


def rewrite(node: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Strip foreign members from a GeoJSON node and round its coordinates."""
    if node is None:
        return None
    if not isinstance(node, dict) or "type" not in node:
        raise GeometryError(f"expected a GeoJSON object, got {type(node).__name__}")
    try:
        rewriter = _REWRITERS[node["type"]]
    except (KeyError, TypeError):
        raise GeometryError(f"unknown GeoJSON type {node['type']!r}") from None
    return rewriter(node)


def collect_documents(directory: Path) -> list[tuple[int, Path]]:
    """Fetched ``session-{id}.geojson`` files, sorted by id."""
    if not directory.is_dir():
        return []
    files = []
    for path in directory.iterdir():
        m = GEOJSON_FILE_RE.match(path.name)
        if m:
            files.append((int(m.group("id")), path))
    files.sort()
    return files


class GeometryConverter:
    def __init__(self, quantization: Optional[int] = QUANTIZATION, layer: str = LAYER_NAME) -> None:
        self.quantization = quantization
        self.layer = layer

    def convert(self, document: Path, output: Path) -> bool:
        """Write the TopoJSON for ``document``; returns False when nothing was written."""
        if is_cached(output):
            logger.info("TopoJSON already converted; skipping: %s", output)
            return False

        geojson = json.loads(document.read_text(encoding="utf-8"))
        kind = geojson.get("type") if isinstance(geojson, dict) else type(geojson).__name__
        if kind != "FeatureCollection":
            logger.warning(
                "Expected GeoJSON file to be a FeatureCollection (found: %s); skipping %s",
                kind,
                document,
            )
            return False

        stripped = rewrite(geojson)
        topology = build_topology({self.layer: stripped}, self.quantization)
        write_json(output, topology)
        logger.info(
            "Wrote %s (%d features, %d arcs)",
            output,
            len(stripped["features"]),
            len(topology["arcs"]),
        )
        return True
