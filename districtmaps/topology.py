"""
Shared-boundary (TopoJSON) topology construction.

Coordinates are snapped to a ``Q x Q`` integer grid spanning the bounding box,
then every line and polygon ring is cut at its junctions: points where two
paths meet or part ways. Identical pieces are stored once in ``arcs``, so the
border between two adjacent districts is written a single time. Geometries
reference arcs by index, with ``~i`` (that is ``-i - 1``) meaning arc ``i``
traversed backwards. Quantized arcs are delta-encoded.
"""

from __future__ import annotations

import math
from typing import Any, Iterator, Optional

Point = tuple

TERMINAL_TYPES = ("Point", "MultiPoint", "LineString", "MultiLineString", "Polygon", "MultiPolygon")


def _to_geometry(obj: Optional[dict[str, Any]]) -> dict[str, Any]:
    if obj is None:
        return {"type": None}
    kind = obj.get("type")
    if kind == "FeatureCollection":
        return {
            "type": "GeometryCollection",
            "geometries": [_to_geometry(f) for f in obj.get("features") or []],
        }
    if kind == "Feature":
        out = _to_geometry(obj.get("geometry"))
        if obj.get("id") is not None:
            out["id"] = obj["id"]
        if obj.get("properties"):
            out["properties"] = obj["properties"]
    elif kind == "GeometryCollection":
        out = {
            "type": "GeometryCollection",
            "geometries": [_to_geometry(g) for g in obj.get("geometries") or []],
        }
    elif kind in TERMINAL_TYPES:
        out = {"type": kind, "coordinates": obj.get("coordinates") or []}
    else:
        raise TypeError(f"unsupported GeoJSON type {kind!r}")
    # a Feature's own bbox wins over its geometry's
    if obj.get("bbox") is not None:
        out["bbox"] = obj["bbox"]
    return out


def _walk(geometry: dict[str, Any]) -> Iterator[dict[str, Any]]:
    if geometry["type"] == "GeometryCollection":
        for g in geometry["geometries"]:
            yield from _walk(g)
    elif geometry["type"] is not None:
        yield geometry


def _positions(coordinates: Any) -> Iterator[list]:
    if coordinates and isinstance(coordinates[0], (int, float)):
        yield coordinates
        return
    for c in coordinates:
        yield from _positions(c)


def bounding_box(geometries: list[dict[str, Any]]) -> list[float]:
    x0 = y0 = math.inf
    x1 = y1 = -math.inf
    for geometry in geometries:
        for g in _walk(geometry):
            for x, y, *_ in _positions(g["coordinates"]):
                x0, y0 = min(x0, x), min(y0, y)
                x1, y1 = max(x1, x), max(y1, y)
    if x0 > x1:
        return [0, 0, 0, 0]
    return [x0, y0, x1, y1]


class _Quantizer:
    def __init__(self, bbox: list[float], n: Optional[int]) -> None:
        self.enabled = bool(n)
        x0, y0, x1, y1 = bbox
        self.x0, self.y0 = x0, y0
        if self.enabled:
            if n < 2:
                raise ValueError(f"quantization must be at least 2, got {n}")
            self.kx = (x1 - x0) / (n - 1) if x1 > x0 else 1
            self.ky = (y1 - y0) / (n - 1) if y1 > y0 else 1

    def __call__(self, position: list) -> Point:
        x, y = position[0], position[1]
        if not self.enabled:
            return (x, y)
        return (
            int(math.floor((x - self.x0) / self.kx + 0.5)),
            int(math.floor((y - self.y0) / self.ky + 0.5)),
        )

    def transform(self) -> dict[str, list[float]]:
        return {"scale": [self.kx, self.ky], "translate": [self.x0, self.y0]}


class _Paths:
    """Lines and rings extracted from geometries, in quantized coordinates."""

    def __init__(self, quantize: _Quantizer) -> None:
        self.quantize = quantize
        self.paths: list[list[Point]] = []
        self.rings: list[bool] = []

    def _points(self, coordinates: list) -> list[Point]:
        points: list[Point] = []
        for position in coordinates:
            p = self.quantize(position)
            if not points or points[-1] != p:
                points.append(p)
        return points

    def line(self, coordinates: list) -> int:
        points = self._points(coordinates)
        if len(points) == 1:
            points.append(points[0])
        self.paths.append(points)
        self.rings.append(False)
        return len(self.paths) - 1

    def ring(self, coordinates: list) -> int:
        points = self._points(coordinates)
        if points and points[0] != points[-1]:
            points.append(points[0])
        while points and len(points) < 4:
            points.append(points[0])
        self.paths.append(points)
        self.rings.append(True)
        return len(self.paths) - 1

    def junctions(self) -> set[Point]:
        neighbors: dict[Point, tuple[Point, Point]] = {}
        junctions: set[Point] = set()

        def visit(p: Point, a: Point, b: Point) -> None:
            pair = (a, b) if a <= b else (b, a)
            seen = neighbors.setdefault(p, pair)
            if seen != pair:
                junctions.add(p)

        for path, is_ring in zip(self.paths, self.rings):
            if not path:
                continue
            if is_ring:
                m = len(path) - 1
                for i in range(m):
                    visit(path[i], path[(i - 1) % m], path[(i + 1) % m])
            else:
                junctions.add(path[0])
                junctions.add(path[-1])
                for i in range(1, len(path) - 1):
                    visit(path[i], path[i - 1], path[i + 1])
        return junctions


class _Arcs:
    def __init__(self) -> None:
        self.arcs: list[list[Point]] = []
        self._index: dict[tuple, int] = {}

    def ref(self, piece: list[Point]) -> int:
        key = tuple(piece)
        if key in self._index:
            return self._index[key]
        reverse = key[::-1]
        if reverse in self._index:
            return ~self._index[reverse]
        self._index[key] = len(self.arcs)
        self.arcs.append(piece)
        return self._index[key]


def _cut(path: list[Point], junctions: set[Point]) -> list[list[Point]]:
    if not path:
        return []
    pieces = []
    start = 0
    for i in range(1, len(path) - 1):
        if path[i] in junctions:
            pieces.append(path[start : i + 1])
            start = i
    pieces.append(path[start:])
    return pieces


def _cut_ring(ring: list[Point], junctions: set[Point]) -> list[list[Point]]:
    body = ring[:-1]
    if not body:
        return []
    starts = [i for i, p in enumerate(body) if p in junctions]
    if starts:
        k = starts[0]
        return _cut(body[k:] + body[:k] + [body[k]], junctions)
    # no junction: rotate to a canonical start so equal rings match
    k = body.index(min(body))
    rotated = body[k:] + body[:k]
    return [rotated + [rotated[0]]]


def _delta(arc: list[Point]) -> list[list]:
    out = [list(arc[0])]
    for (x0, y0), (x1, y1) in zip(arc, arc[1:]):
        out.append([x1 - x0, y1 - y0])
    return out


def build_topology(objects: dict[str, Any], quantization: Optional[int] = 10_000) -> dict[str, Any]:
    """
    Build a TopoJSON ``Topology`` from named GeoJSON objects.

    ``objects`` maps layer names to FeatureCollections, Features or geometries.
    ``quantization`` is the number of grid positions per axis; 0 or None keeps
    the input coordinates.
    """
    geometries = {name: _to_geometry(obj) for name, obj in objects.items()}
    bbox = bounding_box(list(geometries.values()))
    quantize = _Quantizer(bbox, quantization)
    paths = _Paths(quantize)

    # first pass: replace line and ring coordinates by path indices
    for geometry in geometries.values():
        for g in _walk(geometry):
            kind, coords = g["type"], g["coordinates"]
            if kind == "Point":
                g["coordinates"] = list(quantize(coords)) if coords else []
            elif kind == "MultiPoint":
                g["coordinates"] = [list(quantize(p)) for p in coords]
            elif kind == "LineString":
                g["paths"] = paths.line(coords)
            elif kind == "MultiLineString":
                g["paths"] = [paths.line(line) for line in coords]
            elif kind == "Polygon":
                g["paths"] = [paths.ring(ring) for ring in coords]
            elif kind == "MultiPolygon":
                g["paths"] = [[paths.ring(ring) for ring in polygon] for polygon in coords]

    junctions = paths.junctions()
    arcs = _Arcs()

    def line_refs(i: int) -> list[int]:
        return [arcs.ref(piece) for piece in _cut(paths.paths[i], junctions)]

    def ring_refs(i: int) -> list[int]:
        return [arcs.ref(piece) for piece in _cut_ring(paths.paths[i], junctions)]

    # second pass: cut paths into shared arcs
    for geometry in geometries.values():
        for g in _walk(geometry):
            if "paths" not in g:
                continue
            kind, index = g["type"], g.pop("paths")
            del g["coordinates"]
            if kind == "LineString":
                g["arcs"] = line_refs(index)
            elif kind == "MultiLineString":
                g["arcs"] = [line_refs(i) for i in index]
            elif kind == "Polygon":
                g["arcs"] = [ring_refs(i) for i in index]
            else:
                g["arcs"] = [[ring_refs(i) for i in polygon] for polygon in index]

    topology: dict[str, Any] = {"type": "Topology", "bbox": bbox}
    if quantize.enabled:
        topology["transform"] = quantize.transform()
        topology["arcs"] = [_delta(arc) for arc in arcs.arcs]
    else:
        topology["arcs"] = [[list(p) for p in arc] for arc in arcs.arcs]
    topology["objects"] = geometries
    return topology
