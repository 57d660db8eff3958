"""
Tests for shared-boundary topology construction.
"""

import pytest

from districtmaps.topology import build_topology


def polygon(ring, fid=None, **properties):
    feature = {"type": "Feature", "geometry": {"type": "Polygon", "coordinates": [ring]}}
    if fid is not None:
        feature["id"] = fid
    feature["properties"] = properties
    return feature


LEFT = [[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]
RIGHT = [[1, 0], [2, 0], [2, 1], [1, 1], [1, 0]]


def collection(*features):
    return {"type": "FeatureCollection", "features": list(features)}


def decode(arc, transform=None):
    if transform is None:
        return [tuple(p) for p in arc]
    x = y = 0
    points = []
    for dx, dy in arc:
        x, y = x + dx, y + dy
        points.append((x, y))
    return points


class TestSharedArcs:
    def test_adjacent_polygons_share_one_arc(self):
        topology = build_topology({"districts": collection(polygon(LEFT), polygon(RIGHT))}, None)

        assert topology["arcs"] == [
            [[1, 0], [1, 1]],
            [[1, 1], [0, 1], [0, 0], [1, 0]],
            [[1, 0], [2, 0], [2, 1], [1, 1]],
        ]
        left, right = topology["objects"]["districts"]["geometries"]
        assert left["arcs"] == [[0, 1]]
        assert right["arcs"] == [[2, ~0]]
        assert "transform" not in topology

    def test_identical_rings_are_stored_once(self):
        rotated = [[1, 1], [0, 1], [0, 0], [1, 0], [1, 1]]
        topology = build_topology({"d": collection(polygon(LEFT), polygon(rotated))}, None)

        assert len(topology["arcs"]) == 1
        first, second = topology["objects"]["d"]["geometries"]
        assert first["arcs"] == second["arcs"] == [[0]]

    def test_reversed_ring_references_backwards_arc(self):
        topology = build_topology({"d": collection(polygon(LEFT), polygon(LEFT[::-1]))}, None)

        assert len(topology["arcs"]) == 1
        _, second = topology["objects"]["d"]["geometries"]
        assert second["arcs"] == [[~0]]

    def test_line_touching_polygon_cuts_it(self):
        line = {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [[1, 0], [1, -1]]}}
        topology = build_topology({"d": collection(polygon(LEFT), line)}, None)

        ring_arcs = topology["objects"]["d"]["geometries"][0]["arcs"][0]
        pieces = [decode(topology["arcs"][i if i >= 0 else ~i]) for i in ring_arcs]
        assert all(piece[0] == (1, 0) or piece[-1] == (1, 0) for piece in pieces)


class TestQuantization:
    def test_transform_and_delta_encoding(self):
        topology = build_topology({"d": collection(polygon(LEFT), polygon(RIGHT))}, 3)

        assert topology["bbox"] == [0, 0, 2, 1]
        assert topology["transform"] == {"scale": [1.0, 0.5], "translate": [0, 0]}
        assert len(topology["arcs"]) == 3
        shared = decode(topology["arcs"][0], topology["transform"])
        assert shared == [(1, 0), (1, 2)]

    def test_grid_positions_are_bounded(self):
        ring = [[-87.6, 41.8], [-87.5, 41.8], [-87.5, 41.9], [-87.6, 41.8]]
        topology = build_topology({"d": collection(polygon(ring))}, 10_000)

        for arc in topology["arcs"]:
            for x, y in decode(arc, topology["transform"]):
                assert 0 <= x <= 9999
                assert 0 <= y <= 9999

    def test_collapsed_points_are_deduplicated(self):
        ring = [[0, 0], [0.0001, 0], [10, 0], [10, 10], [0, 0]]
        topology = build_topology({"d": collection(polygon(ring))}, 10)

        (arc,) = topology["arcs"]
        assert len(arc) == 4

    def test_rejects_tiny_quantization(self):
        with pytest.raises(ValueError):
            build_topology({"d": collection(polygon(LEFT))}, 1)


class TestObjects:
    def test_feature_members_move_to_geometries(self):
        topology = build_topology(
            {"d": collection(polygon(LEFT, fid="VA-3", DISTRICT="3"), polygon(RIGHT, fid="VA-4"))},
            None,
        )
        left, right = topology["objects"]["d"]["geometries"]
        assert left["id"] == "VA-3"
        assert left["properties"] == {"DISTRICT": "3"}
        assert "properties" not in right
        assert left["type"] == "Polygon"
        assert "coordinates" not in left

    def test_points_and_null_geometries(self):
        features = [
            {"type": "Feature", "geometry": {"type": "Point", "coordinates": [2, 1]}, "properties": {}},
            {"type": "Feature", "geometry": None, "properties": {}},
        ]
        topology = build_topology({"d": collection(polygon(LEFT), *features)}, 3)

        _, point, empty = topology["objects"]["d"]["geometries"]
        assert point == {"type": "Point", "coordinates": [2, 2]}
        assert empty == {"type": None}

    def test_multipolygon(self):
        multi = {
            "type": "Feature",
            "geometry": {"type": "MultiPolygon", "coordinates": [[LEFT], [RIGHT]]},
            "properties": {},
        }
        topology = build_topology({"d": collection(multi)}, None)

        (geometry,) = topology["objects"]["d"]["geometries"]
        assert geometry["arcs"] == [[[0, 1]], [[2, ~0]]]

    def test_bounding_boxes_are_kept(self):
        with_bbox = {
            "type": "Feature",
            "id": 1,
            "geometry": {"type": "Polygon", "coordinates": [LEFT], "bbox": [0, 0, 1, 1]},
            "properties": {},
        }
        feature_bbox = {
            "type": "Feature",
            "bbox": [1, 0, 2, 1],
            "geometry": {"type": "Polygon", "coordinates": [RIGHT], "bbox": [9, 9, 9, 9]},
            "properties": {},
        }
        topology = build_topology({"d": collection(with_bbox, feature_bbox)}, 3)

        left, right = topology["objects"]["d"]["geometries"]
        assert left["bbox"] == [0, 0, 1, 1]
        assert right["bbox"] == [1, 0, 2, 1]
