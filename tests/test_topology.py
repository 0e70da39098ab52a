import numpy as np
import pytest

from conftest import topo_bytes
from topoglobe.coord_utils import GeoCoordinate
from topoglobe.errors import DecodeError, TopologyError, ValidationError
from topoglobe.topology import (GeometryKind, build_mesh, decode, decode_bytes, distinct_owners,
                                features, ring_coordinates)


def two_squares():
    '''Two countries sharing the meridian edge x=0'''
    return {
        "type": "Topology",
        "arcs": [
            [[0, 0], [0, 10]],
            [[0, 10], [-10, 10], [-10, 0], [0, 0]],
            [[0, 10], [10, 10], [10, 0], [0, 0]],
        ],
        "objects": {
            "countries": {
                "type": "GeometryCollection",
                "geometries": [
                    {"type": "Polygon", "id": "A", "arcs": [[1, 0]], "properties": {"name": "West"}},
                    {"type": "Polygon", "id": "B", "arcs": [[-3, -1]]},
                ],
            },
            "land": {"type": "Polygon", "arcs": [[1, -3]]},
        },
    }


def test_decode_absolute_arcs():
    topo = decode(two_squares())
    assert topo.transform is None
    assert len(topo.arcs) == 3
    assert np.array_equal(topo.arcs[1], [[0, 10], [-10, 10], [-10, 0], [0, 0]])


def test_negative_index_reverses():
    topo = decode(two_squares())
    assert np.array_equal(topo.arc(-3), topo.arcs[2][::-1])
    assert np.array_equal(topo.arc(~0), [[0, 10], [0, 0]])


def test_decode_quantized_arcs():
    raw = {
        "type": "Topology",
        "transform": {"scale": [0.5, 0.5], "translate": [-10, -10]},
        "arcs": [[[0, 0], [2, 0], [0, 2]]],
        "objects": {"line": {"type": "LineString", "arcs": [0]}},
    }
    topo = decode(raw)
    assert np.allclose(topo.arcs[0], [[-10, -10], [-9, -10], [-9, -9]])
    assert topo.object("line").arc_rings == ((0,),)


def test_dequantized_extremes_are_valid_coordinates():
    raw = {
        "type": "Topology",
        "transform": {"scale": [360 / 9999, 180 / 9999], "translate": [-180, -90]},
        "arcs": [[[0, 0], [9999, 9999]]],
        "objects": {"line": {"type": "LineString", "arcs": [0]}},
    }
    mesh = build_mesh(decode(raw), "line")
    start, end = mesh.coordinate_rings()[0]
    assert start == GeoCoordinate(-180.0, -90.0)
    assert end == GeoCoordinate(180.0, 90.0)


def test_geometry_kinds_normalised():
    raw = {
        "type": "Topology",
        "arcs": [[[0, 0], [1, 1]], [[1, 1], [2, 0]]],
        "objects": {
            "all": {
                "type": "GeometryCollection",
                "geometries": [
                    {"type": "LineString", "arcs": [0, 1]},
                    {"type": "MultiLineString", "arcs": [[0], [1]]},
                    {"type": "MultiPolygon", "arcs": [[[0, 1]], [[~1, ~0]]]},
                    {"type": "Point", "coordinates": [5, 6]},
                    {"type": "MultiPoint", "coordinates": [[1, 2], [3, 4]]},
                    {"type": None},
                ],
            },
        },
    }
    members = decode(raw).object("all").members
    assert [m.kind for m in members] == [
        GeometryKind.LINE_STRING, GeometryKind.MULTI_LINE_STRING, GeometryKind.MULTI_POLYGON,
        GeometryKind.POINT, GeometryKind.MULTI_POINT, GeometryKind.NULL,
    ]
    assert members[0].arc_rings == ((0, 1),)
    assert members[1].arc_rings == ((0,), (1,))
    assert members[2].arc_rings == ((0, 1), (-2, -1))
    assert np.array_equal(members[3].points, [[5, 6]])
    assert members[5].arc_rings == ()


@pytest.mark.parametrize("raw", [
    {"type": "FeatureCollection", "arcs": [], "objects": {}},
    {"type": "Topology", "objects": {}},
    {"type": "Topology", "arcs": []},
    {"type": "Topology", "arcs": [], "objects": {"x": {"type": "Circle"}}},
    {"type": "Topology", "arcs": [[[0, 0], [1, 1]]], "objects": {"x": {"type": "LineString", "arcs": [1]}}},
    {"type": "Topology", "arcs": [[[0, 0], [1, 1]]], "objects": {"x": {"type": "LineString", "arcs": [-2]}}},
    {"type": "Topology", "arcs": [], "objects": {}, "transform": {"scale": [1]}},
    [],
])
def test_decode_rejects_malformed(raw):
    with pytest.raises(TopologyError):
        decode(raw)


def test_topology_error_is_validation_error():
    with pytest.raises(ValidationError):
        decode({"type": "Topology"})


def test_decode_bytes():
    topo = decode_bytes(topo_bytes(two_squares()))
    assert set(topo.objects) == {"countries", "land"}
    with pytest.raises(DecodeError):
        decode_bytes(b"{not json")


def test_missing_object():
    with pytest.raises(TopologyError):
        build_mesh(decode(two_squares()), "rivers")


def test_build_mesh_each_arc_once():
    mesh = build_mesh(decode(two_squares()), "countries")
    assert mesh.name == "countries"
    assert len(mesh) == 3
    # first use of arc 2 is reversed (-3)
    assert np.array_equal(mesh.rings[2][0], [0, 0])


def test_build_mesh_is_lossless():
    topo = decode(two_squares())
    mesh = build_mesh(topo, "land")
    assert mesh.point_count == sum(len(a) for a in (topo.arcs[1], topo.arcs[2]))
    assert np.array_equal(mesh.rings[0], topo.arcs[1])


def test_distinct_owner_filter_keeps_shared_border():
    mesh = build_mesh(decode(two_squares()), "countries", distinct_owners)
    assert len(mesh) == 3


def test_filter_rejecting_shared_arcs_keeps_single_owner_arcs():
    mesh = build_mesh(decode(two_squares()), "countries", lambda a, b: a is b)
    assert len(mesh) == 2
    assert not any(np.array_equal(ring, [[0, 0], [0, 10]]) for ring in mesh.rings)


def test_ring_coordinates_drops_junctions():
    topo = decode(two_squares())
    ring = ring_coordinates(topo, (1, 0))
    assert len(ring) == 5
    assert np.array_equal(ring[0], ring[-1])


def test_features():
    result = features(decode(two_squares()), "countries")
    assert [f.id for f in result] == ["A", "B"]
    assert result[0].properties == {"name": "West"}
    assert result[1].kind is GeometryKind.POLYGON
    assert np.array_equal(result[1].rings[0][0], [0, 0])
