import numpy as np
import pytest

from topoglobe.config import ElevationConfig
from topoglobe.coord_utils import GeoCoordinate, project
from topoglobe.elevation import ElevationGrid, flat_grid
from topoglobe.topology import MeshData
from topoglobe.wireframe import Location, graticule, line_segments, line_strips, pin_vertices


def square_mesh():
    ring = np.array([[0.0, 0.0], [10.0, 0.0], [10.0, 10.0], [0.0, 10.0], [0.0, 0.0]])
    return MeshData("land", [ring, np.array([[5.0, 5.0]])])


def test_line_segments_pairs():
    vertices = line_segments(square_mesh(), 20.0)
    assert vertices.dtype == np.float32
    # 4 segments in the square, the single-point ring contributes nothing
    assert vertices.shape == (8, 3)
    assert np.allclose(vertices[0], project(GeoCoordinate(0, 0), 20.0))
    assert np.allclose(vertices[1], vertices[2])
    assert np.allclose(vertices[-1], project(GeoCoordinate(0, 0), 20.0))


def test_line_segments_on_sphere():
    vertices = line_segments(square_mesh(), 5.0)
    assert np.allclose(np.linalg.norm(vertices, axis=1), 5.0, atol=1e-5)


def test_empty_mesh():
    assert line_segments(MeshData("empty"), 1.0).shape == (0, 3)


def test_line_strips():
    strips = line_strips(square_mesh(), 1.0)
    assert len(strips) == 1
    assert strips[0].shape == (5, 3)


def test_flat_grid_does_not_displace():
    plain = line_segments(square_mesh(), 20.0)
    flat = line_segments(square_mesh(), 20.0, grid=flat_grid())
    assert np.array_equal(plain, flat)


def test_loaded_grid_displaces():
    grid = ElevationGrid(np.ones((180, 360)))
    config = ElevationConfig(base_radius=20.0, max_elevation=0.5)
    vertices = line_segments(square_mesh(), 20.0, grid=grid, config=config)
    assert np.allclose(np.linalg.norm(vertices, axis=1), 19.5, atol=1e-4)


def test_loaded_grid_keeps_layer_offset():
    grid = ElevationGrid(np.full((180, 360), 0.5))
    config = ElevationConfig(base_radius=20.0)
    low = np.linalg.norm(line_segments(square_mesh(), 20.02, grid=grid, config=config), axis=1)
    high = np.linalg.norm(line_segments(square_mesh(), 20.05, grid=grid, config=config), axis=1)
    assert np.allclose(high - low, 0.03, atol=1e-4)


def test_resampling_adds_points():
    mesh = MeshData("line", [np.array([[0.0, 0.0], [40.0, 0.0]])])
    strips = line_strips(mesh, 1.0, max_segment_km=500.0)
    # about 4450 km at the equator
    assert len(strips[0]) == 10
    assert np.allclose(strips[0][-1], project(GeoCoordinate(40.0, 0.0), 1.0))


def test_graticule():
    mesh = graticule(20.0, spacing=10)
    assert mesh.name == "graticule"
    lats = sorted({ring[0][1] for ring in mesh.rings if np.all(ring[:, 1] == ring[0][1])})
    assert lats[0] == -80 and lats[-1] == 80
    meridians = [ring for ring in mesh.rings if np.all(ring[:, 0] == ring[0][0])]
    assert len(meridians) == 36
    assert len(mesh) == 17 + 36


def test_pin_vertices():
    locations = [
        Location("1", "London", GeoCoordinate(-0.1276, 51.5072), "favourite"),
        Location("2", "Tokyo", GeoCoordinate(139.6917, 35.6895)),
        Location("3", "Nowhere", GeoCoordinate(0.0, 0.0), "unknown"),
    ]
    positions, colors = pin_vertices(locations, 20.0)
    assert positions.shape == (3, 3)
    assert np.allclose(np.linalg.norm(positions, axis=1), 20.1, atol=1e-4)
    assert colors[0] == pytest.approx([1.0, 0.843, 0.0])
    assert colors[1] == pytest.approx([0.0, 1.0, 0.0])
    assert colors[2] == pytest.approx(colors[1])


def test_pin_vertices_empty():
    positions, colors = pin_vertices([], 20.0)
    assert positions.shape == colors.shape == (0, 3)
