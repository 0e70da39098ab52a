import numpy as np
import pytest

from topoglobe.config import ElevationConfig
from topoglobe.elevation import ElevationGrid, flat_grid
from topoglobe.sphere import build_sphere, sphere_segments


def test_sphere_segments():
    assert sphere_segments("high", 20) == 52
    assert sphere_segments("medium", 20) == 36
    assert sphere_segments("low", 20) == 24
    assert sphere_segments("low", 1) == 3
    with pytest.raises(ValueError):
        sphere_segments("ultra", 20)


def test_build_sphere_shapes():
    mesh = build_sphere(10.0, 8, 4)
    assert mesh.vertices.shape == (9 * 5, 3)
    assert mesh.normals.shape == (45, 3)
    assert mesh.uvs.shape == (45, 2)
    assert mesh.indices.shape == (2 * 8 * 4, 3)
    assert mesh.triangle_count == 64
    assert mesh.indices.max() < 45


def test_undisplaced_radius_and_normals():
    mesh = build_sphere(10.0, 16, 8, grid=flat_grid())
    assert np.allclose(np.linalg.norm(mesh.vertices, axis=1), 10.0, atol=1e-4)
    assert np.allclose(np.linalg.norm(mesh.normals, axis=1), 1.0, atol=1e-5)
    # normals point outwards
    assert np.all(np.sum(mesh.normals * mesh.vertices, axis=1) > 0)


def test_uvs():
    mesh = build_sphere(1.0, 4, 2)
    assert mesh.uvs.min() == 0.0
    assert mesh.uvs.max() == 1.0
    # first row is the north pole
    assert np.allclose(mesh.uvs[0], [0.0, 1.0])


def test_displacement_from_loaded_grid():
    grid = ElevationGrid(np.ones((180, 360)))
    config = ElevationConfig(base_radius=10.0, max_elevation=0.5)
    mesh = build_sphere(10.0, 16, 8, grid=grid, config=config)
    radii = np.linalg.norm(mesh.vertices, axis=1)
    # south of the cutoff row the raster is flattened
    assert radii.max() == pytest.approx(9.5, abs=1e-4)
    assert radii.min() < 9.5


def test_too_few_segments():
    with pytest.raises(ValueError):
        build_sphere(1.0, 2, 2)
