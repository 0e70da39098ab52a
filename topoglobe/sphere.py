"""UV sphere geometry, optionally displaced by an elevation grid."""
import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from topoglobe.config import ElevationConfig
from topoglobe.coord_utils import project_array
from topoglobe.elevation import ElevationGrid, displaced_radius, sample_array

logger = logging.getLogger(__name__)

QUALITY_MULTIPLIERS = {"high": 2.6, "medium": 1.8, "low": 1.2}
MIN_SEGMENTS = 3


@dataclass
class SphereMesh:
    '''Indexed triangle mesh

    Attributes
    ----------
    vertices : np.ndarray
        (n, 3) float32 positions
    normals : np.ndarray
        (n, 3) float32 unit normals
    uvs : np.ndarray
        (n, 2) float32 texture coordinates, u east from -180, v north from -90
    indices : np.ndarray
        (m, 3) uint32 triangles, counter-clockwise seen from outside
    '''
    vertices: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    indices: np.ndarray

    @property
    def triangle_count(self) -> int:
        return len(self.indices)


def sphere_segments(quality: str, radius: float) -> int:
    """Segment count for a render quality

    Parameters
    ----------
    quality : str
        "high", "medium" or "low"
    radius : float
        Sphere radius

    Returns
    -------
    segments : int
        floor(radius * multiplier), at least MIN_SEGMENTS
    """
    try:
        multiplier = QUALITY_MULTIPLIERS[quality]
    except KeyError:
        raise ValueError(f"unknown quality {quality!r}, expected one of {tuple(QUALITY_MULTIPLIERS)}") from None
    return max(MIN_SEGMENTS, math.floor(radius * multiplier))


def _grid_indices(width_segments: int, height_segments: int) -> np.ndarray:
    row = width_segments + 1
    iy, ix = np.meshgrid(np.arange(height_segments), np.arange(width_segments), indexing="ij")
    a = (iy * row + ix).ravel()
    b = a + row
    c = a + 1
    d = b + 1
    tris = np.concatenate([np.column_stack([a, b, c]), np.column_stack([b, d, c])])
    return tris.astype(np.uint32)


def _vertex_normals(vertices: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Average of adjacent face normals, weighted by face area"""
    v0, v1, v2 = (vertices[indices[:, k]] for k in range(3))
    face_normals = np.cross(v1 - v0, v2 - v0)

    normals = np.zeros_like(vertices)
    for k in range(3):
        np.add.at(normals, indices[:, k], face_normals)

    lengths = np.linalg.norm(normals, axis=1)
    radial = np.linalg.norm(vertices, axis=1)
    # seam and pole vertices only touch degenerate faces
    flat = lengths < 1e-12
    normals[flat] = vertices[flat]
    lengths[flat] = radial[flat]
    lengths[lengths == 0] = 1.0
    return normals / lengths[:, None]


def build_sphere(radius: float, width_segments: int, height_segments: int,
                 grid: Optional[ElevationGrid] = None,
                 config: Optional[ElevationConfig] = None) -> SphereMesh:
    """Build a latitude/longitude sphere

    Parameters
    ----------
    radius : float
        Radius when no elevation is applied
    width_segments : int
        Divisions around the equator (>= 3)
    height_segments : int
        Divisions pole to pole (>= 2)
    grid : ElevationGrid
        Displaces each vertex radially when loaded; the flat fallback grid
        leaves the sphere undisplaced
    config : ElevationConfig
        Displacement curve, defaults to one based on radius

    Returns
    -------
    mesh : SphereMesh
    """
    if width_segments < 3 or height_segments < 2:
        raise ValueError(f"sphere needs at least 3x2 segments, got {width_segments}x{height_segments}")

    lons = np.linspace(-180.0, 180.0, width_segments + 1)
    lats = np.linspace(90.0, -90.0, height_segments + 1)
    lon_grid, lat_grid = np.meshgrid(lons, lats)
    lonlat = np.column_stack([lon_grid.ravel(), lat_grid.ravel()])

    if grid is not None and grid.is_loaded:
        config = config or ElevationConfig(base_radius=radius)
        elevations = sample_array(lonlat, grid, not config.enable_antarctica)
        radii = np.array([displaced_radius(e, config) for e in elevations])
        logger.debug("Displacing sphere: radius %.3f..%.3f", radii.min(), radii.max())
    else:
        radii = radius

    vertices = project_array(lonlat, radii)
    indices = _grid_indices(width_segments, height_segments)
    normals = _vertex_normals(vertices, indices)
    uvs = np.column_stack([(lonlat[:, 0] + 180.0) / 360.0, (lonlat[:, 1] + 90.0) / 180.0])

    return SphereMesh(vertices=vertices.astype(np.float32),
                      normals=normals.astype(np.float32),
                      uvs=uvs.astype(np.float32),
                      indices=indices)
