"""Vertex buffers handed to the renderer.

All buffers are float32 arrays of shape (n, 3).  `line_segments` produces
GL_LINES style pairs (p0, p1, p1, p2, ...); `line_strips` produces one
GL_LINE_STRIP array per ring.
"""
import math
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from topoglobe.config import ElevationConfig
from topoglobe.coord_utils import GeoCoordinate, project_array
from topoglobe.elevation import ElevationGrid, displaced_radius, sample_array
from topoglobe.great_circle import adaptive_resample
from topoglobe.topology import MeshData

PIN_COLORS = {
    "favourite": (1.0, 0.843, 0.0),
    "recent": (0.0, 1.0, 0.0),
    "current": (1.0, 0.0, 1.0),
    "historical": (0.533, 0.533, 0.533),
}


@dataclass(frozen=True)
class Location:
    '''A named place marked with a pin'''
    id: str
    name: str
    coord: GeoCoordinate
    kind: str = "recent"

    @property
    def color(self) -> tuple[float, float, float]:
        return PIN_COLORS.get(self.kind, PIN_COLORS["recent"])


def _ring_vertices(ring: np.ndarray, radius: float, grid: Optional[ElevationGrid],
                   config: Optional[ElevationConfig], max_segment_km: Optional[float]) -> np.ndarray:
    ring = np.asarray(ring, dtype=np.float64).reshape(-1, 2)
    if max_segment_km is not None and len(ring) >= 2:
        coords = [GeoCoordinate(float(lon), float(lat)) for lon, lat in ring]
        ring = np.array([[c.longitude, c.latitude] for c in adaptive_resample(coords, max_segment_km)])

    if grid is not None and grid.is_loaded:
        config = config or ElevationConfig(base_radius=radius)
        radii = np.array([displaced_radius(e, config) for e in sample_array(ring, grid,
                          not config.enable_antarctica)])
        # keep the layer offset above the displaced surface
        radii += radius - config.base_radius
        return project_array(ring, radii)
    return project_array(ring, radius)


def line_strips(mesh: MeshData, radius: float, grid: Optional[ElevationGrid] = None,
                config: Optional[ElevationConfig] = None,
                max_segment_km: Optional[float] = None) -> list[np.ndarray]:
    """One polyline vertex array per ring

    Parameters
    ----------
    mesh : MeshData
        Boundary rings in [lon, lat]
    radius : float
        Sphere radius for undisplaced vertices
    grid : ElevationGrid
        When loaded, each vertex is lifted to its displaced radius plus
        radius - config.base_radius
    config : ElevationConfig
        Elevation curve, defaults to one based on radius
    max_segment_km : float
        Densify long segments along great circles first

    Returns
    -------
    strips : list[np.ndarray]
        (n, 3) float32 arrays; rings with fewer than two points are skipped
    """
    strips = []
    for ring in mesh.rings:
        if len(ring) < 2:
            continue
        strips.append(_ring_vertices(ring, radius, grid, config, max_segment_km).astype(np.float32))
    return strips


def line_segments(mesh: MeshData, radius: float, grid: Optional[ElevationGrid] = None,
                  config: Optional[ElevationConfig] = None,
                  max_segment_km: Optional[float] = None) -> np.ndarray:
    """Segment-pair buffer for a whole mesh (arguments as for line_strips)

    Returns
    -------
    vertices : np.ndarray
        (2 * segments, 3) float32
    """
    pairs = []
    for strip in line_strips(mesh, radius, grid, config, max_segment_km):
        seg = np.empty((2 * (len(strip) - 1), 3), dtype=np.float32)
        seg[0::2] = strip[:-1]
        seg[1::2] = strip[1:]
        pairs.append(seg)
    if not pairs:
        return np.empty((0, 3), dtype=np.float32)
    return np.concatenate(pairs, axis=0)


def graticule(radius: float, spacing: float = 10.0, steps: int = 64) -> MeshData:
    """Latitude circles (-80..80) and meridians as a mesh

    Parameters
    ----------
    radius : float
        Unused by the mesh itself; kept so callers can pass one config
    spacing : float
        Degrees between lines
    steps : int
        Points per full latitude circle
    """
    rings = []
    n_lat = int(math.floor(80 / spacing))
    for k in range(-n_lat, n_lat + 1):
        lat = k * spacing
        lons = np.linspace(-180.0, 180.0, steps + 1)
        rings.append(np.column_stack([lons, np.full_like(lons, lat)]))

    lon = -180.0
    while lon < 180.0:
        lats = np.linspace(-90.0, 90.0, steps // 2 + 1)
        rings.append(np.column_stack([np.full_like(lats, lon), lats]))
        lon += spacing
    return MeshData("graticule", rings)


def pin_vertices(locations: Iterable[Location], radius: float, lift: float = 0.1) -> tuple[np.ndarray, np.ndarray]:
    """Marker positions slightly above the surface

    Returns
    -------
    positions : np.ndarray
        (n, 3) float32
    colors : np.ndarray
        (n, 3) float32 RGB per pin
    """
    locations = list(locations)
    if not locations:
        return np.empty((0, 3), dtype=np.float32), np.empty((0, 3), dtype=np.float32)
    lonlat = np.array([[loc.coord.longitude, loc.coord.latitude] for loc in locations])
    positions = project_array(lonlat, radius + lift).astype(np.float32)
    colors = np.array([loc.color for loc in locations], dtype=np.float32)
    return positions, colors
