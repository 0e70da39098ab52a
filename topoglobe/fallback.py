"""Hand-curated geography drawn when the boundary datasets cannot be loaded.

Nothing here is ever mutated; the mesh helpers return fresh MeshData
objects wrapping read-only arrays.
"""
from types import MappingProxyType

import numpy as np

from topoglobe.coord_utils import GeoCoordinate
from topoglobe.topology import MeshData


def _frozen(points) -> np.ndarray:
    arr = np.array(points, dtype=np.float64)
    arr.flags.writeable = False
    return arr


# name -> closed outer rings of [lon, lat]
CONTINENT_OUTLINES = MappingProxyType({
    "North America": (
        _frozen([[-168.0, 65.0], [-140.0, 69.0], [-110.0, 49.0], [-81.0, 25.0],
                 [-97.0, 25.0], [-125.0, 49.0], [-168.0, 65.0]]),
    ),
    "South America": (
        _frozen([[-35.0, 5.0], [-81.0, 12.0], [-81.0, -55.0], [-35.0, -35.0], [-35.0, 5.0]]),
    ),
    "Africa": (
        _frozen([[-18.0, 38.0], [52.0, 32.0], [52.0, -35.0], [-18.0, -35.0], [-18.0, 38.0]]),
    ),
    "Europe": (
        _frozen([[-25.0, 72.0], [45.0, 72.0], [45.0, 35.0], [-10.0, 35.0], [-25.0, 72.0]]),
    ),
    "Asia": (
        _frozen([[45.0, 72.0], [180.0, 72.0], [180.0, 5.0], [95.0, 5.0], [45.0, 35.0], [45.0, 72.0]]),
    ),
    "Australia": (
        _frozen([[112.0, -10.0], [154.0, -10.0], [154.0, -44.0], [112.0, -44.0], [112.0, -10.0]]),
    ),
    "Antarctica": (
        _frozen([[-180.0, -60.0], [180.0, -60.0]]),
    ),
})

COUNTRY_BORDER_SKETCH = (
    _frozen([[-141.0, 60.0], [-60.0, 60.0]]),   # Canada-US border area
    _frozen([[-125.0, 49.0], [-95.0, 49.0]]),   # US-Canada border
    _frozen([[20.0, 55.0], [30.0, 55.0]]),      # European borders sample
    _frozen([[35.0, 30.0], [45.0, 30.0]]),      # Middle East borders sample
)

LANDMARKS = MappingProxyType({
    "London": GeoCoordinate(-0.1276, 51.5072),
    "New York": GeoCoordinate(-74.0060, 40.7128),
    "Tokyo": GeoCoordinate(139.6917, 35.6895),
    "Sydney": GeoCoordinate(151.2093, -33.8688),
    "Cairo": GeoCoordinate(31.2357, 30.0444),
    "Rio de Janeiro": GeoCoordinate(-43.1729, -22.9068),
    "Moscow": GeoCoordinate(37.6173, 55.7558),
    "Mumbai": GeoCoordinate(72.8777, 19.0760),
    "Cape Town": GeoCoordinate(18.4241, -33.9249),
    "Anchorage": GeoCoordinate(-149.9003, 61.2181),
})


def fallback_land_mesh() -> MeshData:
    rings = [ring for outlines in CONTINENT_OUTLINES.values() for ring in outlines]
    return MeshData("land", rings)


def fallback_country_mesh() -> MeshData:
    return MeshData("countries", list(COUNTRY_BORDER_SKETCH))
