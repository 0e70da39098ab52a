import math
import re
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from topoglobe.errors import CoordinateError


@dataclass(frozen=True)
class GeoCoordinate:
    """A longitude/latitude pair in degrees

    Attributes
    ----------
    longitude : float
        Degrees east, [-180, 180]
    latitude : float
        Degrees north, [-90, 90]
    """
    longitude: float
    latitude: float

    def __post_init__(self):
        lon, lat = self.longitude, self.latitude
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise CoordinateError(f"non-finite coordinate ({lon}, {lat})")
        if not -180.0 <= lon <= 180.0:
            raise CoordinateError(f"longitude {lon} outside [-180, 180]")
        if not -90.0 <= lat <= 90.0:
            raise CoordinateError(f"latitude {lat} outside [-90, 90]")

    def __iter__(self):
        yield self.longitude
        yield self.latitude


class Vertex3D(NamedTuple):
    x: float
    y: float
    z: float


def project(coord: GeoCoordinate, radius: float) -> Vertex3D:
    """Convert a geographic coordinate to a point on a Y-up sphere

    Parameters
    ----------
    coord : GeoCoordinate
        Longitude/latitude in degrees
    radius : float
        Sphere radius

    Returns
    -------
    vertex : Vertex3D
        x towards (0, 0), y towards the north pole, z towards (-90, 0)
    """
    lam = math.radians(coord.longitude)
    phi = math.radians(coord.latitude)

    x = radius * math.cos(phi) * math.cos(lam)
    y = radius * math.sin(phi)
    z = -radius * math.cos(phi) * math.sin(lam)

    return Vertex3D(x, y, z)


def unproject(vertex: Vertex3D, radius: float) -> GeoCoordinate:
    """Inverse of `project`

    Parameters
    ----------
    vertex : Vertex3D
        Point on (or near) the sphere
    radius : float
        Sphere radius used when projecting.  Non-positive values fall back to
        the length of the vertex.

    Returns
    -------
    coord : GeoCoordinate
        Longitude is whatever atan2 yields at the poles
    """
    x, y, z = vertex
    r = radius if radius > 0 else math.sqrt(x * x + y * y + z * z)
    if r == 0:
        return GeoCoordinate(0.0, 0.0)

    # Clamp y to avoid numerical errors in asin
    ratio = max(-1.0, min(1.0, y / r))

    lat = math.degrees(math.asin(ratio))
    lon = math.degrees(math.atan2(-z, x))

    return GeoCoordinate(normalize_longitude(lon), lat)


def normalize_longitude(lon: float) -> float:
    """Wrap longitude into [-180, 180] by whole turns"""
    while lon < -180.0:
        lon += 360.0
    while lon > 180.0:
        lon -= 360.0
    return lon


def project_array(lonlat: np.ndarray, radius) -> np.ndarray:
    """Vectorised `project`

    Parameters
    ----------
    lonlat : np.ndarray
        (n, 2) array of [lon, lat] degrees
    radius : float | np.ndarray
        Scalar radius, or one radius per point

    Returns
    -------
    xyz : np.ndarray
        (n, 3) float64 array
    """
    lonlat = np.asarray(lonlat, dtype=np.float64).reshape(-1, 2)
    lam = np.radians(lonlat[:, 0])
    phi = np.radians(lonlat[:, 1])
    r = np.asarray(radius, dtype=np.float64)

    cos_phi = np.cos(phi)
    return np.column_stack([
        r * cos_phi * np.cos(lam),
        r * np.sin(phi),
        -r * cos_phi * np.sin(lam),
    ])


def unit_vector(coord: GeoCoordinate) -> np.ndarray:
    '''Unit-sphere position of a coordinate as a numpy array'''
    return np.array(project(coord, 1.0))


_LATLNG_RE = re.compile(r"^\s*(-?\d+(?:\.\d*)?)\s*,\s*(-?\d+(?:\.\d*)?)\s*$")


def format_latlng(coord: GeoCoordinate) -> str:
    '''Format as "lat, lng" with four decimals'''
    return f"{coord.latitude:.4f}, {coord.longitude:.4f}"


def parse_latlng(text: str) -> GeoCoordinate:
    '''Parse a "lat, lng" string

    Raises
    ------
    CoordinateError
        text is not a pair of numbers, or the numbers are out of range
    '''
    match = _LATLNG_RE.match(text)
    if match is None:
        raise CoordinateError(f"not a 'lat, lng' pair: {text!r}")
    lat, lng = float(match.group(1)), float(match.group(2))
    return GeoCoordinate(lng, lat)
