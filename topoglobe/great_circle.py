"""Great-circle distance, bearing and path interpolation.

Interpolation works on unit vectors in the same Y-up frame that
`coord_utils.project` produces, so paths line up with projected meshes.
"""
import math
from typing import Sequence

import numpy as np

from topoglobe.coord_utils import GeoCoordinate, unit_vector, unproject, Vertex3D
from topoglobe.errors import ValidationError

EARTH_RADIUS_KM = 6371.0
KM_TO_MILES = 0.621371

COMPASS_POINTS = (
    "North", "North-Northeast", "Northeast", "East-Northeast",
    "East", "East-Southeast", "Southeast", "South-Southeast",
    "South", "South-Southwest", "Southwest", "West-Southwest",
    "West", "West-Northwest", "Northwest", "North-Northwest",
)


def distance(a: GeoCoordinate, b: GeoCoordinate) -> float:
    """Haversine distance in kilometres

    Parameters
    ----------
    a : GeoCoordinate
        Start
    b : GeoCoordinate
        End

    Returns
    -------
    km : float
        Great-circle distance on a sphere of EARTH_RADIUS_KM
    """
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlam = math.radians(b.longitude - a.longitude)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    # rounding can push h a hair past 1 for antipodal pairs
    h = min(1.0, h)
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def bearing(a: GeoCoordinate, b: GeoCoordinate) -> float:
    """Initial bearing (forward azimuth) from a to b, degrees in [0, 360)"""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dlam = math.radians(b.longitude - a.longitude)

    y = math.sin(dlam) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlam)

    deg = math.degrees(math.atan2(y, x)) % 360.0
    # -0.0 % 360 and tiny negatives round up to 360.0
    return 0.0 if deg >= 360.0 else deg


def compass_direction(bearing_deg: float) -> str:
    '''Name of the nearest of the 16 compass points'''
    index = int(round(bearing_deg / 22.5)) % 16
    return COMPASS_POINTS[index]


def _perpendicular(a_u: np.ndarray) -> np.ndarray:
    """Any unit vector orthogonal to a_u (used for antipodal pairs)"""
    axis = np.array([0.0, 1.0, 0.0])
    if abs(np.dot(axis, a_u)) > 0.9:
        axis = np.array([1.0, 0.0, 0.0])
    p = axis - np.dot(axis, a_u) * a_u
    return p / np.linalg.norm(p)


def interpolate_path(a: GeoCoordinate, b: GeoCoordinate, segments: int) -> list[GeoCoordinate]:
    """Spherical linear interpolation from a to b

    Parameters
    ----------
    a : GeoCoordinate
        First point, returned unchanged as element 0
    b : GeoCoordinate
        Last point, returned unchanged as the final element
    segments : int
        Number of equal angular steps.  Values <= 1 give [a, b]

    Returns
    -------
    path : list[GeoCoordinate]
        segments + 1 points
    """
    if segments <= 1:
        return [a, b]

    a_u = unit_vector(a)
    b_u = unit_vector(b)
    dot = float(np.clip(np.dot(a_u, b_u), -1.0, 1.0))
    theta = math.acos(dot)

    if theta < 1e-12:
        return [a] * segments + [b]

    # p(t) = cos(t*theta) a + sin(t*theta) u, with u the unit tangent towards b
    u = b_u - dot * a_u
    norm = np.linalg.norm(u)
    u = _perpendicular(a_u) if norm < 1e-12 else u / norm

    path = [a]
    for i in range(1, segments):
        t = theta * i / segments
        p = math.cos(t) * a_u + math.sin(t) * u
        path.append(unproject(Vertex3D(*p), 1.0))
    path.append(b)
    return path


def adaptive_resample(ring: Sequence[GeoCoordinate], max_segment_km: float) -> list[GeoCoordinate]:
    """Densify a coordinate sequence so no step exceeds max_segment_km

    Parameters
    ----------
    ring : Sequence[GeoCoordinate]
        Input points, in order
    max_segment_km : float
        Longest allowed great-circle step

    Returns
    -------
    points : list[GeoCoordinate]
        Original points with interpolated points inserted between them
    """
    if not max_segment_km > 0:
        raise ValidationError(f"max_segment_km must be positive, got {max_segment_km}")
    if len(ring) < 2:
        return list(ring)

    out = [ring[0]]
    for prev, cur in zip(ring[:-1], ring[1:]):
        d = distance(prev, cur)
        if d > max_segment_km:
            steps = math.ceil(d / max_segment_km)
            out.extend(interpolate_path(prev, cur, steps)[1:])
        else:
            out.append(cur)
    return out
