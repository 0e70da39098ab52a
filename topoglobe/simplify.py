import math

import numpy as np

from topoglobe.errors import ValidationError
from topoglobe.topology import MeshData


def _stride(tolerance: float) -> int:
    if not (math.isfinite(tolerance) and tolerance >= 0):
        raise ValidationError(f"tolerance must be a non-negative number, got {tolerance}")
    return max(1, math.floor(tolerance))


def simplify(ring, tolerance: float):
    """Fixed-stride decimation of a coordinate sequence

    Keeps every step-th point from index 0, step = max(1, floor(tolerance)),
    and always the last point.  This is a stride decimator, not
    Douglas-Peucker: fast and deterministic, but a large tolerance can drop
    visually significant vertices.

    Parameters
    ----------
    ring : Sequence | np.ndarray
        Points in order.  Inputs of two points or fewer are returned as is.
    tolerance : float
        Stride

    Returns
    -------
    ring : list | np.ndarray
        Same container kind as the input
    """
    step = _stride(tolerance)
    n = len(ring)
    if n <= 2 or step == 1:
        return ring

    indices = list(range(0, n, step))
    if indices[-1] != n - 1:
        indices.append(n - 1)

    if isinstance(ring, np.ndarray):
        return ring[indices]
    return [ring[i] for i in indices]


def simplify_mesh(mesh: MeshData, tolerance: float) -> MeshData:
    '''Apply simplify to every ring of a mesh'''
    step = _stride(tolerance)
    return MeshData(mesh.name, [simplify(ring, step) for ring in mesh.rings])
