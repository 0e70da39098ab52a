"""Topology decoding and boundary mesh extraction.

A topology stores every shared border once as an "arc".  Arcs are usually
quantised (integers rescaled by ``transform``) and delta-encoded (each point
an offset from the previous one).  Geometries reference arcs by index; a
negative index ``i`` means arc ``~i`` traversed backwards.

Geometry types are normalised at decode time into `Geometry` objects whose
line-like content is always ``arc_rings``, so nothing past `decode` branches
on the source geometry type.
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Optional

import numpy as np

from topoglobe.coord_utils import GeoCoordinate
from topoglobe.errors import DecodeError, TopologyError

logger = logging.getLogger(__name__)

# quantised grids land on float noise near +-180 / +-90
DEQUANTIZE_DECIMALS = 9


class GeometryKind(Enum):
    POINT = "Point"
    MULTI_POINT = "MultiPoint"
    LINE_STRING = "LineString"
    MULTI_LINE_STRING = "MultiLineString"
    POLYGON = "Polygon"
    MULTI_POLYGON = "MultiPolygon"
    GEOMETRY_COLLECTION = "GeometryCollection"
    NULL = None


@dataclass(frozen=True)
class Transform:
    '''De-quantisation: real = quantised * scale + translate'''
    scale: tuple[float, float]
    translate: tuple[float, float]

    def apply(self, points: np.ndarray) -> np.ndarray:
        return points * np.asarray(self.scale) + np.asarray(self.translate)


@dataclass(frozen=True, eq=False)
class Geometry:
    '''One geometry of a topology object

    Compared by identity, so it can stand for its owning feature in
    dedup filters.

    Attributes
    ----------
    kind : GeometryKind
        Source geometry type
    arc_rings : tuple[tuple[int, ...], ...]
        Every arc-index sequence (line strings and polygon rings alike)
    points : np.ndarray | None
        (n, 2) positions for Point / MultiPoint
    members : tuple[Geometry, ...]
        Children of a GeometryCollection
    '''
    kind: GeometryKind
    arc_rings: tuple = ()
    points: Optional[np.ndarray] = None
    members: tuple = ()
    id: Any = None
    properties: dict = field(default_factory=dict)

    def walk(self) -> Iterator["Geometry"]:
        """This geometry and every nested member, depth first"""
        yield self
        for member in self.members:
            yield from member.walk()


@dataclass
class MeshData:
    '''Boundary rings of one layer, as (n, 2) [lon, lat] arrays'''
    name: str
    rings: list = field(default_factory=list)

    def coordinate_rings(self) -> list[list[GeoCoordinate]]:
        return [[GeoCoordinate(float(lon), float(lat)) for lon, lat in ring] for ring in self.rings]

    @property
    def point_count(self) -> int:
        return sum(len(ring) for ring in self.rings)

    def __len__(self):
        return len(self.rings)


@dataclass(frozen=True)
class Feature:
    '''A single geometry turned into coordinate rings'''
    id: Any
    properties: dict
    kind: GeometryKind
    rings: list


@dataclass
class Topology:
    '''Decoded topology: absolute arc coordinates plus normalised objects'''
    arcs: list
    objects: dict
    transform: Optional[Transform] = None
    bbox: Optional[tuple] = None

    def arc(self, index: int) -> np.ndarray:
        """Coordinates of an arc, reversed for negative (complemented) indices

        Raises
        ------
        TopologyError
            index does not resolve within arcs
        """
        j = ~index if index < 0 else index
        if j >= len(self.arcs):
            raise TopologyError(f"arc index {index} out of range ({len(self.arcs)} arcs)")
        points = self.arcs[j]
        return points[::-1] if index < 0 else points

    def object(self, name: str) -> Geometry:
        try:
            return self.objects[name]
        except KeyError:
            raise TopologyError(f"object '{name}' not found in topology") from None


# =============================================================================
# Decoding
# =============================================================================

def decode(raw: Mapping) -> Topology:
    """Decode a parsed topology document

    Parameters
    ----------
    raw : Mapping
        JSON object with type "Topology", arcs, objects and optional
        transform / bbox

    Returns
    -------
    topology : Topology

    Raises
    ------
    TopologyError
        Missing arcs/objects, bad geometry types, unresolvable arc indices
    """
    if not isinstance(raw, Mapping):
        raise TopologyError(f"topology must be a JSON object, got {type(raw).__name__}")
    if raw.get("type", "Topology") != "Topology":
        raise TopologyError(f"expected type 'Topology', got {raw.get('type')!r}")
    raw_arcs = raw.get("arcs")
    raw_objects = raw.get("objects")
    if not isinstance(raw_arcs, list) or not isinstance(raw_objects, Mapping):
        raise TopologyError("Invalid TopoJSON structure: missing arcs or objects")

    transform = _decode_transform(raw.get("transform"))
    arcs = [_decode_arc(arc, transform, i) for i, arc in enumerate(raw_arcs)]

    objects = {name: _decode_geometry(obj, transform, len(arcs)) for name, obj in raw_objects.items()}

    bbox = raw.get("bbox")
    return Topology(arcs=arcs, objects=objects, transform=transform,
                    bbox=tuple(bbox) if bbox is not None else None)


def decode_bytes(data: bytes) -> Topology:
    """Parse JSON bytes and decode them

    Raises
    ------
    DecodeError
        Not valid JSON
    TopologyError
        Valid JSON but not a well-formed topology
    """
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(f"Invalid topology JSON: {exc}") from exc
    return decode(raw)


def _decode_transform(raw) -> Optional[Transform]:
    if raw is None:
        return None
    try:
        sx, sy = raw["scale"]
        tx, ty = raw["translate"]
        return Transform((float(sx), float(sy)), (float(tx), float(ty)))
    except (KeyError, TypeError, ValueError) as exc:
        raise TopologyError(f"malformed transform: {exc}") from exc


def _decode_arc(raw, transform: Optional[Transform], index: int) -> np.ndarray:
    """Absolute (n, 2) coordinates of one arc"""
    try:
        points = np.array([p[:2] for p in raw], dtype=np.float64).reshape(-1, 2)
    except (TypeError, ValueError, IndexError) as exc:
        raise TopologyError(f"malformed arc {index}: {exc}") from exc

    if transform is not None:
        points = np.round(transform.apply(np.cumsum(points, axis=0)), DEQUANTIZE_DECIMALS)
    return points


def _decode_position(raw, transform: Optional[Transform]) -> np.ndarray:
    points = np.array([p[:2] for p in raw], dtype=np.float64).reshape(-1, 2)
    if transform is not None:
        points = np.round(transform.apply(points), DEQUANTIZE_DECIMALS)
    return points


def _check_arcs(indices, n_arcs: int) -> tuple[int, ...]:
    try:
        indices = tuple(int(i) for i in indices)
    except (TypeError, ValueError) as exc:
        raise TopologyError(f"arc references must be integers: {exc}") from exc
    for i in indices:
        j = ~i if i < 0 else i
        if j >= n_arcs:
            raise TopologyError(f"arc index {i} out of range ({n_arcs} arcs)")
    return indices


def _decode_geometry(raw, transform: Optional[Transform], n_arcs: int) -> Geometry:
    if not isinstance(raw, Mapping):
        raise TopologyError(f"geometry must be an object, got {type(raw).__name__}")
    try:
        kind = GeometryKind(raw.get("type"))
    except ValueError:
        raise TopologyError(f"unknown geometry type {raw.get('type')!r}") from None

    common = {'id': raw.get("id"), 'properties': dict(raw.get("properties") or {})}
    arcs = raw.get("arcs")

    try:
        if kind is GeometryKind.GEOMETRY_COLLECTION:
            members = tuple(_decode_geometry(g, transform, n_arcs) for g in raw.get("geometries", []))
            return Geometry(kind, members=members, **common)
        if kind is GeometryKind.NULL:
            return Geometry(kind, **common)
        if kind is GeometryKind.POINT:
            return Geometry(kind, points=_decode_position([raw["coordinates"]], transform), **common)
        if kind is GeometryKind.MULTI_POINT:
            return Geometry(kind, points=_decode_position(raw["coordinates"], transform), **common)
        if kind is GeometryKind.LINE_STRING:
            rings = (_check_arcs(arcs, n_arcs),)
        elif kind in (GeometryKind.MULTI_LINE_STRING, GeometryKind.POLYGON):
            rings = tuple(_check_arcs(ring, n_arcs) for ring in arcs)
        else:
            rings = tuple(_check_arcs(ring, n_arcs) for polygon in arcs for ring in polygon)
    except (KeyError, TypeError) as exc:
        raise TopologyError(f"malformed {kind.value} geometry: {exc!r}") from exc

    return Geometry(kind, arc_rings=rings, **common)


# =============================================================================
# Mesh & features
# =============================================================================

def distinct_owners(a: Geometry, b: Geometry) -> bool:
    """Dedup filter for interior borders between two different features"""
    return a is not b


def build_mesh(topology: Topology, object_name: str,
               dedup_filter: Optional[Callable[[Geometry, Geometry], bool]] = None) -> MeshData:
    """Collect the arcs used by one object into boundary rings

    Parameters
    ----------
    topology : Topology
        Decoded topology
    object_name : str
        Key in topology.objects, e.g. "land" or "countries"
    dedup_filter : callable
        filter(owner_a, owner_b) for arcs referenced by more than one
        geometry; the arc is kept (once) when it returns True for the first
        and last owner.  Arcs with a single owner are always kept.

    Returns
    -------
    mesh : MeshData
        One ring per arc, with the arc's points unchanged
    """
    root = topology.object(object_name)

    owners_by_arc: dict[int, list] = {}
    for geom in root.walk():
        for ring in geom.arc_rings:
            for i in ring:
                j = ~i if i < 0 else i
                owners_by_arc.setdefault(j, []).append((i, geom))

    rings = []
    for owners in owners_by_arc.values():
        first_index, first_owner = owners[0]
        if dedup_filter is not None and len({id(g) for _, g in owners}) > 1:
            if not dedup_filter(first_owner, owners[-1][1]):
                continue
        rings.append(topology.arc(first_index))

    logger.debug("Mesh '%s': %d of %d arcs", object_name, len(rings), len(topology.arcs))
    return MeshData(object_name, rings)


def ring_coordinates(topology: Topology, arc_indices) -> np.ndarray:
    """Join arcs into one ring, dropping each shared junction point once"""
    parts = []
    for k, i in enumerate(arc_indices):
        points = topology.arc(i)
        parts.append(points if k == 0 else points[1:])
    if not parts:
        return np.empty((0, 2))
    return np.concatenate(parts, axis=0)


def features(topology: Topology, object_name: str) -> list[Feature]:
    """Per-feature rings of an object

    A GeometryCollection yields one Feature per member; any other geometry
    yields a single Feature.
    """
    root = topology.object(object_name)
    geoms = root.members if root.kind is GeometryKind.GEOMETRY_COLLECTION else (root,)

    out = []
    for geom in geoms:
        rings = [ring_coordinates(topology, ring) for ring in geom.arc_rings]
        if geom.points is not None:
            rings.extend(p.reshape(1, 2) for p in geom.points)
        out.append(Feature(geom.id, geom.properties, geom.kind, rings))
    return out
