"""Land, country and coastline boundaries for the globe.

Each layer comes from a world-atlas topology on the CDN.  Layers load
concurrently and degrade independently: a layer that cannot be loaded is
replaced by the hand-drawn geography in `topoglobe.fallback`.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from topoglobe.config import RESOLUTIONS, WORLD_ATLAS_URLS
from topoglobe.errors import LoadCancelled, TopologyError
from topoglobe.fallback import LANDMARKS, fallback_country_mesh, fallback_land_mesh
from topoglobe.topology import MeshData, build_mesh, decode_bytes, distinct_owners

logger = logging.getLogger(__name__)

# resolution -> dataset scale; coastlines are only published at 50m
ATLAS_SCALES = {"high": "50m", "medium": "110m", "low": "110m"}
COASTLINE_SCALE = "50m"

LAYERS = ("land", "countries", "coastlines")


@dataclass
class WorldAtlas:
    '''Boundary meshes for every layer

    Attributes
    ----------
    land : MeshData
        Continent outlines
    countries : MeshData
        Interior borders between countries
    coastlines : MeshData
        Coast lines, the land mesh when the dataset is unavailable
    failures : dict
        layer name -> error for every layer that fell back
    landmarks : dict
        Reference cities, only set when every layer fell back
    '''
    land: MeshData
    countries: MeshData
    coastlines: MeshData
    failures: dict = field(default_factory=dict)
    landmarks: dict = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return bool(self.failures)

    def layers(self) -> dict[str, MeshData]:
        return {name: getattr(self, name) for name in LAYERS}


def atlas_urls(resolution: str = "medium") -> dict[str, str]:
    """Dataset URL per layer for a resolution

    Raises
    ------
    ValueError
        Unknown resolution
    """
    if resolution not in RESOLUTIONS:
        raise ValueError(f"unknown resolution {resolution!r}, expected one of {RESOLUTIONS}")
    scale = ATLAS_SCALES[resolution]
    return {
        "land": WORLD_ATLAS_URLS[f"land{scale}"],
        "countries": WORLD_ATLAS_URLS[f"countries{scale}"],
        "coastlines": WORLD_ATLAS_URLS[f"coastlines{COASTLINE_SCALE}"],
    }


# layer -> (topology object, shared-arc filter)
LAYER_OBJECTS = {
    "land": ("land", None),
    "countries": ("countries", distinct_owners),
    "coastlines": ("coastlines", None),
}


async def load_world_atlas(loader, resolution: str = "medium", cancel=None,
                           urls: Optional[dict] = None) -> WorldAtlas:
    """Load every boundary layer, substituting fallbacks for failures

    The loader caches the decoded `Topology` under each URL; meshes are
    built from it here, so other lookups on the same dataset share the
    download.

    Parameters
    ----------
    loader : AssetLoader
        Shared loader (and cache)
    resolution : str
        "high" (50m) or "medium"/"low" (110m)
    cancel : CancelToken
        Cancellation is the only error propagated
    urls : dict
        Override of the layer -> source mapping

    Returns
    -------
    atlas : WorldAtlas
    """
    urls = urls or atlas_urls(resolution)
    results = await loader.load_all({
        name: loader.load(urls[name], decode_bytes, cancel=cancel) for name in LAYERS
    })

    meshes = {}
    failures = {}
    for name in LAYERS:
        result = results[name]
        if isinstance(result.error, LoadCancelled):
            raise result.error
        if not result.ok:
            failures[name] = result.error
            continue
        object_name, dedup_filter = LAYER_OBJECTS[name]
        try:
            meshes[name] = build_mesh(result.value, object_name, dedup_filter)
        except TopologyError as exc:
            logger.error("Cannot build %s from %s: %s", name, urls[name], exc)
            failures[name] = exc

    land = meshes.get("land")
    if land is None:
        logger.warning("Land boundaries unavailable, using fallback outlines")
        land = fallback_land_mesh()

    countries = meshes.get("countries")
    if countries is None:
        logger.warning("Country borders unavailable, using fallback sketch")
        countries = fallback_country_mesh()

    coastlines = meshes.get("coastlines")
    if coastlines is None:
        logger.warning("Coastlines unavailable, reusing land boundaries")
        coastlines = MeshData("coastlines", list(land.rings))

    landmarks = dict(LANDMARKS) if len(failures) == len(LAYERS) else {}
    atlas = WorldAtlas(land, countries, coastlines, failures, landmarks)
    logger.info("World atlas ready: %s", ", ".join(
        f"{name}={len(mesh)} rings" for name, mesh in atlas.layers().items()))
    return atlas
