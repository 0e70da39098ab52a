"""
Configuration & asset locations
===============================
Central registry for asset sources and tunable defaults.  Loaders take these
dataclasses as arguments, so nothing here is read at call time.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path


def get_resource_path(relative_path: str) -> str:
    """Absolute path of a file under the repository's assets directory"""
    project_root = Path(__file__).resolve().parent.parent
    return os.path.join(str(project_root), "assets", relative_path)


# ----------------------
# Asset sources
# ----------------------
WORLD_ATLAS_URLS = {
    "land50m": "https://cdn.jsdelivr.net/npm/world-atlas@2/land-50m.json",
    "land110m": "https://cdn.jsdelivr.net/npm/world-atlas@2/land-110m.json",
    "countries50m": "https://cdn.jsdelivr.net/npm/world-atlas@2/countries-50m.json",
    "countries110m": "https://cdn.jsdelivr.net/npm/world-atlas@2/countries-110m.json",
    "coastlines50m": "https://cdn.jsdelivr.net/npm/world-atlas@2/coastlines-50m.json",
}

DEM_PATH = get_resource_path("world/dem.jpg")

OCEAN_TEXTURE_PATHS = {
    "diffuse": get_resource_path("world/bathymetry_diffuse_4k.jpg"),
    "alpha": get_resource_path("world/bathymetry_bw_composite_4k.jpg"),
}

USER_AGENT = b"Mozilla/5.0 (topoglobe)"

RESOLUTIONS = ("high", "medium", "low")
QUALITIES = ("high", "medium", "low")


@dataclass(frozen=True)
class ElevationConfig:
    '''Raster elevation and sphere displacement settings

    Attributes
    ----------
    dem_path : str
        Path or URL of the heightmap raster
    max_elevation : float
        Radial displacement at elevation 1.0
    elevation_power : float
        Exponent of the elevation curve
    base_radius : float
        Undisplaced sphere radius
    enable_antarctica : bool
        Sample the far southern rows instead of flattening them
    '''
    dem_path: str = DEM_PATH
    max_elevation: float = 0.6
    elevation_power: float = 1.6
    base_radius: float = 20.0
    enable_antarctica: bool = False


@dataclass(frozen=True)
class RetryPolicy:
    '''Fetch retry schedule: backoff_unit * backoff_base ** attempt seconds between attempts'''
    max_attempts: int = 3
    backoff_base: float = 2.0
    backoff_unit: float = 1.0

    def delay(self, attempt: int) -> float:
        return self.backoff_unit * self.backoff_base ** attempt


@dataclass(frozen=True)
class GlobeConfig:
    radius: float = 20.0
    resolution: str = "medium"
    quality: str = "medium"
    enable_elevation: bool = True
    show_grid: bool = True
    grid_spacing: float = 10.0
    elevation: ElevationConfig = field(default_factory=ElevationConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    texture_paths: dict = field(default_factory=lambda: dict(OCEAN_TEXTURE_PATHS))
