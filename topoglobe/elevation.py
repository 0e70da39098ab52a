"""Heightmap raster decoding and elevation sampling.

The raster is an equirectangular image, canonically 360x180 with one pixel
per degree, whose red channel encodes normalised elevation.

Sampling uses fixed calibration offsets (LONGITUDE_OFFSET, ROW_ORIGIN,
COLUMN_ORIGIN, SOUTH_CUTOFF_ROW) that align the shipped DEM asset's pixel
layout with the projector's longitude convention.  They are data about that
one raster, not a general formula; re-check them against any other raster.
"""
import logging
import math
from io import BytesIO
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from topoglobe.config import ElevationConfig
from topoglobe.coord_utils import GeoCoordinate
from topoglobe.errors import DecodeError, LoadCancelled

logger = logging.getLogger(__name__)

GRID_WIDTH = 360
GRID_HEIGHT = 180

# Fallback sample values, byte levels of the source raster over 255
DEFAULT_ELEVATION = 102 / 255
SOUTH_POLE_ELEVATION = 51 / 255

# Raster calibration
LONGITUDE_OFFSET = 270.0
ROW_ORIGIN = 173
COLUMN_ORIGIN = 170
SOUTH_CUTOFF_ROW = 149


class ElevationGrid:
    '''Normalised elevation samples decoded from one raster

    Attributes
    ----------
    is_loaded : bool
        False for the flat fallback grid
    width : int
        Samples per row
    height : int
        Number of rows
    '''

    def __init__(self, samples: np.ndarray, is_loaded: bool = True):
        samples = np.array(samples, dtype=np.float32)
        if samples.ndim != 2:
            raise ValueError(f"elevation samples must be 2D, got shape {samples.shape}")
        samples.flags.writeable = False
        self._samples = samples
        self.is_loaded = is_loaded
        self.height, self.width = samples.shape

    @property
    def samples(self) -> Optional[np.ndarray]:
        """Read-only (height, width) array, None once disposed"""
        return self._samples

    @property
    def disposed(self) -> bool:
        return self._samples is None

    def value_at(self, index: int) -> float:
        """Sample at a flat row-major index, DEFAULT_ELEVATION when missing"""
        if self._samples is None or not 0 <= index < self.width * self.height:
            return DEFAULT_ELEVATION
        return float(self._samples.flat[index])

    def dispose(self) -> None:
        '''Release the sample memory; later samples return DEFAULT_ELEVATION'''
        self._samples = None

    def __repr__(self):
        return f"ElevationGrid({self.width}x{self.height}, is_loaded={self.is_loaded})"


def flat_grid(width: int = GRID_WIDTH, height: int = GRID_HEIGHT) -> ElevationGrid:
    """Fallback grid: every sample at DEFAULT_ELEVATION, is_loaded False"""
    return ElevationGrid(np.full((height, width), DEFAULT_ELEVATION, dtype=np.float32), is_loaded=False)


def decode_elevation(data: bytes) -> ElevationGrid:
    """Decode heightmap bytes into a grid of the raster's pixel dimensions

    Parameters
    ----------
    data : bytes
        Encoded image (JPEG, PNG, ...)

    Returns
    -------
    grid : ElevationGrid
        Red channel / 255

    Raises
    ------
    DecodeError
        The bytes are not a readable image
    """
    try:
        with Image.open(BytesIO(data)) as img:
            rgb = img.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"Cannot decode elevation raster: {exc}") from exc

    red = np.asarray(rgb, dtype=np.uint8)[:, :, 0]
    return ElevationGrid(red.astype(np.float32) / 255.0, is_loaded=True)


def raster_index(shifted_lon: float, lat: float, width: int = GRID_WIDTH,
                 height: int = GRID_HEIGHT) -> tuple[int, int, int]:
    """Map an offset longitude and a latitude to raster coordinates

    Parameters
    ----------
    shifted_lon : float
        Longitude already shifted by LONGITUDE_OFFSET
    lat : float
        Latitude in degrees
    width, height : int
        Raster dimensions

    Returns
    -------
    p0 : int
        Column before wrapping
    p1 : int
        Row before wrapping
    index : int
        Flat row-major sample index
    """
    p1 = ROW_ORIGIN - math.ceil(lat + 90)
    p0 = COLUMN_ORIGIN + math.floor(shifted_lon)
    index = math.floor((p0 % width) + width * (p1 % height))
    return p0, p1, index


def sample_lonlat(lon: float, lat: float, grid: ElevationGrid, flatten_south: bool = True) -> float:
    """Elevation in [0, 1] at an unvalidated longitude/latitude

    Non-finite input and indices outside the grid give DEFAULT_ELEVATION.
    Rows south of SOUTH_CUTOFF_ROW give SOUTH_POLE_ELEVATION when
    flatten_south is set.
    """
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return DEFAULT_ELEVATION

    _, p1, index = raster_index(lon + LONGITUDE_OFFSET, lat, grid.width, grid.height)
    if flatten_south and p1 > SOUTH_CUTOFF_ROW:
        return SOUTH_POLE_ELEVATION

    value = grid.value_at(index)
    if not math.isfinite(value):
        return DEFAULT_ELEVATION
    return min(1.0, max(0.0, value))


def sample(coord: GeoCoordinate, grid: ElevationGrid, flatten_south: bool = True) -> float:
    """Elevation in [0, 1] at a coordinate

    Parameters
    ----------
    coord : GeoCoordinate
        Location; the raster longitude offset is applied here
    grid : ElevationGrid
        Loaded or fallback grid
    flatten_south : bool
        Suppress the unreliable far southern rows

    Returns
    -------
    elevation : float
    """
    return sample_lonlat(coord.longitude, coord.latitude, grid, flatten_south)


def sample_array(lonlat: np.ndarray, grid: ElevationGrid, flatten_south: bool = True) -> np.ndarray:
    '''sample_lonlat for an (n, 2) array of [lon, lat]'''
    lonlat = np.asarray(lonlat, dtype=np.float64).reshape(-1, 2)
    return np.array([sample_lonlat(lon, lat, grid, flatten_south) for lon, lat in lonlat],
                    dtype=np.float64)


def displaced_radius(elevation: float, config: ElevationConfig) -> float:
    """Sphere radius at a sample: power curve exaggerates peaks, flattens sea floor"""
    return config.base_radius - 1 + config.max_elevation * elevation ** config.elevation_power


async def load_elevation(loader, source: Optional[str] = None, cancel=None,
                         config: Optional[ElevationConfig] = None) -> ElevationGrid:
    """Load and decode the heightmap, never failing

    Parameters
    ----------
    loader : AssetLoader
        Shared loader (and cache)
    source : str
        Path or URL, defaults to config.dem_path
    cancel : CancelToken
        Cancellation is the only error propagated

    Returns
    -------
    grid : ElevationGrid
        The decoded raster, or flat_grid() if it could not be loaded
    """
    config = config or ElevationConfig()
    source = source or config.dem_path
    try:
        return await loader.load(source, decode_elevation, cancel=cancel)
    except LoadCancelled:
        raise
    except Exception as exc:
        logger.error("Error loading elevation data from %s, using flat sphere: %s", source, exc)
        return flat_grid()
