"""Ocean textures: decoded RGBA images with lazily created GL handles."""
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from topoglobe.config import OCEAN_TEXTURE_PATHS
from topoglobe.errors import DecodeError, LoadCancelled

logger = logging.getLogger(__name__)


class TextureImage:
    '''RGBA pixels plus the GL texture they are uploaded to

    The pixel array is (height, width, 4) uint8, row 0 at the north edge,
    mirrored east-west so the texture reads correctly from outside the
    sphere.  Uploading needs a current GL context and happens on first
    `bind`.
    '''

    def __init__(self, pixels: np.ndarray, source: str = ''):
        pixels = np.ascontiguousarray(pixels, dtype=np.uint8)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"texture pixels must be (h, w, 4), got {pixels.shape}")
        self.pixels = pixels
        self.source = source
        self.texture_id = None

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def upload(self):
        """Create the GL texture, returning its name"""
        from OpenGL import GL

        # GL rows start at the bottom edge
        data = np.ascontiguousarray(self.pixels[::-1])
        self.texture_id = GL.glGenTextures(1)
        GL.glBindTexture(GL.GL_TEXTURE_2D, self.texture_id)
        GL.glTexParameteri(GL.GL_TEXTURE_2D, GL.GL_TEXTURE_MIN_FILTER, GL.GL_LINEAR)
        GL.glTexParameteri(GL.GL_TEXTURE_2D, GL.GL_TEXTURE_MAG_FILTER, GL.GL_LINEAR)
        GL.glTexParameteri(GL.GL_TEXTURE_2D, GL.GL_TEXTURE_WRAP_S, GL.GL_REPEAT)
        GL.glTexParameteri(GL.GL_TEXTURE_2D, GL.GL_TEXTURE_WRAP_T, GL.GL_CLAMP_TO_EDGE)
        GL.glTexImage2D(GL.GL_TEXTURE_2D, 0, GL.GL_RGBA, self.width, self.height,
                        0, GL.GL_RGBA, GL.GL_UNSIGNED_BYTE, data)
        GL.glBindTexture(GL.GL_TEXTURE_2D, 0)
        return self.texture_id

    def bind(self) -> None:
        from OpenGL import GL

        if self.texture_id is None:
            self.upload()
        GL.glBindTexture(GL.GL_TEXTURE_2D, self.texture_id)

    def dispose(self) -> None:
        '''Free the GL texture, if one was created'''
        if self.texture_id is not None:
            from OpenGL import GL

            GL.glDeleteTextures([self.texture_id])
            self.texture_id = None

    def __repr__(self):
        return f"TextureImage({self.source!r}, {self.width}x{self.height})"


def decode_texture(data: bytes, source: str = '') -> TextureImage:
    """Decode image bytes into a mirrored RGBA texture

    Raises
    ------
    DecodeError
        The bytes are not a readable image
    """
    try:
        with Image.open(BytesIO(data)) as img:
            rgba = img.convert("RGBA").transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(f"Cannot decode texture {source}: {exc}") from exc
    return TextureImage(np.asarray(rgba, dtype=np.uint8), source)


@dataclass
class OceanTextures:
    '''Bathymetry colour and mask pair

    Attributes
    ----------
    diffuse : TextureImage | None
        Ocean colour
    alpha : TextureImage | None
        Grey-scale mask, bright where the ocean surface is drawn
    is_loaded : bool
        Both images decoded
    has_errors : bool
        At least one image failed
    '''
    diffuse: Optional[TextureImage] = None
    alpha: Optional[TextureImage] = None
    is_loaded: bool = False
    has_errors: bool = False

    def composite(self) -> Optional[TextureImage]:
        """Diffuse colour with the mask's luminance as alpha channel

        Returns the diffuse image alone when no mask of the same size is
        available, None without a diffuse image.
        """
        if self.diffuse is None:
            return None
        if self.alpha is None or self.alpha.pixels.shape != self.diffuse.pixels.shape:
            return self.diffuse

        rgb = self.alpha.pixels[:, :, :3].astype(np.float32)
        luminance = rgb @ np.array([0.299, 0.587, 0.114], dtype=np.float32)
        pixels = self.diffuse.pixels.copy()
        pixels[:, :, 3] = np.clip(np.rint(luminance), 0, 255).astype(np.uint8)
        return TextureImage(pixels, self.diffuse.source)

    def dispose(self) -> None:
        for image in (self.diffuse, self.alpha):
            if image is not None:
                image.dispose()


async def load_ocean_textures(loader, paths: Optional[dict] = None, cancel=None) -> OceanTextures:
    """Load both ocean textures concurrently, never failing

    Parameters
    ----------
    loader : AssetLoader
        Shared loader (and cache)
    paths : dict
        'diffuse' and 'alpha' sources, defaults to OCEAN_TEXTURE_PATHS
    cancel : CancelToken
        Cancellation is the only error propagated

    Returns
    -------
    textures : OceanTextures
        Missing images are None and flagged through has_errors
    """
    paths = paths or OCEAN_TEXTURE_PATHS
    results = await loader.load_all({
        name: loader.load(paths[name], lambda data, src=paths[name]: decode_texture(data, src), cancel=cancel)
        for name in ("diffuse", "alpha")
    })

    images = {}
    for name, result in results.items():
        if isinstance(result.error, LoadCancelled):
            raise result.error
        if result.ok:
            images[name] = result.value
        else:
            logger.warning("Ocean %s texture unavailable: %s", name, result.error)

    has_errors = len(images) < len(results)
    return OceanTextures(diffuse=images.get("diffuse"), alpha=images.get("alpha"),
                         is_loaded=not has_errors, has_errors=has_errors)
