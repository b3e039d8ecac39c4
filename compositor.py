"""Token artwork compositor.

Draws the base token image and, when one is selected, an overlay on a fixed
size RGBA raster, and exports the result as PNG.

Each render cycle is tagged with a generation number. A load that completes
after a newer cycle has started is dropped without touching the raster.
"""

import logging
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

import aiofiles
import httpx
from PIL import Image, UnidentifiedImageError

from config import CANVAS_SIZE, DOWNLOAD_PREFIX, OVERLAY_DIR
from overlays import Overlay, overlay_path, parse_overlay

logger = logging.getLogger(__name__)


class ImageLoadError(Exception):
    """An image could not be fetched or decoded."""


class RenderState(str, Enum):
    IDLE = "idle"
    LOADING_BASE = "loading_base"
    BASE_FAILED = "base_failed"
    BASE_LOADED = "base_loaded"
    LOADING_OVERLAY = "loading_overlay"
    OVERLAY_LOADED = "overlay_loaded"
    OVERLAY_FAILED = "overlay_failed"


class Raster:
    """Fixed-size RGBA drawing surface."""

    def __init__(self, size: int = CANVAS_SIZE):
        self.size = size
        self._image = self._blank()

    def _blank(self) -> Image.Image:
        return Image.new("RGBA", (self.size, self.size), (0, 0, 0, 0))

    @property
    def image(self) -> Image.Image:
        return self._image

    def clear(self) -> None:
        self._image = self._blank()

    def draw(self, layer: Image.Image) -> None:
        """Stretches `layer` over the whole surface and composites it on top."""
        if layer.mode != "RGBA":
            layer = layer.convert("RGBA")
        if layer.size != (self.size, self.size):
            layer = layer.resize((self.size, self.size), Image.Resampling.LANCZOS)
        self._image = Image.alpha_composite(self._image, layer)

    def to_png(self) -> bytes:
        buffer = BytesIO()
        self._image.save(buffer, format="PNG")
        return buffer.getvalue()


def decode_image(data: bytes, source: str) -> Image.Image:
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageLoadError(f"Could not decode image from {source}: {e}") from e
    return image


def download_filename(token_id: str, overlay: Union[str, Overlay, None]) -> str:
    """e.g. canna-gm-42-purple-haze.png, canna-gm-42-no-overlay.png"""
    return f"{DOWNLOAD_PREFIX}-{token_id}-{parse_overlay(overlay).slug}.png"


class Compositor:
    def __init__(
        self,
        client: httpx.AsyncClient,
        size: int = CANVAS_SIZE,
        overlay_dir: Optional[Path] = None,
    ):
        self._client = client
        self._overlay_dir = overlay_dir if overlay_dir is not None else OVERLAY_DIR
        self._generation = 0
        self.raster = Raster(size)
        self.state = RenderState.IDLE
        self.error: Optional[str] = None

    @property
    def generation(self) -> int:
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def load_remote(self, url: str) -> Image.Image:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise ImageLoadError(f"Failed to load image {url}: {e}") from e
        if not response.is_success:
            raise ImageLoadError(f"Failed to load image {url}: HTTP {response.status_code}")
        return decode_image(response.content, url)

    async def load_local(self, path: Path) -> Image.Image:
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except OSError as e:
            raise ImageLoadError(f"Failed to read overlay {path}: {e}") from e
        return decode_image(data, str(path))

    async def render(
        self,
        base_url: Optional[str],
        overlay: Union[str, Overlay, None] = Overlay.NONE,
        variant: Optional[str] = None,
    ) -> bool:
        """Runs one render cycle.

        Returns True when the cycle finished as the current one with every
        requested layer drawn, False on failure or when superseded.
        """
        if not base_url:
            logger.info("No base image URL, nothing to render")
            return False

        path = overlay_path(overlay, variant, self._overlay_dir)

        self._generation += 1
        generation = self._generation
        self.raster.clear()
        self.state = RenderState.LOADING_BASE
        self.error = None

        try:
            base = await self.load_remote(base_url)
        except ImageLoadError as e:
            if not self._is_current(generation):
                logger.info("Dropping stale base failure (generation %d)", generation)
                return False
            logger.warning("Failed to load base image %s: %s", base_url, e)
            self.state = RenderState.BASE_FAILED
            self.error = "Failed to load base image"
            return False

        if not self._is_current(generation):
            logger.info("Dropping stale base image %s (generation %d)", base_url, generation)
            return False

        self.raster.draw(base)
        self.state = RenderState.BASE_LOADED
        logger.info("Base image drawn: %s", base_url)

        if path is None:
            return True

        self.state = RenderState.LOADING_OVERLAY
        try:
            layer = await self.load_local(path)
        except ImageLoadError as e:
            if not self._is_current(generation):
                return False
            logger.warning("Failed to load overlay image %s: %s", path, e)
            self.state = RenderState.OVERLAY_FAILED
            self.error = "Failed to load overlay image"
            return False

        if not self._is_current(generation):
            logger.info("Dropping stale overlay %s (generation %d)", path, generation)
            return False

        self.raster.draw(layer)
        self.state = RenderState.OVERLAY_LOADED
        logger.info("Overlay image drawn: %s", path)
        return True

    def export(self) -> bytes:
        return self.raster.to_png()
