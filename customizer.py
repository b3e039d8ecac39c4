"""Customizer controller.

Owns the current selection as an immutable state record and drives
resolve -> render whenever the token or overlay changes. Nothing is
dispatched until `initialize()` has completed.
"""

import logging
from typing import Optional, Tuple, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field

from compositor import Compositor, RenderState, download_filename
from metadata import MetadataError, fetch_strain
from overlays import Overlay, parse_overlay
from resolver import resolve

logger = logging.getLogger(__name__)


class CustomizerState(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_id: str = Field("", description="Token whose artwork is being customized.")
    overlay: Overlay = Overlay.NONE
    variant: Optional[str] = Field(None, description="Strain variant selecting the overlay file.")
    image_url: Optional[str] = Field(None, description="Resolved base image URL; None while unresolved.")
    error: Optional[str] = None


class Customizer:
    def __init__(
        self,
        client: httpx.AsyncClient,
        compositor: Optional[Compositor] = None,
        use_metadata: bool = False,
        token_id: str = "",
        overlay: Union[str, Overlay, None] = Overlay.NONE,
        variant: Optional[str] = None,
    ):
        self._client = client
        self._use_metadata = use_metadata
        self._ready = False
        self.compositor = compositor or Compositor(client)
        self.state = CustomizerState(
            token_id=token_id.strip(), overlay=parse_overlay(overlay), variant=variant
        )

    @property
    def ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        self._ready = True
        logger.info("Customizer initialized")

    async def run(self) -> CustomizerState:
        if not self._ready:
            raise RuntimeError("Customizer.run() called before initialize()")
        await self._refresh_token()
        return self.state

    async def select_token(self, token_id: str) -> CustomizerState:
        self.state = self.state.model_copy(
            update={"token_id": token_id.strip(), "image_url": None, "error": None}
        )
        if self._ready:
            await self._refresh_token()
        return self.state

    async def select_overlay(
        self, overlay: Union[str, Overlay, None], variant: Optional[str] = None
    ) -> CustomizerState:
        """Changes the overlay; `variant` replaces the current variant only when given."""
        update = {"overlay": parse_overlay(overlay)}
        if variant is not None:
            update["variant"] = variant
        self.state = self.state.model_copy(update=update)
        if self._ready:
            await self._render()
        return self.state

    async def _refresh_token(self) -> None:
        token_id = self.state.token_id
        self.state = self.state.model_copy(update={"image_url": None, "error": None})
        if not token_id:
            return

        variant = self.state.variant
        error = None
        if self._use_metadata:
            try:
                variant = await fetch_strain(token_id, self._client)
            except MetadataError as e:
                logger.warning("Metadata lookup failed for token %s: %s", token_id, e)
                error = f"Could not read token metadata: {e}"

        image_url = await resolve(token_id, self._client)
        if self.state.token_id != token_id:
            logger.info("Token changed while resolving %s, dropping result", token_id)
            return

        self.state = self.state.model_copy(
            update={"image_url": image_url, "variant": variant, "error": error}
        )
        await self._render()

    async def _render(self) -> None:
        state = self.state
        if not state.image_url:
            return
        completed = await self.compositor.render(state.image_url, state.overlay, state.variant)
        if not completed and self.state is state and self.compositor.error:
            self.state = state.model_copy(update={"error": self.compositor.error})

    def export(self) -> Tuple[str, bytes]:
        """Returns (download filename, PNG bytes) for the current raster."""
        if self.compositor.state in (RenderState.IDLE, RenderState.LOADING_BASE, RenderState.BASE_FAILED):
            raise RuntimeError("Nothing has been rendered yet")
        filename = download_filename(self.state.token_id, self.state.overlay)
        return filename, self.compositor.export()
