import logging
from typing import AsyncIterator, Optional

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from compositor import RenderState
from config import LOG_LEVEL, OVERLAY_DIR, RELAY_ALLOW_ORIGIN, RELAY_BASE_URL, RELAY_PATH, RELAY_TIMEOUT_SECONDS
from customizer import Customizer
from overlays import Overlay
from relay import JSON_MODE, relay

# --- 1. Logging ---
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(name)s] %(message)s")
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# --- 2. FastAPI Application Setup ---
app = FastAPI(
    title="NFT Overlay Customizer API",
    description="Relays remote token artwork and composites it with strain overlays.",
    version="1.0.0",
)
app.mount("/overlays", StaticFiles(directory=OVERLAY_DIR, check_dir=False), name="overlays")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[RELAY_ALLOW_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- 3. HTTP Clients ---
async def get_upstream_client() -> AsyncIterator[httpx.AsyncClient]:
    """Client used by the relay for outbound fetches."""
    async with httpx.AsyncClient(follow_redirects=True) as client:
        yield client


async def get_relay_client() -> AsyncIterator[httpx.AsyncClient]:
    """Client the customizer uses to reach the relay (and direct gateway URLs)."""
    async with httpx.AsyncClient(
        base_url=RELAY_BASE_URL,
        follow_redirects=True,
        timeout=RELAY_TIMEOUT_SECONDS,
    ) as client:
        yield client


# --- 4. API Endpoints ---
@app.get("/health")
def health():
    return {"status": "ok"}


@app.get(RELAY_PATH)
async def relay_remote(
    url: Optional[str] = None,
    mode: str = Query(JSON_MODE, alias="type"),
    client: httpx.AsyncClient = Depends(get_upstream_client),
):
    return await relay(client, url, mode)


@app.get("/download/{token_id}",
    response_class=Response,
    responses={
        200: {
            "content": {"image/png": {}},
            "description": "The composited token image in PNG format.",
        }
    }
)
async def download(
    token_id: str,
    overlay: Overlay = Overlay.NONE,
    variant: Optional[str] = None,
    use_metadata: bool = False,
    client: httpx.AsyncClient = Depends(get_relay_client),
):
    customizer = Customizer(
        client,
        use_metadata=use_metadata,
        token_id=token_id,
        overlay=overlay,
        variant=variant,
    )
    await customizer.initialize()
    state = await customizer.run()

    if customizer.compositor.state not in (RenderState.BASE_LOADED, RenderState.OVERLAY_LOADED):
        error = state.error or "No image rendered"
        logger.info("Download for token %r failed: %s", token_id, error)
        return JSONResponse({"error": error, "image_url": state.image_url}, status_code=502)

    filename, png = customizer.export()
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- 5. Run the Application ---
if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
