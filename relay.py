"""Fetch relay.

Performs remote fetches on behalf of the browser (CORS / User-Agent bypass)
and falls back to an alternate IPFS gateway when the primary one fails.
"""

import logging
from typing import Optional

import httpx
from fastapi.responses import JSONResponse, Response

from config import (
    BROWSER_USER_AGENT,
    DIAGNOSTIC_EXCERPT_CHARS,
    FALLBACK_GATEWAY_BASE,
    PRIMARY_GATEWAY_HOST,
    RELAY_ALLOW_ORIGIN,
    RELAY_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {"User-Agent": BROWSER_USER_AGENT}

IMAGE_MODE = "image"
JSON_MODE = "json"


def excerpt(text: str) -> str:
    return text[:DIAGNOSTIC_EXCERPT_CHARS]


def fallback_gateway_url(url: str) -> Optional[str]:
    """Rewrites a primary-gateway URL onto the fallback gateway, keeping the resource path."""
    marker = f"{PRIMARY_GATEWAY_HOST}/"
    if marker not in url:
        return None
    path = url.split(marker, 1)[1]
    return f"{FALLBACK_GATEWAY_BASE}/{path}"


async def try_fetch(client: httpx.AsyncClient, url: str) -> httpx.Response:
    """One browser-like attempt, then one plain attempt if the first did not succeed.

    A transport error on the plain attempt propagates.
    """
    logger.info("Fetching URL (with User-Agent): %s", url)
    try:
        response = await client.get(url, headers=BROWSER_HEADERS, timeout=RELAY_TIMEOUT_SECONDS)
        if response.is_success:
            return response
        logger.info("Fetch with User-Agent failed (HTTP %s), trying without headers...", response.status_code)
    except httpx.RequestError as e:
        logger.info("Fetch with User-Agent raised %r, trying without headers...", e)

    return await client.get(url, timeout=RELAY_TIMEOUT_SECONDS)


async def fetch_upstream(client: httpx.AsyncClient, url: str) -> httpx.Response:
    fallback_url = fallback_gateway_url(url)
    try:
        response = await try_fetch(client, url)
    except httpx.RequestError as e:
        if fallback_url is None:
            raise
        logger.info("Fetch raised %r, trying fallback URL: %s", e, fallback_url)
        return await try_fetch(client, fallback_url)

    if not response.is_success and fallback_url is not None:
        logger.info("Fetch failed (HTTP %s), trying fallback URL: %s", response.status_code, fallback_url)
        response = await try_fetch(client, fallback_url)
    return response


async def relay(client: httpx.AsyncClient, url: Optional[str], mode: str = JSON_MODE) -> Response:
    """Relays `url` as raw image bytes (mode "image") or as JSON (any other mode)."""
    logger.info("Relay called with URL: %s Type: %s", url, mode)

    if not url:
        logger.info("Error: URL parameter is missing")
        return JSONResponse({"error": "URL parameter is required"}, status_code=400)

    try:
        response = await fetch_upstream(client, url)
    except (httpx.RequestError, httpx.InvalidURL) as e:
        cause = e.__cause__ or e.__context__
        logger.error("Fetch error: %r (cause: %r)", e, cause)
        return JSONResponse(
            {"error": f"Failed to fetch: {e}", "cause": str(cause) if cause else "Unknown"},
            status_code=500,
        )

    logger.info("Fetch response status: %s %s", response.status_code, response.reason_phrase)

    if not response.is_success:
        details = excerpt(response.text)
        logger.info("Fetch failed with status %s, body: %s", response.status_code, details)
        return JSONResponse(
            {"error": f"Failed to fetch: {response.reason_phrase}", "details": details},
            status_code=response.status_code,
        )

    if mode == IMAGE_MODE:
        content_type = response.headers.get("content-type", "")
        logger.info("Response Content-Type: %s", content_type)
        if not content_type.lower().startswith("image/"):
            details = excerpt(response.text)
            logger.info("Expected image, but got Content-Type %r, body: %s", content_type, details)
            return JSONResponse(
                {"error": "Expected image, but received non-image content", "details": details},
                status_code=400,
            )

        body = response.content
        logger.info("Returning image with Content-Type: %s Size: %d", content_type, len(body))
        return Response(
            content=body,
            media_type=content_type,
            headers={
                "Content-Length": str(len(body)),
                "Access-Control-Allow-Origin": RELAY_ALLOW_ORIGIN,
            },
        )

    # NaN and Infinity parse but cannot be rendered back out as JSON.
    try:
        data = response.json()
        relayed = JSONResponse(data)
    except ValueError as e:
        logger.error("Error parsing JSON response: %s", e)
        return JSONResponse({"error": f"Failed to parse JSON response: {e}"}, status_code=500)

    logger.info("Returning JSON data: %s", excerpt(str(data)))
    return relayed
