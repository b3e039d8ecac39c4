import logging
from urllib.parse import urlencode

import httpx

from config import IMAGE_GATEWAY_BASE, PLACEHOLDER_IMAGE_URL, RELAY_PATH

logger = logging.getLogger(__name__)


def canonical_image_url(token_id: str) -> str:
    return f"{IMAGE_GATEWAY_BASE}/{token_id}.png"


def proxy_url(remote_url: str, mode: str = "image") -> str:
    """Relative relay path wrapping `remote_url`."""
    return f"{RELAY_PATH}?{urlencode({'url': remote_url, 'type': mode})}"


async def resolve(token_id: str, client: httpx.AsyncClient) -> str:
    """Returns a displayable image URL for `token_id`. Never raises.

    The relay URL is preferred when a probe through it succeeds; a failing
    probe falls back to the direct gateway URL. The placeholder is only used
    when building or probing the URL fails in some other way.
    """
    try:
        image_url = canonical_image_url(token_id)
        proxied_image_url = proxy_url(image_url, "image")
        logger.info("Proxied image URL: %s", proxied_image_url)

        try:
            response = await client.get(proxied_image_url)
        except httpx.HTTPError as e:
            logger.info("Relay probe error, falling back to direct URL %s: %r", image_url, e)
            return image_url

        if response.is_success:
            logger.info("Relay probe successful")
            return proxied_image_url

        logger.info("Relay probe failed (HTTP %s), falling back to direct URL: %s", response.status_code, image_url)
        return image_url
    except Exception as e:
        logger.error("Error resolving image URL for token %r: %r", token_id, e)
        return PLACEHOLDER_IMAGE_URL
