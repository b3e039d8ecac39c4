"""Token metadata (best effort).

Reads the token's JSON metadata through the relay and picks out its strain
attribute, which selects the overlay variant.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from config import METADATA_GATEWAY_BASE
from resolver import proxy_url

logger = logging.getLogger(__name__)

STRAIN_TRAIT = "strain"


class MetadataError(Exception):
    """Token metadata could not be fetched or parsed."""


def metadata_url(token_id: str) -> str:
    return f"{METADATA_GATEWAY_BASE}/{token_id}.json"


async def fetch_token_metadata(token_id: str, client: httpx.AsyncClient) -> Dict[str, Any]:
    url = proxy_url(metadata_url(token_id), "json")
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        raise MetadataError(f"Metadata request failed: {e}") from e

    if not response.is_success:
        raise MetadataError(f"Metadata request failed: HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise MetadataError(f"Metadata is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MetadataError("Metadata is not a JSON object")
    return data


def extract_strain(metadata: Dict[str, Any]) -> Optional[str]:
    attributes = metadata.get("attributes")
    if not isinstance(attributes, list):
        return None
    for attribute in attributes:
        if not isinstance(attribute, dict):
            continue
        trait = str(attribute.get("trait_type", "")).strip().lower()
        if trait == STRAIN_TRAIT and attribute.get("value"):
            return str(attribute["value"])
    return None


async def fetch_strain(token_id: str, client: httpx.AsyncClient) -> Optional[str]:
    strain = extract_strain(await fetch_token_metadata(token_id, client))
    logger.info("Token %s strain: %s", token_id, strain)
    return strain
