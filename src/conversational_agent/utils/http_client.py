"""HTTP client utilities for capability backend requests."""

import logging
from typing import Any

import httpx

from conversational_agent.utils.constants import USER_AGENT

logger = logging.getLogger(__name__)


def _default_headers(api_key: str | None, headers: dict[str, str] | None) -> dict[str, str]:
    default_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    if api_key:
        default_headers["Authorization"] = f"Bearer {api_key}"
    if headers:
        default_headers.update(headers)
    return default_headers


async def post_json(
    url: str,
    payload: dict[str, Any],
    api_key: str | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 60.0,
) -> dict[str, Any] | None:
    """POST a JSON payload and return the decoded JSON object.

    Args:
        url: The URL to request
        payload: JSON body
        api_key: Optional bearer token
        headers: Optional custom headers
        timeout: Request timeout in seconds

    Returns:
        Response data or None if the request failed or did not return an object
    """
    async with httpx.AsyncClient() as client:
        try:
            response = await client.post(
                url,
                json=payload,
                headers=_default_headers(api_key, headers),
                timeout=timeout,
            )
            response.raise_for_status()
            json_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"HTTP error {e.response.status_code} from {url}")
            return None
        except Exception as e:
            logger.warning(f"Request to {url} failed: {e}")
            return None

    if isinstance(json_data, dict):
        return json_data
    return None


async def get_json(
    url: str,
    params: dict[str, Any] | None = None,
    api_key: str | None = None,
    timeout: float = 30.0,
) -> dict[str, Any] | None:
    """GET a URL and return the decoded JSON object, or None on failure."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(
                url,
                params=params,
                headers=_default_headers(api_key, None),
                timeout=timeout,
            )
            response.raise_for_status()
            json_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"HTTP error {e.response.status_code} from {url}")
            return None
        except Exception as e:
            logger.warning(f"Request to {url} failed: {e}")
            return None

    if isinstance(json_data, dict):
        return json_data
    return None
