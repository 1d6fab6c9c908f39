"""Fetch the authenticated user's OPSkins profile."""

import logging
from typing import Any

import httpx

from ..errors import ProtocolError, TransportError
from .api import (
    DEFAULT_TIMEOUT,
    GET_PROFILE_URL,
    bearer_auth_header,
    open_client,
    parse_json,
    raise_for_oauth_error,
)

logger = logging.getLogger(__name__)


async def fetch_profile(
    access_token: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """Get the profile of the user an access token belongs to.

    Args:
        access_token: Bearer token from the token exchange
        http_client: Optional HTTP client
        timeout: Request timeout when no client is supplied

    Returns:
        The ``response`` object of GetProfile

    Raises:
        TransportError: On network failure
        ProtocolError: On invalid JSON, an ``error`` field, or no profile
    """
    action = "get user profile"
    http, should_close = open_client(http_client, timeout)

    try:
        response = await http.get(
            GET_PROFILE_URL,
            headers={"Authorization": bearer_auth_header(access_token)},
        )

        data = parse_json(response, action)
        raise_for_oauth_error(data, action)

    except httpx.RequestError as e:
        raise TransportError(f"Network error while trying to {action}: {e}") from e
    finally:
        if should_close:
            await http.aclose()

    profile = data.get("response")
    if not isinstance(profile, dict):
        raise ProtocolError(f"Missing profile in response while trying to {action}")

    logger.debug(f"Fetched profile with fields: {sorted(profile)}")
    return profile
