"""Authorization code and refresh token exchange against OPSkins.

Both grants POST form data to the access_token endpoint, authenticated with
HTTP basic auth of ``client_id:client_secret``.
"""

import logging
from typing import Any

import httpx

from ..errors import ProtocolError, TransportError
from .api import (
    ACCESS_TOKEN_URL,
    DEFAULT_TIMEOUT,
    basic_auth_header,
    open_client,
    parse_json,
    raise_for_oauth_error,
)
from .tokens import AccessGrant, ClientRegistration

logger = logging.getLogger(__name__)


async def _post_token_request(
    registration: ClientRegistration,
    form: dict[str, str],
    action: str,
    http_client: httpx.AsyncClient | None,
    timeout: float,
) -> dict[str, Any]:
    """POST a grant to the token endpoint and return the decoded body.

    Raises:
        TransportError: On network failure
        ProtocolError: On invalid JSON or an ``error`` in the body
    """
    http, should_close = open_client(http_client, timeout)

    try:
        response = await http.post(
            ACCESS_TOKEN_URL,
            data=form,
            headers={
                "Authorization": basic_auth_header(
                    registration.client_id, registration.client_secret
                ),
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )

        data = parse_json(response, action)
        raise_for_oauth_error(data, action)
        return data

    except httpx.RequestError as e:
        raise TransportError(f"Network error while trying to {action}: {e}") from e
    finally:
        if should_close:
            await http.aclose()


async def exchange_code(
    registration: ClientRegistration,
    code: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> AccessGrant:
    """Exchange an authorization code for an access grant.

    Args:
        registration: The site's client credentials
        code: Authorization code from the callback
        http_client: Optional HTTP client
        timeout: Request timeout when no client is supplied

    Returns:
        AccessGrant carrying the code it was obtained with

    Raises:
        TransportError: On network failure
        ProtocolError: If the provider rejects the code or replies with garbage
    """
    action = "exchange authorization code"
    try:
        data = await _post_token_request(
            registration,
            {"grant_type": "authorization_code", "code": code},
            action,
            http_client,
            timeout,
        )
    except ProtocolError as e:
        logger.warning(f"Authorization code exchange failed for client {registration.client_id}: {e}")
        raise

    if "access_token" not in data:
        raise ProtocolError(f"Token response missing access_token while trying to {action}")

    return AccessGrant.from_token_response(data, code=code)


async def refresh_access_token(
    registration: ClientRegistration,
    refresh_token: str,
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """Obtain a new access token with a refresh token.

    Returns:
        The new access token

    Raises:
        TransportError: On network failure
        ProtocolError: If the provider rejects the refresh token
    """
    action = "refresh access token"
    try:
        data = await _post_token_request(
            registration,
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            action,
            http_client,
            timeout,
        )
    except ProtocolError as e:
        logger.warning(f"Token refresh failed for client {registration.client_id}: {e}")
        raise

    access_token = data.get("access_token")
    if not access_token:
        raise ProtocolError(f"Token response missing access_token while trying to {action}")

    return str(access_token)
