"""OPSkins API endpoints and response helpers.

The client-management endpoints authenticate with HTTP basic auth built from
the site's API key (empty password) and wrap their payload in an envelope:

    {"status": 1, "response": {...}}

The OAuth endpoints (token exchange, profile) instead signal failure with an
``error`` field in the body.
"""

import base64
import logging
from typing import Any

import httpx

from ..errors import ProtocolError

logger = logging.getLogger(__name__)

API_BASE = "https://api.opskins.com"
API_VERSION = "v1"

OAUTH_BASE = f"https://oauth.opskins.com/{API_VERSION}"
AUTHORIZE_URL = f"{OAUTH_BASE}/authorize"
ACCESS_TOKEN_URL = f"{OAUTH_BASE}/access_token"

CREATE_CLIENT_URL = f"{API_BASE}/IOAuth/CreateClient/{API_VERSION}/"
DELETE_CLIENT_URL = f"{API_BASE}/IOAuth/DeleteClient/{API_VERSION}/"
GET_OWNED_CLIENT_LIST_URL = f"{API_BASE}/IOAuth/GetOwnedClientList/{API_VERSION}/"
GET_PROFILE_URL = f"{API_BASE}/IUser/GetProfile/{API_VERSION}/"

# Envelope status the API uses for success
STATUS_OK = 1

DEFAULT_TIMEOUT = 30.0


def basic_auth_header(username: str, password: str = "") -> str:
    """Build a Basic Authorization header value.

    Args:
        username: The user part (API key or client_id)
        password: The password part (empty for API keys)

    Returns:
        Header value, e.g. "Basic YWJjOg=="
    """
    raw = f"{username}:{password}".encode("utf-8")
    return f"Basic {base64.b64encode(raw).decode('ascii')}"


def bearer_auth_header(access_token: str) -> str:
    """Build a Bearer Authorization header value."""
    return f"Bearer {access_token}"


def open_client(
    http_client: httpx.AsyncClient | None, timeout: float
) -> tuple[httpx.AsyncClient, bool]:
    """Return a client to use and whether the caller must close it."""
    if http_client is not None:
        return http_client, False
    return httpx.AsyncClient(timeout=timeout), True


def parse_json(response: httpx.Response, action: str) -> dict[str, Any]:
    """Decode a JSON object body.

    Args:
        response: The HTTP response
        action: Short description of the request for error messages

    Returns:
        The decoded object

    Raises:
        ProtocolError: If the body is not a JSON object
    """
    try:
        data = response.json()
    except ValueError as e:
        # Don't include the raw body - it may contain tokens or secrets
        raise ProtocolError(
            f"Invalid JSON response while trying to {action} "
            f"(HTTP {response.status_code})"
        ) from e

    if not isinstance(data, dict):
        raise ProtocolError(f"Unexpected response while trying to {action}")

    return data


def unwrap_envelope(data: dict[str, Any], action: str) -> dict[str, Any]:
    """Check the ``status`` envelope and return its ``response`` object.

    Raises:
        ProtocolError: If the status is not a success or ``response`` is missing
    """
    status = data.get("status")
    if status != STATUS_OK:
        detail = data.get("message") or status
        raise ProtocolError(f"Error while trying to {action}. ({detail})")

    body = data.get("response")
    if not isinstance(body, dict):
        raise ProtocolError(f"Missing response body while trying to {action}")

    return body


def raise_for_oauth_error(data: dict[str, Any], action: str) -> None:
    """Raise if an OAuth endpoint body carries an ``error`` field.

    Only the provider's error code and description are surfaced, never
    other fields of the body.
    """
    error = data.get("error")
    if not error:
        return

    description = data.get("error_description")
    detail = f"{error} - {description}" if description else str(error)
    raise ProtocolError(f"Error while trying to {action}: {detail}")
