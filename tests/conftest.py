"""Shared fixtures and utilities for OPSkins Auth tests."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from opskins_auth.config import StrategyConfig
from opskins_auth.oauth.api import (
    ACCESS_TOKEN_URL,
    CREATE_CLIENT_URL,
    DELETE_CLIENT_URL,
    GET_OWNED_CLIENT_LIST_URL,
    GET_PROFILE_URL,
)
from opskins_auth.oauth.store import MemoryClientStore


def make_response(
    json_data: Any = None,
    status_code: int = 200,
    invalid_json: bool = False,
) -> MagicMock:
    """Create a mock httpx response."""
    response = MagicMock()
    response.status_code = status_code
    if invalid_json:
        response.json.side_effect = ValueError("Invalid JSON")
        response.text = "<html>secret_internal_error_data</html>"
    else:
        response.json.return_value = json_data
    return response


def make_http(get: Any = None, post: Any = None) -> AsyncMock:
    """Create a mock AsyncClient whose get/post return the given responses."""
    http = AsyncMock()
    http.get = AsyncMock(return_value=get)
    http.post = AsyncMock(return_value=post)
    http.aclose = AsyncMock()
    return http


class FakeOpskins:
    """In-memory stand-in for the OPSkins API, routed by URL.

    Attributes:
        clients: Owned clients as returned by GetOwnedClientList
        token_response: Body returned by the access_token endpoint
        profile_response: Body returned by GetProfile
        created / deleted: Request payloads seen by CreateClient / DeleteClient
    """

    def __init__(self) -> None:
        self.clients: list[dict[str, Any]] = []
        self.token_response: dict[str, Any] = {"access_token": "T"}
        self.profile_response: dict[str, Any] = {"response": {"id": 42}}
        self.created: list[dict[str, Any]] = []
        self.deleted: list[str] = []
        self.token_requests: list[dict[str, Any]] = []
        self.profile_requests: list[dict[str, str]] = []
        self.fail_list = False
        self._next_id = 1

        self.http = AsyncMock()
        self.http.get = AsyncMock(side_effect=self._get)
        self.http.post = AsyncMock(side_effect=self._post)
        self.http.aclose = AsyncMock()

    async def _get(self, url: str, **kwargs: Any) -> MagicMock:
        if url == GET_OWNED_CLIENT_LIST_URL:
            if self.fail_list:
                raise httpx.ConnectError("connection refused")
            return make_response({"status": 1, "response": {"clients": list(self.clients)}})
        if url == GET_PROFILE_URL:
            self.profile_requests.append(kwargs["headers"])
            return make_response(self.profile_response)
        raise AssertionError(f"Unexpected GET {url}")

    async def _post(self, url: str, **kwargs: Any) -> MagicMock:
        if url == CREATE_CLIENT_URL:
            payload = kwargs["json"]
            self.created.append(payload)
            client_id = f"client-{self._next_id}"
            self._next_id += 1
            self.clients.append({"client_id": client_id, **payload})
            return make_response({
                "status": 1,
                "response": {"client": {"client_id": client_id}, "secret": f"secret-{client_id}"},
            })
        if url == DELETE_CLIENT_URL:
            client_id = kwargs["data"]["client_id"]
            self.deleted.append(client_id)
            self.clients = [c for c in self.clients if c["client_id"] != client_id]
            return make_response({"status": 1, "response": {}})
        if url == ACCESS_TOKEN_URL:
            self.token_requests.append({"data": kwargs["data"], "headers": kwargs["headers"]})
            return make_response(self.token_response)
        raise AssertionError(f"Unexpected POST {url}")


@pytest.fixture
def config() -> StrategyConfig:
    """Strategy configuration for the acme test site."""
    return StrategyConfig(
        name="acme",
        return_url="https://acme.test/callback",
        api_key="test_api_key",
    )


@pytest.fixture
def opskins() -> FakeOpskins:
    """Fake OPSkins API."""
    return FakeOpskins()


@pytest.fixture
def memory_store() -> MemoryClientStore:
    """Empty in-memory client store."""
    return MemoryClientStore()
