"""Tests for token exchange and profile fetching."""

import base64
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conftest import make_http, make_response
from opskins_auth.errors import ProtocolError, TransportError
from opskins_auth.oauth.api import ACCESS_TOKEN_URL, GET_PROFILE_URL
from opskins_auth.oauth.exchange import exchange_code, refresh_access_token
from opskins_auth.oauth.profile import fetch_profile
from opskins_auth.oauth.tokens import ClientRegistration


@pytest.fixture
def registration() -> ClientRegistration:
    return ClientRegistration(client_id="test_client", client_secret="test_secret")


class TestExchangeCode:
    """Tests for exchange_code."""

    @pytest.mark.asyncio
    async def test_successful_exchange(self, registration: ClientRegistration) -> None:
        http = make_http(post=make_response({
            "access_token": "T",
            "refresh_token": "R",
            "expires_in": 3600,
            "token_type": "bearer",
        }))

        grant = await exchange_code(registration, "ABC", http_client=http)

        assert grant.access_token == "T"
        assert grant.refresh_token == "R"
        assert grant.code == "ABC"

        call_args = http.post.call_args
        assert call_args.args[0] == ACCESS_TOKEN_URL
        assert call_args.kwargs["data"] == {"grant_type": "authorization_code", "code": "ABC"}
        expected = "Basic " + base64.b64encode(b"test_client:test_secret").decode("ascii")
        assert call_args.kwargs["headers"]["Authorization"] == expected

    @pytest.mark.asyncio
    async def test_provider_error_raises_protocol_error(
        self, registration: ClientRegistration
    ) -> None:
        http = make_http(post=make_response({
            "error": "invalid_grant",
            "error_description": "Code expired",
        }))

        with pytest.raises(ProtocolError) as exc_info:
            await exchange_code(registration, "ABC", http_client=http)

        message = str(exc_info.value)
        assert "invalid_grant" in message
        assert "Code expired" in message
        assert "test_secret" not in message

    @pytest.mark.asyncio
    async def test_invalid_json_sanitizes_response(
        self, registration: ClientRegistration
    ) -> None:
        http = make_http(post=make_response(invalid_json=True, status_code=500))

        with pytest.raises(ProtocolError) as exc_info:
            await exchange_code(registration, "ABC", http_client=http)

        assert "secret_internal_error_data" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_access_token(self, registration: ClientRegistration) -> None:
        http = make_http(post=make_response({"token_type": "bearer"}))

        with pytest.raises(ProtocolError):
            await exchange_code(registration, "ABC", http_client=http)

    @pytest.mark.asyncio
    async def test_network_error_raises_transport_error(
        self, registration: ClientRegistration
    ) -> None:
        http = make_http()
        http.post = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError):
            await exchange_code(registration, "ABC", http_client=http)

    @pytest.mark.asyncio
    async def test_creates_and_closes_client_when_none_given(
        self, registration: ClientRegistration
    ) -> None:
        http = make_http(post=make_response({"access_token": "T"}))

        with patch("opskins_auth.oauth.api.httpx.AsyncClient", return_value=http) as client_cls:
            await exchange_code(registration, "ABC", timeout=5.0)

        client_cls.assert_called_once_with(timeout=5.0)
        http.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shared_client_is_not_closed(self, registration: ClientRegistration) -> None:
        http = make_http(post=make_response({"access_token": "T"}))

        await exchange_code(registration, "ABC", http_client=http)

        http.aclose.assert_not_awaited()


class TestRefreshAccessToken:
    """Tests for refresh_access_token."""

    @pytest.mark.asyncio
    async def test_successful_refresh(self, registration: ClientRegistration) -> None:
        http = make_http(post=make_response({"access_token": "new_T", "token_type": "bearer"}))

        access_token = await refresh_access_token(registration, "R", http_client=http)

        assert access_token == "new_T"
        call_args = http.post.call_args
        assert call_args.kwargs["data"] == {"grant_type": "refresh_token", "refresh_token": "R"}

    @pytest.mark.asyncio
    async def test_provider_error(self, registration: ClientRegistration) -> None:
        http = make_http(post=make_response({"error": "invalid_token"}))

        with pytest.raises(ProtocolError) as exc_info:
            await refresh_access_token(registration, "R", http_client=http)

        assert "invalid_token" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_error(self, registration: ClientRegistration) -> None:
        http = make_http()
        http.post = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))

        with pytest.raises(TransportError):
            await refresh_access_token(registration, "R", http_client=http)


class TestFetchProfile:
    """Tests for fetch_profile."""

    @pytest.mark.asyncio
    async def test_returns_profile(self) -> None:
        http = make_http(get=make_response({"status": 1, "response": {"id": 42, "username": "bob"}}))

        profile = await fetch_profile("T", http_client=http)

        assert profile == {"id": 42, "username": "bob"}
        call_args = http.get.call_args
        assert call_args.args[0] == GET_PROFILE_URL
        assert call_args.kwargs["headers"] == {"Authorization": "Bearer T"}

    @pytest.mark.asyncio
    async def test_error_field_raises_protocol_error(self) -> None:
        http = make_http(get=make_response({"error": "invalid_token"}))

        with pytest.raises(ProtocolError) as exc_info:
            await fetch_profile("T", http_client=http)

        assert "invalid_token" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        http = make_http(get=make_response(invalid_json=True))

        with pytest.raises(ProtocolError):
            await fetch_profile("T", http_client=http)

    @pytest.mark.asyncio
    async def test_missing_response(self) -> None:
        http = make_http(get=make_response({"status": 1}))

        with pytest.raises(ProtocolError):
            await fetch_profile("T", http_client=http)

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        http = make_http()
        http.get = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError):
            await fetch_profile("T", http_client=http)
