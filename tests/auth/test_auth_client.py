"""Tests for the authentication endpoint client."""

import json

import httpx
import pytest
import pytest_asyncio

from rimstudio.auth.client import AuthClient
from rimstudio.auth.storage import TokenPair
from rimstudio.errors import AuthError, SessionExpiredError

from tests.conftest import GOOGLE_ID_TOKEN, NEW_PAIR, OLD_PAIR


@pytest_asyncio.fixture
async def auth_client(settings, backend):
    client = AuthClient(settings, transport=backend.transport)
    yield client
    await client.aclose()


def respond_with(status: int, body) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(status, json=body))


class TestGoogleExchange:
    @pytest.mark.asyncio
    async def test_exchange_returns_pair(self, auth_client, backend):
        pair = await auth_client.exchange_google_token(GOOGLE_ID_TOKEN)

        assert pair == OLD_PAIR
        request = backend.calls_to("/api/auth/google")[0]
        assert json.loads(request.content) == {"id_token": GOOGLE_ID_TOKEN}
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_rejected_token(self, auth_client):
        with pytest.raises(AuthError) as exc_info:
            await auth_client.exchange_google_token("forged")

        assert exc_info.value.status_code == 401
        assert "Invalid Google token" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_empty_token_is_rejected_locally(self, auth_client, backend):
        with pytest.raises(AuthError):
            await auth_client.exchange_google_token("")

        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_camel_case_response_is_invalid(self, settings):
        """Sign-in answers in snake_case only."""
        transport = respond_with(200, {"accessToken": "a", "refreshToken": "r"})
        async with AuthClient(settings, transport=transport) as client:
            with pytest.raises(AuthError, match="Invalid sign-in response"):
                await client.exchange_google_token("id")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_returns_new_pair(self, auth_client, backend):
        pair = await auth_client.refresh(OLD_PAIR.refresh_token)

        assert pair == NEW_PAIR
        request = backend.calls_to("/api/auth/refresh")[0]
        assert json.loads(request.content) == {"refresh_token": OLD_PAIR.refresh_token}

    @pytest.mark.asyncio
    async def test_rejected_refresh_token(self, auth_client):
        with pytest.raises(SessionExpiredError) as exc_info:
            await auth_client.refresh("revoked")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"access_token": "a", "refresh_token": "r"},
            {"accessToken": "a"},
            {"accessToken": "", "refreshToken": "r"},
            ["accessToken", "refreshToken"],
        ],
    )
    async def test_malformed_refresh_response(self, settings, body):
        async with AuthClient(settings, transport=respond_with(200, body)) as client:
            with pytest.raises(SessionExpiredError):
                await client.refresh("r")

    @pytest.mark.asyncio
    async def test_extra_fields_ignored(self, settings):
        body = {"accessToken": "a", "refreshToken": "r", "tokenType": "bearer"}
        async with AuthClient(settings, transport=respond_with(200, body)) as client:
            assert await client.refresh("old") == TokenPair("a", "r")

    @pytest.mark.asyncio
    async def test_network_error_propagates(self, settings):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        async with AuthClient(settings, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(httpx.ConnectError):
                await client.refresh("r")
