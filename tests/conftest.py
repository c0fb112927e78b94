"""Shared test fixtures for the Rim Studio test suite."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
import pytest
import pytest_asyncio

from rimstudio.auth.session import SessionManager
from rimstudio.auth.storage import MemoryCredentialStore, TokenPair
from rimstudio.config import ClientSettings
from rimstudio.transport import AuthenticatedTransport

BASE_URL = "http://rimstudio.test"
GOOGLE_ID_TOKEN = "google-id-token"
OLD_PAIR = TokenPair(access_token="access-old", refresh_token="refresh-old")
NEW_PAIR = TokenPair(access_token="access-new", refresh_token="refresh-new")


# ============================================================================
# Fake backend
# ============================================================================


class FakeBackend:
    """Scriptable stand-in for the backend, served through httpx.MockTransport.

    Only access tokens in ``valid_access_tokens`` are accepted on protected
    routes; anything else gets 401. Refresh calls can be held open with
    ``refresh_gate`` to line up concurrent 401s.
    """

    def __init__(self):
        self.valid_access_tokens = {NEW_PAIR.access_token}
        self.refresh_pairs = {OLD_PAIR.refresh_token: NEW_PAIR}
        self.google_pairs = {GOOGLE_ID_TOKEN: OLD_PAIR}
        self.requests: list[httpx.Request] = []
        self.refresh_calls = 0
        self.refresh_gate: asyncio.Event | None = None
        self.upload_error: tuple[int, Any] | None = None
        self.process_errors: dict[str, tuple[int, Any]] = {}
        self.process_body: dict[str, Any] | None = None
        self.completed: list[dict[str, Any]] = []
        self._next_id = 0

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/auth/google":
            return self._google(request)
        if path == "/api/auth/refresh":
            return await self._refresh(request)

        accepted = {f"Bearer {token}" for token in self.valid_access_tokens}
        if request.headers.get("Authorization") not in accepted:
            return httpx.Response(401, json={"detail": "Not authenticated"})

        if path == "/api/echo":
            return httpx.Response(200, json={"seq": request.headers.get("X-Seq")})
        if path == "/api/fail":
            return httpx.Response(500, json={"detail": "Internal Server Error"})
        if path == "/api/generations/upload":
            return self._upload(request)
        if path.startswith("/api/generations/") and path.endswith("/process"):
            return self._process(path.split("/")[3])
        if path == "/api/generations":
            return httpx.Response(200, json=self.completed)
        return httpx.Response(404, json={"detail": "Not Found"})

    def _google(self, request: httpx.Request) -> httpx.Response:
        id_token = json.loads(request.content).get("id_token")
        pair = self.google_pairs.get(id_token)
        if pair is None:
            return httpx.Response(401, json={"detail": "Invalid Google token"})
        return httpx.Response(200, json=pair.to_dict())

    async def _refresh(self, request: httpx.Request) -> httpx.Response:
        self.refresh_calls += 1
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        refresh_token = json.loads(request.content).get("refresh_token")
        pair = self.refresh_pairs.get(refresh_token)
        if pair is None:
            return httpx.Response(401, json={"detail": "Invalid refresh token"})
        return httpx.Response(
            200,
            json={"accessToken": pair.access_token, "refreshToken": pair.refresh_token},
        )

    def _upload(self, request: httpx.Request) -> httpx.Response:
        if self.upload_error is not None:
            status, detail = self.upload_error
            return httpx.Response(status, json={"detail": detail})
        if b'name="car_file"' not in request.content or b'name="rim_file"' not in request.content:
            return httpx.Response(422, json={"detail": [{"msg": "files required"}]})
        self._next_id += 1
        return httpx.Response(200, json={"id": f"gen_{self._next_id}"})

    def _process(self, job_id: str) -> httpx.Response:
        if job_id in self.process_errors:
            status, detail = self.process_errors[job_id]
            return httpx.Response(status, json={"detail": detail})
        if self.process_body is not None:
            return httpx.Response(200, json=self.process_body)
        return httpx.Response(
            200,
            json={"processed_image_url": f"https://cdn.rimstudio.test/{job_id}.png"},
        )


class StubRefresher:
    """Refresher double: counts calls, can be gated or made to fail."""

    def __init__(self, result: TokenPair = NEW_PAIR):
        self.result = result
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []
        self.finished = 0

    async def __call__(self, refresh_token: str) -> TokenPair:
        self.calls.append(refresh_token)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            return self.result
        finally:
            self.finished += 1


async def wait_until(predicate: Callable[[], bool], attempts: int = 500) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition was not reached")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at the fake backend and a temporary config dir."""
    return ClientSettings(base_url=BASE_URL, config_dir=tmp_path, _env_file=None)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def store():
    """In-memory store holding the (soon to be rejected) old pair."""
    return MemoryCredentialStore(OLD_PAIR)


@pytest.fixture
def session(store):
    return SessionManager(store)


@pytest.fixture
def refresher():
    return StubRefresher()


@pytest_asyncio.fixture
async def transport(settings, session, refresher, backend):
    """AuthenticatedTransport against the fake backend with a stub refresher."""
    authed = AuthenticatedTransport(settings, session, refresher, transport=backend.transport)
    yield authed
    await authed.aclose()
