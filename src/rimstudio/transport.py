"""Authenticated HTTP transport with single-flight token refresh.

Every backend call goes through AuthenticatedTransport.request(). The
Authorization header is built per request from the session's current pair;
nothing is stored on the HTTP client's default headers.

When a call is rejected with 401:

1. The request is marked retried. A request is replayed at most once.
2. If a refresh is already in flight, the request waits on it.
3. Otherwise, if the session's token changed since the request was sent,
   the request is replayed straight away.
4. Otherwise a refresh cycle starts. It runs in its own task so a caller
   going away cannot abort it for the other waiters.

When the refresh succeeds the new pair is installed, the cycle released and
the waiters replayed in the order they attached. When it fails the cycle is
released, the session logged out and every waiter fails with
SessionExpiredError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Mapping

import httpx

from .auth.session import SessionManager, SessionState
from .auth.storage import TokenPair
from .config import ClientSettings
from .errors import SessionExpiredError

logger = logging.getLogger(__name__)

Refresher = Callable[[str], Awaitable[TokenPair]]
FileField = tuple[str, bytes, str]


@dataclass(frozen=True)
class RequestSpec:
    """Everything needed to send (and re-send) one backend call."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, Any] | None = None
    json: Any = None
    files: Mapping[str, FileField] | None = None
    retried: bool = False

    def mark_retried(self) -> "RequestSpec":
        return replace(self, retried=True)


@dataclass
class PendingRequest:
    """A 401-rejected request waiting for the refresh cycle's outcome."""

    spec: RequestSpec
    future: asyncio.Future


class RefreshCycle:
    """The in-flight refresh and the requests waiting on it, in attach order."""

    def __init__(self, refresh_token: str):
        self.refresh_token = refresh_token
        self.waiters: list[PendingRequest] = []
        self.task: asyncio.Task | None = None

    def attach(self, pending: PendingRequest) -> None:
        self.waiters.append(pending)

    def fail(self, make_error: Callable[[], BaseException]) -> None:
        for pending in self.waiters:
            if not pending.future.done():
                pending.future.set_exception(make_error())


class AuthenticatedTransport:
    """Bearer-token HTTP client for the backend API.

    Usage:
        transport = AuthenticatedTransport(settings, session, auth_client.refresh)
        response = await transport.get("/api/generations", params={"status": "completed"})
        await transport.aclose()
    """

    def __init__(
        self,
        settings: ClientSettings,
        session: SessionManager,
        refresher: Refresher,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the transport.

        Args:
            settings: Client settings (base URL, timeout)
            session: Session to read tokens from and log out on failure
            refresher: Coroutine minting a new pair from a refresh token
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self._session = session
        self._refresher = refresher
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self._cycle: RefreshCycle | None = None
        self._replays: set[asyncio.Task] = set()
        self._unsubscribe = session.subscribe(self._on_session_change)

    @property
    def refresh_in_progress(self) -> bool:
        return self._cycle is not None

    @property
    def waiting_count(self) -> int:
        """Requests currently waiting on the refresh cycle."""
        return len(self._cycle.waiters) if self._cycle is not None else 0

    async def get(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Make GET request."""
        return await self.request(RequestSpec("GET", path, headers=headers or {}, params=params))

    async def post(
        self,
        path: str,
        json: Any = None,
        files: Mapping[str, FileField] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Make POST request."""
        return await self.request(
            RequestSpec("POST", path, headers=headers or {}, json=json, files=files)
        )

    async def request(self, spec: RequestSpec) -> httpx.Response:
        """Send a request, recovering once from an expired access token.

        A failed refresh logs the session out. A replayed request that is
        rejected again raises SessionExpiredError but leaves the session
        logged in, so pages gated on the session state do not flip; call
        ``session.logout()`` to force the user back to sign-in.

        Raises:
            SessionExpiredError: If the token could not be refreshed, the
                replayed request was rejected again, or the transport was
                closed while the request waited on a refresh or replay
            httpx.TransportError: On network failure (propagated unchanged)
        """
        response, sent_token = await self._send(spec)
        if response.status_code != 401:
            return response
        if spec.retried:
            logger.info("%s %s rejected again after token refresh", spec.method, spec.path)
            raise SessionExpiredError(status_code=401, response=response)
        return await self._recover(spec.mark_retried(), sent_token, response)

    async def _send(self, spec: RequestSpec) -> tuple[httpx.Response, str | None]:
        tokens = self._session.current_tokens()
        headers = dict(spec.headers)
        if tokens is not None:
            headers["Authorization"] = f"Bearer {tokens.access_token}"

        logger.debug("%s %s%s", spec.method, spec.path, " (replay)" if spec.retried else "")
        response = await self._client.request(
            spec.method,
            spec.path,
            headers=headers,
            params=spec.params,
            json=spec.json,
            files=spec.files,
        )
        return response, tokens.access_token if tokens is not None else None

    async def _recover(
        self,
        spec: RequestSpec,
        sent_token: str | None,
        response: httpx.Response,
    ) -> httpx.Response:
        current = self._session.current_tokens()
        if current is None:
            logger.info("%s %s unauthorized with no session to refresh", spec.method, spec.path)
            self._session.logout()
            raise SessionExpiredError(status_code=401, response=response)

        cycle = self._cycle
        if cycle is None and current.access_token != sent_token:
            logger.debug("Token changed since %s %s was sent; replaying", spec.method, spec.path)
            return await self.request(spec)

        # No suspension point between the check above and installing the
        # cycle, so concurrent 401 handlers cannot both start a refresh.
        pending = PendingRequest(spec, asyncio.get_running_loop().create_future())
        if cycle is None:
            cycle = RefreshCycle(current.refresh_token)
            self._cycle = cycle
            cycle.attach(pending)
            cycle.task = asyncio.create_task(self._run_cycle(cycle))
            logger.info("Access token rejected; refreshing")
        else:
            cycle.attach(pending)
            logger.debug("Waiting on in-flight refresh (%d waiters)", len(cycle.waiters))

        return await pending.future

    async def _run_cycle(self, cycle: RefreshCycle) -> None:
        try:
            pair = await self._refresher(cycle.refresh_token)
        except asyncio.CancelledError:
            if self._cycle is cycle:
                self._cycle = None
            cycle.fail(SessionExpiredError)
            raise
        except Exception as exc:
            if self._cycle is not cycle:
                return
            self._cycle = None
            logger.warning("Token refresh failed: %s", exc)
            self._session.logout()

            def expired() -> SessionExpiredError:
                error = SessionExpiredError()
                error.__cause__ = exc
                return error

            cycle.fail(expired)
            return

        if self._cycle is not cycle:
            logger.info("Discarding refresh result: session ended while refreshing")
            return

        try:
            self._session.login(pair)
        except Exception as exc:
            self._cycle = None
            logger.exception("Could not install refreshed tokens")
            cycle.fail(lambda: exc)
            return

        self._cycle = None
        logger.info("Token refreshed; replaying %d request(s)", len(cycle.waiters))
        for pending in cycle.waiters:
            if pending.future.done():
                continue
            task = asyncio.create_task(self._replay(pending))
            self._replays.add(task)
            task.add_done_callback(self._replays.discard)

    async def _replay(self, pending: PendingRequest) -> None:
        try:
            response = await self.request(pending.spec)
        except asyncio.CancelledError:
            # Torn down mid-replay; the caller itself was not cancelled.
            if not pending.future.done():
                pending.future.set_exception(SessionExpiredError())
            raise
        except Exception as exc:
            if not pending.future.done():
                pending.future.set_exception(exc)
        else:
            if not pending.future.done():
                pending.future.set_result(response)

    def _on_session_change(self, state: SessionState, tokens: TokenPair | None) -> None:
        if state is not SessionState.LOGGED_OUT or self._cycle is None:
            return
        cycle, self._cycle = self._cycle, None
        logger.info("Signed out during refresh; failing %d waiting request(s)", len(cycle.waiters))
        cycle.fail(SessionExpiredError)

    async def aclose(self) -> None:
        """Stop listening to the session, abandon pending work, close the client."""
        self._unsubscribe()
        tasks = list(self._replays)
        cycle, self._cycle = self._cycle, None
        if cycle is not None:
            cycle.fail(SessionExpiredError)
            if cycle.task is not None:
                tasks.append(cycle.task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._client.aclose()
