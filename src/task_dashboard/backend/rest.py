# src/task_dashboard/backend/rest.py

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..core.errors import AuthError, StoreError
from ..core.ports import AuthStateListener, BackendSession, Record

logger = logging.getLogger(__name__)


def make_timeout(connect_s: float, read_s: float) -> httpx.Timeout:
    return httpx.Timeout(
        connect=connect_s,
        read=read_s,
        write=10.0,
        pool=connect_s,
    )


def _error_message(resp: httpx.Response) -> str:
    """Best-effort human-readable message from a PostgREST / GoTrue error body."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            val = body.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    text = (resp.text or "").strip()
    return text[:200] if text else f"HTTP {resp.status_code}"


class _ListenerSubscription:
    def __init__(self, backend: RestBackend, listener: AuthStateListener) -> None:
        self._backend = backend
        self._listener = listener

    def unsubscribe(self) -> None:
        self._backend._listeners = [cb for cb in self._backend._listeners if cb is not self._listener]


class RestBackend:
    """
    Client for a hosted backend-as-a-service (PostgREST data API + GoTrue-style auth).

    Implements both ports: IdentityProvider and RemoteStore.

    - The session lives in memory only; it is lost on exit.
    - Auth failures raise AuthError; data API failures raise StoreError.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str | None,
        *,
        timeout: httpx.Timeout | float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url or not base_url.strip():
            raise RuntimeError("Backend URL is not set. Set TASKDASH_BACKEND_URL in your .env.")
        if not anon_key or not anon_key.strip():
            raise RuntimeError("Backend key is not set. Set TASKDASH_BACKEND_ANON_KEY in your .env.")

        self._anon_key = anon_key.strip()
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout if timeout is not None else make_timeout(5.0, 15.0),
            transport=transport,
        )
        self._session: BackendSession | None = None
        # Expired access token -> the token it was refreshed to.
        self._refreshed: dict[str, str] = {}
        self._refresh_lock = asyncio.Lock()
        self._listeners: list[AuthStateListener] = []

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- low-level helpers ----

    def _headers(self, token: str | None) -> dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token or self._anon_key}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, str] | None = None,
        json: Any = None,
        extra_headers: dict[str, str] | None = None,
        replay_on_401: bool = True,
    ) -> httpx.Response:
        headers = self._headers(token)
        if extra_headers:
            headers.update(extra_headers)

        logger.debug("%s %s params=%s", method, path, params)
        try:
            resp = await self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise StoreError(f"Network error: {e.__class__.__name__}") from e

        if resp.status_code == 401 and replay_on_401 and token is not None and self._can_refresh(token):
            # Access token expired: refresh once and replay with the new token.
            new_token = await self._refresh_after_401(resp, token)
            return await self._request(
                method,
                path,
                token=new_token,
                params=params,
                json=json,
                extra_headers=extra_headers,
                replay_on_401=False,
            )

        if resp.status_code >= 400:
            raise StoreError(_error_message(resp), status_code=resp.status_code)
        return resp

    def _can_refresh(self, token: str) -> bool:
        if token in self._refreshed:
            return True
        session = self._session
        return (
            session is not None
            and session.get("access_token") == token
            and bool(session.get("refresh_token"))
        )

    async def _refresh_after_401(self, resp: httpx.Response, token: str) -> str:
        async with self._refresh_lock:
            if token in self._refreshed:
                # A concurrent request already refreshed this token.
                return self._refreshed[token]
            try:
                session = await self.refresh_session()
            except AuthError as e:
                logger.warning("Token refresh failed: %s", e)
                raise StoreError(_error_message(resp), status_code=resp.status_code) from e
            return str(session["access_token"])

    def _emit(self, event: str, session: BackendSession | None) -> None:
        for cb in list(self._listeners):
            try:
                cb(event, session)
            except Exception:
                logger.exception("auth listener failed event=%s", event)

    # ---- IdentityProvider ----

    async def get_session(self) -> BackendSession | None:
        return self._session

    def on_auth_state_change(self, listener: AuthStateListener) -> _ListenerSubscription:
        self._listeners.append(listener)
        return _ListenerSubscription(self, listener)

    async def _auth_call(self, path: str, payload: dict[str, Any], params: dict[str, str] | None = None) -> dict[str, Any]:
        try:
            resp = await self._request("POST", path, params=params, json=payload)
        except StoreError as e:
            raise AuthError(str(e)) from e
        body = resp.json()
        return body if isinstance(body, dict) else {}

    async def sign_up(self, email: str, password: str) -> BackendSession | None:
        body = await self._auth_call("/auth/v1/signup", {"email": email, "password": password})
        if body.get("access_token"):
            self._session = body
            self._emit("SIGNED_IN", body)
            return body
        # Email confirmation pending: account created, no session yet.
        return None

    async def sign_in_with_password(self, email: str, password: str) -> BackendSession:
        body = await self._auth_call(
            "/auth/v1/token",
            {"email": email, "password": password},
            params={"grant_type": "password"},
        )
        if not body.get("access_token"):
            raise AuthError("Login failed: no access token returned")
        self._session = body
        self._refreshed.clear()
        self._emit("SIGNED_IN", body)
        return body

    async def refresh_session(self) -> BackendSession:
        """
        Exchange the refresh token for a new access token (same user).

        Emits TOKEN_REFRESHED. If the refresh is rejected, the local session is dropped
        and SIGNED_OUT is emitted before AuthError propagates.
        """
        current = self._session or {}
        refresh_token = current.get("refresh_token")
        old_token = str(current.get("access_token"))
        if not refresh_token:
            raise AuthError("No session to refresh")
        try:
            body = await self._auth_call(
                "/auth/v1/token",
                {"refresh_token": refresh_token},
                params={"grant_type": "refresh_token"},
            )
            if not body.get("access_token"):
                raise AuthError("Token refresh failed: no access token returned")
        except AuthError:
            self._session = None
            self._refreshed.clear()
            self._emit("SIGNED_OUT", None)
            raise
        if not body.get("user"):
            body["user"] = current.get("user")
        self._refreshed[old_token] = str(body["access_token"])
        self._session = body
        logger.info("Access token refreshed")
        self._emit("TOKEN_REFRESHED", body)
        return body

    async def sign_out(self) -> None:
        session, self._session = self._session, None
        self._refreshed.clear()
        if session is not None:
            try:
                await self._request("POST", "/auth/v1/logout", token=session.get("access_token"))
            except StoreError as e:
                # The local session is gone either way.
                logger.warning("Remote logout failed: %s", e)
        self._emit("SIGNED_OUT", None)

    # ---- RemoteStore ----

    async def select(self, collection: str, *, token: str) -> list[Record]:
        resp = await self._request("GET", f"/rest/v1/{collection}", token=token, params={"select": "*"})
        rows = resp.json()
        if not isinstance(rows, list):
            raise StoreError(f"Unexpected response for {collection}: expected a list")
        return rows

    async def insert(self, collection: str, record: Record, *, token: str) -> None:
        await self._request(
            "POST",
            f"/rest/v1/{collection}",
            token=token,
            json=[record],
            extra_headers={"Prefer": "return=minimal"},
        )

    async def update(self, collection: str, record_id: str, fields: Record, *, token: str) -> None:
        await self._request(
            "PATCH",
            f"/rest/v1/{collection}",
            token=token,
            params={"id": f"eq.{record_id}"},
            json=fields,
            extra_headers={"Prefer": "return=minimal"},
        )

    async def delete(self, collection: str, record_id: str, *, token: str) -> None:
        await self._request(
            "DELETE",
            f"/rest/v1/{collection}",
            token=token,
            params={"id": f"eq.{record_id}"},
        )
