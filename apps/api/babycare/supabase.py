from __future__ import annotations

import json as jsonlib
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import jwt

from .config import AppConfig
from .errors import AuthFailed, SupabaseError, TransientNetwork

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"


async def _describe_response(resp: httpx.Response) -> str:
    try:
        return resp.text or "<empty response>"
    except Exception:
        return "<unable to read response>"


def _error_message(detail: str) -> str:
    try:
        body = jsonlib.loads(detail)
    except ValueError:
        return detail
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return detail


async def _raise_supabase_error(
    resp: httpx.Response,
    action: str,
    *,
    object_label: Optional[str] = None,
) -> None:
    detail = await _describe_response(resp)
    label = f" ({object_label})" if object_label else ""
    logger.warning(
        "supabase call failed",
        extra={"action": action, "object": object_label, "status": resp.status_code},
    )
    error_cls = TransientNetwork if resp.status_code >= 500 else SupabaseError
    raise error_cls(
        f"Supabase {action} failed{label}: {_error_message(detail)}",
        status=resp.status_code,
    )


@dataclass
class SupabaseClient:
    """Thin PostgREST client. `access_token` follows the signed-in principal."""

    base_url: str
    anon_key: str
    access_token: str
    timeout: float = 15.0

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(headers),
                )
        except httpx.TransportError as exc:
            raise TransientNetwork(f"Network error calling {table}: {exc}") from exc

    async def select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self.request("GET", table, params=params)
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "select", object_label=f"table={table}")
        return resp.json()

    async def count(self, table: str, params: Dict[str, Any]) -> int:
        resp = await self.request(
            "HEAD",
            table,
            params=params,
            headers={"Prefer": "count=exact"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "count", object_label=f"table={table}")
        content_range = resp.headers.get("content-range", "")
        total = content_range.rsplit("/", 1)[-1]
        return int(total) if total.isdigit() else 0

    async def insert(
        self,
        table: str,
        payload: Dict[str, Any],
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "POST",
            table,
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "insert", object_label=f"table={table}")
        return resp.json() if resp.content else []

    async def update(
        self,
        table: str,
        payload: Dict[str, Any],
        params: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "PATCH",
            table,
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "update", object_label=f"table={table}")
        return resp.json() if resp.content else []

    async def rpc(self, fn: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        resp = await self.request("POST", f"rpc/{fn}", json=payload)
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "rpc", object_label=f"fn={fn}")
        return resp.json() if resp.content else None

    async def delete(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self.request(
            "DELETE",
            table,
            params=params,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "delete", object_label=f"table={table}")
        return resp.json() if resp.content else []


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthSession:
    access_token: str
    refresh_token: Optional[str]
    user: AuthUser
    expires_at: Optional[int] = None

    def is_expired(self, leeway: int = 30) -> bool:
        expires_at = self.expires_at
        if expires_at is None:
            try:
                claims = jwt.decode(self.access_token, options={"verify_signature": False})
                expires_at = claims.get("exp")
            except jwt.PyJWTError:
                return False
        if expires_at is None:
            return False
        return time.time() + leeway >= int(expires_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "user": {"id": self.user.id, "email": self.user.email, "user_metadata": self.user.metadata},
        }


def _user_from_payload(data: Dict[str, Any]) -> Optional[AuthUser]:
    if not data or not data.get("id"):
        return None
    return AuthUser(
        id=data["id"],
        email=data.get("email"),
        metadata=data.get("user_metadata") or {},
    )


def session_from_payload(data: Dict[str, Any]) -> Optional[AuthSession]:
    if not data or not data.get("access_token"):
        return None
    user = _user_from_payload(data.get("user") or {})
    if user is None:
        return None
    expires_at = data.get("expires_at")
    if expires_at is None and data.get("expires_in"):
        expires_at = int(time.time()) + int(data["expires_in"])
    return AuthSession(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        user=user,
        expires_at=expires_at,
    )


AuthListener = Callable[[str, Optional[AuthSession]], None]


class SupabaseAuth:
    """GoTrue password auth with an in-memory session and change listeners."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        *,
        service_role_key: Optional[str] = None,
        session_path: Optional[Path] = None,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = base_url
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.session_path = session_path
        self.timeout = timeout
        self._session: Optional[AuthSession] = None
        self._listeners: List[AuthListener] = []

    async def _post(
        self,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> httpx.Response:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.anon_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(
                    f"{self.base_url}/auth/v1/{path}",
                    params=params,
                    json=payload or {},
                    headers=headers,
                )
        except httpx.TransportError as exc:
            raise TransientNetwork(f"Network error calling auth/{path}: {exc}") from exc

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("auth listener failed", extra={"event": event})

    def _store(self, session: Optional[AuthSession]) -> None:
        self._session = session
        if not self.session_path:
            return
        if session is None:
            self.session_path.unlink(missing_ok=True)
            return
        self.session_path.parent.mkdir(parents=True, exist_ok=True)
        self.session_path.write_text(jsonlib.dumps(session.to_dict()))

    def _restore(self) -> Optional[AuthSession]:
        if not self.session_path or not self.session_path.exists():
            return None
        try:
            return session_from_payload(jsonlib.loads(self.session_path.read_text()))
        except ValueError:
            logger.warning("ignoring unreadable session file", extra={"path": str(self.session_path)})
            return None

    async def get_session(self) -> Optional[AuthSession]:
        session = self._session or self._restore()
        if session is None:
            return None
        if session.is_expired():
            if not session.refresh_token:
                self._store(None)
                return None
            return await self.refresh_session(session.refresh_token)
        self._session = session
        return session

    async def refresh_session(self, refresh_token: str) -> Optional[AuthSession]:
        resp = await self._post(
            "token",
            {"refresh_token": refresh_token},
            params={"grant_type": "refresh_token"},
        )
        if resp.status_code >= 400:
            logger.info("session refresh rejected", extra={"status": resp.status_code})
            self._store(None)
            return None
        session = session_from_payload(resp.json())
        self._store(session)
        self._emit(TOKEN_REFRESHED, session)
        return session

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        resp = await self._post(
            "token",
            {"email": email, "password": password},
            params={"grant_type": "password"},
        )
        if resp.status_code >= 500:
            await _raise_supabase_error(resp, "sign-in")
        if resp.status_code >= 400:
            raise AuthFailed()
        session = session_from_payload(resp.json())
        if session is None:
            raise AuthFailed()
        self._store(session)
        self._emit(SIGNED_IN, session)
        return session

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuthUser:
        resp = await self._post(
            "signup",
            {"email": email, "password": password, "data": metadata or {}},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "sign-up")
        data = resp.json() if resp.content else {}
        session = session_from_payload(data)
        if session is not None:
            self._store(session)
            self._emit(SIGNED_IN, session)
            return session.user
        # Email confirmation flow returns the bare user.
        user = _user_from_payload(data.get("user") or data)
        if user is None:
            raise SupabaseError("Supabase sign-up failed: no user returned")
        return user

    async def sign_out(self) -> None:
        session = self._session
        self._store(None)
        self._emit(SIGNED_OUT, None)
        if session is None:
            return
        resp = await self._post("logout", token=session.access_token)
        if resp.status_code >= 400 and resp.status_code != 401:
            await _raise_supabase_error(resp, "sign-out")

    async def delete_user(self, user_id: str) -> None:
        if not self.service_role_key:
            raise RuntimeError("Missing SUPABASE_SERVICE_ROLE_KEY for admin access.")
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.delete(
                    f"{self.base_url}/auth/v1/admin/users/{user_id}",
                    headers=headers,
                )
        except httpx.TransportError as exc:
            raise TransientNetwork(f"Network error deleting auth user: {exc}") from exc
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "admin delete", object_label=f"user={user_id}")


def build_clients(config: AppConfig) -> tuple[SupabaseAuth, SupabaseClient]:
    base_url, anon_key = config.supabase_credentials()
    auth = SupabaseAuth(
        base_url,
        anon_key,
        service_role_key=config.supabase_service_role_key,
        session_path=config.resolved_session_path,
        timeout=config.request_timeout,
    )
    data = SupabaseClient(
        base_url=base_url,
        anon_key=anon_key,
        access_token=anon_key,
        timeout=config.request_timeout,
    )
    return auth, data
