"""Session store: who is signed in, for which family, as which caregiver.

One instance is created by the application entry point and passed to whatever
needs it. `start()` performs the initial auth check and subscribes to auth
events; `close()` unsubscribes and cancels any caregiver/family resolution
still in flight.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Set
from uuid import uuid4

from .config import AppConfig
from .errors import LegacyAccount, PhoneNotFound, PhoneTaken, SupabaseError
from .schemas import Caregiver, Family, SessionState
from .supabase import AuthSession, AuthUser, SupabaseAuth, SupabaseClient
from .tenant import TenantResolver

logger = logging.getLogger(__name__)

SessionListener = Callable[[], None]

DEFAULT_RELATIONSHIP = "guardian"


class SessionStore:
    def __init__(
        self,
        auth: SupabaseAuth,
        supabase: SupabaseClient,
        resolver: TenantResolver,
        config: AppConfig,
    ) -> None:
        self.auth = auth
        self.supabase = supabase
        self.resolver = resolver
        self.config = config

        self.session: Optional[AuthSession] = None
        self.user: Optional[AuthUser] = None
        self.family: Optional[Family] = None
        self.caregiver: Optional[Caregiver] = None
        self.loading = True

        self._loaded = asyncio.Event()
        self._listeners: List[SessionListener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # lifecycle

    async def start(self) -> None:
        """Initial auth check. Caregiver/family resolution continues in the background."""
        self._unsubscribe = self.auth.on_auth_state_change(self._on_auth_event)
        try:
            session = await self.auth.get_session()
        except Exception as exc:
            logger.warning("initial session check failed", exc_info=exc)
            session = None
        else:
            self._apply_session(session)
        finally:
            self.loading = False
            self._loaded.set()
            self._notify()

    async def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()

    async def wait_until_loaded(self) -> None:
        await self._loaded.wait()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("session listener failed")

    # auth state

    def _on_auth_event(self, event: str, session: Optional[AuthSession]) -> None:
        logger.info("auth state changed", extra={"event": event})
        self._apply_session(session)
        self.loading = False
        self._loaded.set()
        self._notify()

    def _apply_session(self, session: Optional[AuthSession]) -> None:
        previous_user_id = self.user.id if self.user else None
        self.session = session
        self.user = session.user if session else None
        if self.user is None:
            self._clear_identity()
            return
        self.supabase.access_token = session.access_token
        if self.user.id != previous_user_id or self.caregiver is None:
            if self.user.id != previous_user_id:
                self.family = None
                self.caregiver = None
            self._schedule_resolution(self.user.id)

    def _clear_identity(self) -> None:
        self.session = None
        self.user = None
        self.family = None
        self.caregiver = None
        self.supabase.access_token = self.supabase.anon_key

    def _schedule_resolution(self, user_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._load_user_data(user_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _load_user_data(self, user_id: str) -> None:
        resolved = await self.resolver.resolve(user_id)
        if self.user is None or self.user.id != user_id:
            logger.info("discarding stale caregiver resolution", extra={"user_id": user_id})
            return
        self.caregiver = resolved.caregiver
        self.family = resolved.family
        logger.info(
            "caregiver resolved",
            extra={
                "user_id": user_id,
                "family_id": resolved.family.id if resolved.family else None,
            },
        )
        self._notify()

    async def refresh_user_data(self) -> None:
        if self.user is None:
            return
        await self._schedule_resolution(self.user.id)

    # operations

    async def sign_in_with_phone(self, phone: str, password: str) -> None:
        rows = await self.supabase.select(
            "caregivers",
            params={"select": "id,email,phone", "phone": f"eq.{phone}", "limit": 1},
        )
        if not rows:
            raise PhoneNotFound()
        email = rows[0].get("email")
        if not email:
            raise LegacyAccount()
        await self.auth.sign_in_with_password(email, password)

    async def sign_up_with_phone(
        self,
        phone: str,
        password: str,
        name: str,
        family_name: str,
    ) -> None:
        existing = await self.supabase.select(
            "caregivers",
            params={"select": "id", "phone": f"eq.{phone}", "limit": 1},
        )
        if existing:
            raise PhoneTaken()

        family_id = await self._resolve_or_create_family(phone, family_name)

        email = f"{uuid4()}@{self.config.auth_email_domain}"
        user = await self.auth.sign_up(email, password, {"name": name, "phone": phone})

        try:
            await self.supabase.insert(
                "caregivers",
                {
                    "id": user.id,
                    "family_id": family_id,
                    "name": name,
                    "phone": phone,
                    "email": email,
                    "relationship": DEFAULT_RELATIONSHIP,
                    "is_primary": True,
                },
            )
        except Exception:
            logger.error("caregiver insert failed, removing auth user", extra={"user_id": user.id})
            try:
                await self.auth.delete_user(user.id)
            except Exception as cleanup_exc:
                logger.error(
                    "could not remove orphaned auth user",
                    extra={"user_id": user.id},
                    exc_info=cleanup_exc,
                )
            if self.user is not None and self.user.id == user.id:
                await self.sign_out()
            raise

        logger.info("caregiver signed up", extra={"user_id": user.id, "family_id": family_id})
        if self.user is not None and self.user.id == user.id:
            await self.refresh_user_data()

    async def _resolve_or_create_family(self, phone: str, family_name: str) -> str:
        rows = await self.supabase.select(
            "families",
            params={"select": "id", "phone": f"eq.{phone}", "limit": 1},
        )
        if rows:
            return rows[0]["id"]
        created = await self.supabase.insert("families", {"name": family_name, "phone": phone})
        if not created:
            raise SupabaseError("Supabase insert failed (table=families): no row returned")
        return created[0]["id"]

    async def sign_out(self) -> None:
        self._clear_identity()
        self._notify()
        try:
            await self.auth.sign_out()
        except Exception as exc:
            logger.error("sign-out call failed", exc_info=exc)

    def snapshot(self) -> SessionState:
        return SessionState(
            loading=self.loading,
            user_id=self.user.id if self.user else None,
            user_email=self.user.email if self.user else None,
            family=self.family,
            caregiver=self.caregiver,
        )
