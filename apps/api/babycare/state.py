"""Per-process objects created in the app lifespan and handed to routes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from .activities import QuickActions
from .config import AppConfig
from .pages import Pages
from .records import FamilyRecords
from .session import SessionStore
from .supabase import SupabaseAuth, SupabaseClient, build_clients
from .tenant import TenantResolver


@dataclass
class AppState:
    config: AppConfig
    session: SessionStore
    pages: Pages
    actions: QuickActions
    records: FamilyRecords

    async def close(self) -> None:
        await self.pages.close()
        await self.session.close()


async def create_state(
    config: AppConfig,
    *,
    auth: Optional[SupabaseAuth] = None,
    supabase: Optional[SupabaseClient] = None,
) -> AppState:
    if auth is None or supabase is None:
        auth, supabase = build_clients(config)
    resolver = TenantResolver(
        supabase,
        max_retries=config.resolver_max_retries,
        retry_delay=config.resolver_retry_delay,
    )
    session = SessionStore(auth, supabase, resolver, config)
    pages = Pages(session, config)
    actions = QuickActions(session, on_change=pages.reload)
    await session.start()
    return AppState(
        config=config,
        session=session,
        pages=pages,
        actions=actions,
        records=pages.records,
    )


def get_state(request: Request) -> AppState:
    return request.app.state.babycare
