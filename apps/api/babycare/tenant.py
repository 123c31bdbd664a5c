"""Resolve a signed-in principal into its caregiver profile and family."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import is_transient
from .schemas import Caregiver, Family
from .supabase import SupabaseClient

logger = logging.getLogger(__name__)


@dataclass
class ResolvedTenant:
    caregiver: Optional[Caregiver] = None
    family: Optional[Family] = None


class TenantResolver:
    def __init__(
        self,
        supabase: SupabaseClient,
        *,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ) -> None:
        self.supabase = supabase
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    async def resolve(self, principal_id: str) -> ResolvedTenant:
        """Never raises; failures are logged and yield a partial or empty result."""
        attempt = 0
        while True:
            try:
                return await self._resolve_once(principal_id)
            except Exception as exc:
                retryable = is_transient(exc) and attempt < self.max_retries
                logger.warning(
                    "caregiver lookup failed",
                    extra={"user_id": principal_id, "attempt": attempt, "retrying": retryable},
                    exc_info=exc,
                )
                if not retryable:
                    return ResolvedTenant()
                attempt += 1
                await asyncio.sleep(self.retry_delay)

    async def _resolve_once(self, principal_id: str) -> ResolvedTenant:
        rows = await self.supabase.select(
            "caregivers",
            params={"select": "*", "id": f"eq.{principal_id}", "limit": 1},
        )
        if not rows:
            # Normal right after sign-up, before the caregiver row lands.
            logger.info("no caregiver for principal yet", extra={"user_id": principal_id})
            return ResolvedTenant()
        caregiver = Caregiver(**rows[0])

        try:
            family_rows = await self.supabase.select(
                "families",
                params={"select": "*", "id": f"eq.{caregiver.family_id}", "limit": 1},
            )
        except Exception as exc:
            logger.error(
                "family lookup failed",
                extra={"user_id": principal_id, "family_id": caregiver.family_id},
                exc_info=exc,
            )
            return ResolvedTenant(caregiver=caregiver)
        if not family_rows:
            logger.error(
                "family row missing",
                extra={"user_id": principal_id, "family_id": caregiver.family_id},
            )
            return ResolvedTenant(caregiver=caregiver)
        return ResolvedTenant(caregiver=caregiver, family=Family(**family_rows[0]))
