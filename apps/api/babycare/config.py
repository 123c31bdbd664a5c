"""Application configuration utilities."""
from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json and the environment."""

    supabase_url: Optional[str] = Field(default=None)
    supabase_anon_key: Optional[str] = Field(default=None)
    supabase_service_role_key: Optional[str] = Field(default=None)
    auth_email_domain: str = Field(default="babybot.app")
    session_file: Optional[str] = Field(default=None)
    log_level: str = Field(default="INFO")
    request_timeout: float = Field(default=15.0)

    # Page loader defaults
    loader_retry_delay: float = Field(default=2.0)
    loader_max_retries: int = Field(default=3)
    tenant_poll_interval: float = Field(default=0.8)

    # Caregiver/family resolution
    resolver_retry_delay: float = Field(default=1.0)
    resolver_max_retries: int = Field(default=2)

    @property
    def resolved_session_path(self) -> Optional[Path]:
        """Return the absolute path of the persisted auth session, if any."""
        if not self.session_file:
            return None
        return (Path(__file__).resolve().parents[1] / self.session_file).resolve()

    def supabase_credentials(self) -> tuple[str, str]:
        if not self.supabase_url or not self.supabase_anon_key:
            raise RuntimeError("Missing SUPABASE_URL/SUPABASE_ANON_KEY for API access.")
        return self.supabase_url.rstrip("/"), self.supabase_anon_key


def _config_path() -> Path:
    return Path(__file__).resolve().parents[1] / "config.json"


_ENV_OVERRIDES = {
    "supabase_url": ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
    "supabase_anon_key": ("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY"),
    "supabase_service_role_key": ("SUPABASE_SERVICE_ROLE_KEY",),
    "auth_email_domain": ("BABYCARE_AUTH_EMAIL_DOMAIN",),
    "session_file": ("BABYCARE_SESSION_FILE",),
    "log_level": ("BABYCARE_LOG_LEVEL",),
}


def load_config(config_file: Optional[Path] = None) -> AppConfig:
    """Load configuration from config.json (optional), then apply env overrides."""

    config_file = config_file or _config_path()
    contents: Dict[str, Any] = {}
    if config_file.exists():
        contents = json.loads(config_file.read_text())

    for field, env_names in _ENV_OVERRIDES.items():
        for name in env_names:
            value = os.getenv(name)
            if value:
                contents[field] = value
                break
    return AppConfig(**contents)


@lru_cache
def get_config() -> AppConfig:
    return load_config()
