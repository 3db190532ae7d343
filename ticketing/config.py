"""
Environment-driven settings.

Read once at process start by the gateway; everything downstream gets
its collaborators from the app instead of reading the environment.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv

DEFAULT_CORS_ORIGINS = ["*"]


@dataclass
class Settings:
    database_url: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None
    cors_allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    gateway_port: int = 5050


def parse_origins(raw: Optional[str]) -> List[str]:
    """Split a comma-separated allow-list, e.g. "https://a.example, https://b.example"."""
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or list(DEFAULT_CORS_ORIGINS)


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise RuntimeError(f"{name} is not set. Please set the environment variable.")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment (and .env, when present).

    Raises:
        RuntimeError: A required variable is missing.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    supabase_key = env.get("SUPABASE_SERVICE_KEY") or env.get("SUPABASE_ANON_KEY")
    if not supabase_key:
        raise RuntimeError("SUPABASE_SERVICE_KEY (or SUPABASE_ANON_KEY) is missing. Set it in .env")

    return Settings(
        database_url=_require(env, "DATABASE_URL"),
        supabase_url=_require(env, "SUPABASE_URL"),
        supabase_key=supabase_key,
        supabase_jwt_secret=env.get("SUPABASE_JWT_SECRET") or None,
        cors_allowed_origins=parse_origins(env.get("CORS_ALLOWED_ORIGINS")),
        gateway_port=int(env.get("GATEWAY_PORT", 5050)),
    )
