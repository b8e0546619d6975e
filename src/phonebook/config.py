"""Settings read from environment variables. The entry point loads .env first."""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from phonebook.infrastructure.carddav import DEFAULT_BATCH_SIZE, DEFAULT_TIMEOUT
from phonebook.infrastructure.memory_cache import DEFAULT_TTL_SECONDS

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    server_url: str = ""
    username: str = ""
    password: str = ""
    allowed_books: tuple[str, ...] = ()
    cache_ttl_seconds: float = DEFAULT_TTL_SECONDS
    sync_interval_minutes: float = 3.0
    background_sync: bool = False
    request_timeout: float = DEFAULT_TIMEOUT
    batch_size: int = DEFAULT_BATCH_SIZE
    phone_region: str = "DE"
    demo_fallback: bool = True

    @property
    def configured(self) -> bool:
        """True when server URL and credentials are all present; otherwise demo mode."""
        return bool(self.server_url and self.username and self.password)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environ (default os.environ). Bad values raise ValueError."""
        env = os.environ if environ is None else environ
        allowed = _string(env, "ALLOWED_ADDRESSBOOKS")
        return cls(
            # CARDAV_* is the spelling older deployments use.
            server_url=_string(env, "CARDDAV_SERVER_URL", "CARDAV_SERVER_URL"),
            username=_string(env, "CARDDAV_USERNAME", "CARDAV_USERNAME"),
            password=_string(env, "CARDDAV_PASSWORD", "CARDAV_PASSWORD"),
            allowed_books=tuple(b.strip() for b in allowed.split(",") if b.strip()),
            cache_ttl_seconds=_number(env, "CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS),
            sync_interval_minutes=_number(env, "SYNC_INTERVAL_MINUTES", 3.0),
            background_sync=_flag(env, "BACKGROUND_SYNC", False),
            request_timeout=_number(env, "HTTP_TIMEOUT", DEFAULT_TIMEOUT),
            batch_size=int(_number(env, "FETCH_BATCH_SIZE", DEFAULT_BATCH_SIZE)),
            phone_region=(_string(env, "PHONE_REGION") or "DE").upper(),
            demo_fallback=_flag(env, "DEMO_FALLBACK", True),
        )


def _string(env: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return ""


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _string(env, name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}.")
    return value


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _string(env, name).lower()
    if not raw:
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be true or false, got {raw!r}.")
