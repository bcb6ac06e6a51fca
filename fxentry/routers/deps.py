"""Shared FastAPI dependencies.

create_app() overrides these when it is given explicit settings, so tests can
run against a temporary database and a fake rate provider.
"""

from fxentry.core.config import Settings, get_settings
from fxentry.db.dal import Database
from fxentry.services.rates.cache_service import RateCache, get_rate_cache
from fxentry.services.sessions import SessionRegistry, get_session_registry

__all__ = [
    "Settings",
    "RateCache",
    "SessionRegistry",
    "get_settings",
    "get_db",
    "get_rate_cache",
    "get_session_registry",
]


def get_db() -> Database:
    settings = get_settings()
    return Database(settings.db_path)
