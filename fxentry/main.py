import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from .core.config import get_settings, Settings
from .core.logging import init_logging, request_context_middleware
from .db.dal import Database
from .db.migrate import apply_migrations
from .db.seed import seed_accounts, seed_balance
from .core import errors
from .routers import accounts, deps, health, ledger, rates, sessions
from .services.rates.base import RateProvider
from .services.rates.cache_service import build_rate_cache
from .services.sessions import SessionRegistry

logger = logging.getLogger("fxentry")

ERROR_HANDLERS = (
    (StarletteHTTPException, errors.http_error_handler),
    (RequestValidationError, errors.validation_error_handler),
    (errors.DuplicateConfirmation, errors.duplicate_confirmation_handler),
    (errors.ConfirmationNotAllowed, errors.confirmation_not_allowed_handler),
    (errors.RateUnavailable, errors.rate_unavailable_handler),
    (errors.InsufficientFunds, errors.insufficient_funds_handler),
    (errors.UnsupportedCurrency, errors.unsupported_currency_handler),
    (errors.SessionNotFound, errors.lookup_error_handler),
    (errors.AccountNotFound, errors.lookup_error_handler),
    (Exception, errors.server_error_handler),
)


def _prepare_database(settings: Settings) -> None:
    """Migrate, then seed linked accounts and the wallet balance row if empty."""
    try:
        version = apply_migrations(settings.db_path)  # type: ignore[arg-type]
        added = seed_accounts(settings.db_path)  # type: ignore[arg-type]
        seed_balance(settings.db_path, settings.storage_currency)  # type: ignore[arg-type]
    except Exception:
        logger.exception("failed to prepare database %s", settings.db_path)
        raise
    logger.info("database ready at schema v%d (%d accounts seeded)", version, added)


def _bind_dependencies(app: FastAPI, settings: Settings, provider: Optional[RateProvider]) -> None:
    rate_cache = build_rate_cache(settings, provider)
    registry = SessionRegistry.from_settings(settings, rate_cache)
    app.dependency_overrides[deps.get_settings] = lambda: settings
    app.dependency_overrides[deps.get_db] = lambda: Database(settings.db_path)
    app.dependency_overrides[deps.get_rate_cache] = lambda: rate_cache
    app.dependency_overrides[deps.get_session_registry] = lambda: registry
    app.state.rate_cache = rate_cache
    app.state.sessions = registry


def create_app(
    settings_override: Settings | None = None,
    rate_provider: Optional[RateProvider] = None,
) -> FastAPI:
    """Application factory.

    settings_override: an already built Settings (tests use a temp DB).
    rate_provider: replaces the configured provider (tests, offline runs).
    Either one gives the app its own rate cache and session registry instead
    of the process-wide singletons.
    """
    settings = settings_override or get_settings()
    init_logging(debug=settings.debug)
    _prepare_database(settings)

    app = FastAPI(title=settings.app_name, debug=settings.debug, version=settings.version)
    if settings_override is not None or rate_provider is not None:
        _bind_dependencies(app, settings, rate_provider)

    app.middleware("http")(request_context_middleware)
    for exc_class, handler in ERROR_HANDLERS:
        app.add_exception_handler(exc_class, handler)

    for module in (health, accounts, rates, sessions, ledger):
        app.include_router(module.router)

    @app.get("/")
    async def root():
        return {"message": "fxentry amount reconciliation API", "version": settings.version}

    return app


app = create_app()
