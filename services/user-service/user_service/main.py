"""FastAPI application wiring for the user service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as api_router
from .config import Settings, get_settings
from .domain.authentication import AuthenticationService
from .domain.contracts import AccountStore, Notifier
from .domain.credentials import CredentialService
from .domain.errors import InfrastructureError
from .memory_repository import InMemoryAccountRepository
from .notifications import EmailNotifier, LoggingMailer, Mailer, QueuedNotifier, SmtpMailer
from .repository import AccountRepository
from .security.authenticator import RequestAuthenticator
from .security.passwords import PasswordHasher
from .security.tokens import TokenIssuer

logger = logging.getLogger(__name__)

settings = get_settings()


def build_notifier(config: Settings) -> QueuedNotifier:
    """Email notifier behind the bounded dispatch pool."""
    mailer: Mailer
    if config.smtp_host:
        mailer = SmtpMailer(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            starttls=config.smtp_starttls,
            timeout=config.smtp_timeout_seconds,
        )
    else:
        logger.warning("SMTP_HOST not configured, account emails will only be logged")
        mailer = LoggingMailer()
    return QueuedNotifier(
        EmailNotifier(
            mailer,
            base_url=config.base_url,
            sender=config.mail_from,
            reset_ttl=timedelta(seconds=config.reset_token_ttl_seconds),
        ),
        max_workers=config.notifier_workers,
        max_pending=config.notifier_max_pending,
    )


def wire_services(app: FastAPI, config: Settings, store: AccountStore, notifier: Notifier) -> None:
    """Build the signing key, hasher and services once and attach them to ``app.state``."""
    hasher = PasswordHasher(rounds=config.bcrypt_rounds)
    issuer = TokenIssuer(
        config.jwt_secret,
        ttl_seconds=config.jwt_ttl_seconds,
        issuer=config.jwt_issuer,
    )
    app.state.account_store = store
    app.state.token_issuer = issuer
    app.state.credential_service = CredentialService(store, notifier, hasher)
    app.state.authentication_service = AuthenticationService(
        store,
        notifier,
        hasher,
        issuer,
        reset_token_ttl=timedelta(seconds=config.reset_token_ttl_seconds),
    )
    app.state.request_authenticator = RequestAuthenticator(issuer, store)


async def infrastructure_error_handler(request: Request, exc: InfrastructureError) -> JSONResponse:
    logger.error("request %s %s failed in %s", request.method, request.url.path, exc.operation)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"error": "INTERNAL_SERVER_ERROR", "message": "internal server error"}},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (store, notifier, services) for the app lifecycle."""
    pool: ConnectionPool | None = None
    store: AccountStore
    if settings.account_store_backend == "memory":
        logger.warning("using in-memory account store; data is lost on restart")
        store = InMemoryAccountRepository()
    else:
        pool = ConnectionPool(settings.database_url, open=False)
        pool.open()
        app.state.pool = pool
        store = AccountRepository(pool)

    notifier = build_notifier(settings)
    wire_services(app, settings, store, notifier)
    try:
        yield
    finally:
        notifier.shutdown(wait=True)
        if pool is not None:
            pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept", "Origin"],
    max_age=3600,
)
app.add_exception_handler(InfrastructureError, infrastructure_error_handler)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(api_router)
