"""HTTP route definitions for the user service."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

import redis
from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import get_settings
from ..domain.account import AccountSummary, ProfileView
from ..domain.authentication import AuthenticationService
from ..domain.credentials import REGISTERED_MESSAGE, CredentialService
from ..domain.errors import (
    AccountError,
    AccountNotFoundError,
    InvalidCredentialsError,
)
from ..domain.validation import email_violations, password_policy_violations
from ..security.authenticator import Principal, RequestAuthenticator
from ..security.rate_limiter import RateLimiter, SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_password(value: str) -> str:
    problems = password_policy_violations(value)
    if problems:
        raise ValueError("password " + "; ".join(problems))
    return value


def _check_email(value: str) -> str:
    """Reject malformed addresses but keep the submitted spelling."""
    problems = email_violations(value)
    if problems:
        raise ValueError("email " + "; ".join(problems))
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError(f"email {exc}") from exc
    return value


AccountEmail = Annotated[str, AfterValidator(_check_email)]
StrongPassword = Annotated[str, AfterValidator(_check_password)]


class RegisterRequest(ApiModel):
    email: AccountEmail
    password: StrongPassword


class RegisterResponse(ApiModel):
    """Serialised ``AccountSummary`` plus a human-readable message."""

    id: str
    email: str
    created_at: datetime
    password_changed_at: datetime
    message: str = REGISTERED_MESSAGE

    @classmethod
    def from_domain(cls, summary: AccountSummary) -> "RegisterResponse":
        return cls(
            id=summary.account_id,
            email=summary.email,
            created_at=summary.created_at,
            password_changed_at=summary.password_changed_at,
        )


class LoginRequest(ApiModel):
    email: AccountEmail
    password: str = Field(..., min_length=1, max_length=128)


class LoginUser(ApiModel):
    id: str
    email: str


class LoginResponse(ApiModel):
    """Token issuance response containing the bearer token and metadata."""

    token: str
    token_type: str = "Bearer"
    expires_in: int
    user: LoginUser


class ForgotPasswordRequest(ApiModel):
    email: AccountEmail


class ResetPasswordRequest(ApiModel):
    token: str = Field(..., min_length=1, max_length=255)
    new_password: StrongPassword


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: StrongPassword


class ProfileResponse(ApiModel):
    id: str
    email: str
    created_at: datetime
    password_changed_at: datetime
    confirmed: bool

    @classmethod
    def from_domain(cls, profile: ProfileView) -> "ProfileResponse":
        return cls(
            id=profile.account_id,
            email=profile.email,
            created_at=profile.created_at,
            password_changed_at=profile.password_changed_at,
            confirmed=profile.confirmed,
        )


class MessageResponse(ApiModel):
    message: str


settings = get_settings()


def _build_rate_limiter() -> RateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            client = redis.from_url(settings.redis_url)
            # fail fast so a dead Redis falls back to the in-memory limiter
            client.ping()
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
            )
        except redis.RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


rate_limiter = _build_rate_limiter()


def _enforce_rate_limit(request: Request, action: str) -> None:
    client = request.client.host if request.client else "unknown"
    if not rate_limiter.allow(f"{action}:{client}"):
        logger.warning("rate limit exceeded for %s from %s", action, client)
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")


def get_credential_service(request: Request) -> CredentialService:
    """Resolve the `CredentialService` stored on the FastAPI application state."""
    service: CredentialService = request.app.state.credential_service
    return service


def get_authentication_service(request: Request) -> AuthenticationService:
    service: AuthenticationService = request.app.state.authentication_service
    return service


def get_authenticator(request: Request) -> RequestAuthenticator:
    authenticator: RequestAuthenticator = request.app.state.request_authenticator
    return authenticator


def current_principal(
    authorization: str | None = Header(default=None),
    authenticator: RequestAuthenticator = Depends(get_authenticator),
) -> Principal | None:
    """Authenticate the request once; ``None`` means anonymous."""
    return authenticator.authenticate(authorization)


def require_principal(principal: Principal | None = Depends(current_principal)) -> Principal:
    """Reject anonymous callers on routes that need an account."""
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "UNAUTHORIZED", "message": "Authentication required"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


# Authentication runs for every request on this router; dependency caching
# hands the same result to ``require_principal`` on protected routes.
router = APIRouter(prefix="/api", dependencies=[Depends(current_principal)])


@router.post(
    "/user/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["user"],
)
def register(
    request: Request,
    payload: RegisterRequest,
    service: CredentialService = Depends(get_credential_service),
) -> RegisterResponse:
    """Create an unconfirmed account and send the confirmation email."""
    _enforce_rate_limit(request, "register")
    try:
        summary = service.register_account(payload.email, payload.password)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return RegisterResponse.from_domain(summary)


@router.get("/user/confirm", response_model=MessageResponse, tags=["user"])
def confirm(
    token: str = Query(..., min_length=1, max_length=255),
    service: CredentialService = Depends(get_credential_service),
) -> MessageResponse:
    try:
        message = service.confirm_account(token)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message=message)


@router.get("/user/profile", response_model=ProfileResponse, tags=["user"])
def profile(
    principal: Principal = Depends(require_principal),
    service: CredentialService = Depends(get_credential_service),
) -> ProfileResponse:
    """Return the authenticated caller's profile."""
    try:
        view = service.get_profile(principal.email)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return ProfileResponse.from_domain(view)


@router.put("/user/change-password", response_model=MessageResponse, tags=["user"])
def change_password(
    payload: ChangePasswordRequest,
    principal: Principal = Depends(require_principal),
    service: CredentialService = Depends(get_credential_service),
) -> MessageResponse:
    try:
        message = service.change_password(
            principal.email, payload.current_password, payload.new_password
        )
    except AccountError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message=message)


@router.post("/auth/login", response_model=LoginResponse, tags=["auth"])
def login(
    request: Request,
    payload: LoginRequest,
    service: AuthenticationService = Depends(get_authentication_service),
) -> LoginResponse:
    """Exchange email and password for a bearer token."""
    _enforce_rate_limit(request, "login")
    try:
        result = service.login(payload.email, payload.password)
    except InvalidCredentialsError as exc:
        raise _http_error(exc, status.HTTP_401_UNAUTHORIZED) from exc
    return LoginResponse(
        token=result.token,
        expires_in=result.expires_in,
        user=LoginUser(id=result.account_id, email=result.email),
    )


@router.post("/auth/forgot-password", response_model=MessageResponse, tags=["auth"])
def forgot_password(
    request: Request,
    payload: ForgotPasswordRequest,
    service: AuthenticationService = Depends(get_authentication_service),
) -> MessageResponse:
    """Start a password reset; the response is identical whether or not the account exists."""
    _enforce_rate_limit(request, "forgot-password")
    return MessageResponse(message=service.initiate_password_reset(payload.email))


@router.post("/auth/reset-password", response_model=MessageResponse, tags=["auth"])
def reset_password(
    request: Request,
    payload: ResetPasswordRequest,
    service: AuthenticationService = Depends(get_authentication_service),
) -> MessageResponse:
    _enforce_rate_limit(request, "reset-password")
    try:
        message = service.complete_reset(payload.token, payload.new_password)
    except AccountError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message=message)


def _http_error(exc: AccountError, status_code: int | None = None) -> HTTPException:
    if status_code is None:
        status_code = status.HTTP_400_BAD_REQUEST
        if isinstance(exc, AccountNotFoundError):
            status_code = status.HTTP_404_NOT_FOUND
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(
        status_code=status_code,
        detail={"error": exc.code, "message": str(exc)},
        headers=headers,
    )
