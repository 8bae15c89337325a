"""Authentication endpoints: register, login, refresh, logout and session revocation."""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import Settings, get_settings
from storefront.core.deps import require_auth
from storefront.core.errors import Unauthenticated
from storefront.db.base import get_db
from storefront.schemas.auth import (
    LoginRequest,
    MessageResponse,
    Principal,
    PublicUser,
    RegisterRequest,
    SessionResponse,
)
from storefront.services import accounts

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_refresh_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=token,
        max_age=settings.REFRESH_TOKEN_TTL_SECONDS,
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite="lax",
        path="/auth",
    )


def client_address(request: Request, settings: Settings) -> str | None:
    """Caller address for login throttling; the first X-Forwarded-For hop when behind a trusted proxy."""
    if settings.TRUST_FORWARDED_FOR:
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if forwarded:
            return forwarded[:64]
    return request.client.host if request.client else None


def _session_response(session: accounts.IssuedSession, response: Response, settings: Settings) -> SessionResponse:
    _set_refresh_cookie(response, session.refresh_token, settings)
    return SessionResponse(user=PublicUser.from_user(session.user), access_token=session.access_token)


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Create a customer account and sign it in."""
    session = await accounts.register(db, body, settings)
    return _session_response(session, response, settings)


@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Authenticate via phone + password, return an access token and set the refresh cookie."""
    session = await accounts.login(db, body, settings, client_address(request, settings))
    return _session_response(session, response, settings)


@router.post("/refresh", response_model=SessionResponse)
async def refresh(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        session = await accounts.refresh(db, request.cookies.get(settings.REFRESH_COOKIE_NAME), settings)
    except Unauthenticated as exc:
        exc.clear_cookie = settings.REFRESH_COOKIE_NAME
        raise
    return _session_response(session, response, settings)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response, settings: Settings = Depends(get_settings)):
    response.delete_cookie(settings.REFRESH_COOKIE_NAME, path="/auth")
    return MessageResponse(message="Logged out.")


@router.post("/revoke", response_model=MessageResponse)
async def revoke(
    response: Response,
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Sign out everywhere: every access and refresh token issued so far stops working."""
    await accounts.revoke_sessions(db, principal.subject_id)
    response.delete_cookie(settings.REFRESH_COOKIE_NAME, path="/auth")
    return MessageResponse(message="All sessions revoked.")


@router.get("/me", response_model=PublicUser)
async def get_me(
    principal: Principal = Depends(require_auth()),
    db: AsyncSession = Depends(get_db),
):
    user = await accounts.get_profile(db, principal.subject_id)
    return PublicUser.from_user(user)
