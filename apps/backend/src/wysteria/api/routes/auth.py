from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import orjson
import structlog
from fastapi import APIRouter, Depends, Form, HTTPException, Request, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.api.schemas.users import UserRead
from wysteria.auth.cookies import clear_session_cookie, set_session_cookie
from wysteria.auth.dependencies import (
    CurrentUser,
    get_auth_service,
    get_current_user,
    get_db,
    get_oauth_client,
    get_rate_limiter,
    get_session_token,
)
from wysteria.auth.exceptions import (
    AccountNotLinkedError,
    AuthError,
    InvalidCallbackURLError,
    OAuthProviderError,
    OAuthStateError,
    OneTimeTokenInvalidError,
    OTPAttemptsExceededError,
    OTPExpiredError,
    OTPInvalidError,
    PhoneSignUpDisabledError,
    UnsupportedProviderError,
    UserNotFoundError,
)
from wysteria.auth.models import User
from wysteria.auth.rate_limiter import RateLimiter
from wysteria.auth.schemas import (
    OneTimeTokenVerifyRequest,
    PhoneVerifyResponse,
    SendPhoneOTPRequest,
    SendVerificationOTPRequest,
    SessionRead,
    SessionResponse,
    SessionTokenResponse,
    SignInEmailOTPRequest,
    SocialSignInRequest,
    SocialSignInResponse,
    SuccessResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
    VerifyPhoneRequest,
)
from wysteria.auth.service import AuthService, IssuedSession
from wysteria.core.config import Settings, get_settings
from wysteria.core.constants import AUTH_BASE_PATH
from wysteria.notifications import DeliveryError
from wysteria.security import client_ip

router = APIRouter(prefix=AUTH_BASE_PATH, tags=["Auth"])
logger = structlog.get_logger(__name__)


def _user_to_read(user: User) -> UserRead:
    return UserRead.model_validate(user)


def _client_meta(request: Request) -> dict[str, str | None]:
    return {
        "user_agent": request.headers.get("user-agent"),
        "ip_address": client_ip(request),
    }


def _map_auth_error(exc: AuthError) -> HTTPException:
    if isinstance(exc, OTPExpiredError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="OTP expired"
        )
    if isinstance(exc, OTPAttemptsExceededError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Too many attempts"
        )
    if isinstance(exc, OTPInvalidError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OTP"
        )
    if isinstance(exc, (UserNotFoundError, PhoneSignUpDisabledError)):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="User not found"
        )
    if isinstance(exc, UnsupportedProviderError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Provider not found"
        )
    if isinstance(exc, InvalidCallbackURLError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Invalid callbackURL"
        )
    if isinstance(exc, OAuthStateError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OAuth state"
        )
    if isinstance(exc, OAuthProviderError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, OneTimeTokenInvalidError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token"
        )
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST, detail="Authentication failed"
    )


def _delivery_failed(exc: DeliveryError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Failed to send verification code",
    )


def _with_query(url: str, **params: str) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


def _session_token_response(
    response: Response, issued: IssuedSession, settings: Settings
) -> SessionTokenResponse:
    set_session_cookie(response, issued.token, settings.auth)
    return SessionTokenResponse(token=issued.token, user=_user_to_read(issued.user))


@router.post(
    "/email-otp/send-verification-otp",
    response_model=SuccessResponse,
    summary="Send an email one-time passcode",
)
async def send_verification_otp(
    payload: SendVerificationOTPRequest,
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> SuccessResponse:
    await rate_limiter.check_send("email-otp", payload.email)
    try:
        await auth_service.send_email_otp(
            session, email=payload.email, otp_type=payload.type
        )
    except DeliveryError as exc:
        raise _delivery_failed(exc) from exc
    return SuccessResponse()


@router.post(
    "/sign-in/email-otp",
    response_model=SessionTokenResponse,
    summary="Sign in with an email one-time passcode",
)
async def sign_in_email_otp(
    payload: SignInEmailOTPRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> SessionTokenResponse:
    await rate_limiter.check_verify("email-otp", payload.email)
    try:
        issued = await auth_service.sign_in_email_otp(
            session, email=payload.email, otp=payload.otp, **_client_meta(request)
        )
    except AuthError as exc:
        raise _map_auth_error(exc) from exc
    return _session_token_response(response, issued, settings)


@router.post(
    "/email-otp/verify-email",
    response_model=VerifyEmailResponse,
    summary="Verify an email address with a one-time passcode",
)
async def verify_email(
    payload: VerifyEmailRequest,
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> VerifyEmailResponse:
    await rate_limiter.check_verify("email-otp", payload.email)
    try:
        user = await auth_service.verify_email_otp(
            session, email=payload.email, otp=payload.otp
        )
    except AuthError as exc:
        raise _map_auth_error(exc) from exc
    return VerifyEmailResponse(status=True, user=_user_to_read(user))


@router.post(
    "/phone-number/send-otp",
    response_model=SuccessResponse,
    summary="Send a one-time passcode by SMS",
)
async def send_phone_otp(
    payload: SendPhoneOTPRequest,
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> SuccessResponse:
    await rate_limiter.check_send("phone-number", payload.phone_number)
    try:
        await auth_service.send_phone_otp(session, phone_number=payload.phone_number)
    except DeliveryError as exc:
        raise _delivery_failed(exc) from exc
    return SuccessResponse()


@router.post(
    "/phone-number/verify",
    response_model=PhoneVerifyResponse,
    summary="Verify a phone number and sign in",
)
async def verify_phone_number(
    payload: VerifyPhoneRequest,
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> PhoneVerifyResponse:
    await rate_limiter.check_verify("phone-number", payload.phone_number)
    try:
        result = await auth_service.verify_phone_number(
            session,
            phone_number=payload.phone_number,
            code=payload.code,
            disable_session=payload.disable_session,
            **_client_meta(request),
        )
    except AuthError as exc:
        raise _map_auth_error(exc) from exc

    token: str | None = None
    if result.issued is not None:
        token = result.issued.token
        set_session_cookie(response, token, settings.auth)
    return PhoneVerifyResponse(status=True, token=token, user=_user_to_read(result.user))


@router.post(
    "/sign-in/social",
    response_model=SocialSignInResponse,
    summary="Start an OAuth sign-in",
)
async def sign_in_social(
    payload: SocialSignInRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SocialSignInResponse:
    try:
        url = await auth_service.start_oauth(payload.provider, payload.callback_url)
    except AuthError as exc:
        raise _map_auth_error(exc) from exc
    return SocialSignInResponse(url=url, redirect=True)


async def _complete_callback(
    request: Request,
    *,
    provider: str,
    code: str | None,
    state: str | None,
    error: str | None,
    extra: dict[str, Any] | None,
    session: AsyncSession,
    auth_service: AuthService,
    client: httpx.AsyncClient,
    settings: Settings,
) -> RedirectResponse:
    if not state:
        raise _map_auth_error(OAuthStateError("Missing state"))

    try:
        oauth_state = await auth_service.consume_oauth_state(provider, state)
    except AuthError as exc:
        raise _map_auth_error(exc) from exc

    if error or not code:
        logger.info("oauth_callback_error", provider=provider, error=error)
        return RedirectResponse(
            _with_query(oauth_state.callback_url, error=error or "missing_code"),
            status_code=status.HTTP_302_FOUND,
        )

    try:
        issued = await auth_service.complete_oauth(
            session,
            client,
            oauth_state=oauth_state,
            code=code,
            extra=extra,
            **_client_meta(request),
        )
    except OAuthProviderError as exc:
        logger.warning("oauth_sign_in_failed", provider=provider, reason=str(exc))
        reason = (
            "account_not_linked"
            if isinstance(exc, AccountNotLinkedError)
            else "oauth_provider_error"
        )
        return RedirectResponse(
            _with_query(oauth_state.callback_url, error=reason),
            status_code=status.HTTP_302_FOUND,
        )

    one_time_token = await auth_service.issue_one_time_token(issued.token)
    redirect = RedirectResponse(
        _with_query(oauth_state.callback_url, ott=one_time_token),
        status_code=status.HTTP_302_FOUND,
    )
    set_session_cookie(redirect, issued.token, settings.auth)
    return redirect


@router.get("/callback/{provider}", summary="OAuth redirect callback")
async def oauth_callback(
    provider: str,
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    client: httpx.AsyncClient = Depends(get_oauth_client),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    return await _complete_callback(
        request,
        provider=provider,
        code=code,
        state=state,
        error=error,
        extra=None,
        session=session,
        auth_service=auth_service,
        client=client,
        settings=settings,
    )


@router.post("/callback/{provider}", summary="OAuth form_post callback")
async def oauth_form_post_callback(
    provider: str,
    request: Request,
    code: str | None = Form(default=None),
    state: str | None = Form(default=None),
    error: str | None = Form(default=None),
    user: str | None = Form(default=None),
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    client: httpx.AsyncClient = Depends(get_oauth_client),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    extra: dict[str, Any] | None = None
    if user:
        try:
            extra = {"user": orjson.loads(user)}
        except orjson.JSONDecodeError:
            logger.warning("oauth_callback_user_unparseable", provider=provider)

    return await _complete_callback(
        request,
        provider=provider,
        code=code,
        state=state,
        error=error,
        extra=extra,
        session=session,
        auth_service=auth_service,
        client=client,
        settings=settings,
    )


@router.post(
    "/one-time-token/verify",
    response_model=SessionTokenResponse,
    summary="Exchange a one-time token for the session it was issued for",
)
async def verify_one_time_token(
    payload: OneTimeTokenVerifyRequest,
    response: Response,
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> SessionTokenResponse:
    try:
        issued = await auth_service.redeem_one_time_token(session, payload.token)
    except AuthError as exc:
        raise _map_auth_error(exc) from exc
    return _session_token_response(response, issued, settings)


@router.get(
    "/get-session",
    response_model=SessionResponse | None,
    summary="Return the current session, or null",
)
async def get_session(
    request: Request,
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> SessionResponse | None:
    current_session = getattr(request.state, "current_session", None)
    current_user = getattr(request.state, "current_user", None)
    if current_session is None or not isinstance(current_user, CurrentUser):
        return None

    user = await auth_service.users.get_user_by_id(session, current_user.id)
    if user is None:
        return None
    return SessionResponse(
        session=SessionRead.model_validate(current_session),
        user=_user_to_read(user),
    )


@router.get(
    "/list-sessions",
    response_model=list[SessionRead],
    summary="List the active sessions of the current user",
)
async def list_sessions(
    current_user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> list[SessionRead]:
    sessions = await auth_service.list_sessions(session, current_user.id)
    return [SessionRead.model_validate(item) for item in sessions]


@router.post("/sign-out", response_model=SuccessResponse, summary="Sign out")
async def sign_out(
    response: Response,
    token: str | None = Depends(get_session_token),
    session: AsyncSession = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> SuccessResponse:
    if token is not None:
        await auth_service.revoke_session(session, token)
    clear_session_cookie(response, settings.auth)
    return SuccessResponse()
