from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlsplit

import httpx
import structlog
from redis.asyncio import Redis
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from wysteria.auth.enums import (
    EmailOTPType,
    OAuthProviderName,
    OTPPurpose,
    SignInMethod,
)
from wysteria.auth.exceptions import (
    AccountNotLinkedError,
    InvalidCallbackURLError,
    OAuthProviderError,
    OneTimeTokenInvalidError,
    PhoneSignUpDisabledError,
    UnsupportedProviderError,
    UserNotFoundError,
)
from wysteria.auth.models import Account, User, UserSession
from wysteria.auth.oauth import (
    OAuthProfile,
    OAuthProvider,
    OAuthState,
    OAuthStateStore,
    OAuthTokens,
)
from wysteria.auth.otp import OTPService
from wysteria.auth.tokens import (
    code_challenge_s256,
    generate_code_verifier,
    generate_one_time_token,
    generate_session_token,
    generate_state,
    hash_token,
)
from wysteria.core.config import AuthSettings
from wysteria.core.constants import AUTH_BASE_PATH
from wysteria.notifications import DeliveryError, EmailSender, SmsSender, otp_message
from wysteria.observability import metrics_service
from wysteria.users import UserService, normalize_email

logger = structlog.get_logger(__name__)

_ONE_TIME_TOKEN_PREFIX = "auth:ott:"


@dataclass(frozen=True)
class IssuedSession:
    """A freshly created session together with its plaintext token."""

    token: str
    session: UserSession
    user: User


@dataclass(frozen=True)
class ResolvedSession:
    """Session looked up from a presented token."""

    session: UserSession
    user: User
    refreshed: bool = False


@dataclass(frozen=True)
class PhoneVerificationResult:
    user: User
    issued: IssuedSession | None


def _now() -> datetime:
    return datetime.now(UTC)


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}".lower()


def temp_email_for(phone_number: str, domain: str) -> str:
    return f"{phone_number.replace('+', '')}@{domain}"


def temp_name_for(phone_number: str) -> str:
    return f"User {phone_number}"


class AuthService:
    """Passwordless sign-in flows and server-side session management."""

    def __init__(
        self,
        settings: AuthSettings,
        *,
        base_url: str,
        redis: Redis,
        email_sender: EmailSender,
        sms_sender: SmsSender,
        providers: Mapping[OAuthProviderName, OAuthProvider] | None = None,
        otp_service: OTPService | None = None,
        user_service: UserService | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = base_url.rstrip("/")
        self._redis = redis
        self._email_sender = email_sender
        self._sms_sender = sms_sender
        self._providers = dict(providers or {})
        self._otp = otp_service or OTPService.from_settings(settings)
        self._users = user_service or UserService()
        self._state_store = OAuthStateStore(redis, ttl_seconds=settings.oauth_state_ttl)
        self._session_ttl = timedelta(seconds=settings.session_expires_in)
        self._update_age = timedelta(seconds=settings.session_update_age)

    @property
    def users(self) -> UserService:
        return self._users

    @property
    def providers(self) -> Mapping[OAuthProviderName, OAuthProvider]:
        return self._providers

    # Sessions

    async def create_session(
        self,
        session: AsyncSession,
        user: User,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
        method: SignInMethod | None = None,
    ) -> IssuedSession:
        token = generate_session_token()
        db_session = UserSession(
            user_id=user.id,
            token_hash=hash_token(token),
            expires_at=_now() + self._session_ttl,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        session.add(db_session)
        await session.commit()
        await session.refresh(user)
        await session.refresh(db_session)

        if method is not None:
            metrics_service.record_sign_in(method.value)
        logger.info(
            "session_created",
            user_id=str(user.id),
            method=method.value if method else None,
        )
        return IssuedSession(token=token, session=db_session, user=user)

    async def resolve_session(
        self, session: AsyncSession, token: str
    ) -> ResolvedSession | None:
        """Return the live session for ``token``, sliding its expiry if due.

        Once ``session_update_age`` has elapsed since the expiry was last set,
        the expiry is pushed out to a full ``session_expires_in`` again.
        """

        db_session = await session.scalar(
            select(UserSession).where(UserSession.token_hash == hash_token(token))
        )
        if db_session is None:
            return None

        now = _now()
        if db_session.expires_at <= now:
            await session.delete(db_session)
            await session.commit()
            return None

        user = await session.get(User, db_session.user_id)
        if user is None:
            return None

        refreshed = False
        if db_session.expires_at - self._session_ttl + self._update_age <= now:
            db_session.expires_at = now + self._session_ttl
            await session.commit()
            refreshed = True

        return ResolvedSession(session=db_session, user=user, refreshed=refreshed)

    async def revoke_session(self, session: AsyncSession, token: str) -> bool:
        result = await session.execute(
            delete(UserSession).where(UserSession.token_hash == hash_token(token))
        )
        await session.commit()
        revoked = bool(result.rowcount)
        if revoked:
            logger.info("session_revoked")
        return revoked

    async def list_sessions(
        self, session: AsyncSession, user_id: uuid.UUID
    ) -> list[UserSession]:
        stmt = (
            select(UserSession)
            .where(UserSession.user_id == user_id)
            .where(UserSession.expires_at > _now())
            .order_by(UserSession.created_at.desc())
        )
        result = await session.scalars(stmt)
        return list(result)

    # Email OTP

    async def send_email_otp(
        self, session: AsyncSession, *, email: str, otp_type: EmailOTPType
    ) -> bool:
        """Issue and deliver an email passcode.

        Returns ``False`` when nothing was sent: verification codes are only
        delivered to addresses that already belong to a user.
        """

        email = normalize_email(email)
        if otp_type is EmailOTPType.EMAIL_VERIFICATION:
            user = await self._users.get_user_by_email(session, email)
            if user is None:
                logger.info("email_verification_skipped_unknown_user")
                return False

        code = await self._otp.issue(
            session, purpose=OTPPurpose(otp_type.value), value=email
        )
        try:
            await self._email_sender.send_otp(email, code, otp_type)
        except DeliveryError:
            metrics_service.record_otp_sent("email", "failure")
            raise
        metrics_service.record_otp_sent("email")
        return True

    async def sign_in_email_otp(
        self,
        session: AsyncSession,
        *,
        email: str,
        otp: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedSession:
        email = normalize_email(email)
        await self._otp.verify(session, purpose=OTPPurpose.SIGN_IN, value=email, code=otp)

        user = await self._users.get_user_by_email(session, email)
        if user is None:
            user = await self._users.create_user(
                session, email=email, name="", email_verified=True
            )
            metrics_service.record_user_registration(SignInMethod.EMAIL_OTP.value)
            logger.info("user_registered", user_id=str(user.id), source="email-otp")
        elif not user.email_verified:
            user.email_verified = True

        return await self.create_session(
            session,
            user,
            user_agent=user_agent,
            ip_address=ip_address,
            method=SignInMethod.EMAIL_OTP,
        )

    async def verify_email_otp(
        self, session: AsyncSession, *, email: str, otp: str
    ) -> User:
        email = normalize_email(email)
        await self._otp.verify(
            session, purpose=OTPPurpose.EMAIL_VERIFICATION, value=email, code=otp
        )

        user = await self._users.get_user_by_email(session, email)
        if user is None:
            await session.commit()
            raise UserNotFoundError("User not found")

        user.email_verified = True
        await session.commit()
        await session.refresh(user)
        logger.info("email_verified", user_id=str(user.id))
        return user

    # Phone number OTP

    async def send_phone_otp(self, session: AsyncSession, *, phone_number: str) -> None:
        code = await self._otp.issue(
            session, purpose=OTPPurpose.PHONE_NUMBER, value=phone_number
        )
        try:
            await self._sms_sender.send(phone_number, otp_message(code))
        except DeliveryError:
            metrics_service.record_otp_sent("sms", "failure")
            raise
        metrics_service.record_otp_sent("sms")

    async def verify_phone_number(
        self,
        session: AsyncSession,
        *,
        phone_number: str,
        code: str,
        disable_session: bool = False,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> PhoneVerificationResult:
        await self._otp.verify(
            session, purpose=OTPPurpose.PHONE_NUMBER, value=phone_number, code=code
        )

        user = await self._users.get_user_by_phone_number(session, phone_number)
        if user is None:
            if not self._settings.sign_up_on_phone_verification:
                await session.commit()
                raise PhoneSignUpDisabledError("User not found")

            user = await self._users.create_user(
                session,
                email=temp_email_for(phone_number, self._settings.temp_email_domain),
                name=temp_name_for(phone_number),
                email_verified=False,
                phone_number=phone_number,
                phone_number_verified=True,
            )
            metrics_service.record_user_registration(SignInMethod.PHONE_NUMBER.value)
            logger.info("user_registered", user_id=str(user.id), source="phone-number")
        else:
            user.phone_number_verified = True

        if disable_session:
            await session.commit()
            await session.refresh(user)
            return PhoneVerificationResult(user=user, issued=None)

        issued = await self.create_session(
            session,
            user,
            user_agent=user_agent,
            ip_address=ip_address,
            method=SignInMethod.PHONE_NUMBER,
        )
        return PhoneVerificationResult(user=issued.user, issued=issued)

    # OAuth

    def _provider(self, name: str) -> OAuthProvider:
        try:
            provider_name = OAuthProviderName(name)
        except ValueError as exc:
            raise UnsupportedProviderError(f"Provider {name} is not supported") from exc

        provider = self._providers.get(provider_name)
        if provider is None:
            raise UnsupportedProviderError(f"Provider {name} is not configured")
        return provider

    def redirect_uri(self, provider: OAuthProviderName) -> str:
        return f"{self._base_url}{AUTH_BASE_PATH}/callback/{provider.value}"

    def validate_callback_url(self, callback_url: str | None) -> str:
        """Accept relative paths and absolute URLs on a trusted origin."""

        if not callback_url:
            return "/"
        if callback_url.startswith("/") and not callback_url.startswith("//"):
            return callback_url

        parts = urlsplit(callback_url)
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise InvalidCallbackURLError("Invalid callbackURL")

        trusted = {_origin(origin) for origin in self._settings.trusted_origins}
        trusted.add(_origin(self._base_url))
        if _origin(callback_url) not in trusted:
            raise InvalidCallbackURLError("Invalid callbackURL")
        return callback_url

    async def start_oauth(self, provider_name: str, callback_url: str | None) -> str:
        provider = self._provider(provider_name)
        target = self.validate_callback_url(callback_url)

        state = generate_state()
        code_verifier = generate_code_verifier() if provider.uses_pkce else None
        await self._state_store.save(
            state,
            OAuthState(
                provider=provider.name,
                code_verifier=code_verifier,
                callback_url=target,
            ),
        )
        logger.info("oauth_started", provider=provider.name.value)
        return provider.build_authorization_url(
            state=state,
            code_challenge=code_challenge_s256(code_verifier) if code_verifier else None,
            redirect_uri=self.redirect_uri(provider.name),
        )

    async def consume_oauth_state(self, provider_name: str, state: str) -> OAuthState:
        provider = self._provider(provider_name)
        return await self._state_store.consume(state, provider.name)

    async def complete_oauth(
        self,
        session: AsyncSession,
        client: httpx.AsyncClient,
        *,
        oauth_state: OAuthState,
        code: str,
        extra: Mapping[str, Any] | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedSession:
        provider = self._provider(oauth_state.provider.value)
        tokens = await provider.exchange_code(
            client,
            code=code,
            code_verifier=oauth_state.code_verifier,
            redirect_uri=self.redirect_uri(provider.name),
        )
        profile = await provider.fetch_profile(client, tokens, extra=extra)
        return await self.sign_in_oauth(
            session,
            profile=profile,
            tokens=tokens,
            user_agent=user_agent,
            ip_address=ip_address,
        )

    async def sign_in_oauth(
        self,
        session: AsyncSession,
        *,
        profile: OAuthProfile,
        tokens: OAuthTokens,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> IssuedSession:
        """Link the provider account to a user and open a session."""

        provider_id = profile.provider.value
        account = await session.scalar(
            select(Account)
            .where(Account.provider_id == provider_id)
            .where(Account.account_id == profile.account_id)
        )

        user: User | None = None
        if account is not None:
            user = await session.get(User, account.user_id)

        if user is None:
            if not profile.email:
                raise OAuthProviderError("Provider did not share an email address")

            user = await self._users.get_user_by_email(session, profile.email)
            if user is not None and not profile.email_verified:
                raise AccountNotLinkedError("Account not linked")

            if user is None:
                user = await self._users.create_user(
                    session,
                    email=profile.email,
                    name=profile.name,
                    email_verified=profile.email_verified,
                    image=profile.image,
                )
                metrics_service.record_user_registration(provider_id)
                logger.info("user_registered", user_id=str(user.id), source=provider_id)
            elif not user.email_verified:
                user.email_verified = True

        if account is None:
            account = Account(
                user_id=user.id,
                provider_id=provider_id,
                account_id=profile.account_id,
            )
            session.add(account)
            logger.info("account_linked", user_id=str(user.id), provider=provider_id)

        account.access_token = tokens.access_token
        if tokens.refresh_token:
            account.refresh_token = tokens.refresh_token
        account.id_token = tokens.id_token
        account.scope = tokens.scope
        account.access_token_expires_at = tokens.access_token_expires_at(_now())

        if not user.name and profile.name:
            user.name = profile.name
        if not user.image and profile.image:
            user.image = profile.image

        return await self.create_session(
            session,
            user,
            user_agent=user_agent,
            ip_address=ip_address,
            method=SignInMethod(provider_id),
        )

    # One-time tokens

    async def issue_one_time_token(self, session_token: str) -> str:
        token = generate_one_time_token()
        await self._redis.set(
            f"{_ONE_TIME_TOKEN_PREFIX}{hash_token(token)}",
            session_token,
            ex=self._settings.one_time_token_ttl,
        )
        return token

    async def redeem_one_time_token(
        self, session: AsyncSession, token: str
    ) -> IssuedSession:
        session_token = await self._redis.getdel(
            f"{_ONE_TIME_TOKEN_PREFIX}{hash_token(token)}"
        )
        if session_token is None:
            raise OneTimeTokenInvalidError("Invalid token")

        resolved = await self.resolve_session(session, session_token)
        if resolved is None:
            raise OneTimeTokenInvalidError("Invalid token")

        metrics_service.record_sign_in(SignInMethod.ONE_TIME_TOKEN.value)
        return IssuedSession(
            token=session_token, session=resolved.session, user=resolved.user
        )
