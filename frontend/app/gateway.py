from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TypeAlias, TypedDict, cast

import httpx
from fastapi import status

JSONPrimitive = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict: TypeAlias = dict[str, JSONValue]

AUTH_PREFIX = "/api/auth"
API_V1_PREFIX = "/api/v1"


class UserPayload(TypedDict, total=False):
    id: str
    name: str
    email: str
    emailVerified: bool
    image: str | None
    phoneNumber: str | None
    phoneNumberVerified: bool | None
    createdAt: str
    updatedAt: str


@dataclass(slots=True)
class SessionResult:
    """Session token and user returned by a successful sign-in."""

    token: str
    user: UserPayload


class BackendError(Exception):
    """Raised when the backend returns an unexpected response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UnauthorizedError(BackendError):
    """Raised when the backend indicates the user is not authenticated."""


class BackendGateway:
    """Typed wrapper around the Wysteria auth and v1 HTTP APIs."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    @staticmethod
    def _bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def health(self) -> JSONDict:
        async with self._client() as client:
            response = await client.get(f"{API_V1_PREFIX}/health")
        if response.status_code != status.HTTP_200_OK:
            self._raise_error(response)
        return self._json_object(response)

    async def send_email_otp(self, email: str, otp_type: str = "sign-in") -> None:
        async with self._client() as client:
            response = await client.post(
                f"{AUTH_PREFIX}/email-otp/send-verification-otp",
                json={"email": email, "type": otp_type},
            )
        if response.status_code != status.HTTP_200_OK:
            self._raise_error(response)

    async def sign_in_email_otp(self, email: str, otp: str) -> SessionResult:
        async with self._client() as client:
            response = await client.post(
                f"{AUTH_PREFIX}/sign-in/email-otp",
                json={"email": email, "otp": otp},
            )
        return self._session_result(response)

    async def send_phone_otp(self, phone_number: str) -> None:
        async with self._client() as client:
            response = await client.post(
                f"{AUTH_PREFIX}/phone-number/send-otp",
                json={"phoneNumber": phone_number},
            )
        if response.status_code != status.HTTP_200_OK:
            self._raise_error(response)

    async def verify_phone_number(self, phone_number: str, code: str) -> SessionResult:
        async with self._client() as client:
            response = await client.post(
                f"{AUTH_PREFIX}/phone-number/verify",
                json={"phoneNumber": phone_number, "code": code},
            )
        return self._session_result(response)

    async def social_sign_in_url(self, provider: str, callback_url: str) -> str:
        async with self._client() as client:
            response = await client.post(
                f"{AUTH_PREFIX}/sign-in/social",
                json={"provider": provider, "callbackURL": callback_url},
            )
        if response.status_code != status.HTTP_200_OK:
            self._raise_error(response)
        url = self._json_object(response).get("url")
        if not isinstance(url, str):
            raise BackendError("Missing authorization URL", response.status_code)
        return url

    async def verify_one_time_token(self, token: str) -> SessionResult:
        async with self._client() as client:
            response = await client.post(
                f"{AUTH_PREFIX}/one-time-token/verify", json={"token": token}
            )
        return self._session_result(response)

    async def get_current_user(self, token: str) -> UserPayload:
        async with self._client() as client:
            response = await client.get(
                f"{API_V1_PREFIX}/user/me", headers=self._bearer(token)
            )
        if response.status_code != status.HTTP_200_OK:
            self._raise_error(response)
        return cast(UserPayload, self._json_object(response))

    async def update_profile(
        self, token: str, payload: dict[str, Any]
    ) -> UserPayload:
        async with self._client() as client:
            response = await client.patch(
                f"{API_V1_PREFIX}/user/me",
                json=payload,
                headers=self._bearer(token),
            )
        if response.status_code != status.HTTP_200_OK:
            self._raise_error(response)
        return cast(UserPayload, self._json_object(response))

    async def sign_out(self, token: str) -> None:
        async with self._client() as client:
            response = await client.post(
                f"{AUTH_PREFIX}/sign-out", headers=self._bearer(token)
            )
        if response.status_code not in {
            status.HTTP_200_OK,
            status.HTTP_401_UNAUTHORIZED,
        }:
            self._raise_error(response)

    def _session_result(self, response: httpx.Response) -> SessionResult:
        if response.status_code != status.HTTP_200_OK:
            self._raise_error(response)
        data = self._json_object(response)
        token = data.get("token")
        user = data.get("user")
        if not isinstance(token, str) or not isinstance(user, dict):
            raise BackendError("Sign-in response is incomplete", response.status_code)
        return SessionResult(token=token, user=cast(UserPayload, user))

    @staticmethod
    def _json_object(response: httpx.Response) -> JSONDict:
        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendError(
                "Invalid JSON payload", status_code=response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise BackendError(
                "Unexpected JSON payload", status_code=response.status_code
            )
        return cast(JSONDict, payload)

    @staticmethod
    def _raise_error(response: httpx.Response) -> None:
        message: str
        try:
            payload = response.json()
            if isinstance(payload, dict):
                detail = payload.get("detail") or payload.get("message") or payload
                if isinstance(detail, list) and detail and isinstance(detail[0], dict):
                    detail = detail[0].get("msg", detail)
                message = str(detail)
            else:
                message = str(payload)
        except ValueError:
            message = response.text or "Unexpected backend response"

        if response.status_code == status.HTTP_401_UNAUTHORIZED:
            raise UnauthorizedError(message, status_code=response.status_code)
        raise BackendError(message, status_code=response.status_code)
