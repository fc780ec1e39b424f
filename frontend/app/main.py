from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal, TypedDict, cast
from urllib.parse import urljoin

import phonenumbers
from fastapi import Depends, FastAPI, Form, Query, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from pydantic_settings import BaseSettings, SettingsConfigDict
from starlette.middleware.sessions import SessionMiddleware

from .gateway import (
    BackendError,
    BackendGateway,
    SessionResult,
    UnauthorizedError,
    UserPayload,
)

TEMPLATES_DIR = Path(__file__).parent / "templates"
CODE_LENGTH = 6
SOCIAL_PROVIDERS = {"apple": "Apple", "google": "Google"}

LoginMethod = Literal["phone", "email"]


class FlashMessage(TypedDict):
    level: str
    text: str


class PendingLogin(TypedDict):
    method: LoginMethod
    identifier: str


class AuthSession(TypedDict):
    token: str
    user: UserPayload


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    backend_url: str = "http://backend:3000"
    public_url: str = "http://localhost:8080"
    session_secret: str = "front-secret-key"
    default_region: str = "US"


templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
settings = Settings()
app = FastAPI(title="Wysteria")
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    same_site="lax",
)

_gateway = BackendGateway(base_url=settings.backend_url)
app.state.gateway = _gateway
app.state.settings = settings


def get_gateway() -> BackendGateway:
    gateway = getattr(app.state, "gateway", None)
    if isinstance(gateway, BackendGateway):
        return gateway
    raise RuntimeError("Backend gateway is not configured")


def classify_identifier(
    value: str, default_region: str = "US"
) -> tuple[LoginMethod, str]:
    """Route a login identifier to the phone or the email flow.

    Anything that parses as a valid phone number is normalised to E.164;
    everything else is treated as an email address.
    """
    candidate = value.strip()
    try:
        parsed = phonenumbers.parse(candidate, default_region)
    except phonenumbers.NumberParseException:
        return "email", candidate.lower()
    if phonenumbers.is_valid_number(parsed):
        return "phone", phonenumbers.format_number(
            parsed, phonenumbers.PhoneNumberFormat.E164
        )
    return "email", candidate.lower()


def _consume_flash(request: Request) -> list[FlashMessage]:
    messages_raw = request.session.pop("_messages", [])
    if not isinstance(messages_raw, list):
        return []
    messages: list[FlashMessage] = []
    for item in messages_raw:
        if isinstance(item, Mapping):
            level = item.get("level")
            text = item.get("text")
            if isinstance(level, str) and isinstance(text, str):
                messages.append({"level": level, "text": text})
    return messages


def _flash(request: Request, level: str, message: str) -> None:
    messages_raw = request.session.get("_messages")
    if not isinstance(messages_raw, list):
        messages_raw = []
    messages_raw.append({"level": level, "text": message})
    request.session["_messages"] = messages_raw


def _get_pending_login(request: Request) -> PendingLogin | None:
    raw = request.session.get("pending_login")
    if not isinstance(raw, Mapping):
        return None
    method = raw.get("method")
    identifier = raw.get("identifier")
    if method not in ("phone", "email") or not isinstance(identifier, str):
        return None
    return {"method": cast(LoginMethod, method), "identifier": identifier}


def _get_auth_session(request: Request) -> AuthSession | None:
    raw = request.session.get("auth")
    if not isinstance(raw, Mapping):
        return None
    token = raw.get("token")
    user = raw.get("user")
    if not isinstance(token, str) or not token:
        return None
    return {"token": token, "user": cast(UserPayload, user or {})}


def _store_auth_session(request: Request, result: SessionResult) -> None:
    request.session["auth"] = {"token": result.token, "user": dict(result.user)}
    request.session.pop("pending_login", None)


def _clear_auth(request: Request) -> None:
    request.session.pop("auth", None)
    request.session.pop("pending_login", None)


def _redirect(request: Request, name: str) -> RedirectResponse:
    return RedirectResponse(
        url=request.url_for(name), status_code=status.HTTP_303_SEE_OTHER
    )


async def _send_code(gateway: BackendGateway, pending: PendingLogin) -> None:
    if pending["method"] == "phone":
        await gateway.send_phone_otp(pending["identifier"])
    else:
        await gateway.send_email_otp(pending["identifier"])


def _render_login(
    request: Request,
    *,
    step: Literal["login", "verify"],
    messages: list[FlashMessage],
    identifier: str = "",
    form_error: str | None = None,
    status_code: int = status.HTTP_200_OK,
) -> Response:
    context: dict[str, object] = {
        "messages": messages,
        "step": step,
        "identifier": identifier,
        "form_error": form_error,
        "code_length": CODE_LENGTH,
        "providers": SOCIAL_PROVIDERS,
    }
    return templates.TemplateResponse(
        request, "login.html", context, status_code=status_code
    )


@app.get("/", name="home")
async def home(request: Request) -> RedirectResponse:
    if _get_auth_session(request):
        return _redirect(request, "profile")
    return _redirect(request, "login_page")


@app.get("/login", response_class=HTMLResponse, name="login_page")
async def login_page(request: Request) -> Response:
    if _get_auth_session(request):
        return _redirect(request, "profile")
    return _render_login(request, step="login", messages=_consume_flash(request))


@app.post("/login", response_class=HTMLResponse, name="login_submit")
async def login_submit(
    request: Request,
    gateway: BackendGateway = Depends(get_gateway),
    identifier: str = Form("", description="Phone number or email"),
) -> Response:
    messages = _consume_flash(request)
    if not identifier.strip():
        return _render_login(
            request,
            step="login",
            messages=messages,
            form_error="Enter your phone number or email",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    method, normalised = classify_identifier(identifier, settings.default_region)
    pending: PendingLogin = {"method": method, "identifier": normalised}
    try:
        await _send_code(gateway, pending)
    except BackendError as exc:
        return _render_login(
            request,
            step="login",
            messages=[*messages, {"level": "error", "text": exc.message}],
            identifier=identifier,
            form_error=exc.message,
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    request.session["pending_login"] = dict(pending)
    _flash(request, "success", f"Verification code sent to your {method}.")
    return _redirect(request, "verify_page")


@app.get("/login/verify", response_class=HTMLResponse, name="verify_page")
async def verify_page(request: Request) -> Response:
    pending = _get_pending_login(request)
    if pending is None:
        return _redirect(request, "login_page")
    return _render_login(
        request,
        step="verify",
        messages=_consume_flash(request),
        identifier=pending["identifier"],
    )


@app.post("/login/verify", response_class=HTMLResponse, name="verify_submit")
async def verify_submit(
    request: Request,
    gateway: BackendGateway = Depends(get_gateway),
    code: str = Form(""),
) -> Response:
    pending = _get_pending_login(request)
    if pending is None:
        _flash(request, "info", "Start by entering your phone number or email.")
        return _redirect(request, "login_page")

    code = code.strip()
    if len(code) != CODE_LENGTH:
        return _render_login(
            request,
            step="verify",
            messages=_consume_flash(request),
            identifier=pending["identifier"],
            form_error=f"Enter the {CODE_LENGTH}-digit code",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        if pending["method"] == "phone":
            result = await gateway.verify_phone_number(pending["identifier"], code)
        else:
            result = await gateway.sign_in_email_otp(pending["identifier"], code)
    except BackendError as exc:
        _flash(request, "error", exc.message or "Invalid verification code")
        return _redirect(request, "verify_page")

    _store_auth_session(request, result)
    _flash(request, "success", "Successfully signed in!")
    return _redirect(request, "profile")


@app.post("/login/resend", name="resend_code")
async def resend_code(
    request: Request, gateway: BackendGateway = Depends(get_gateway)
) -> RedirectResponse:
    pending = _get_pending_login(request)
    if pending is None:
        return _redirect(request, "login_page")
    try:
        await _send_code(gateway, pending)
    except BackendError as exc:
        _flash(request, "error", exc.message)
    else:
        _flash(request, "info", f"A new code was sent to {pending['identifier']}.")
    return _redirect(request, "verify_page")


@app.post("/login/back", name="login_back")
async def login_back(request: Request) -> RedirectResponse:
    request.session.pop("pending_login", None)
    return _redirect(request, "login_page")


@app.get("/login/social/{provider}", name="social_sign_in")
async def social_sign_in(
    request: Request,
    provider: str,
    gateway: BackendGateway = Depends(get_gateway),
) -> RedirectResponse:
    if provider not in SOCIAL_PROVIDERS:
        _flash(request, "error", "Unsupported sign-in provider.")
        return _redirect(request, "login_page")

    callback_url = urljoin(settings.public_url.rstrip("/") + "/", "auth/complete")
    try:
        url = await gateway.social_sign_in_url(provider, callback_url)
    except BackendError as exc:
        _flash(request, "error", exc.message)
        return _redirect(request, "login_page")
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


@app.get("/auth/complete", name="auth_complete")
async def auth_complete(
    request: Request,
    gateway: BackendGateway = Depends(get_gateway),
    ott: str | None = Query(None),
    error: str | None = Query(None),
) -> RedirectResponse:
    if error or not ott:
        _flash(request, "error", f"Sign-in failed: {error or 'missing token'}")
        return _redirect(request, "login_page")
    try:
        result = await gateway.verify_one_time_token(ott)
    except BackendError as exc:
        _flash(request, "error", exc.message)
        return _redirect(request, "login_page")

    _store_auth_session(request, result)
    _flash(request, "success", "Successfully signed in!")
    return _redirect(request, "profile")


@app.get("/profile", response_class=HTMLResponse, name="profile")
async def profile(
    request: Request, gateway: BackendGateway = Depends(get_gateway)
) -> Response:
    messages = _consume_flash(request)
    auth = _get_auth_session(request)
    if not auth:
        _flash(request, "info", "Sign in to manage your profile.")
        return _redirect(request, "login_page")

    try:
        user_payload = await gateway.get_current_user(auth["token"])
    except UnauthorizedError:
        _clear_auth(request)
        _flash(request, "info", "Your session has expired. Please sign in again.")
        return _redirect(request, "login_page")
    except BackendError as exc:
        error_context: dict[str, object] = {
            "messages": [*messages, {"level": "error", "text": exc.message}],
            "user": auth["user"],
            "load_error": exc.message,
        }
        return templates.TemplateResponse(
            request,
            "profile.html",
            error_context,
            status_code=status.HTTP_502_BAD_GATEWAY,
        )

    request.session["auth"] = {"token": auth["token"], "user": dict(user_payload)}
    context: dict[str, object] = {
        "messages": messages,
        "user": user_payload,
        "load_error": None,
    }
    return templates.TemplateResponse(request, "profile.html", context)


@app.post("/profile", response_class=HTMLResponse, name="update_profile")
async def update_profile(
    request: Request,
    gateway: BackendGateway = Depends(get_gateway),
    name: str = Form(""),
    image: str = Form(""),
) -> Response:
    auth = _get_auth_session(request)
    if not auth:
        _flash(request, "info", "Please sign in to update your profile.")
        return _redirect(request, "login_page")

    payload: dict[str, Any] = {"image": image.strip() or None}
    if name.strip():
        payload["name"] = name.strip()

    try:
        user_payload = await gateway.update_profile(auth["token"], payload)
    except UnauthorizedError:
        _clear_auth(request)
        _flash(request, "info", "Your session has expired. Please sign in again.")
        return _redirect(request, "login_page")
    except BackendError as exc:
        context: dict[str, object] = {
            "messages": [{"level": "error", "text": exc.message}],
            "user": auth["user"],
            "load_error": exc.message,
        }
        return templates.TemplateResponse(
            request,
            "profile.html",
            context,
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    request.session["auth"] = {"token": auth["token"], "user": dict(user_payload)}
    _flash(request, "success", "Profile updated successfully.")
    return _redirect(request, "profile")


@app.post("/logout", name="logout")
async def logout(
    request: Request, gateway: BackendGateway = Depends(get_gateway)
) -> RedirectResponse:
    auth = _get_auth_session(request)
    if auth:
        try:
            await gateway.sign_out(auth["token"])
        except BackendError as exc:
            _flash(request, "warning", exc.message)
    _clear_auth(request)
    _flash(request, "success", "You have been signed out.")
    return _redirect(request, "login_page")


@app.get("/health", response_class=JSONResponse)
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok"})
