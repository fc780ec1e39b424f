from __future__ import annotations

from typing import Any

from fastapi import Response

from wysteria.core.config import AuthSettings


def _cookie_kwargs(settings: AuthSettings) -> dict[str, Any]:
    kwargs: dict[str, Any] = {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "path": settings.cookie_path,
    }
    if settings.cookie_domain:
        kwargs["domain"] = settings.cookie_domain
    return kwargs


def set_session_cookie(response: Response, token: str, settings: AuthSettings) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.session_expires_in,
        **_cookie_kwargs(settings),
    )


def clear_session_cookie(response: Response, settings: AuthSettings) -> None:
    kwargs = _cookie_kwargs(settings)
    response.delete_cookie(
        key=settings.cookie_name,
        path=kwargs["path"],
        domain=kwargs.get("domain"),
        secure=kwargs["secure"],
        httponly=True,
        samesite=kwargs["samesite"],
    )
