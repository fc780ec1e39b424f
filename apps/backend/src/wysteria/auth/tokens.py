from __future__ import annotations

import base64
import hashlib
import secrets

SESSION_TOKEN_BYTES = 32
STATE_BYTES = 24
CODE_VERIFIER_BYTES = 48


def hash_token(token: str) -> str:
    """Digest stored in place of session tokens and passcodes."""

    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_session_token() -> str:
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def generate_one_time_token() -> str:
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def generate_otp(length: int) -> str:
    return f"{secrets.randbelow(10**length):0{length}d}"


def generate_state() -> str:
    return secrets.token_urlsafe(STATE_BYTES)


def generate_code_verifier() -> str:
    return secrets.token_urlsafe(CODE_VERIFIER_BYTES)


def code_challenge_s256(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
