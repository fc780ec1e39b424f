from __future__ import annotations

from wysteria.auth.tokens import (
    code_challenge_s256,
    generate_otp,
    generate_session_token,
    hash_token,
)


def test_hash_token_is_stable_sha256() -> None:
    digest = hash_token("session-token")
    assert digest == hash_token("session-token")
    assert len(digest) == 64
    assert digest != "session-token"


def test_generate_otp_is_zero_padded_digits() -> None:
    for _ in range(50):
        code = generate_otp(6)
        assert len(code) == 6
        assert code.isdigit()


def test_session_tokens_are_unique() -> None:
    tokens = {generate_session_token() for _ in range(20)}
    assert len(tokens) == 20


def test_code_challenge_matches_rfc7636_example() -> None:
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert code_challenge_s256(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
