from __future__ import annotations

import time
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from jose import jwt

from carton_mes.auth import _parse_token_subject, decode_token, has_privileged_role, user_roles
from carton_mes.config import settings


def _token(**claims) -> str:
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest.mark.parametrize(
    ("role", "expected"),
    [
        ("planner", True),
        ("Admin", True),
        ("printer, planner", True),
        ("printer,corrugator", False),
        ("", False),
        (None, False),
    ],
)
def test_privileged_roles(role, expected) -> None:
    assert has_privileged_role(SimpleNamespace(id="u-1", role=role)) is expected


def test_user_roles_splits_comma_separated_list() -> None:
    assert user_roles(SimpleNamespace(role=" Printer ,corrugator,,")) == {"printer", "corrugator"}


def test_decode_accepts_valid_token() -> None:
    now = int(time.time())
    payload = decode_token(_token(sub="op-1", exp=now + 60, iat=now))

    assert payload["sub"] == "op-1"


def test_decode_rejects_expired_token() -> None:
    now = int(time.time())

    with pytest.raises(HTTPException) as exc:
        decode_token(_token(sub="op-1", exp=now - settings.JWT_LEEWAY_SECONDS - 60))

    assert exc.value.status_code == 401
    assert exc.value.detail == "Token expired"


def test_decode_rejects_token_without_expiry() -> None:
    with pytest.raises(HTTPException):
        decode_token(_token(sub="op-1"))


def test_decode_rejects_future_issued_token() -> None:
    now = int(time.time())

    with pytest.raises(HTTPException):
        decode_token(_token(sub="op-1", exp=now + 3600, iat=now + 600))


def test_decode_rejects_bad_signature() -> None:
    forged = jwt.encode({"sub": "op-1", "exp": int(time.time()) + 60}, "not-the-key", algorithm="HS256")

    with pytest.raises(HTTPException):
        decode_token(forged)


def test_subject_falls_back_to_user_id_claim() -> None:
    assert _parse_token_subject({"userId": 42}) == "42"
    with pytest.raises(HTTPException):
        _parse_token_subject({})
