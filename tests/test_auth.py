from __future__ import annotations

from datetime import datetime, timezone

import pytest

from laundrydesk.auth import TokenSigner, bearer_token, hash_password, verify_password
from laundrydesk.domain import Principal, User
from laundrydesk.errors import AuthenticationError


def _user(password: str) -> User:
    return User(
        id=3,
        username="eve",
        role="employee",
        status="active",
        phone_number=None,
        password_hash=hash_password(password),
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_password_hash_round_trip():
    user = _user("s3cret!")
    assert user.password_hash != "s3cret!"
    assert verify_password(user, "s3cret!")
    assert not verify_password(user, "wrong")


def test_token_carries_principal():
    signer = TokenSigner("key", 60)
    token = signer.issue(Principal(id=3, username="eve", role="employee"))
    assert signer.load(token) == Principal(id=3, username="eve", role="employee")


def test_token_signed_with_other_key_is_invalid():
    token = TokenSigner("other", 60).issue(Principal(id=1, username="a", role="admin"))
    with pytest.raises(AuthenticationError, match="Invalid token"):
        TokenSigner("key", 60).load(token)


def test_expired_token():
    signer = TokenSigner("key", -1)
    token = signer.issue(Principal(id=1, username="a", role="admin"))
    with pytest.raises(AuthenticationError, match="expired"):
        signer.load(token)


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer ", "token"])
def test_bearer_token_missing(header):
    with pytest.raises(AuthenticationError, match="Token missing"):
        bearer_token(header)


def test_bearer_token_extracts_value():
    assert bearer_token("Bearer abc.def") == "abc.def"
