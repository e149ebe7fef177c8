from datetime import datetime, timedelta, timezone

import jwt
import pytest

from auth import Principal, create_access_token, decode_token, get_current_user
from auth.auth_utils import JWT_ALG, JWT_SECRET
from linguista.errors import Unauthenticated


def _token(**overrides):
    payload = {
        "sub": "user-1",
        "email": "user1@example.com",
        "aud": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def test_round_trip_principal():
    token = create_access_token("user-1", "user1@example.com")
    assert get_current_user(f"Bearer {token}") == Principal(id="user-1", email="user1@example.com")


@pytest.mark.parametrize("header", [
    None,
    "",
    "Bearer ",
    "Token abc",
    "Bearer not-a-jwt",
])
def test_malformed_header(header):
    with pytest.raises(Unauthenticated):
        get_current_user(header)


def test_expired_token():
    token = _token(exp=datetime.now(timezone.utc) - timedelta(minutes=1))
    assert decode_token(token) is None
    with pytest.raises(Unauthenticated):
        get_current_user(f"Bearer {token}")


def test_wrong_audience():
    assert decode_token(_token(aud="anon")) is None


def test_wrong_secret():
    token = jwt.encode({"sub": "user-1", "aud": "authenticated"}, "another-secret-of-sufficient-length!", algorithm="HS256")
    assert decode_token(token) is None


def test_missing_subject():
    with pytest.raises(Unauthenticated):
        get_current_user(f"Bearer {_token(sub=None)}")


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
