import pytest
from fastapi import HTTPException

from app.auth.dependencies import (
    get_auth_context,
    get_optional_auth_context,
    require_roles,
)
from app.auth.jwt import JwtError, decode_jwt, issue_jwt
from app.config import settings


def _bearer(payload: dict, secret: str | None = None, expires_in_s: int = 60) -> str:
    return f"Bearer {issue_jwt(payload, secret or settings.jwt_secret, expires_in_s)}"


def test_get_auth_context_requires_bearer():
    with pytest.raises(HTTPException) as exc_info:
        get_auth_context(None)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Missing bearer token"


def test_get_auth_context_reads_role_and_name():
    auth = get_auth_context(_bearer({"sub": "prep-1", "role": "PREPARER", "name": "Awa"}))

    assert auth.user_id == "prep-1"
    assert auth.role == "PREPARER"
    assert auth.name == "Awa"


@pytest.mark.parametrize(
    "payload",
    [{"sub": "x", "role": "OPS"}, {"role": "CASHIER"}, {"sub": 42, "role": "CASHIER"}],
)
def test_get_auth_context_rejects_bad_claims(payload):
    with pytest.raises(HTTPException) as exc_info:
        get_auth_context(_bearer(payload))
    assert exc_info.value.detail == "Invalid JWT claims"


def test_get_auth_context_rejects_foreign_signature():
    with pytest.raises(HTTPException) as exc_info:
        get_auth_context(_bearer({"sub": "x", "role": "ADMIN"}, secret="someone-else"))
    assert exc_info.value.detail == "Invalid JWT"


def test_expired_token_is_rejected():
    token = issue_jwt({"sub": "x", "role": "ADMIN"}, settings.jwt_secret, expires_in_s=-10)
    with pytest.raises(JwtError, match="Expired"):
        decode_jwt(token, settings.jwt_secret)


def test_optional_auth_context_allows_anonymous():
    assert get_optional_auth_context(None) is None
    assert get_optional_auth_context(_bearer({"sub": "c", "role": "CUSTOMER"})).role == "CUSTOMER"


def test_require_roles_rejects_other_roles():
    dependency = require_roles("CASHIER", "ADMIN")
    preparer = get_auth_context(_bearer({"sub": "p", "role": "PREPARER"}))

    with pytest.raises(HTTPException) as exc_info:
        dependency(preparer)
    assert exc_info.value.status_code == 403
