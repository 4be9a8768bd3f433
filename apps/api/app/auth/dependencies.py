from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, status

from app.auth.jwt import decode_jwt, jwt_http_exception
from app.config import allowed_roles_list, settings

AllowedRole = str

STAFF_ROLES = ("PREPARER", "CASHIER", "ADMIN")


@dataclass
class AuthContext:
    user_id: str
    role: AllowedRole
    name: str | None = None


SYSTEM_ACTOR = AuthContext(user_id="system", role="SYSTEM", name="system")


def _context_from_token(authorization: str) -> AuthContext:
    token = authorization.removeprefix("Bearer ").strip()
    try:
        payload = decode_jwt(token, settings.jwt_secret)
    except Exception as err:
        raise jwt_http_exception("Invalid JWT") from err

    role = payload.get("role")
    user_id = payload.get("sub")
    if role not in allowed_roles_list() or not isinstance(user_id, str):
        raise jwt_http_exception("Invalid JWT claims")

    name = payload.get("name")
    return AuthContext(user_id=user_id, role=role, name=name if isinstance(name, str) else None)


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    if not authorization or not authorization.startswith("Bearer "):
        raise jwt_http_exception("Missing bearer token")
    return _context_from_token(authorization)


def get_optional_auth_context(
    authorization: str | None = Header(default=None),
) -> AuthContext | None:
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise jwt_http_exception("Missing bearer token")
    return _context_from_token(authorization)


def require_roles(*roles: str) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return auth

    return dependency


require_staff = require_roles(*STAFF_ROLES)
require_admin = require_roles("ADMIN")
