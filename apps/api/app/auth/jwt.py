import base64
import hashlib
import hmac
import json
import time
from typing import Any

from fastapi import HTTPException, status

_HEADER = {"alg": "HS256", "typ": "JWT"}


class JwtError(Exception):
    pass


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(signing_input: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode(), signing_input, hashlib.sha256).digest()
    return _b64url_encode(digest)


def _encode_segment(value: dict[str, Any]) -> str:
    return _b64url_encode(json.dumps(value, separators=(",", ":")).encode())


def issue_jwt(payload: dict[str, Any], secret: str, expires_in_s: int = 8 * 3600) -> str:
    """Issue an HS256 token; staff tokens carry ``sub``, ``role`` and ``name``."""
    claims = {**payload, "exp": int(time.time()) + expires_in_s}
    signing_input = f"{_encode_segment(_HEADER)}.{_encode_segment(claims)}"
    return f"{signing_input}.{_sign(signing_input.encode(), secret)}"


def decode_jwt(token: str, secret: str) -> dict[str, Any]:
    try:
        encoded_header, encoded_payload, encoded_signature = token.split(".")
    except ValueError as exc:
        raise JwtError("Malformed JWT") from exc

    expected = _sign(f"{encoded_header}.{encoded_payload}".encode(), secret)
    if not hmac.compare_digest(expected, encoded_signature):
        raise JwtError("Invalid JWT signature")

    header = json.loads(_b64url_decode(encoded_header))
    if header.get("alg") != _HEADER["alg"]:
        raise JwtError("Unsupported JWT algorithm")

    payload = json.loads(_b64url_decode(encoded_payload))
    exp = payload.get("exp")
    if not isinstance(exp, int) or exp < int(time.time()):
        raise JwtError("Expired JWT")

    return payload


def jwt_http_exception(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )
