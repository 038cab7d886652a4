# tokens.py
# Issue and verify signed session tokens. Secret and lifetime come from
# JWT_SECRET_KEY / JWT_ACCESS_TOKEN_EXPIRES, read once by JWTManager.

from typing import NamedTuple

from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from errors import Unauthenticated


class TokenClaims(NamedTuple):
    subject: str
    issued_at: int


def issue_token(user_id) -> str:
    return create_access_token(identity=str(user_id))


def verify_token(token: str) -> TokenClaims:
    if not token:
        raise Unauthenticated("You are not logged in! Please log in to get access.")
    try:
        decoded = decode_token(token)
    except (PyJWTError, JWTExtendedException):
        raise Unauthenticated("Invalid or expired token. Please log in again.")
    return TokenClaims(subject=decoded["sub"], issued_at=int(decoded["iat"]))
