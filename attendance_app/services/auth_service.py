"""Signed bearer tokens carrying ``{userId, role}``.

Issued by ``POST /auth/login``; checked by the HTTP routes (``Authorization``
header) and by the realtime hub (``/ws?token=...``).  Any decode failure surfaces as
:class:`~attendance_app.exceptions.AuthenticationError`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from werkzeug.security import check_password_hash

from attendance_app.config import Settings
from attendance_app.exceptions import AuthenticationError
from attendance_app.schemas.events import Role

logger = logging.getLogger(__name__)


def password_matches(password_hash: str, candidate: str) -> bool:
    """Check a login password against a werkzeug hash.  No hash never matches."""
    if not password_hash:
        return False
    return check_password_hash(password_hash, candidate)


@dataclass(frozen=True)
class Identity:
    """Verified caller identity.  Immutable for the life of a connection."""
    user_id: str
    role: Role


class TokenService:
    def __init__(self, settings: Settings) -> None:
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._lifetime = timedelta(days=settings.jwt_expires_days)

    def issue(self, user_id: str, role: Role | str, lifetime: timedelta | None = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userId": str(user_id),
            "role": Role(role).value,
            "iat": int(now.timestamp()),
            "exp": int((now + (lifetime if lifetime is not None else self._lifetime)).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str | None) -> Identity:
        if not token:
            raise AuthenticationError("Token missing")

        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token expired") from exc
        except jwt.PyJWTError as exc:
            raise AuthenticationError("Invalid token") from exc

        user_id = payload.get("userId")
        if not user_id:
            raise AuthenticationError("Invalid token")
        try:
            role = Role(payload.get("role"))
        except ValueError as exc:
            raise AuthenticationError("Invalid token") from exc

        return Identity(user_id=str(user_id), role=role)
