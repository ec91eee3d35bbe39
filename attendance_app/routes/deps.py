"""Request dependencies: the app container and the authenticated caller."""
from typing import Callable

from fastapi import Depends, Header, Request

from attendance_app.container import Container
from attendance_app.exceptions import AuthenticationError, ForbiddenError
from attendance_app.schemas.events import Role
from attendance_app.services.auth_service import Identity

UNAUTHORIZED_MESSAGE = "Unauthorized, token missing or invalid"


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_current_identity(
    container: Container = Depends(get_container),
    authorization: str | None = Header(default=None),
) -> Identity:
    """Accept the raw token or ``Bearer <token>`` in the Authorization header."""
    token = (authorization or "").strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()

    try:
        return container.tokens.verify(token)
    except AuthenticationError as exc:
        raise AuthenticationError(UNAUTHORIZED_MESSAGE) from exc


def require_role(role: Role) -> Callable[[Identity], Identity]:
    def _check(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role is not role:
            raise ForbiddenError(f"Forbidden, {role.value} access required")
        return identity

    return _check
