from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.catalog.errors import ForbiddenError, UnauthorizedError
from app.catalog.models import User


def user_has_role(user: User | None, role: str) -> bool:
    if not user or not user.is_active:
        return False
    return user.role == role


def current_user() -> User:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        raise UnauthorizedError()
    return user


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Session gate: no store call happens for an unauthenticated request."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_user()
        return fn(*args, **kwargs)

    return wrapped


def require_role(role: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            # Authenticated but unauthorized → 403
            if not user_has_role(user, role):
                g.missing_role = role
                raise ForbiddenError(f"Requires {role} role.")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
