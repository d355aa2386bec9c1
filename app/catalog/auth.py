from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from sqlalchemy.exc import IntegrityError

from app.catalog.audit import record_event
from app.catalog.db import db_session
from app.catalog.errors import ConflictError, UnauthorizedError, ValidationError
from app.catalog.models import User
from app.catalog.rbac import current_user, require_login
from app.catalog.security import MIN_PASSWORD_LENGTH, ensure_csrf_token, hash_password, verify_password
from app.catalog.utils import clean_str, is_valid_email, request_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


@dataclass(frozen=True)
class SessionState:
    authenticated: bool
    user_id: int | None = None


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def normalize_email(email: str | None) -> str:
    return clean_str(email).lower()


def verify_session() -> SessionState:
    """
    Resolve the signed session cookie to a user id. Only active users count
    as authenticated.
    """
    raw = session.get("user_id")
    if not raw:
        return SessionState(authenticated=False)
    try:
        user_id = int(raw)
    except (TypeError, ValueError):
        return SessionState(authenticated=False)
    user = db_session().get(User, user_id)
    if not user or not user.is_active:
        return SessionState(authenticated=False)
    return SessionState(authenticated=True, user_id=user.id)


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/uploads/", "/health", "/healthz")):
        g.current_user = None
        return

    try:
        state = verify_session()
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None
        return

    if not state.authenticated:
        session.pop("user_id", None)
        g.current_user = None
        return
    g.current_user = db_session().get(User, state.user_id)


@bp.get("/csrf")
def csrf_token():
    return jsonify({"csrfToken": ensure_csrf_token()})


@bp.post("/register")
def register():
    s = db_session()
    data = request_payload()
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    name = clean_str(data.get("name"))

    if not email or not password or not name:
        raise ValidationError("Please provide all required fields")
    if not is_valid_email(email):
        raise ValidationError("Invalid email format.", field="email")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", field="password")

    if s.query(User).filter(User.email == email).one_or_none():
        raise ConflictError("Email already registered", field="email")

    user = User(email=email, password_hash=hash_password(password), name=name, role="user", is_active=True)
    s.add(user)
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise ConflictError("Email already registered", field="email")

    record_event(s, actor=user, action="auth.register", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("New user registered: %s", user.email)
    return jsonify({"success": True, "message": "User registered successfully", "user": user.to_dict()}), 201


@bp.post("/login")
def login():
    data = request_payload()
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    ip = request.remote_addr or "unknown"

    if not email or not password:
        raise ValidationError("Please provide email and password")

    if _check_rate_limit(ip):
        return jsonify({"error": "Too many login attempts. Please wait 5 minutes.", "code": "rate_limited"}), 429

    _record_attempt(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        raise UnauthorizedError("Invalid email or password")

    session["user_id"] = user.id
    session.permanent = True
    _login_attempts[ip].clear()
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("User logged in: %s", user.email)
    return jsonify({"success": True, "user": user.to_dict()})


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return jsonify({"success": True, "message": "Logged out successfully"})


@bp.get("/check")
def check():
    user = getattr(g, "current_user", None)
    if not user:
        return jsonify({"isAuthenticated": False})
    return jsonify({"isAuthenticated": True, "user": user.to_dict()})


@bp.put("/profile")
@require_login
def update_profile():
    s = db_session()
    user = current_user()
    name = clean_str(request_payload().get("name"))
    if not name:
        raise ValidationError("Name is required.", field="name")

    old_name = user.name
    user.name = name
    record_event(
        s,
        actor=user,
        action="user.update_profile",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"name": {"old": old_name, "new": name}},
    )
    s.commit()
    return jsonify({"success": True, "user": user.to_dict()})


@bp.put("/password")
@require_login
def change_password():
    s = db_session()
    user = current_user()
    data = request_payload()
    current_password = data.get("currentPassword") or ""
    new_password = data.get("newPassword") or ""

    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect.", field="currentPassword")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", field="newPassword")

    user.password_hash = hash_password(new_password)
    record_event(s, actor=user, action="user.password_change", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"success": True, "message": "Password updated"})
