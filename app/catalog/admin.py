from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.catalog.audit import record_event
from app.catalog.db import db_session
from app.catalog.errors import NotFoundError, ValidationError
from app.catalog.models import USER_ROLES, AuditEvent, User
from app.catalog.rbac import current_user, require_role
from app.catalog.utils import clean_str, parse_bool, parse_int, request_payload

bp = Blueprint("admin", __name__)

AUDIT_LIMIT = 200


def _account_dict(user: User) -> dict:
    data = user.to_dict()
    data["isActive"] = user.is_active
    data["createdAt"] = user.created_at.isoformat() if user.created_at else None
    return data


@bp.get("/users")
@require_role("admin")
def accounts_list():
    users = db_session().query(User).order_by(User.email.asc()).all()
    return jsonify([_account_dict(u) for u in users])


@bp.put("/users/<int:user_id>")
@require_role("admin")
def accounts_update(user_id: int):
    s = db_session()
    u = current_user()
    user = s.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if user.id == u.id:
        raise ValidationError("You cannot modify your own account.")

    data = request_payload()
    before = {"role": user.role, "is_active": user.is_active}

    if data.get("role") is not None:
        role = clean_str(data.get("role")).lower()
        if role not in USER_ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}", field="role")
        user.role = role
    if data.get("isActive") is not None:
        user.is_active = parse_bool(data.get("isActive"))

    after = {"role": user.role, "is_active": user.is_active}
    record_event(
        s,
        actor=u,
        action="user.update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"before": before, "after": after},
    )
    s.commit()
    return jsonify({"success": True, "user": _account_dict(user)})


@bp.get("/audit")
@require_role("admin")
def audit_list():
    """
    Most recent audit events, newest first. Filters:
    - action (contains)
    - entityType (exact)
    - limit (default 200)
    """
    s = db_session()
    action = clean_str(request.args.get("action"))
    entity_type = clean_str(request.args.get("entityType"))
    try:
        limit = parse_int(request.args.get("limit")) or AUDIT_LIMIT
    except ValueError:
        raise ValidationError("Invalid limit.", field="limit")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(min(limit, AUDIT_LIMIT)).all()
    return jsonify([e.to_dict() for e in events])
