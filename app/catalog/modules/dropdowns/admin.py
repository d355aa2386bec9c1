from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.catalog.db import db_session
from app.catalog.modules.dropdowns.service import (
    create_dropdown,
    deactivate_dropdown,
    delete_dropdown_permanently,
    toggle_dropdown,
    update_dropdown,
)
from app.catalog.modules.dropdowns.store import DropdownStore, validate_type
from app.catalog.rbac import current_user, require_login
from app.catalog.utils import parse_bool, request_payload

bp = Blueprint("dropdowns", __name__)


@bp.get("/<dropdown_type>")
@require_login
def dropdowns_list(dropdown_type: str):
    t = validate_type(dropdown_type)
    # Default true; only an explicit "false" lists inactive rows too.
    active_only = parse_bool(request.args.get("activeOnly"), default=True)
    dropdowns = DropdownStore(db_session()).find_by_type(t, active_only=active_only)
    return jsonify([d.to_dict() for d in dropdowns])


@bp.get("/all/options")
@require_login
def dropdowns_options():
    store = DropdownStore(db_session())
    return jsonify(
        {
            "divisions": [d.to_dict() for d in store.find_by_type("division", active_only=True)],
            "placements": [d.to_dict() for d in store.find_by_type("placement", active_only=True)],
        }
    )


@bp.post("")
@require_login
def dropdowns_create():
    s = db_session()
    dropdown = create_dropdown(s, request_payload(), current_user())
    s.commit()
    return jsonify({"success": True, "dropdown": dropdown.to_dict()}), 201


@bp.put("/<int:dropdown_id>")
@require_login
def dropdowns_update(dropdown_id: int):
    s = db_session()
    dropdown = update_dropdown(s, dropdown_id, request_payload(), current_user())
    s.commit()
    return jsonify({"success": True, "dropdown": dropdown.to_dict()})


@bp.put("/<int:dropdown_id>/toggle")
@require_login
def dropdowns_toggle(dropdown_id: int):
    s = db_session()
    dropdown = toggle_dropdown(s, dropdown_id, current_user())
    s.commit()
    state = "activated" if dropdown.is_active else "deactivated"
    return jsonify(
        {
            "success": True,
            "message": f"{dropdown.type} {state} successfully",
            "dropdown": dropdown.to_dict(),
        }
    )


@bp.delete("/<int:dropdown_id>")
@require_login
def dropdowns_deactivate(dropdown_id: int):
    s = db_session()
    dropdown = deactivate_dropdown(s, dropdown_id, current_user())
    s.commit()
    return jsonify(
        {
            "success": True,
            "message": f"{dropdown.type} deactivated successfully",
            "dropdown": dropdown.to_dict(),
        }
    )


@bp.delete("/<int:dropdown_id>/permanent")
@require_login
def dropdowns_delete_permanent(dropdown_id: int):
    s = db_session()
    snapshot = delete_dropdown_permanently(s, dropdown_id, current_user())
    s.commit()
    return jsonify({"success": True, "message": f"{snapshot['type']} permanently deleted successfully"})
