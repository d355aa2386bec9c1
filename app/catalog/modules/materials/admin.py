from __future__ import annotations

import math

from flask import Blueprint, jsonify, request

from app.catalog.db import db_session
from app.catalog.errors import ValidationError
from app.catalog.modules.materials.service import (
    create_material,
    delete_image,
    delete_material,
    set_primary_image,
    toggle_material,
    update_material,
    upload_images,
)
from app.catalog.modules.materials.store import MaterialFilters, MaterialStore
from app.catalog.rbac import current_user, require_login
from app.catalog.utils import clean_str, parse_int, request_payload

bp = Blueprint("materials", __name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _query_int(name: str, default: int | None = None) -> int | None:
    try:
        value = parse_int(request.args.get(name))
    except ValueError:
        raise ValidationError(f"Invalid {name}.", field=name)
    return default if value is None else value


def _image_url(image_path: str) -> str:
    # The route captures the url without its leading slash.
    return "/" + image_path.lstrip("/")


@bp.get("")
@require_login
def materials_list():
    page = max(_query_int("page", 1), 1)
    limit = min(max(_query_int("limit", DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    filters = MaterialFilters(
        search=clean_str(request.args.get("search")) or None,
        division_id=_query_int("divisionId"),
        placement_id=_query_int("placementId"),
    )

    store = MaterialStore(db_session())
    total = store.count(filters)
    filters.limit = limit
    filters.offset = (page - 1) * limit
    materials = store.find_all(filters)
    return jsonify(
        {
            "materials": [m.to_dict() for m in materials],
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / limit),
        }
    )


@bp.get("/<int:material_id>")
@require_login
def materials_detail(material_id: int):
    material = MaterialStore(db_session()).get(material_id)
    return jsonify(material.to_dict())


@bp.post("")
@require_login
def materials_create():
    s = db_session()
    material = create_material(s, request_payload(), current_user())
    s.commit()
    return jsonify(material.to_dict()), 201


@bp.put("/<int:material_id>")
@require_login
def materials_update(material_id: int):
    s = db_session()
    material = update_material(s, material_id, request_payload(), current_user())
    s.commit()
    return jsonify(material.to_dict())


@bp.patch("/<int:material_id>/toggle-status")
@require_login
def materials_toggle(material_id: int):
    s = db_session()
    material = toggle_material(s, material_id, current_user())
    s.commit()
    return jsonify(material.to_dict())


@bp.delete("/<int:material_id>")
@require_login
def materials_delete(material_id: int):
    s = db_session()
    delete_material(s, material_id, current_user())
    s.commit()
    return jsonify({"success": True, "message": "Material deleted successfully"})


@bp.post("/<int:material_id>/images")
@require_login
def materials_upload_images(material_id: int):
    s = db_session()
    files = [f for f in request.files.getlist("images") if f and f.filename]
    uploads = [(f.read(), f.filename, f.mimetype) for f in files]
    material = upload_images(s, material_id, uploads, current_user())
    s.commit()
    return jsonify({"success": True, "material": material.to_dict()})


@bp.delete("/<int:material_id>/images/<path:image_path>")
@require_login
def materials_delete_image(material_id: int, image_path: str):
    s = db_session()
    delete_image(s, material_id, _image_url(image_path), current_user())
    s.commit()
    return jsonify({"success": True, "message": "Image deleted successfully"})


@bp.put("/<int:material_id>/images/<path:image_path>/primary")
@require_login
def materials_set_primary_image(material_id: int, image_path: str):
    s = db_session()
    material = set_primary_image(s, material_id, _image_url(image_path), current_user())
    s.commit()
    return jsonify({"success": True, "material": material.to_dict()})
