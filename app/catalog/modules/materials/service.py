from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from app.catalog.audit import record_event
from app.catalog.errors import NotFoundError, ValidationError
from app.catalog.modules.dropdowns.models import Dropdown
from app.catalog.modules.materials.store import MaterialCreate, MaterialPatch, MaterialStore
from app.catalog.storage import DEFAULT_MAX_IMAGE_BYTES, StorageError, remove_image, store_image, validate_image
from app.catalog.utils import NOTHING_CHANGED, clean_str, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.catalog.models import User
    from app.catalog.modules.materials.models import Material
    from app.catalog.storage import Storage

logger = logging.getLogger(__name__)

# (file bytes, original filename, content type) as received from the multipart body.
Upload = tuple[bytes, str, "str | None"]


def _storage() -> "Storage":
    from flask import current_app
    from app.catalog.storage import storage_from_config

    return storage_from_config(current_app.config)


def _store(s: "Session") -> MaterialStore:
    from flask import current_app, has_app_context

    if has_app_context():
        return MaterialStore(s, max_images=int(current_app.config.get("MAX_IMAGES_PER_MATERIAL", 5)))
    return MaterialStore(s)


def _max_image_bytes() -> int:
    from flask import current_app, has_app_context

    if has_app_context():
        return int(current_app.config.get("MAX_IMAGE_BYTES", DEFAULT_MAX_IMAGE_BYTES))
    return DEFAULT_MAX_IMAGE_BYTES


def _parse_id(value: Any, field: str) -> int | None:
    try:
        return parse_int(value)
    except ValueError:
        raise ValidationError(f"Invalid {field}.", field=field)


def resolve_reference(s: "Session", value: Any, dropdown_type: str, field: str) -> int:
    """
    Materials may point at inactive dropdowns, but the id has to exist and be
    of the matching type.
    """
    dropdown_id = _parse_id(value, field)
    if dropdown_id is None:
        raise ValidationError("Please provide all required fields", field=field)
    dropdown = s.get(Dropdown, dropdown_id)
    if dropdown is None or dropdown.type != dropdown_type:
        raise ValidationError(f"Invalid {dropdown_type}.", field=field)
    return dropdown.id


def validate_material_payload(payload: dict) -> list[str]:
    errors = []
    if not clean_str(payload.get("materialName")):
        errors.append("Material name is required.")
    if not clean_str(payload.get("materialNumber")):
        errors.append("Material number is required.")
    if not clean_str(payload.get("divisionId")):
        errors.append("Division is required.")
    if not clean_str(payload.get("placementId")):
        errors.append("Placement is required.")
    return errors


def create_material(s: "Session", payload: dict, user: "User") -> "Material":
    errors = validate_material_payload(payload)
    if errors:
        raise ValidationError("Please provide all required fields", errors=errors)

    data = MaterialCreate(
        material_name=clean_str(payload.get("materialName")),
        material_number=clean_str(payload.get("materialNumber")),
        division_id=resolve_reference(s, payload.get("divisionId"), "division", "divisionId"),
        placement_id=resolve_reference(s, payload.get("placementId"), "placement", "placementId"),
        function=clean_str(payload.get("function")) or None,
    )
    material = _store(s).create(data)
    record_event(
        s,
        actor=user,
        action="material.create",
        entity_type="Material",
        entity_id=str(material.id),
        metadata={"material_number": material.material_number, "material_name": material.material_name},
    )
    logger.info("Material created: %s", material.material_name)
    return material


def update_material(s: "Session", material_id: int, payload: dict, user: "User") -> "Material":
    store = _store(s)
    before = store.get(material_id).to_dict()

    patch = MaterialPatch()
    if payload.get("materialName") is not None:
        patch.material_name = payload["materialName"]
    if payload.get("materialNumber") is not None:
        patch.material_number = payload["materialNumber"]
    if clean_str(payload.get("divisionId")):
        patch.division_id = resolve_reference(s, payload["divisionId"], "division", "divisionId")
    if clean_str(payload.get("placementId")):
        patch.placement_id = resolve_reference(s, payload["placementId"], "placement", "placementId")
    # An explicit null clears the function text; an absent key leaves it alone.
    if "function" in payload:
        patch.function = payload["function"]

    result = store.update(material_id, patch)
    if result is NOTHING_CHANGED:
        return store.get(material_id)

    after = result.to_dict()
    tracked = ("materialName", "materialNumber", "divisionId", "placementId", "function")
    changes = {k: {"old": before[k], "new": after[k]} for k in tracked if before[k] != after[k]}
    if not changes:
        return result
    record_event(
        s,
        actor=user,
        action="material.edit",
        entity_type="Material",
        entity_id=str(result.id),
        metadata={"changes": changes},
    )
    logger.info("Material updated: %s", result.material_name)
    return result


def toggle_material(s: "Session", material_id: int, user: "User") -> "Material":
    material = _store(s).toggle_active(material_id)
    record_event(
        s,
        actor=user,
        action="material.activate" if material.is_active else "material.deactivate",
        entity_type="Material",
        entity_id=str(material.id),
        metadata={"material_number": material.material_number},
    )
    logger.info("Material status toggled: %s - Active: %s", material.material_name, material.is_active)
    return material


def delete_material(s: "Session", material_id: int, user: "User", storage: "Storage | None" = None) -> dict:
    store = _store(s)
    material = store.get(material_id)
    storage = storage or _storage()

    for image in list(material.images):
        try:
            remove_image(storage, image.url)
        except StorageError as e:
            logger.warning("Could not remove image file %s for material %s: %s", image.url, material.id, e)

    snapshot = {
        "material_number": material.material_number,
        "material_name": material.material_name,
        "images": [img.url for img in material.images],
    }
    store.delete(material_id)
    record_event(
        s,
        actor=user,
        action="material.delete",
        entity_type="Material",
        entity_id=str(material_id),
        metadata=snapshot,
    )
    logger.info("Material deleted: %s", snapshot["material_name"])
    return snapshot


def upload_images(
    s: "Session",
    material_id: int,
    uploads: list[Upload],
    user: "User",
    storage: "Storage | None" = None,
) -> "Material":
    """
    Attach uploaded images. Every file and the image cap are checked before
    anything is written; the first image becomes primary only when the
    material had none.
    """
    store = _store(s)
    material = store.get(material_id)
    if not uploads:
        raise ValidationError("No images uploaded", field="images")

    existing = len(material.images)
    if existing + len(uploads) > store.max_images:
        raise ValidationError(
            f"Maximum {store.max_images} images allowed per material", field="images", currentCount=existing
        )

    max_bytes = _max_image_bytes()
    for file_bytes, filename, content_type in uploads:
        validate_image(filename, content_type, len(file_bytes), max_bytes=max_bytes)

    storage = storage or _storage()
    written: list[str] = []
    try:
        for i, (file_bytes, filename, content_type) in enumerate(uploads):
            url = store_image(storage, file_bytes, filename, content_type, max_bytes=max_bytes)
            written.append(url)
            store.add_image(material_id, url, is_primary=existing == 0 and i == 0)
    except Exception:
        logger.error("Image upload for material %s failed; orphaned files: %s", material_id, written)
        raise

    record_event(
        s,
        actor=user,
        action="material.image_upload",
        entity_type="Material",
        entity_id=str(material_id),
        metadata={"urls": written},
    )
    logger.info("%d image(s) uploaded for material: %s", len(written), material.material_name)
    return store.get(material_id)


def delete_image(
    s: "Session", material_id: int, url: str, user: "User", storage: "Storage | None" = None
) -> None:
    store = _store(s)
    material = store.get(material_id)
    if not any(img.url == url for img in material.images):
        raise NotFoundError("Image not found")

    try:
        remove_image(storage or _storage(), url)
    except StorageError as e:
        logger.warning("Could not remove image file %s for material %s: %s", url, material_id, e)

    store.remove_image(material_id, url)
    record_event(
        s,
        actor=user,
        action="material.image_delete",
        entity_type="Material",
        entity_id=str(material_id),
        metadata={"url": url},
    )
    logger.info("Image deleted from material: %s", material.material_name)


def set_primary_image(s: "Session", material_id: int, url: str, user: "User") -> "Material":
    material = _store(s).set_primary_image(material_id, url)
    record_event(
        s,
        actor=user,
        action="material.image_primary",
        entity_type="Material",
        entity_id=str(material_id),
        metadata={"url": url},
    )
    return material
