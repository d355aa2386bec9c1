from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.catalog.audit import record_event
from app.catalog.errors import ValidationError
from app.catalog.modules.dropdowns.store import DropdownPatch, DropdownStore, validate_type
from app.catalog.utils import NOTHING_CHANGED, UNSET, clean_str, derive_dropdown_value

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.catalog.models import User
    from app.catalog.modules.dropdowns.models import Dropdown

logger = logging.getLogger(__name__)


def validate_dropdown_payload(payload: dict) -> list[str]:
    errors = []
    if not clean_str(payload.get("type")):
        errors.append("Type is required.")
    if not clean_str(payload.get("label")):
        errors.append("Label is required.")
    return errors


def create_dropdown(s: "Session", payload: dict, user: "User") -> "Dropdown":
    errors = validate_dropdown_payload(payload)
    if errors:
        raise ValidationError("Please provide type and label", errors=errors)

    dropdown_type = validate_type(payload.get("type"))
    label = clean_str(payload.get("label"))
    value = clean_str(payload.get("value")) or derive_dropdown_value(label)

    dropdown = DropdownStore(s).create(dropdown_type, label, value)
    record_event(
        s,
        actor=user,
        action="dropdown.create",
        entity_type="Dropdown",
        entity_id=str(dropdown.id),
        metadata={"type": dropdown.type, "label": dropdown.label, "value": dropdown.value},
    )
    logger.info("Dropdown created: %s (%s)", dropdown.label, dropdown.type)
    return dropdown


def update_dropdown(s: "Session", dropdown_id: int, payload: dict, user: "User") -> "Dropdown":
    store = DropdownStore(s)
    before = store.get(dropdown_id).to_dict()

    patch = DropdownPatch(
        label=payload["label"] if payload.get("label") is not None else UNSET,
        value=payload["value"] if payload.get("value") is not None else UNSET,
    )
    result = store.update(dropdown_id, patch)
    if result is NOTHING_CHANGED:
        return store.get(dropdown_id)

    changes = {
        k: {"old": before[k], "new": v}
        for k, v in result.to_dict().items()
        if k in ("label", "value") and before[k] != v
    }
    record_event(
        s,
        actor=user,
        action="dropdown.edit",
        entity_type="Dropdown",
        entity_id=str(result.id),
        metadata={"changes": changes},
    )
    logger.info("Dropdown updated: %s", result.label)
    return result


def toggle_dropdown(s: "Session", dropdown_id: int, user: "User") -> "Dropdown":
    dropdown = DropdownStore(s).toggle_active(dropdown_id)
    record_event(
        s,
        actor=user,
        action="dropdown.activate" if dropdown.is_active else "dropdown.deactivate",
        entity_type="Dropdown",
        entity_id=str(dropdown.id),
        metadata={"type": dropdown.type, "value": dropdown.value},
    )
    logger.info("Dropdown toggled: %s - Active: %s", dropdown.label, dropdown.is_active)
    return dropdown


def deactivate_dropdown(s: "Session", dropdown_id: int, user: "User") -> "Dropdown":
    dropdown = DropdownStore(s).soft_delete(dropdown_id)
    record_event(
        s,
        actor=user,
        action="dropdown.deactivate",
        entity_type="Dropdown",
        entity_id=str(dropdown.id),
        metadata={"type": dropdown.type, "value": dropdown.value},
    )
    logger.info("Dropdown deactivated: %s", dropdown.label)
    return dropdown


def delete_dropdown_permanently(s: "Session", dropdown_id: int, user: "User") -> dict:
    dropdown = DropdownStore(s).delete(dropdown_id)
    snapshot = {"type": dropdown.type, "label": dropdown.label, "value": dropdown.value}
    record_event(
        s,
        actor=user,
        action="dropdown.delete",
        entity_type="Dropdown",
        entity_id=str(dropdown_id),
        metadata=snapshot,
    )
    logger.info("Dropdown permanently deleted: %s", dropdown.label)
    return snapshot
