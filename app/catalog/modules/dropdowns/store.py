from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from app.catalog.errors import ConflictError, NotFoundError, PreconditionError, ValidationError
from app.catalog.modules.dropdowns.models import DROPDOWN_TYPES, Dropdown
from app.catalog.utils import NOTHING_CHANGED, UNSET, Patch, clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass
class DropdownPatch(Patch):
    label: Any = UNSET
    value: Any = UNSET
    is_active: Any = UNSET


def validate_type(dropdown_type: str | None) -> str:
    t = clean_str(dropdown_type)
    if t not in DROPDOWN_TYPES:
        raise ValidationError('Type must be "division" or "placement"', field="type")
    return t


class DropdownStore:
    """
    Vocabulary store. Owns the active/inactive lifecycle and the usage guard
    on permanent deletion. Callers commit.
    """

    def __init__(self, s: "Session") -> None:
        self.s = s

    # ---------- reads ----------
    def find_by_id(self, dropdown_id: int) -> Dropdown | None:
        return self.s.get(Dropdown, dropdown_id)

    def get(self, dropdown_id: int) -> Dropdown:
        dropdown = self.find_by_id(dropdown_id)
        if dropdown is None:
            raise NotFoundError("Dropdown not found")
        return dropdown

    def find_by_type(self, dropdown_type: str, active_only: bool = True) -> list[Dropdown]:
        q = select(Dropdown).where(Dropdown.type == dropdown_type)
        if active_only:
            q = q.where(Dropdown.is_active.is_(True))
        return list(self.s.scalars(q.order_by(Dropdown.label.asc(), Dropdown.id.asc())))

    def find_by_type_and_value(self, dropdown_type: str, value: str) -> Dropdown | None:
        q = select(Dropdown).where(Dropdown.type == dropdown_type, Dropdown.value == value)
        return self.s.scalars(q).one_or_none()

    def find_all(self, active_only: bool = True) -> list[Dropdown]:
        q = select(Dropdown)
        if active_only:
            q = q.where(Dropdown.is_active.is_(True))
        return list(self.s.scalars(q.order_by(Dropdown.type.asc(), Dropdown.label.asc())))

    def check_usage(self, dropdown_id: int) -> int:
        """Materials referencing this id through either the division or the placement slot."""
        from app.catalog.modules.materials.models import Material

        q = select(func.count(Material.id)).where(
            or_(Material.division_id == dropdown_id, Material.placement_id == dropdown_id)
        )
        return int(self.s.scalar(q) or 0)

    # ---------- writes ----------
    def create(self, dropdown_type: str, label: str, value: str) -> Dropdown:
        t = validate_type(dropdown_type)
        label = clean_str(label)
        value = clean_str(value)
        if not label:
            raise ValidationError("Label is required.", field="label")
        if not value:
            raise ValidationError("Value is required.", field="value")

        self._ensure_unique(t, value)
        dropdown = Dropdown(type=t, label=label, value=value, is_active=True)
        self.s.add(dropdown)
        self._flush_unique(t, value)
        return dropdown

    def update(self, dropdown_id: int, patch: DropdownPatch) -> Dropdown | Any:
        dropdown = self.get(dropdown_id)
        changes = patch.changes()
        if not changes:
            return NOTHING_CHANGED

        if "label" in changes:
            label = clean_str(changes["label"])
            if not label:
                raise ValidationError("Label cannot be blank.", field="label")
            dropdown.label = label
        if "value" in changes:
            value = clean_str(changes["value"])
            if not value:
                raise ValidationError("Value cannot be blank.", field="value")
            if value != dropdown.value:
                self._ensure_unique(dropdown.type, value, exclude_id=dropdown.id)
            dropdown.value = value
        if "is_active" in changes:
            dropdown.is_active = bool(changes["is_active"])

        self._flush_unique(dropdown.type, dropdown.value)
        return dropdown

    def toggle_active(self, dropdown_id: int) -> Dropdown:
        dropdown = self.get(dropdown_id)
        dropdown.is_active = not dropdown.is_active
        self.s.flush()
        return dropdown

    def soft_delete(self, dropdown_id: int) -> Dropdown:
        dropdown = self.get(dropdown_id)
        dropdown.is_active = False
        self.s.flush()
        return dropdown

    def delete(self, dropdown_id: int) -> Dropdown:
        """
        Permanent removal. Only inactive rows with zero usage qualify; the
        RESTRICT foreign keys on materials back the usage check up.
        """
        dropdown = self.get(dropdown_id)
        if dropdown.is_active:
            raise PreconditionError("Cannot permanently delete active dropdown. Deactivate it first.")
        usage = self.check_usage(dropdown.id)
        if usage > 0:
            raise PreconditionError(
                f"Cannot delete. This {dropdown.type} is still used by {usage} material(s).",
                usage_count=usage,
            )
        dropdown_type = dropdown.type
        self.s.delete(dropdown)
        try:
            self.s.flush()
        except IntegrityError:
            # A material picked this dropdown up between the check and the delete.
            self.s.rollback()
            logger.warning("Dropdown %s delete blocked by foreign key", dropdown_id)
            raise PreconditionError(f"Cannot delete. This {dropdown_type} is still in use.")
        return dropdown

    # ---------- helpers ----------
    def _ensure_unique(self, dropdown_type: str, value: str, exclude_id: int | None = None) -> None:
        existing = self.find_by_type_and_value(dropdown_type, value)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(f'{dropdown_type} with value "{value}" already exists', field="value")

    def _flush_unique(self, dropdown_type: str, value: str) -> None:
        try:
            self.s.flush()
        except IntegrityError:
            self.s.rollback()
            raise ConflictError(f'{dropdown_type} with value "{value}" already exists', field="value")
