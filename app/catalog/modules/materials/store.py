from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from app.catalog.errors import ConflictError, NotFoundError, ValidationError
from app.catalog.modules.materials.models import Material, MaterialImage
from app.catalog.utils import NOTHING_CHANGED, UNSET, Patch, clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Select

MAX_IMAGES_PER_MATERIAL = 5


@dataclass
class MaterialCreate:
    material_name: str
    material_number: str
    division_id: int
    placement_id: int
    function: str | None = None


@dataclass
class MaterialPatch(Patch):
    material_name: Any = UNSET
    material_number: Any = UNSET
    division_id: Any = UNSET
    placement_id: Any = UNSET
    function: Any = UNSET
    is_active: Any = UNSET


@dataclass
class MaterialFilters:
    search: str | None = None
    division_id: int | None = None
    placement_id: int | None = None
    limit: int | None = None
    offset: int | None = None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MaterialStore:
    """
    Catalog store. Materials own their image collection; division/placement
    are non-owning references into the dropdowns table. Callers commit.
    """

    def __init__(self, s: "Session", max_images: int = MAX_IMAGES_PER_MATERIAL) -> None:
        self.s = s
        self.max_images = max_images

    # ---------- reads ----------
    def find_by_id(self, material_id: int) -> Material | None:
        return self.s.get(Material, material_id)

    def get(self, material_id: int) -> Material:
        material = self.find_by_id(material_id)
        if material is None:
            raise NotFoundError("Material not found")
        return material

    def find_by_number(self, material_number: str) -> Material | None:
        q = select(Material).where(Material.material_number == clean_str(material_number))
        return self.s.scalars(q).unique().one_or_none()

    def _filtered(self, q: "Select", filters: MaterialFilters) -> "Select":
        search = clean_str(filters.search)
        if search:
            like = f"%{_escape_like(search)}%"
            q = q.where(
                or_(
                    Material.material_name.ilike(like, escape="\\"),
                    Material.material_number.ilike(like, escape="\\"),
                )
            )
        if filters.division_id:
            q = q.where(Material.division_id == filters.division_id)
        if filters.placement_id:
            q = q.where(Material.placement_id == filters.placement_id)
        return q

    def find_all(self, filters: MaterialFilters | None = None) -> list[Material]:
        filters = filters or MaterialFilters()
        q = self._filtered(select(Material), filters)
        q = q.order_by(Material.created_at.desc(), Material.id.desc())
        if filters.limit:
            q = q.limit(filters.limit)
            if filters.offset:
                q = q.offset(filters.offset)
        return list(self.s.scalars(q).unique())

    def count(self, filters: MaterialFilters | None = None) -> int:
        filters = filters or MaterialFilters()
        q = self._filtered(select(func.count(Material.id)), filters)
        return int(self.s.scalar(q) or 0)

    # ---------- writes ----------
    def create(self, data: MaterialCreate) -> Material:
        name = clean_str(data.material_name)
        number = clean_str(data.material_number)
        if not name or not number or not data.division_id or not data.placement_id:
            raise ValidationError("Please provide all required fields")
        self._ensure_unique_number(number)

        material = Material(
            material_name=name,
            material_number=number,
            division_id=data.division_id,
            placement_id=data.placement_id,
            function=clean_str(data.function) or None,
            is_active=True,
        )
        self.s.add(material)
        self._flush_unique(number)
        return material

    def update(self, material_id: int, patch: MaterialPatch) -> Material | Any:
        material = self.get(material_id)
        changes = patch.changes()
        if not changes:
            return NOTHING_CHANGED

        if "material_name" in changes:
            name = clean_str(changes["material_name"])
            if not name:
                raise ValidationError("Material name cannot be blank.", field="materialName")
            material.material_name = name
        if "material_number" in changes:
            number = clean_str(changes["material_number"])
            if not number:
                raise ValidationError("Material number cannot be blank.", field="materialNumber")
            if number != material.material_number:
                self._ensure_unique_number(number, exclude_id=material.id)
            material.material_number = number
        if "division_id" in changes:
            material.division_id = changes["division_id"]
        if "placement_id" in changes:
            material.placement_id = changes["placement_id"]
        if "function" in changes:
            material.function = clean_str(changes["function"]) or None
        if "is_active" in changes:
            material.is_active = bool(changes["is_active"])

        self._flush_unique(material.material_number)
        # Relationships follow the new foreign keys on next access.
        self.s.expire(material, ["division", "placement"])
        return material

    def toggle_active(self, material_id: int) -> Material:
        material = self.get(material_id)
        material.is_active = not material.is_active
        self.s.flush()
        return material

    def delete(self, material_id: int) -> Material:
        material = self.get(material_id)
        self.s.delete(material)
        self.s.flush()
        return material

    # ---------- images ----------
    def add_image(self, material_id: int, url: str, is_primary: bool = False) -> Material:
        material = self.get(material_id)
        if len(material.images) >= self.max_images:
            raise ValidationError(f"Maximum {self.max_images} images allowed per material", field="images")
        if any(img.url == url for img in material.images):
            raise ConflictError("Image already attached to this material", field="images")

        if is_primary:
            for img in material.images:
                img.is_primary = False
        position = max((img.position for img in material.images), default=-1) + 1
        material.images.append(MaterialImage(url=url, is_primary=is_primary, position=position))
        self.s.flush()
        return material

    def remove_image(self, material_id: int, url: str) -> bool:
        material = self.get(material_id)
        image = next((img for img in material.images if img.url == url), None)
        if image is None:
            return False
        material.images.remove(image)
        self.s.flush()
        return True

    def set_primary_image(self, material_id: int, url: str) -> Material:
        material = self.get(material_id)
        if not any(img.url == url for img in material.images):
            raise NotFoundError("Image not found")
        for img in material.images:
            img.is_primary = img.url == url
        self.s.flush()
        return material

    # ---------- helpers ----------
    def _ensure_unique_number(self, number: str, exclude_id: int | None = None) -> None:
        existing = self.find_by_number(number)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError("Material number already exists", field="materialNumber")

    def _flush_unique(self, number: str) -> None:
        try:
            self.s.flush()
        except IntegrityError as e:
            self.s.rollback()
            if "material_number" in str(e.orig):
                raise ConflictError("Material number already exists", field="materialNumber")
            raise ValidationError("Division or placement does not exist.") from e
