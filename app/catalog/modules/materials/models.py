from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.catalog.models import Base

if TYPE_CHECKING:
    from app.catalog.modules.dropdowns.models import Dropdown


class Material(Base):
    __tablename__ = "materials"
    __table_args__ = (
        Index("idx_materials_division", "division_id"),
        Index("idx_materials_placement", "placement_id"),
        Index("idx_materials_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    material_name: Mapped[str] = mapped_column(String(255), nullable=False)
    material_number: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    # Required at the API; nullable in the schema so the dashboard can report "Unassigned" rows.
    division_id: Mapped[int | None] = mapped_column(ForeignKey("dropdowns.id", ondelete="RESTRICT"), nullable=True)
    placement_id: Mapped[int | None] = mapped_column(ForeignKey("dropdowns.id", ondelete="RESTRICT"), nullable=True)

    function: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Joined by id regardless of the dropdown's active flag.
    division: Mapped["Dropdown | None"] = relationship("Dropdown", foreign_keys=[division_id], lazy="joined")
    placement: Mapped["Dropdown | None"] = relationship("Dropdown", foreign_keys=[placement_id], lazy="joined")

    images: Mapped[list["MaterialImage"]] = relationship(
        "MaterialImage",
        back_populates="material",
        cascade="all, delete-orphan",
        order_by="MaterialImage.position",
        lazy="selectin",
    )

    @property
    def primary_image(self) -> "MaterialImage | None":
        return next((img for img in self.images if img.is_primary), None)

    def to_dict(self) -> dict:
        """External camelCase shape used by every material response."""
        return {
            "id": self.id,
            "materialName": self.material_name,
            "materialNumber": self.material_number,
            "divisionId": self.division_id,
            "placementId": self.placement_id,
            "division": self.division.to_ref() if self.division else None,
            "placement": self.placement.to_ref() if self.placement else None,
            "function": self.function,
            "images": [img.to_dict() for img in self.images],
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Material {self.id}: {self.material_number}>"


class MaterialImage(Base):
    __tablename__ = "material_images"
    __table_args__ = (
        UniqueConstraint("material_id", "url", name="uq_material_images_material_url"),
        Index("idx_material_images_material", "material_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    material_id: Mapped[int] = mapped_column(ForeignKey("materials.id", ondelete="CASCADE"), nullable=False)

    url: Mapped[str] = mapped_column(String(512), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    material: Mapped["Material"] = relationship("Material", back_populates="images")

    def to_dict(self) -> dict:
        return {"url": self.url, "isPrimary": self.is_primary}
