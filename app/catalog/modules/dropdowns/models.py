from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.catalog.models import Base

DROPDOWN_TYPES = ("division", "placement")


class Dropdown(Base):
    """
    Controlled-vocabulary entry used to tag materials.

    `(type, value)` is unique across active and inactive rows alike.
    """

    __tablename__ = "dropdowns"
    __table_args__ = (
        UniqueConstraint("type", "value", name="uq_dropdowns_type_value"),
        Index("idx_dropdowns_type_label", "type", "label"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "value": self.value,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_ref(self) -> dict:
        """Compact `{id, label, value}` shape embedded in material payloads."""
        return {"id": self.id, "label": self.label, "value": self.value}

    def __repr__(self) -> str:
        return f"<Dropdown {self.id}: {self.type}={self.value!r} active={self.is_active}>"
