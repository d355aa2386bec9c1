from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.catalog.modules.dropdowns.models import Dropdown
from app.catalog.modules.materials.models import Material
from app.catalog.modules.materials.store import MaterialFilters, MaterialStore

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

RECENT_MATERIALS_LIMIT = 12


def materials_by_division(s: "Session") -> list[dict]:
    """Material counts per division label, busiest first; missing divisions group as "Unassigned"."""
    count = func.count(Material.id).label("count")
    q = (
        select(func.coalesce(Dropdown.label, "Unassigned").label("division"), count)
        .select_from(Material)
        .outerjoin(Dropdown, Material.division_id == Dropdown.id)
        .group_by(Dropdown.id, Dropdown.label)
        .order_by(count.desc())
    )
    return [{"division": division, "count": int(n)} for division, n in s.execute(q).all()]


def get_dashboard_stats(s: "Session") -> dict:
    total_materials = s.scalar(select(func.count(Material.id))) or 0
    active_materials = s.scalar(select(func.count(Material.id)).where(Material.is_active.is_(True))) or 0
    total_divisions = (
        s.scalar(
            select(func.count(Dropdown.id)).where(Dropdown.type == "division", Dropdown.is_active.is_(True))
        )
        or 0
    )
    recent = MaterialStore(s).find_all(MaterialFilters(limit=RECENT_MATERIALS_LIMIT, offset=0))

    return {
        "totalMaterials": int(total_materials),
        "activeMaterials": int(active_materials),
        "totalDivisions": int(total_divisions),
        "materialsByDivision": materials_by_division(s),
        "recentMaterials": [m.to_dict() for m in recent],
    }
