"""create catalog tables

Revision ID: 3f1a9c2e7b40
Revises:
Create Date: 2026-10-19 09:12:41.218304

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, audit_events, dropdowns, materials and material_images."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("role", sa.String(32), nullable=False, server_default="user"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
        )
        op.create_index("idx_audit_events_action", "audit_events", ["action"])
        op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    if "dropdowns" not in existing_tables:
        op.create_table(
            "dropdowns",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("type", sa.String(32), nullable=False),
            sa.Column("label", sa.String(255), nullable=False),
            sa.Column("value", sa.String(255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("type", "value", name="uq_dropdowns_type_value"),
        )
        op.create_index("idx_dropdowns_type_label", "dropdowns", ["type", "label"])

    if "materials" not in existing_tables:
        op.create_table(
            "materials",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("material_name", sa.String(255), nullable=False),
            sa.Column("material_number", sa.String(128), nullable=False, unique=True),
            sa.Column("division_id", sa.Integer(), sa.ForeignKey("dropdowns.id", ondelete="RESTRICT"), nullable=True),
            sa.Column("placement_id", sa.Integer(), sa.ForeignKey("dropdowns.id", ondelete="RESTRICT"), nullable=True),
            sa.Column("function", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("idx_materials_division", "materials", ["division_id"])
        op.create_index("idx_materials_placement", "materials", ["placement_id"])
        op.create_index("idx_materials_created_at", "materials", ["created_at"])

    if "material_images" not in existing_tables:
        op.create_table(
            "material_images",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("material_id", sa.Integer(), sa.ForeignKey("materials.id", ondelete="CASCADE"), nullable=False),
            sa.Column("url", sa.String(512), nullable=False),
            sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("material_id", "url", name="uq_material_images_material_url"),
        )
        op.create_index("idx_material_images_material", "material_images", ["material_id"])


def downgrade() -> None:
    op.drop_index("idx_material_images_material", table_name="material_images")
    op.drop_table("material_images")
    op.drop_index("idx_materials_created_at", table_name="materials")
    op.drop_index("idx_materials_placement", table_name="materials")
    op.drop_index("idx_materials_division", table_name="materials")
    op.drop_table("materials")
    op.drop_index("idx_dropdowns_type_label", table_name="dropdowns")
    op.drop_table("dropdowns")
    op.drop_index("idx_audit_events_entity", table_name="audit_events")
    op.drop_index("idx_audit_events_action", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("users")
