"""Initial schema: users, organizations, inventory, cycle counts, prep sheet.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False, **kwargs)


def _organization_fk() -> sa.Column:
    return sa.Column(
        "organization_id",
        sa.Integer(),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
    )


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Organizations and membership
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_organizations_id", "organizations", ["id"])

    op.create_table(
        "organization_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "organization_id",
            sa.Integer(),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        _timestamp("joined_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_organization_member"),
    )
    op.create_index("ix_organization_members_id", "organization_members", ["id"])
    op.create_index("ix_organization_members_organization_id", "organization_members", ["organization_id"])
    op.create_index("ix_organization_members_user_id", "organization_members", ["user_id"])

    # Inventory items
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), nullable=False),
        _organization_fk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=False, server_default=""),
        sa.Column("bin_number", sa.String(), nullable=False, server_default=""),
        sa.Column("rack_number", sa.String(), nullable=False, server_default=""),
        sa.Column("platform", sa.String(), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("par_level", sa.Integer(), nullable=True),
        sa.Column("cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sold_price", sa.Numeric(12, 2), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_inventory_items_id", "inventory_items", ["id"])
    op.create_index("ix_inventory_items_organization_id", "inventory_items", ["organization_id"])
    op.create_index("ix_inventory_items_name", "inventory_items", ["name"])
    op.create_index("ix_inventory_items_platform", "inventory_items", ["platform"])
    op.create_index("ix_inventory_items_status", "inventory_items", ["status"])

    # Cycle counts
    op.create_table(
        "cycle_counts",
        sa.Column("id", sa.Integer(), nullable=False),
        _organization_fk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="in_progress"),
        _timestamp("started_at"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cycle_counts_id", "cycle_counts", ["id"])
    op.create_index("ix_cycle_counts_organization_id", "cycle_counts", ["organization_id"])

    op.create_table(
        "cycle_count_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "cycle_count_id",
            sa.Integer(),
            sa.ForeignKey("cycle_counts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "inventory_item_id",
            sa.Integer(),
            sa.ForeignKey("inventory_items.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("expected_qty", sa.Integer(), nullable=False),
        sa.Column("counted_qty", sa.Integer(), nullable=True),
        sa.Column("variance", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("counted_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("cycle_count_id", "inventory_item_id", name="uq_cycle_count_item"),
    )
    op.create_index("ix_cycle_count_items_id", "cycle_count_items", ["id"])
    op.create_index("ix_cycle_count_items_cycle_count_id", "cycle_count_items", ["cycle_count_id"])
    op.create_index("ix_cycle_count_items_inventory_item_id", "cycle_count_items", ["inventory_item_id"])

    # Prep sheet
    op.create_table(
        "prep_items",
        sa.Column("id", sa.Integer(), nullable=False),
        _organization_fk(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("item_type", sa.String(20), nullable=False, server_default="ingredient"),
        sa.Column("par_level", sa.Float(), nullable=False),
        sa.Column("current_level", sa.Float(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_prep_items_id", "prep_items", ["id"])
    op.create_index("ix_prep_items_organization_id", "prep_items", ["organization_id"])
    op.create_index("ix_prep_items_category", "prep_items", ["category"])

    op.create_table(
        "prep_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "prep_item_id",
            sa.Integer(),
            sa.ForeignKey("prep_items.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("quantity_prepped", sa.Float(), nullable=False),
        sa.Column("prepped_by", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_prep_logs_id", "prep_logs", ["id"])
    op.create_index("ix_prep_logs_prep_item_id", "prep_logs", ["prep_item_id"])
    op.create_index("ix_prep_logs_created_at", "prep_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("prep_logs")
    op.drop_table("prep_items")
    op.drop_table("cycle_count_items")
    op.drop_table("cycle_counts")
    op.drop_table("inventory_items")
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_table("users")
