"""Initial schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    conn = op.get_bind()
    dialect = conn.dialect.name if conn is not None else "sqlite"
    false_def = sa.text("FALSE") if dialect == "postgresql" else sa.text("0")
    op.create_table(
        "sub_sectors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("code", sa.String(length=20), nullable=False, unique=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=False),
        sa.Column("phone_country_code", sa.String(length=10), nullable=False),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column("house_no", sa.String(length=50), nullable=False),
        sa.Column("street_no", sa.String(length=50), nullable=False),
        sa.Column("sub_sector_id", sa.Integer(), sa.ForeignKey("sub_sectors.id"), nullable=False),
        sa.Column("id_card_front", sa.String(length=255)),
        sa.Column("id_card_back", sa.String(length=255)),
        sa.Column("profile_image", sa.String(length=255)),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        sa.Column("approval_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("account_status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("refresh_token_jti", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_sub_sector_house", "users", ["sub_sector_id", "house_no"])
    op.create_table(
        "request_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("slug", sa.String(length=50), nullable=False, unique=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("icon_url", sa.String(length=500)),
        sa.Column("restriction_start_time", sa.String(length=5)),
        sa.Column("restriction_end_time", sa.String(length=5)),
        sa.Column("restriction_days", sa.String(length=20)),
        sa.Column("duplicate_restriction_period", sa.String(length=10), server_default="none"),
        sa.Column("under_construction", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("under_construction_message", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "service_options",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "request_type_id", sa.Integer(), sa.ForeignKey("request_types.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("label", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=120)),
        sa.Column("option_kind", sa.String(length=20), nullable=False),
        sa.Column("config", sa.JSON()),
        sa.Column("request_number_prefix", sa.String(length=20)),
        sa.Column("request_number_padding", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("request_number_next", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("image_url", sa.String(length=500)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_service_options_type_order", "service_options", ["request_type_id", "display_order"])
    op.create_table(
        "requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "request_type_id", sa.Integer(), sa.ForeignKey("request_types.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("service_option_id", sa.Integer(), sa.ForeignKey("service_options.id", ondelete="SET NULL")),
        sa.Column("request_number", sa.String(length=40), unique=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("issue_image_url", sa.String(length=500)),
        sa.Column("house_no", sa.String(length=50), nullable=False),
        sa.Column("street_no", sa.String(length=50), nullable=False),
        sa.Column("sub_sector_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_requests_service_option_id", "requests", ["service_option_id"])
    op.create_index(
        "ix_requests_duplicate_slot",
        "requests",
        ["request_type_id", "service_option_id", "house_no", "street_no", "sub_sector_id", "created_at"],
    )
    op.create_index("ix_requests_user_created", "requests", ["user_id", "created_at"])
    op.create_table(
        "daily_bulletins",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False, unique=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("file_path", sa.String(length=512), nullable=False),
        sa.Column("file_type", sa.String(length=10), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("daily_bulletins")
    op.drop_index("ix_requests_user_created", table_name="requests")
    op.drop_index("ix_requests_duplicate_slot", table_name="requests")
    op.drop_index("ix_requests_service_option_id", table_name="requests")
    op.drop_table("requests")
    op.drop_index("ix_service_options_type_order", table_name="service_options")
    op.drop_table("service_options")
    op.drop_table("request_types")
    op.drop_index("ix_users_sub_sector_house", table_name="users")
    op.drop_table("users")
    op.drop_table("sub_sectors")
