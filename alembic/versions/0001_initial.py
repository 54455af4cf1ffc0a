"""initial schema: customers, third parties, work orders, audit and notifications

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True) -> list:
    cols = [sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)"))]
    if with_updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)"))
        )
    return cols


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("document", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("third_party_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_table(
        "third_party_companies",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("document", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("allowed_sites", sa.JSON(), nullable=True),
        sa.Column("allowed_zones", sa.JSON(), nullable=True),
        sa.Column("asset_visibility_mode", sa.String(), nullable=False, server_default="ALL"),
        *_timestamps(),
    )
    op.create_index("ix_third_party_companies_customer_id", "third_party_companies", ["customer_id"])
    op.create_table(
        "third_party_teams",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("third_party_company_id", sa.String(), sa.ForeignKey("third_party_companies.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("leader_user_id", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("document", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("user_type", sa.String(), nullable=False, server_default="internal_user"),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("third_party_company_id", sa.String(), sa.ForeignKey("third_party_companies.id"), nullable=True),
        sa.Column("third_party_role", sa.String(), nullable=True),
        sa.Column("supplier_id", sa.String(), sa.ForeignKey("suppliers.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("push_token", sa.String(), nullable=True),
        sa.Column("push_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_user_email"),
    )
    op.create_index("ix_users_third_party_company_id", "users", ["third_party_company_id"])
    op.create_table(
        "sites",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("code", sa.String(), nullable=True),
        sa.Column("module", sa.String(), nullable=False, server_default="maintenance"),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "zones",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("site_id", sa.String(), sa.ForeignKey("sites.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("module", sa.String(), nullable=False, server_default="maintenance"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "equipment",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("zone_id", sa.String(), sa.ForeignKey("zones.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("tag", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("contracted_third_party_ids", sa.JSON(), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "work_orders",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("number", sa.Integer(), nullable=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("site_id", sa.String(), sa.ForeignKey("sites.id"), nullable=True),
        sa.Column("zone_id", sa.String(), sa.ForeignKey("zones.id"), nullable=True),
        sa.Column("equipment_id", sa.String(), sa.ForeignKey("equipment.id"), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("module", sa.String(), nullable=False, server_default="maintenance"),
        sa.Column("status", sa.String(), nullable=False, server_default="aberta"),
        sa.Column("priority", sa.String(), nullable=True),
        sa.Column("executed_by_type", sa.String(), nullable=True, server_default="INTERNAL"),
        sa.Column("third_party_company_id", sa.String(), sa.ForeignKey("third_party_companies.id"), nullable=True),
        sa.Column("third_party_team_id", sa.String(), sa.ForeignKey("third_party_teams.id"), nullable=True),
        sa.Column("third_party_operator_id", sa.String(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("assigned_user_id", sa.String(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("paused_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.String(), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("evaluation_comment", sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_work_orders_customer_status", "work_orders", ["customer_id", "status"])
    op.create_index("ix_work_orders_third_party_company_id", "work_orders", ["third_party_company_id"])
    op.create_table(
        "work_order_comments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("work_order_id", sa.String(), sa.ForeignKey("work_orders.id"), nullable=False),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("text", sa.String(), nullable=False),
        sa.Column("is_reopen_request", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "work_order_attachments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("work_order_id", sa.String(), sa.ForeignKey("work_orders.id"), nullable=False),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("mime", sa.String(), nullable=True),
        sa.Column("size", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "work_order_audit_log",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("work_order_id", sa.String(), sa.ForeignKey("work_orders.id"), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("user_type", sa.String(), nullable=True),
        sa.Column("user_name", sa.String(), nullable=False),
        sa.Column("customer_id", sa.String(), nullable=True),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column("third_party_company_id", sa.String(), nullable=True),
        sa.Column("third_party_company_name", sa.String(), nullable=True),
        sa.Column("previous_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("source", sa.String(), nullable=False, server_default="web"),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_work_order_audit_log_work_order_id", "work_order_audit_log", ["work_order_id"])
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.String(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(with_updated=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_table(
        "maintenance_plans",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("frequency", sa.String(), nullable=True),
        sa.Column("site_id", sa.String(), sa.ForeignKey("sites.id"), nullable=True),
        sa.Column("zone_id", sa.String(), sa.ForeignKey("zones.id"), nullable=True),
        sa.Column("equipment_ids", sa.JSON(), nullable=True),
        sa.Column("supplier_id", sa.String(), sa.ForeignKey("suppliers.id"), nullable=True),
        sa.Column("third_party_company_id", sa.String(), sa.ForeignKey("third_party_companies.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "maintenance_plan_proposals",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("supplier_id", sa.String(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("frequency", sa.String(), nullable=True),
        sa.Column("site_id", sa.String(), sa.ForeignKey("sites.id"), nullable=True),
        sa.Column("zone_id", sa.String(), sa.ForeignKey("zones.id"), nullable=True),
        sa.Column("equipment_ids", sa.JSON(), nullable=True),
        sa.Column("estimated_value", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="em_espera"),
        sa.Column("rejection_reason", sa.String(), nullable=True),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("maintenance_plan_id", sa.String(), sa.ForeignKey("maintenance_plans.id"), nullable=True),
        *_timestamps(with_updated=False),
    )
    op.create_table(
        "third_party_proposals",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("customer_id", sa.String(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("third_party_company_id", sa.String(), sa.ForeignKey("third_party_companies.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("frequency", sa.String(), nullable=True),
        sa.Column("site_id", sa.String(), sa.ForeignKey("sites.id"), nullable=True),
        sa.Column("zone_id", sa.String(), sa.ForeignKey("zones.id"), nullable=True),
        sa.Column("equipment_ids", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="em_espera"),
        sa.Column("rejection_reason", sa.String(), nullable=True),
        sa.Column("submitted_by", sa.String(), nullable=True),
        sa.Column("reviewed_by", sa.String(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("maintenance_plan_id", sa.String(), sa.ForeignKey("maintenance_plans.id"), nullable=True),
        *_timestamps(with_updated=False),
    )


def downgrade() -> None:
    op.drop_table("third_party_proposals")
    op.drop_table("maintenance_plan_proposals")
    op.drop_table("maintenance_plans")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_work_order_audit_log_work_order_id", table_name="work_order_audit_log")
    op.drop_table("work_order_audit_log")
    op.drop_table("work_order_attachments")
    op.drop_table("work_order_comments")
    op.drop_index("ix_work_orders_third_party_company_id", table_name="work_orders")
    op.drop_index("ix_work_orders_customer_status", table_name="work_orders")
    op.drop_table("work_orders")
    op.drop_table("equipment")
    op.drop_table("zones")
    op.drop_table("sites")
    op.drop_index("ix_users_third_party_company_id", table_name="users")
    op.drop_table("users")
    op.drop_table("suppliers")
    op.drop_table("third_party_teams")
    op.drop_index("ix_third_party_companies_customer_id", table_name="third_party_companies")
    op.drop_table("third_party_companies")
    op.drop_table("customers")
