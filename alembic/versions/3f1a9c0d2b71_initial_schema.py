"""initial schema

Revision ID: 3f1a9c0d2b71
Revises:
Create Date: 2026-10-18 09:12:44.201733

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f1a9c0d2b71'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Enum columns store member names.
business_type = sa.Enum("B2B", "B2C", "B2B2C", "OTHER", name="businesstype")
user_role = sa.Enum(
    "SAAS_OWNER", "SAAS_ADMIN", "TENANT_ADMIN", "TENANT_MANAGER", "TENANT_USER", name="userrole",
)
subscription_status = sa.Enum(
    "TRIAL", "ACTIVE", "EXPIRED", "SUSPENDED", "CANCELLED", name="subscriptionstatus",
)
billing_cycle = sa.Enum("MONTHLY", "YEARLY", name="billingcycle")
payment_status = sa.Enum(
    "PENDING", "PROCESSING", "COMPLETED", "FAILED", "REFUNDED", name="paymentstatus",
)
payment_method = sa.Enum(
    "RAZORPAY", "STRIPE", "PAYPAL", "BANK_TRANSFER", "CASH", "MANUAL", "DEMO", name="paymentmethod",
)
payment_type = sa.Enum("SUBSCRIPTION", "UPGRADE", "RENEWAL", "ADDON", name="paymenttype")
related_kind = sa.Enum("LEAD", "ACCOUNT", "CONTACT", "OPPORTUNITY", "DEAL", "TASK", name="relatedkind")
meeting_type = sa.Enum("ONLINE", "IN_PERSON", "PHONE_CALL", name="meetingtype")
meeting_status = sa.Enum("SCHEDULED", "COMPLETED", "CANCELLED", "RESCHEDULED", name="meetingstatus")
audit_resource_type = sa.Enum(
    "LEAD", "CONTACT", "DEAL", "TASK", "DOCUMENT", "OTHER", name="auditresourcetype",
)
audit_action = sa.Enum("VIEWED", "EDITED", "DELETED", "EXPORTED", name="auditaction")

RECORD_TABLES = ("leads", "accounts", "contacts", "opportunities", "tasks")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_code", sa.String(20), nullable=True, unique=True),
        sa.Column("organization_name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("contact_email", sa.String(320), nullable=False),
        sa.Column("contact_phone", sa.String(50), nullable=False),
        sa.Column("business_type", business_type, nullable=False),
        sa.Column("industry", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("date_format", sa.String(20), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("usage_users", sa.Integer(), nullable=False),
        sa.Column("usage_leads", sa.Integer(), nullable=False),
        sa.Column("usage_contacts", sa.Integer(), nullable=False),
        sa.Column("usage_deals", sa.Integer(), nullable=False),
        sa.Column("usage_storage_mb", sa.Integer(), nullable=False),
        sa.Column("usage_emails_sent_today", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_suspended", sa.Boolean(), nullable=False),
        sa.Column("suspension_reason", sa.String(1000), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"])
    op.create_index("ix_tenants_is_active", "tenants", ["is_active"])

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("viewing_pin_hash", sa.String(), nullable=True),
        sa.Column("is_viewing_pin_set", sa.Boolean(), nullable=False),
        sa.Column("viewing_pin_otp_hash", sa.String(64), nullable=True),
        sa.Column("viewing_pin_otp_expires_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_tenant_id", "users", ["tenant_id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("slug", sa.String(50), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(1000), nullable=False),
        sa.Column("price_monthly", sa.Float(), nullable=False),
        sa.Column("price_yearly", sa.Float(), nullable=False),
        sa.Column("trial_days", sa.Integer(), nullable=False),
        sa.Column("limits", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("features", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("support", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_popular", sa.Boolean(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "tenant_subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("subscription_plans.id"), nullable=True),
        sa.Column("plan_name", sa.String(50), nullable=False),
        sa.Column("status", subscription_status, nullable=False),
        sa.Column("is_trial_active", sa.Boolean(), nullable=False),
        sa.Column("trial_start_date", sa.DateTime(), nullable=True),
        sa.Column("trial_end_date", sa.DateTime(), nullable=True),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("renewal_date", sa.DateTime(), nullable=True),
        sa.Column("billing_cycle", billing_cycle, nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("last_payment_date", sa.DateTime(), nullable=True),
        sa.Column("last_payment_amount", sa.Float(), nullable=False),
        sa.Column("total_paid", sa.Float(), nullable=False),
        sa.Column("auto_renew", sa.Boolean(), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.String(1000), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tenant_subscriptions_tenant_id", "tenant_subscriptions", ["tenant_id"], unique=True)
    op.create_index("ix_tenant_subscriptions_status", "tenant_subscriptions", ["status"])
    op.create_index("ix_tenant_subscriptions_end_date", "tenant_subscriptions", ["end_date"])

    op.create_table(
        "subscription_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("subscription_id", sa.Uuid(), sa.ForeignKey("tenant_subscriptions.id"), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("from_status", subscription_status, nullable=True),
        sa.Column("to_status", subscription_status, nullable=False),
        sa.Column("reason", sa.String(1000), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_subscription_events_subscription_id", "subscription_events", ["subscription_id"])
    op.create_index("ix_subscription_events_tenant_id", "subscription_events", ["tenant_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("subscription_plans.id"), nullable=False),
        sa.Column("plan_name", sa.String(50), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("billing_cycle", sa.String(20), nullable=False),
        sa.Column("billing_period_start", sa.DateTime(), nullable=False),
        sa.Column("billing_period_end", sa.DateTime(), nullable=False),
        sa.Column("status", payment_status, nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("payment_type", payment_type, nullable=False),
        sa.Column("gateway_transaction_id", sa.String(255), nullable=True),
        sa.Column("gateway_order_id", sa.String(255), nullable=True),
        sa.Column("gateway_response", sa.Text(), nullable=True),
        sa.Column("invoice_number", sa.String(32), nullable=True, unique=True),
        sa.Column("invoice_url", sa.String(2048), nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.String(2000), nullable=False),
        sa.Column("refunded_at", sa.DateTime(), nullable=True),
        sa.Column("refund_amount", sa.Float(), nullable=False),
        sa.Column("refund_reason", sa.String(1000), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payments_tenant_id", "payments", ["tenant_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_gateway_transaction_id", "payments", ["gateway_transaction_id"])

    op.create_table(
        "invoice_counters",
        sa.Column("name", sa.String(50), primary_key=True),
        sa.Column("value", sa.Integer(), nullable=False),
    )

    for table in RECORD_TABLES:
        op.create_table(
            table,
            sa.Column("id", sa.Uuid(), primary_key=True),
            sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False),
            *_timestamps(),
        )
        op.create_index(f"ix_{table}_tenant_id", table, ["tenant_id"])

    op.create_table(
        "meetings",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("location", sa.String(500), nullable=False),
        sa.Column("starts_at", sa.DateTime(), nullable=False),
        sa.Column("ends_at", sa.DateTime(), nullable=False),
        sa.Column("meeting_id", sa.String(64), nullable=True, unique=True),
        sa.Column("meeting_link", sa.String(2048), nullable=False),
        sa.Column("participants", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("related_kind", related_kind, nullable=True),
        sa.Column("related_id", sa.Uuid(), nullable=True),
        sa.Column("contact_id", sa.Uuid(), sa.ForeignKey("contacts.id"), nullable=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("agenda", sa.Text(), nullable=False, server_default=""),
        sa.Column("outcome", sa.Text(), nullable=False, server_default=""),
        sa.Column("meeting_type", meeting_type, nullable=False),
        sa.Column("status", meeting_status, nullable=False),
        sa.Column("host_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("last_modified_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    for column in ("tenant_id", "starts_at", "related_kind", "related_id", "status",
                   "host_id", "owner_id", "is_active"):
        op.create_index(f"ix_meetings_{column}", "meetings", [column])

    op.create_table(
        "notes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("related_kind", related_kind, nullable=False),
        sa.Column("related_id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("last_modified_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    for column in ("tenant_id", "related_id", "owner_id", "is_active"):
        op.create_index(f"ix_notes_{column}", "notes", [column])

    op.create_table(
        "access_audits",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=False),
        sa.Column("resource_type", audit_resource_type, nullable=False),
        sa.Column("resource_id", sa.Uuid(), nullable=False),
        sa.Column("resource_name", sa.String(500), nullable=False),
        sa.Column("action", audit_action, nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("accessed_at", sa.DateTime(), nullable=False),
    )
    for column in ("user_id", "tenant_id", "resource_id", "accessed_at"):
        op.create_index(f"ix_access_audits_{column}", "access_audits", [column])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id"), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.Uuid(), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("request_method", sa.String(10), nullable=True),
        sa.Column("request_path", sa.String(2048), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    for column in ("user_id", "tenant_id", "action", "created_at"):
        op.create_index(f"ix_activity_logs_{column}", "activity_logs", [column])


def downgrade() -> None:
    for table in (
        "activity_logs", "access_audits", "notes", "meetings",
        *reversed(RECORD_TABLES),
        "invoice_counters", "payments", "subscription_events",
        "tenant_subscriptions", "subscription_plans", "users", "tenants",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        audit_action, audit_resource_type, meeting_status, meeting_type, related_kind,
        payment_type, payment_method, payment_status, billing_cycle,
        subscription_status, user_role, business_type,
    ):
        enum.drop(bind, checkfirst=True)
