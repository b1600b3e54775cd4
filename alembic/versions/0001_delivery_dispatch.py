from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_delivery_dispatch"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "delivery_companies",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("code", sa.String(length=60), nullable=True),
        sa.Column("api_url", sa.String(length=500), nullable=True),
        sa.Column("api_format", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("settings", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("field_mappings", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("custom_fields", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("credentials_ciphertext", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_delivery_companies_active", "delivery_companies", ["is_active"])

    op.create_table(
        "delivery_orders",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("order_id", sa.String(length=120), nullable=False),
        sa.Column("company_id", sa.String(), sa.ForeignKey("delivery_companies.id"), nullable=False),
        sa.Column("tracking_number", sa.String(length=120), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
        sa.Column("external_status", sa.String(length=120), nullable=True),
        sa.Column("external_order_id", sa.String(length=200), nullable=True),
        sa.Column("delivery_fee", sa.Float(), nullable=True),
        sa.Column("resend_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_resend_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resend_history", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("request_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("last_response", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("last_error_code", sa.String(length=80), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("order_id", "company_id", name="uq_delivery_order_company"),
    )
    op.create_index("ix_delivery_orders_order_id", "delivery_orders", ["order_id"])
    op.create_index("ix_delivery_orders_company_status", "delivery_orders", ["company_id", "status"])

def downgrade():
    op.drop_index("ix_delivery_orders_company_status", table_name="delivery_orders")
    op.drop_index("ix_delivery_orders_order_id", table_name="delivery_orders")
    op.drop_table("delivery_orders")
    op.drop_index("ix_delivery_companies_active", table_name="delivery_companies")
    op.drop_table("delivery_companies")
