"""Initial ledger schema: organizations, sellers, sales, receivables, CRM credentials.

Revision ID: 001_initial_ledger
Revises:
Create Date: 2026-10-19

No foreign key constraints (application-level referential integrity via the
repositories). Composite indexes back the sync engine's diff query
(organization + integration + deal id) and the receivable stats scan.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = "001_initial_ledger"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    # ── organizations ───────────────────────────────────────────────────

    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("tax_deduction_rate", sa.Numeric(5, 2), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "tax_deduction_rate IS NULL OR (tax_deduction_rate >= 0 AND tax_deduction_rate <= 100)",
            name="ck_organizations_tax_rate_range",
        ),
    )

    # ── sellers ─────────────────────────────────────────────────────────

    op.create_table(
        "sellers",
        _id_column(),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("external_owner_id", sa.Integer(), nullable=True),
        sa.Column(
            "is_active",
            sa.Boolean(),
            server_default=sa.text("true"),
            nullable=False,
        ),
        sa.Column("commission_rule", sa.JSON(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index(
        "ix_sellers_org_owner", "sellers", ["organization_id", "external_owner_id"]
    )

    # ── sales ───────────────────────────────────────────────────────────

    op.create_table(
        "sales",
        _id_column(),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("seller_id", UUID(as_uuid=True), nullable=True),
        sa.Column("integration_id", UUID(as_uuid=True), nullable=True),
        sa.Column("external_deal_id", sa.String(100), nullable=True),
        sa.Column("client_name", sa.String(300), nullable=False),
        sa.Column("gross_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("net_value", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "commission_value",
            sa.Numeric(14, 2),
            server_default=sa.text("0"),
            nullable=False,
        ),
        sa.Column("payment_condition", sa.String(100), nullable=True),
        sa.Column("sale_date", sa.Date(), nullable=False),
        sa.Column(
            "source_presence",
            sa.String(20),
            server_default=sa.text("'manual'"),
            nullable=False,
        ),
        sa.Column("source_deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index(
        "ix_sales_org_integration_deal",
        "sales",
        ["organization_id", "integration_id", "external_deal_id"],
    )
    op.create_index("ix_sales_org_date", "sales", ["organization_id", "sale_date"])

    # ── receivables ─────────────────────────────────────────────────────

    op.create_table(
        "receivables",
        _id_column(),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("sale_id", UUID(as_uuid=True), nullable=False),
        sa.Column("supplier_id", UUID(as_uuid=True), nullable=True),
        sa.Column(
            "installment_number",
            sa.Integer(),
            server_default=sa.text("1"),
            nullable=False,
        ),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("expected_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("installment_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("received_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_receivables_sale", "receivables", ["sale_id"])
    op.create_index(
        "ix_receivables_org_due", "receivables", ["organization_id", "due_date"]
    )

    # ── crm_credentials ─────────────────────────────────────────────────

    op.create_table(
        "crm_credentials",
        _id_column(),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("account_domain", sa.String(300), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint(
            "organization_id", "provider", name="uq_crm_credential_org_provider"
        ),
    )


def downgrade() -> None:
    op.drop_table("crm_credentials")
    op.drop_index("ix_receivables_org_due", table_name="receivables")
    op.drop_index("ix_receivables_sale", table_name="receivables")
    op.drop_table("receivables")
    op.drop_index("ix_sales_org_date", table_name="sales")
    op.drop_index("ix_sales_org_integration_deal", table_name="sales")
    op.drop_table("sales")
    op.drop_index("ix_sellers_org_owner", table_name="sellers")
    op.drop_table("sellers")
    op.drop_table("organizations")
