"""Create loan lifecycle schema"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_lms_schema"
down_revision = None
branch_labels = None
depends_on = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()
    )


def _user_fk(name: str, **kwargs) -> sa.Column:
    return sa.Column(name, _uuid(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, **kwargs)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _created_at(),
    )
    op.create_table(
        "roles",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        _created_at(),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", _uuid(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_user_roles_role_id", "user_roles", ["role_id"])

    op.create_table(
        "clients",
        sa.Column("id", _uuid(), primary_key=True),
        _user_fk("user_id"),
        sa.Column("business_name", sa.String(length=200), nullable=False),
        sa.Column("registration_no", sa.String(length=100), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=True),
        _created_at(),
    )
    op.create_index("ix_clients_user_id", "clients", ["user_id"])

    op.create_table(
        "loan_applications",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("requested_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("purpose", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="Draft"),
        _user_fk("assigned_to_user_id"),
        _user_fk("created_by_user_id"),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("submitted_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
        sa.CheckConstraint("requested_amount > 0", name="ck_loan_app_amount_positive"),
        sa.CheckConstraint("term_months > 0", name="ck_loan_app_term_positive"),
        sa.CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
    )
    op.create_index("ix_loan_applications_client_id", "loan_applications", ["client_id"])
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"])
    op.create_index("ix_loan_applications_assigned_to_user_id", "loan_applications", ["assigned_to_user_id"])

    op.create_table(
        "application_status_history",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "application_id",
            _uuid(),
            sa.ForeignKey("loan_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_status", sa.String(length=30), nullable=True),
        sa.Column("to_status", sa.String(length=30), nullable=False),
        _user_fk("changed_by"),
        sa.Column("changed_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("note", sa.String(length=1000), nullable=True),
    )
    op.create_index(
        "ix_application_status_history_application_id", "application_status_history", ["application_id"]
    )

    op.create_table(
        "loans",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "application_id",
            _uuid(),
            sa.ForeignKey("loan_applications.id", ondelete="RESTRICT"),
            nullable=False,
            unique=True,
        ),
        sa.Column("principal_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("outstanding_principal", sa.Numeric(18, 2), nullable=False),
        sa.Column("interest_rate", sa.Numeric(9, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("term_months", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="PendingDisbursement"),
        sa.Column("disbursed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint("principal_amount > 0", name="ck_loans_principal_positive"),
        sa.CheckConstraint("outstanding_principal >= 0", name="ck_loans_outstanding_nonneg"),
        sa.CheckConstraint("outstanding_principal <= principal_amount", name="ck_loans_outstanding_le_principal"),
        sa.CheckConstraint("interest_rate >= 0", name="ck_loans_rate_nonneg"),
        sa.CheckConstraint("term_months > 0", name="ck_loans_term_positive"),
    )
    op.create_index("ix_loans_status", "loans", ["status"])

    op.create_table(
        "repayment_schedule",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("loan_id", _uuid(), sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("installment_no", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("due_principal", sa.Numeric(18, 2), nullable=False),
        sa.Column("due_interest", sa.Numeric(18, 2), nullable=False),
        sa.Column("due_total", sa.Numeric(18, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
        sa.Column("paid_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("loan_id", "installment_no", name="uq_repayment_schedule_loan_installment"),
        sa.CheckConstraint("installment_no >= 1", name="ck_repayment_schedule_installment_no"),
        sa.CheckConstraint("due_total = due_principal + due_interest", name="ck_repayment_schedule_due_total"),
        sa.CheckConstraint("paid_amount >= 0", name="ck_repayment_schedule_paid_nonneg"),
    )
    op.create_index("ix_repayment_schedule_loan_id", "repayment_schedule", ["loan_id"])

    op.create_table(
        "repayments",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("loan_id", _uuid(), sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("principal_component", sa.Numeric(18, 2), nullable=False),
        sa.Column("interest_component", sa.Numeric(18, 2), nullable=False),
        sa.Column("unapplied_amount", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("paid_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("payment_reference", sa.String(length=200), nullable=True),
        _user_fk("recorded_by"),
        _created_at(),
        sa.CheckConstraint("amount > 0", name="ck_repayments_amount_positive"),
        sa.CheckConstraint("amount = principal_component + interest_component", name="ck_repayments_components"),
        sa.CheckConstraint("unapplied_amount >= 0", name="ck_repayments_unapplied_nonneg"),
    )
    op.create_index("ix_repayments_loan_id", "repayments", ["loan_id"])

    op.create_table(
        "disbursements",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("loan_id", _uuid(), sa.ForeignKey("loans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("disbursed_at", sa.TIMESTAMP(timezone=True), nullable=False),
        _user_fk("disbursed_by"),
        sa.Column("reference", sa.String(length=200), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_disbursements_amount_positive"),
    )
    op.create_index("ix_disbursements_loan_id", "disbursements", ["loan_id"])

    op.create_table(
        "tasks",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "application_id",
            _uuid(),
            sa.ForeignKey("loan_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Open"),
        _user_fk("assigned_to"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_tasks_application_id", "tasks", ["application_id"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_assigned_to", "tasks", ["assigned_to"])

    op.create_table(
        "notes",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "application_id",
            _uuid(),
            sa.ForeignKey("loan_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("body", sa.String(length=2000), nullable=False),
        _user_fk("created_by"),
        _created_at(),
    )
    op.create_index("ix_notes_application_id", "notes", ["application_id"])

    op.create_table(
        "notifications",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("channel", sa.String(length=20), nullable=False, server_default="InApp"),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.String(length=1000), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
        sa.Column("payload", sa.JSON(), nullable=True),
        _created_at(),
        sa.Column("sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("read_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "loan_documents",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "application_id",
            _uuid(),
            sa.ForeignKey("loan_applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("doc_type", sa.String(length=100), nullable=False),
        sa.Column("storage_path", sa.String(length=500), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
        _user_fk("uploaded_by"),
        sa.Column("uploaded_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("verification_note", sa.String(length=1000), nullable=True),
        _user_fk("verified_by"),
        sa.Column("verified_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_loan_documents_application_id", "loan_documents", ["application_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("actor_id", _uuid(), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource_type", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource_type", "resource_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_created_at", table_name="audit_logs")
    op.drop_index("ix_audit_logs_resource", table_name="audit_logs")
    for table in (
        "audit_logs",
        "loan_documents",
        "notifications",
        "notes",
        "tasks",
        "disbursements",
        "repayments",
        "repayment_schedule",
        "loans",
        "application_status_history",
        "loan_applications",
        "clients",
        "user_roles",
        "roles",
        "users",
    ):
        op.drop_table(table)
