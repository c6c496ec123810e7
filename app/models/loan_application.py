import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.schemas.loan import LoanApplicationStatus


def enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("requested_amount > 0", name="ck_loan_app_amount_positive"),
        CheckConstraint("term_months > 0", name="ck_loan_app_term_positive"),
        CheckConstraint("version >= 1", name="ck_loan_app_version_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_id = Column(
        UUID(as_uuid=True), ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    requested_amount = Column(Numeric(18, 2), nullable=False)
    term_months = Column(Integer, nullable=False)
    purpose = Column(String(500), nullable=False)
    status = Column(
        Enum(
            LoanApplicationStatus,
            name="loan_application_status",
            native_enum=False,
            validate_strings=True,
            values_callable=enum_values,
            length=30,
        ),
        nullable=False,
        default=LoanApplicationStatus.DRAFT,
        index=True,
    )
    assigned_to_user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_by_user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    version = Column(Integer, nullable=False, default=1)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}
