from app.models.application_document import ApplicationDocument
from app.models.application_status_history import ApplicationStatusHistory
from app.models.audit_log import AuditLog
from app.models.client import Client
from app.models.disbursement import Disbursement
from app.models.document_requirement import DocumentRequirement
from app.models.loan import Loan
from app.models.loan_application import LoanApplication
from app.models.note import Note
from app.models.notification import Notification
from app.models.repayment import Repayment
from app.models.repayment_schedule import RepaymentScheduleInstallment
from app.models.role import Role
from app.models.task import Task
from app.models.user import User
from app.models.user_role import UserRole

__all__ = [
    "ApplicationDocument",
    "ApplicationStatusHistory",
    "AuditLog",
    "Client",
    "Disbursement",
    "DocumentRequirement",
    "Loan",
    "LoanApplication",
    "Note",
    "Notification",
    "Repayment",
    "RepaymentScheduleInstallment",
    "Role",
    "Task",
    "User",
    "UserRole",
]
