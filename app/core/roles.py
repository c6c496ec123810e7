from enum import Enum
from typing import Iterable


class RoleName(str, Enum):
    CLIENT = "Client"
    INTERN = "Intern"
    ORIGINATOR = "Originator"
    LOAN_OFFICER = "LoanOfficer"
    ADMIN = "Admin"

    @classmethod
    def _missing_(cls, value):  # type: ignore[override]
        if isinstance(value, str):
            lookup = value.strip().lower()
            for member in cls:
                if member.value.lower() == lookup:
                    return member
        return None

    @classmethod
    def list_all(cls) -> list[str]:
        return [role.value for role in cls]

    @classmethod
    def normalize(cls, values: Iterable[str]) -> frozenset["RoleName"]:
        """Parse role names case-insensitively, dropping names outside the catalog."""
        roles: set[RoleName] = set()
        for value in values:
            try:
                roles.add(cls(value))
            except ValueError:
                continue
        return frozenset(roles)


STAFF_ROLES = frozenset({RoleName.ADMIN, RoleName.LOAN_OFFICER})
ASSIGNED_WORKER_ROLES = frozenset({RoleName.INTERN, RoleName.ORIGINATOR})
INTERNAL_ROLES = STAFF_ROLES | ASSIGNED_WORKER_ROLES
