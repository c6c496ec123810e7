from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(eq=False)
class LoanEngineError(ValueError):
    """Base for failures raised by the lending services.

    ``status_code`` is the HTTP status the error handler renders; services never
    touch HTTP themselves.
    """

    message: str
    code: str = "loan_engine_error"
    details: dict = field(default_factory=dict)

    status_code = 400

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class ValidationError(LoanEngineError):
    code: str = "validation_error"

    status_code = 400


@dataclass(eq=False)
class Forbidden(LoanEngineError):
    code: str = "forbidden"

    status_code = 403


@dataclass(eq=False)
class NotFound(LoanEngineError):
    code: str = "not_found"

    status_code = 404


@dataclass(eq=False)
class InvalidStateTransition(LoanEngineError):
    code: str = "invalid_state_transition"

    status_code = 409


@dataclass(eq=False)
class ConcurrencyConflict(LoanEngineError):
    code: str = "concurrency_conflict"

    status_code = 409


__all__ = [
    "ConcurrencyConflict",
    "Forbidden",
    "InvalidStateTransition",
    "LoanEngineError",
    "NotFound",
    "ValidationError",
]
