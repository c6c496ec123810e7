from app.utils.login_security import (
    check_lockout,
    enforce_login_limits,
    rate_limit,
    register_login_attempt,
)

__all__ = ["check_lockout", "enforce_login_limits", "rate_limit", "register_login_attempt"]
