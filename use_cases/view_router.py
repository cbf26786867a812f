"""Top-level screen selection from a SessionState snapshot."""

import logging
import os
from enum import Enum

from use_cases.session_models import SessionState

log = logging.getLogger(__name__)


class Screen(str, Enum):
    LOADING = "loading"
    PASSWORD_RESET = "password_reset"
    LOGIN = "login"
    ADMIN_DASHBOARD = "admin_dashboard"
    PROFILE_SETUP = "profile_setup"
    USER_DASHBOARD = "user_dashboard"


class UnroutableStateError(RuntimeError):
    pass


def _is_development() -> bool:
    return os.getenv("APP_ENV", "production").lower() == "development"


def select_screen(state: SessionState) -> Screen:
    """First matching rule wins. Admin is checked before setup status."""
    try:
        if state.loading:
            return Screen.LOADING
        if state.recovery_mode:
            return Screen.PASSWORD_RESET
        if state.identity is None:
            return Screen.LOGIN
        if state.role == "admin":
            return Screen.ADMIN_DASHBOARD
        if state.setup_status == "needs_profile_setup":
            return Screen.PROFILE_SETUP
        # role "unknown" is routed as "user"
        return Screen.USER_DASHBOARD
    except AttributeError as e:
        if _is_development():
            raise UnroutableStateError(f"Cannot route session state {state!r}") from e
        log.error(f"Unroutable session state, falling back to login: {e}")
        return Screen.LOGIN
