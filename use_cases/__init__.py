"""Application layer contracts for orchestrating high-level flows."""

from .auth_flow import (
    AuthFlowResult,
    AuthFlowStatus,
    report_subscription_expired,
    submit_login,
    submit_logout,
    submit_profile_completion,
)
from .bootstrap import StartupResult, StartupStatus, run_startup
from .session_models import (
    AuthEvent,
    Identity,
    LoginSuccess,
    Logout,
    ProfileCompleted,
    ProfileRecord,
    Role,
    SessionState,
    SetupStatus,
    SubscriptionExpired,
    UnhandledEventError,
    is_admin,
    is_authenticated,
)
from .session_resolver import SessionResolver
from .session_store import SessionStore
from .view_router import Screen, UnroutableStateError, select_screen

__all__ = [
    "AuthEvent",
    "AuthFlowResult",
    "AuthFlowStatus",
    "Identity",
    "LoginSuccess",
    "Logout",
    "ProfileCompleted",
    "ProfileRecord",
    "Role",
    "Screen",
    "SessionResolver",
    "SessionState",
    "SessionStore",
    "SetupStatus",
    "StartupResult",
    "StartupStatus",
    "SubscriptionExpired",
    "UnhandledEventError",
    "UnroutableStateError",
    "is_admin",
    "is_authenticated",
    "report_subscription_expired",
    "run_startup",
    "select_screen",
    "submit_login",
    "submit_logout",
    "submit_profile_completion",
]
