"""Centralized Role-Based Access Control logic."""

from enum import Enum

from use_cases.session_models import SessionState, is_admin, is_authenticated


class Permission(str, Enum):
    USE_TOOLS = "USE_TOOLS"
    VIEW_STATS = "VIEW_STATS"
    MANAGE_USERS = "MANAGE_USERS"
    MANAGE_SETTINGS = "MANAGE_SETTINGS"
    VIEW_AUDIT_LOG = "VIEW_AUDIT_LOG"


def enforce(state: SessionState, action: str) -> bool:
    """
    Evaluates if the signed-in session may perform the action.
    Returns True if authorized, False otherwise.
    """
    import auth
    from infrastructure.repositories.sqlite_audit_repository import AuditAction

    action = action.value if isinstance(action, Permission) else str(action)
    identity = state.identity if state is not None else None

    authorized = False

    if state is not None and is_authenticated(state):
        # Admins get overarching rights to everything
        if is_admin(state):
            authorized = True
        # "unknown" is routed as a user and gets the same rights
        elif action == Permission.USE_TOOLS.value:
            authorized = True

    if not authorized:
        auth.get_audit_repo().log_action(
            AuditAction.RBAC_DENIED,
            target_type="rbac",
            actor_user_id=identity.id if identity else None,
            actor_role=state.role if state is not None else None,
            metadata={"target_action": action, "reason": "insufficient_rights"},
            result="deny",
        )

    return authorized
