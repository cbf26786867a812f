"""Authentication flow orchestration (application layer).

The four dispatchers views may call. Each one funnels its outcome into the
session store as a single event.
"""

import logging
from dataclasses import dataclass
from typing import Literal, Optional

import auth
from auth import InvalidCredentialsError, SubscriptionExpiredError
from infrastructure.repositories.sqlite_audit_repository import AuditAction
from use_cases.session_models import (
    LoginSuccess,
    Logout,
    ProfileCompleted,
    SessionState,
    SubscriptionExpired,
)
from use_cases.session_resolver import SessionResolver

log = logging.getLogger(__name__)

AuthFlowStatus = Literal["CONTINUE", "STOP"]


@dataclass(frozen=True)
class AuthFlowResult:
    """Result contract for auth flow orchestration."""

    status: AuthFlowStatus
    reason: str
    message: Optional[str] = None
    user_id: Optional[str] = None


async def submit_login(resolver: SessionResolver, email: str, password: str) -> AuthFlowResult:
    try:
        identity = await resolver.backend.authenticate(email, password)
    except InvalidCredentialsError as e:
        return AuthFlowResult(status="STOP", reason="invalid_credentials", message=str(e))
    except SubscriptionExpiredError as e:
        report_subscription_expired(resolver, e.renewal_url)
        return AuthFlowResult(status="STOP", reason="subscription_expired", message=str(e))

    role, setup_status = await resolver.resolve_flags(identity)
    try:
        resolver.backend.persist_identity(identity, role, setup_status)
    except Exception as e:
        # Login still succeeds; the session just won't survive a reload.
        log.warning(f"Could not persist session for {identity.id}: {e}")

    resolver.on_auth_event(LoginSuccess(identity=identity, role=role, setup_status=setup_status))
    return AuthFlowResult(status="CONTINUE", reason="authenticated", user_id=identity.id)


def submit_logout(resolver: SessionResolver) -> SessionState:
    identity = resolver.state.identity
    try:
        resolver.backend.clear_persisted_identity()
    except Exception as e:
        log.warning(f"Could not clear persisted session: {e}")
    if identity is not None:
        auth.get_audit_repo().log_action(AuditAction.LOGOUT, target_type="auth", actor_user_id=identity.id)
    return resolver.on_auth_event(Logout())


def submit_profile_completion(resolver: SessionResolver) -> SessionState:
    state = resolver.state
    if state.identity is not None:
        try:
            resolver.backend.update_persisted_flags(state.role, "complete")
        except Exception as e:
            log.warning(f"Could not persist completed setup flag: {e}")
    return resolver.on_auth_event(ProfileCompleted())


def report_subscription_expired(resolver: SessionResolver, renewal_url: str) -> SessionState:
    """Expiry is only shown on the login screen, so a signed-in session is ended first."""
    if resolver.state.identity is not None:
        submit_logout(resolver)
    return resolver.on_auth_event(SubscriptionExpired(renewal_url=renewal_url))


def check_subscription(resolver: SessionResolver) -> Optional[int]:
    """Days of access left for the signed-in user, None when unlimited.

    A session that outlives the subscription is ended here and the login
    screen shows the renewal notice.
    """
    identity = resolver.state.identity
    if identity is None or resolver.state.role == "admin":
        return None
    days_left = auth.subscription_days_remaining(identity.id)
    if days_left is not None and days_left < 0:
        auth.get_audit_repo().log_action(AuditAction.SUBSCRIPTION_EXPIRED, target_type="session",
                                         actor_user_id=identity.id, result="deny")
        report_subscription_expired(resolver, auth.get_renewal_url())
    return days_left
