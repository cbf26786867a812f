"""Pure transition function for SessionState."""

import logging
from dataclasses import replace

from use_cases.session_models import (
    EMPTY_STATE,
    LoginSuccess,
    Logout,
    ProfileCompleted,
    SessionState,
    SubscriptionExpired,
    SubscriptionNotice,
    UnhandledEventError,
)

log = logging.getLogger(__name__)


def reduce(state: SessionState, event) -> SessionState:
    """Return the state that follows `event`. Never mutates `state`."""
    if isinstance(event, LoginSuccess):
        # Full replacement; clears recovery and any subscription notice.
        setup_status = "complete" if event.role == "admin" else event.setup_status
        return SessionState(
            identity=event.identity,
            role=event.role,
            setup_status=setup_status,
            loading=False,
        )

    if isinstance(event, Logout):
        return EMPTY_STATE

    if isinstance(event, ProfileCompleted):
        if state.identity is None:
            log.warning("profile_completed received without an identity; ignoring")
            return state
        return replace(state, setup_status="complete")

    if isinstance(event, SubscriptionExpired):
        if state.identity is not None:
            # The notice belongs to the login screen; callers log out first.
            log.warning("subscription_expired received while signed in; ignoring")
            return state
        return replace(state, subscription_expired=SubscriptionNotice(renewal_url=event.renewal_url))

    raise UnhandledEventError(f"No transition for event {event!r}")


def dismiss_subscription_notice(state: SessionState) -> SessionState:
    if state.subscription_expired is None:
        return state
    return replace(state, subscription_expired=None)
