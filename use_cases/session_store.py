"""Single-writer holder of the current SessionState."""

import logging
from dataclasses import replace
from typing import Callable, List, Optional

from use_cases.session_models import INITIAL_STATE, Identity, SessionState
from use_cases.session_reducer import dismiss_subscription_notice, reduce

log = logging.getLogger(__name__)

Listener = Callable[[SessionState], None]


class SessionStore:
    def __init__(self, initial: Optional[SessionState] = None):
        self._state = initial or INITIAL_STATE
        self._listeners: List[Listener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, new_state: SessionState) -> SessionState:
        if new_state != self._state:
            self._state = new_state
            for listener in list(self._listeners):
                listener(new_state)
        return self._state

    def dispatch(self, event) -> SessionState:
        return self._set(reduce(self._state, event))

    def load_bootstrap(self, state: SessionState) -> SessionState:
        """Install the bootstrap result. A no-op once any event has landed."""
        if not self._state.loading:
            log.debug("Bootstrap result arrived after the session settled; dropped")
            return self._state
        return self._set(state)

    def dismiss_subscription_notice(self) -> SessionState:
        return self._set(dismiss_subscription_notice(self._state))

    def apply_refresh(self, identity: Identity, role: str, setup_status: str) -> bool:
        """Apply background-refreshed flags if `identity` is still current.

        Returns False when the result is stale (logout or a different login
        happened meanwhile) and was discarded.
        """
        current = self._state
        if current.identity is None or current.identity != identity:
            log.debug(f"Discarding stale refresh for {identity.id}")
            return False
        if role == "unknown":
            role = current.role if current.role != "unknown" else "user"
        if role == "admin":
            setup_status = "complete"
        elif setup_status == "unknown":
            setup_status = current.setup_status
        self._set(replace(current, role=role, setup_status=setup_status))
        return True
