"""Session Resolver: derives identity, role and setup status for the current browser session.

`bootstrap()` is synchronous and returns immediately with provisional flags
taken from the persisted session. The authoritative role/setup lookup runs
afterwards (`run_pending_refresh`) and its result is applied only if the
identity it was issued for is still signed in.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from auth import SubscriptionExpiredError
from use_cases.backend_contract import IdentityBackend
from use_cases.navigation import Navigation, is_recovery_navigation
from use_cases.session_models import (
    EMPTY_STATE,
    Identity,
    ProfileRecord,
    Role,
    SessionState,
    SetupStatus,
    SubscriptionExpired,
)
from use_cases.session_store import SessionStore
from use_cases.setup_rules import derive_setup_status

log = logging.getLogger(__name__)


class SessionResolver:
    def __init__(
        self,
        backend: IdentityBackend,
        store: Optional[SessionStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.backend = backend
        self.store = store or SessionStore()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._pending_refresh: Optional[Identity] = None
        self._refresh_task = None

    @property
    def state(self) -> SessionState:
        return self.store.state

    # --- Boot ---

    def bootstrap(self, nav: Navigation) -> SessionState:
        if is_recovery_navigation(nav):
            # Recovery is exclusive: no identity lookup at all.
            return self.store.load_bootstrap(SessionState(recovery_mode=True, loading=False))

        try:
            persisted = self.backend.get_persisted_identity()
        except SubscriptionExpiredError as e:
            self.store.load_bootstrap(EMPTY_STATE)
            return self.store.dispatch(SubscriptionExpired(renewal_url=e.renewal_url))
        except Exception as e:
            log.warning(f"Could not read persisted identity: {e}")
            persisted = None

        if persisted is None or not persisted.authenticated:
            return self.store.load_bootstrap(EMPTY_STATE)

        role = persisted.role or "unknown"
        setup_status = "complete" if role == "admin" else (persisted.setup_status or "unknown")
        state = self.store.load_bootstrap(
            SessionState(
                identity=persisted.identity,
                role=role,
                setup_status=setup_status,
                loading=False,
            )
        )

        self._pending_refresh = persisted.identity
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Caller drives the refresh with run_pending_refresh().
            return state
        self._refresh_task = loop.create_task(self.run_pending_refresh())
        return state

    async def run_pending_refresh(self) -> bool:
        identity, self._pending_refresh = self._pending_refresh, None
        if identity is None:
            return False
        return await self.refresh(identity)

    async def refresh(self, identity: Identity) -> bool:
        """Replace provisional flags for `identity`. True if the store was updated."""
        try:
            role, setup_status = await self._lookup_flags(identity)
        except Exception as e:
            log.warning(f"Session refresh failed for {identity.id}, keeping provisional flags: {e}")
            return False

        if not self.store.apply_refresh(identity, role, setup_status):
            return False

        current = self.store.state
        try:
            self.backend.update_persisted_flags(current.role, current.setup_status)
        except Exception as e:
            log.warning(f"Could not persist refreshed session flags: {e}")
        return True

    # --- Events ---

    def on_auth_event(self, event) -> SessionState:
        return self.store.dispatch(event)

    # --- Lookups ---

    async def _find_profile(self, identity: Identity) -> Optional[ProfileRecord]:
        # Sequential on purpose: the email lookup only runs after a definite miss.
        profile = await self.backend.lookup_profile_by_identity(identity.id)
        if profile is None:
            profile = await self.backend.lookup_profile_by_email(identity.email)
        return profile

    @staticmethod
    def _role_of(profile: Optional[ProfileRecord]) -> Role:
        if profile is None:
            return "unknown"
        if profile.role in ("user", "admin"):
            return profile.role
        return "user"

    async def _lookup_flags(self, identity: Identity) -> Tuple[Role, SetupStatus]:
        profile = await self._find_profile(identity)
        role = self._role_of(profile)
        return role, derive_setup_status(profile, identity.email, role, now=self._clock())

    def _fallback_role(self, identity: Identity) -> Role:
        current = self.store.state
        if current.identity == identity and current.role != "unknown":
            return current.role
        return "user"

    async def resolve_role(self, identity: Identity) -> Role:
        try:
            profile = await self._find_profile(identity)
        except Exception as e:
            log.warning(f"Role lookup failed for {identity.id}: {e}")
            return self._fallback_role(identity)
        return self._role_of(profile)

    async def resolve_setup_status(self, identity: Identity, role: Role) -> SetupStatus:
        if role == "admin":
            return "complete"
        try:
            profile = await self._find_profile(identity)
        except Exception as e:
            log.warning(f"Setup status lookup failed for {identity.id}: {e}")
            return "needs_profile_setup"
        return derive_setup_status(profile, identity.email, role, now=self._clock())

    async def resolve_flags(self, identity: Identity) -> Tuple[Role, SetupStatus]:
        """Role and setup status from a single lookup chain. Never raises."""
        try:
            return await self._lookup_flags(identity)
        except Exception as e:
            log.warning(f"Profile lookup failed for {identity.id}: {e}")
            return self._fallback_role(identity), "needs_profile_setup"
