"""IdentityBackend over the local SQLite user store.

Profiles live in two differently shaped tables depending on how the account
was provisioned: `app_users` (signup and admin invitations, keyed by user id)
and `imported_profiles` (legacy import, keyed by email). Both are mapped into
ProfileRecord here so the resolver never sees either shape.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Protocol

import auth
from use_cases.session_models import Identity, PersistedIdentity, ProfileRecord

log = logging.getLogger(__name__)


class TokenStore(Protocol):
    """Where the signed session token lives between page loads (browser cookie in the app)."""

    def read(self) -> Optional[str]:
        ...

    def write(self, token: str) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryTokenStore:
    def __init__(self, token: Optional[str] = None):
        self.token = token

    def read(self) -> Optional[str]:
        return self.token

    def write(self, token: str) -> None:
        self.token = token

    def clear(self) -> None:
        self.token = None


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        log.warning(f"Unparseable profile timestamp: {value!r}")
        return None


def normalize_app_user(row: Optional[dict]) -> Optional[ProfileRecord]:
    if not row:
        return None
    role = row.get("role") or "user"
    return ProfileRecord(role=role, display_name=row.get("name"), created_at=_parse_timestamp(row.get("created_at")))


def normalize_imported_profile(row: Optional[dict]) -> Optional[ProfileRecord]:
    if not row:
        return None
    return ProfileRecord(
        role="admin" if row.get("is_admin") else "user",
        display_name=row.get("full_name"),
        created_at=_parse_timestamp(row.get("signup_date")),
    )


class SQLiteIdentityBackend:
    def __init__(self, token_store: TokenStore, user_agent: Optional[str] = None):
        self.token_store = token_store
        self.user_agent = user_agent

    # --- Persisted identity ---

    def get_persisted_identity(self) -> Optional[PersistedIdentity]:
        token = self.token_store.read()
        if not token:
            return None
        session = auth.resolve_runtime_session(token, user_agent=self.user_agent)
        if session is None:
            self.token_store.clear()
            return None
        user = auth.get_user_by_id(session["user_id"])
        if user is None or not user["is_active"]:
            log.info(f"Persisted session for missing or inactive user {session['user_id']}; dropping")
            auth.drop_runtime_session(token)
            self.token_store.clear()
            return None
        try:
            auth.ensure_subscription_active(user, target_type="session")
        except auth.SubscriptionExpiredError:
            log.info(f"Subscription of {user['id']} ran out; dropping restored session")
            auth.drop_runtime_session(token)
            self.token_store.clear()
            raise
        return PersistedIdentity(
            id=user["id"],
            email=user["email"],
            authenticated=True,
            role=session["role"],
            setup_status=session["setup_status"],
        )

    def persist_identity(self, identity: Identity, role: str, setup_status: str) -> None:
        token = auth.create_runtime_session(identity.id, user_agent=self.user_agent, role=role, setup_status=setup_status)
        self.token_store.write(token)

    def update_persisted_flags(self, role: str, setup_status: str) -> None:
        token = self.token_store.read()
        if token:
            auth.update_runtime_session_flags(token, role, setup_status)

    def clear_persisted_identity(self) -> None:
        token = self.token_store.read()
        if token:
            auth.drop_runtime_session(token)
        self.token_store.clear()

    # --- Lookups (blocking SQLite moved off the event loop) ---

    async def lookup_profile_by_identity(self, identity_id: str) -> Optional[ProfileRecord]:
        row = await asyncio.to_thread(auth.get_user_repo().get_app_user, identity_id)
        return normalize_app_user(row)

    async def lookup_profile_by_email(self, email: str) -> Optional[ProfileRecord]:
        repo = auth.get_user_repo()
        row = await asyncio.to_thread(repo.get_app_user_by_email, email)
        if row:
            return normalize_app_user(row)
        return normalize_imported_profile(await asyncio.to_thread(repo.get_imported_profile, email))

    async def authenticate(self, email: str, password: str) -> Identity:
        user = await asyncio.to_thread(auth.authenticate_user, email, password)
        return Identity(id=user["id"], email=user["email"])
