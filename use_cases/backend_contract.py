"""Backend-agnostic identity provider contract.

Adapters normalize their native row shapes into ProfileRecord before
returning; the resolver never sees backend-specific field names.
"""

from typing import Optional, Protocol

from use_cases.session_models import Identity, PersistedIdentity, ProfileRecord


class IdentityBackend(Protocol):
    def get_persisted_identity(self) -> Optional[PersistedIdentity]:
        """Raises SubscriptionExpiredError after dropping a session whose access ran out."""
        ...


    async def lookup_profile_by_identity(self, identity_id: str) -> Optional[ProfileRecord]:
        ...

    async def lookup_profile_by_email(self, email: str) -> Optional[ProfileRecord]:
        ...

    async def authenticate(self, email: str, password: str) -> Identity:
        """Raises InvalidCredentialsError or SubscriptionExpiredError."""
        ...

    def persist_identity(self, identity: Identity, role: str, setup_status: str) -> None:
        ...

    def update_persisted_flags(self, role: str, setup_status: str) -> None:
        ...

    def clear_persisted_identity(self) -> None:
        ...
