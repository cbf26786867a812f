from dataclasses import replace

import pytest

import auth
from services import tool_history
from use_cases.session_models import PersistedIdentity


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Every test gets its own SQLite file and a known session secret."""
    db_file = tmp_path / "nest_test.db"
    monkeypatch.setattr(auth, "NEST_DB", str(db_file))
    monkeypatch.setenv("SESSION_SECRET", "test-session-secret")
    monkeypatch.delenv("GEMINI_PROXY_URL", raising=False)
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.setattr(tool_history, "_provider", None)
    auth.init_db()
    tool_history.get_run_repo().init_db()
    yield str(db_file)


class FakeBackend:
    """In-memory IdentityBackend. Set `gate` to an asyncio.Event to hold lookups in flight."""

    def __init__(self, persisted=None, by_id=None, by_email=None, accounts=None):
        self.persisted = persisted
        self.by_id = dict(by_id or {})
        self.by_email = dict(by_email or {})
        self.accounts = dict(accounts or {})
        self.lookup_error = None
        self.gate = None
        self.calls = []

    def get_persisted_identity(self):
        self.calls.append("get_persisted_identity")
        if isinstance(self.persisted, Exception):
            raise self.persisted
        return self.persisted

    async def _maybe_wait(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.lookup_error is not None:
            raise self.lookup_error

    async def lookup_profile_by_identity(self, identity_id):
        self.calls.append(("by_id", identity_id))
        await self._maybe_wait()
        return self.by_id.get(identity_id)

    async def lookup_profile_by_email(self, email):
        self.calls.append(("by_email", email))
        await self._maybe_wait()
        return self.by_email.get(email)

    async def authenticate(self, email, password):
        self.calls.append(("authenticate", email))
        outcome = self.accounts.get(email)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None or outcome[0] != password:
            raise auth.InvalidCredentialsError("Invalid email or password")
        return outcome[1]

    def persist_identity(self, identity, role, setup_status):
        self.persisted = PersistedIdentity(
            id=identity.id, email=identity.email, authenticated=True, role=role, setup_status=setup_status
        )

    def update_persisted_flags(self, role, setup_status):
        if self.persisted is not None:
            self.persisted = replace(self.persisted, role=role, setup_status=setup_status)

    def clear_persisted_identity(self):
        self.persisted = None


@pytest.fixture
def make_backend():
    return FakeBackend
