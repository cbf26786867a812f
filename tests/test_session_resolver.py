import asyncio
from datetime import datetime, timedelta, timezone

from auth import SubscriptionExpiredError
from use_cases.navigation import Navigation
from use_cases.session_models import (
    EMPTY_STATE,
    Identity,
    LoginSuccess,
    Logout,
    PersistedIdentity,
    ProfileRecord,
    SessionState,
    SubscriptionNotice,
)
from use_cases.session_resolver import SessionResolver
from use_cases.view_router import Screen, select_screen

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
ANN = Identity(id="u1", email="ann@example.com")
BOB = Identity(id="u2", email="bob@example.com")

ANN_OLD_PROFILE = ProfileRecord(role="user", display_name="Ann Smith", created_at=NOW - timedelta(days=90))
ANN_NEW_PROFILE = ProfileRecord(role="user", display_name="ann", created_at=NOW - timedelta(days=1))
ADMIN_PROFILE = ProfileRecord(role="admin", display_name="ann", created_at=NOW - timedelta(days=1))

RECOVERY_NAV = Navigation(params={"type": "recovery", "access_token": "a", "refresh_token": "r"})


def _persisted(identity=ANN, **flags):
    return PersistedIdentity(id=identity.id, email=identity.email, **flags)


def _resolver(backend):
    return SessionResolver(backend, clock=lambda: NOW)


def test_bootstrap_recovery_is_exclusive(make_backend) -> None:
    backend = make_backend(persisted=_persisted(role="admin", setup_status="complete"))
    resolver = _resolver(backend)

    state = resolver.bootstrap(RECOVERY_NAV)

    assert state.recovery_mode is True
    assert state.identity is None
    assert backend.calls == []
    assert select_screen(state) == Screen.PASSWORD_RESET
    assert asyncio.run(resolver.run_pending_refresh()) is False


def test_bootstrap_recovery_path(make_backend) -> None:
    resolver = _resolver(make_backend())
    assert resolver.bootstrap(Navigation(path="/reset-password")).recovery_mode is True


def test_bootstrap_without_session_goes_to_login(make_backend) -> None:
    resolver = _resolver(make_backend())
    assert resolver.bootstrap(Navigation()) == EMPTY_STATE
    assert select_screen(resolver.state) == Screen.LOGIN


def test_bootstrap_unauthenticated_persisted_session(make_backend) -> None:
    resolver = _resolver(make_backend(persisted=_persisted(authenticated=False)))
    assert resolver.bootstrap(Navigation()) == EMPTY_STATE


def test_bootstrap_backend_error_goes_to_login(make_backend) -> None:
    backend = make_backend()

    def broken():
        raise RuntimeError("cookie jar unavailable")

    backend.get_persisted_identity = broken
    resolver = _resolver(backend)
    assert resolver.bootstrap(Navigation()) == EMPTY_STATE


def test_bootstrap_expired_subscription_shows_notice(make_backend) -> None:
    backend = make_backend(persisted=SubscriptionExpiredError("https://x/renew"))
    resolver = _resolver(backend)

    state = resolver.bootstrap(Navigation())

    assert state == SessionState(subscription_expired=SubscriptionNotice(renewal_url="https://x/renew"), loading=False)
    assert select_screen(state) == Screen.LOGIN
    assert asyncio.run(resolver.run_pending_refresh()) is False


def test_bootstrap_uses_persisted_flags_without_lookup(make_backend) -> None:
    backend = make_backend(persisted=_persisted(role="user", setup_status="complete"))
    resolver = _resolver(backend)

    state = resolver.bootstrap(Navigation())

    assert state.identity == ANN
    assert state.role == "user"
    assert state.setup_status == "complete"
    assert state.loading is False
    assert backend.calls == ["get_persisted_identity"]


def test_bootstrap_persisted_admin_is_complete(make_backend) -> None:
    resolver = _resolver(make_backend(persisted=_persisted(role="admin", setup_status="needs_profile_setup")))
    state = resolver.bootstrap(Navigation())
    assert state.setup_status == "complete"
    assert select_screen(state) == Screen.ADMIN_DASHBOARD


def test_bootstrap_without_flags_routes_as_user(make_backend) -> None:
    resolver = _resolver(make_backend(persisted=_persisted()))
    state = resolver.bootstrap(Navigation())
    assert state.role == "unknown"
    assert state.setup_status == "unknown"
    assert select_screen(state) == Screen.USER_DASHBOARD


def test_background_refresh_replaces_provisional_flags(make_backend) -> None:
    backend = make_backend(persisted=_persisted(role="user", setup_status="complete"), by_id={ANN.id: ADMIN_PROFILE})
    resolver = _resolver(backend)
    resolver.bootstrap(Navigation())

    assert asyncio.run(resolver.run_pending_refresh()) is True
    assert resolver.state.role == "admin"
    assert resolver.state.setup_status == "complete"
    assert backend.persisted.role == "admin"


def test_background_refresh_detects_first_login(make_backend) -> None:
    backend = make_backend(persisted=_persisted(), by_id={ANN.id: ANN_NEW_PROFILE})
    resolver = _resolver(backend)
    resolver.bootstrap(Navigation())

    asyncio.run(resolver.run_pending_refresh())

    assert resolver.state.role == "user"
    assert resolver.state.setup_status == "needs_profile_setup"
    assert select_screen(resolver.state) == Screen.PROFILE_SETUP


def test_refresh_failure_keeps_provisional_flags(make_backend) -> None:
    backend = make_backend(persisted=_persisted(role="user", setup_status="complete"))
    backend.lookup_error = ConnectionError("db locked")
    resolver = _resolver(backend)
    before = resolver.bootstrap(Navigation())

    assert asyncio.run(resolver.run_pending_refresh()) is False
    assert resolver.state == before


def test_pending_refresh_runs_once(make_backend) -> None:
    backend = make_backend(persisted=_persisted(), by_id={ANN.id: ANN_OLD_PROFILE})
    resolver = _resolver(backend)
    resolver.bootstrap(Navigation())

    assert asyncio.run(resolver.run_pending_refresh()) is True
    assert asyncio.run(resolver.run_pending_refresh()) is False


def test_stale_refresh_is_discarded_after_logout(make_backend) -> None:
    backend = make_backend(persisted=_persisted(role="user", setup_status="complete"), by_id={ANN.id: ADMIN_PROFILE})
    resolver = _resolver(backend)
    resolver.bootstrap(Navigation())

    async def scenario():
        backend.gate = asyncio.Event()
        task = asyncio.create_task(resolver.run_pending_refresh())
        await asyncio.sleep(0)
        resolver.on_auth_event(Logout())
        backend.gate.set()
        return await task

    assert asyncio.run(scenario()) is False
    assert resolver.state == EMPTY_STATE


def test_stale_refresh_is_discarded_after_switching_user(make_backend) -> None:
    backend = make_backend(persisted=_persisted(role="user", setup_status="complete"), by_id={ANN.id: ADMIN_PROFILE})
    resolver = _resolver(backend)
    resolver.bootstrap(Navigation())

    async def scenario():
        backend.gate = asyncio.Event()
        task = asyncio.create_task(resolver.run_pending_refresh())
        await asyncio.sleep(0)
        resolver.on_auth_event(LoginSuccess(identity=BOB, role="user", setup_status="complete"))
        backend.gate.set()
        return await task

    assert asyncio.run(scenario()) is False
    assert resolver.state.identity == BOB
    assert resolver.state.role == "user"


def test_bootstrap_inside_running_loop_schedules_refresh(make_backend) -> None:
    backend = make_backend(persisted=_persisted(), by_id={ANN.id: ANN_OLD_PROFILE})
    resolver = _resolver(backend)

    async def scenario():
        state = resolver.bootstrap(Navigation())
        assert state.role == "unknown"
        return await resolver._refresh_task

    assert asyncio.run(scenario()) is True
    assert resolver.state.role == "user"
    assert resolver.state.setup_status == "complete"


def test_email_lookup_only_after_identity_miss(make_backend) -> None:
    backend = make_backend(by_id={ANN.id: ANN_OLD_PROFILE}, by_email={ANN.email: ADMIN_PROFILE})
    resolver = _resolver(backend)

    assert asyncio.run(resolver.resolve_role(ANN)) == "user"
    assert ("by_email", ANN.email) not in backend.calls


def test_email_lookup_after_identity_miss(make_backend) -> None:
    backend = make_backend(by_email={ANN.email: ADMIN_PROFILE})
    resolver = _resolver(backend)

    assert asyncio.run(resolver.resolve_role(ANN)) == "admin"
    assert backend.calls == [("by_id", ANN.id), ("by_email", ANN.email)]


def test_missing_profile_is_unknown_role_and_needs_setup(make_backend) -> None:
    resolver = _resolver(make_backend())
    assert asyncio.run(resolver.resolve_flags(ANN)) == ("unknown", "needs_profile_setup")


def test_resolve_setup_status_for_admin_skips_lookup(make_backend) -> None:
    backend = make_backend()
    resolver = _resolver(backend)
    assert asyncio.run(resolver.resolve_setup_status(ANN, "admin")) == "complete"
    assert backend.calls == []


def test_resolve_setup_status_on_lookup_error(make_backend) -> None:
    backend = make_backend()
    backend.lookup_error = TimeoutError("slow")
    resolver = _resolver(backend)
    assert asyncio.run(resolver.resolve_setup_status(ANN, "user")) == "needs_profile_setup"


def test_lookup_failure_falls_back_to_user(make_backend) -> None:
    backend = make_backend()
    backend.lookup_error = TimeoutError("slow")
    resolver = _resolver(backend)
    assert asyncio.run(resolver.resolve_flags(ANN)) == ("user", "needs_profile_setup")
    assert asyncio.run(resolver.resolve_role(ANN)) == "user"


def test_lookup_failure_keeps_known_role_for_same_identity(make_backend) -> None:
    backend = make_backend(persisted=_persisted(role="admin", setup_status="complete"))
    backend.lookup_error = TimeoutError("slow")
    resolver = _resolver(backend)
    resolver.bootstrap(Navigation())

    assert asyncio.run(resolver.resolve_role(ANN)) == "admin"
    assert asyncio.run(resolver.resolve_role(BOB)) == "user"


def test_profile_with_unrecognised_role_is_user(make_backend) -> None:
    odd = ProfileRecord(role="editor", display_name="Ann Smith", created_at=NOW - timedelta(days=90))
    resolver = _resolver(make_backend(by_id={ANN.id: odd}))
    assert asyncio.run(resolver.resolve_flags(ANN)) == ("user", "complete")
