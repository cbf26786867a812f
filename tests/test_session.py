from unittest.mock import MagicMock, patch

import streamlit as st

from use_cases.session_models import Identity, LoginSuccess
from use_cases.session_resolver import SessionResolver
from use_cases.view_router import Screen, select_screen
from utils import session_manager


def test_init_session_state():
    st.session_state.clear()
    session_manager.init_session_state()
    assert st.session_state.session_resolver is None
    assert st.session_state.auth_token is None
    assert st.session_state.auth_token_cleared is False
    assert st.session_state.show_forgot_password is False
    assert st.session_state.password_reset_done is False


def test_init_session_state_keeps_existing_values():
    st.session_state.clear()
    st.session_state.auth_token = "kept"
    session_manager.init_session_state()
    assert st.session_state.auth_token == "kept"


@patch("utils.session_manager.components.html")
def test_cookie_token_store_write_and_clear(mock_html):
    st.session_state.clear()
    session_manager.init_session_state()
    store = session_manager.CookieTokenStore()

    store.write("tok-123")
    assert store.read() == "tok-123"
    assert "tok-123" in mock_html.call_args[0][0]

    store.clear()
    assert store.read() is None
    assert st.session_state.auth_token_cleared is True
    assert "max-age=0" in mock_html.call_args[0][0]


def test_cookie_token_store_reads_browser_cookie():
    st.session_state.clear()
    session_manager.init_session_state()
    fake_st = MagicMock()
    fake_st.session_state = st.session_state
    fake_st.context.cookies = {session_manager.COOKIE_NAME: "abc%3D%3D.sig"}

    with patch("utils.session_manager.st", fake_st):
        assert session_manager.CookieTokenStore().read() == "abc==.sig"


def test_get_navigation():
    fake_st = MagicMock()
    fake_st.context.url = "https://nest.example/reset-password?x=1"
    fake_st.query_params.to_dict.return_value = {"type": "recovery"}

    with patch("utils.session_manager.st", fake_st):
        nav = session_manager.get_navigation()

    assert nav.path == "/reset-password"
    assert nav.params == {"type": "recovery"}


def test_get_resolver_is_created_once():
    st.session_state.clear()
    first = session_manager.get_resolver()
    assert isinstance(first, SessionResolver)
    assert session_manager.get_resolver() is first


@patch("utils.session_manager.get_navigation")
def test_ensure_bootstrapped_runs_once(mock_nav, make_backend):
    from use_cases.navigation import Navigation

    mock_nav.return_value = Navigation()
    st.session_state.clear()
    session_manager.init_session_state()
    backend = make_backend()
    st.session_state.session_resolver = SessionResolver(backend)

    resolver = session_manager.ensure_bootstrapped()
    session_manager.ensure_bootstrapped()

    assert select_screen(resolver.state) == Screen.LOGIN
    assert backend.calls.count("get_persisted_identity") == 1


@patch("streamlit.rerun")
def test_logout(mock_rerun, make_backend):
    st.session_state.clear()
    session_manager.init_session_state()
    backend = make_backend()
    resolver = SessionResolver(backend)
    resolver.on_auth_event(LoginSuccess(identity=Identity(id="u1", email="ann@example.com"), role="user", setup_status="complete"))
    backend.persist_identity(resolver.state.identity, "user", "complete")
    st.session_state.session_resolver = resolver

    session_manager.logout()

    mock_rerun.assert_called_once()
    assert resolver.state.identity is None
    assert backend.persisted is None
