import asyncio
from typing import Optional
from urllib.parse import unquote, urlparse

import streamlit as st
import streamlit.components.v1 as components

from infrastructure.identity.sqlite_identity_backend import SQLiteIdentityBackend
from use_cases import auth_flow
from use_cases.navigation import Navigation
from use_cases.session_resolver import SessionResolver

"""
SESSION STATE CONTRACT

This module owns the Streamlit session state of the auth layer.

st.session_state keys:

session_resolver: SessionResolver | None
    the resolver (and its SessionStore) for this browser session
    default: None
    owner: session_manager

auth_token: str | None
    signed runtime token issued at login, mirrored in the browser cookie
    default: None
    owner: session_manager

auth_token_cleared: bool
    set on logout so the stale cookie of the current request is ignored
    default: False
    owner: session_manager

show_forgot_password: bool
    login screen shows the reset request form
    default: False
    owner: views.login_view

password_reset_done: bool
    recovery screen finished successfully
    default: False
    owner: views.password_reset_view
"""

COOKIE_NAME = "nest_auth_token"
COOKIE_MAX_AGE = 30 * 24 * 3600


def init_session_state():
    if "session_resolver" not in st.session_state:
        st.session_state.session_resolver = None
    if "auth_token" not in st.session_state:
        st.session_state.auth_token = None
    if "auth_token_cleared" not in st.session_state:
        st.session_state.auth_token_cleared = False
    if "show_forgot_password" not in st.session_state:
        st.session_state.show_forgot_password = False
    if "password_reset_done" not in st.session_state:
        st.session_state.password_reset_done = False


def _set_browser_auth_token(token: str):
    components.html(
        f"""
        <script>
          document.cookie = "{COOKIE_NAME}=" + encodeURIComponent("{token}") + "; path=/; max-age={COOKIE_MAX_AGE}; SameSite=Lax";
        </script>
        """,
        height=0,
    )


def clear_browser_auth_token():
    components.html(
        f"""
        <script>
          document.cookie = "{COOKIE_NAME}=; path=/; max-age=0; SameSite=Lax";
        </script>
        """,
        height=0,
    )


class CookieTokenStore:
    """Token lives in st.session_state for this run and in a cookie across reloads."""

    def read(self) -> Optional[str]:
        token = st.session_state.get("auth_token")
        if token:
            return token
        if st.session_state.get("auth_token_cleared"):
            return None
        try:
            raw = st.context.cookies.get(COOKIE_NAME)
        except Exception:
            # During some tests contexts might not be fully available
            raw = None
        return unquote(raw) if raw else None

    def write(self, token: str) -> None:
        st.session_state.auth_token = token
        st.session_state.auth_token_cleared = False
        _set_browser_auth_token(token)

    def clear(self) -> None:
        st.session_state.auth_token = None
        st.session_state.auth_token_cleared = True
        clear_browser_auth_token()


def _user_agent() -> Optional[str]:
    try:
        return st.context.headers.get("user-agent")
    except Exception:
        return None


def get_navigation() -> Navigation:
    path = "/"
    try:
        path = urlparse(st.context.url).path or "/"
    except Exception:
        pass
    return Navigation(path=path, params=st.query_params.to_dict())


def get_resolver() -> SessionResolver:
    init_session_state()
    resolver = st.session_state.session_resolver
    if resolver is None:
        backend = SQLiteIdentityBackend(CookieTokenStore(), user_agent=_user_agent())
        resolver = SessionResolver(backend)
        st.session_state.session_resolver = resolver
    return resolver


def ensure_bootstrapped() -> SessionResolver:
    """Run bootstrap once per browser session."""
    resolver = get_resolver()
    if resolver.state.loading:
        resolver.bootstrap(get_navigation())
    return resolver


def run_background_refresh(resolver: SessionResolver) -> bool:
    return asyncio.run(resolver.run_pending_refresh())


def logout():
    auth_flow.submit_logout(get_resolver())
    st.rerun()
