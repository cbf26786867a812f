import streamlit as st
import streamlit.components.v1 as components
import os

from infrastructure.observability import setup_observability
setup_observability()

import ui
from utils import session_manager
from use_cases import bootstrap
from use_cases.view_router import Screen, select_screen
from views import admin_view, login_view, password_reset_view, profile_setup_view, user_dashboard_view
from datetime import datetime

# --- PAGE SETTINGS ---
st.set_page_config(page_title="Nest · Parenting Assistant", page_icon="🏡", layout="wide")

# --- PROD HARDENING ---
FORCE_HTTPS = os.getenv("FORCE_HTTPS", "False").lower() == "true"

# Health Check (Basic load-balancer heartbeat)
if st.query_params.get("health") == "1":
    st.write({"status": "ok", "version": "1.0", "uptime": datetime.utcnow().isoformat()})
    st.stop()

if FORCE_HTTPS:
    proto = st.context.headers.get("x-forwarded-proto", "http").lower()
    if proto != "https":
        st.error("🚨 Insecure connection. Please use HTTPS.")
        st.stop()

# Frame/sniff policies via DOM meta injection; Streamlit can't set response headers.
components.html(
    """
    <script>
    var head = document.getElementsByTagName('head')[0];
    [["X-Content-Type-Options", "nosniff"], ["X-Frame-Options", "DENY"]].forEach(function (pair) {
        var m = document.createElement('meta');
        m.httpEquiv = pair[0];
        m.content = pair[1];
        head.appendChild(m);
    });
    var ref = document.createElement('meta');
    ref.name = "referrer";
    ref.content = "no-referrer";
    head.appendChild(ref);
    </script>
    """,
    height=0,
)

ui.setup_style()

# --- STARTUP ORCHESTRATION ---
startup_result = bootstrap.run_startup()
if startup_result.status == "STOP":
    st.stop()

# --- SESSION ---
resolver = session_manager.ensure_bootstrapped()
state = resolver.state

try:
    import sentry_sdk
    if state.identity is not None and sentry_sdk.get_client().is_active():
        sentry_sdk.set_user({"id": state.identity.id, "role": state.role})
except AttributeError:
    pass

SCREENS = {
    Screen.LOADING: ui.show_loading_overlay,
    Screen.PASSWORD_RESET: password_reset_view.render_password_reset,
    Screen.LOGIN: login_view.render_auth_screen,
    Screen.ADMIN_DASHBOARD: admin_view.render_admin_panel,
    Screen.PROFILE_SETUP: profile_setup_view.render_profile_setup,
    Screen.USER_DASHBOARD: user_dashboard_view.render_user_dashboard,
}

screen = select_screen(state)
SCREENS[screen]()

# Provisional flags from the cookie session are confirmed after the first paint.
if session_manager.run_background_refresh(resolver) and select_screen(resolver.state) != screen:
    st.rerun()
