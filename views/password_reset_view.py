import streamlit as st

import auth
from use_cases.navigation import recovery_tokens
from utils import session_manager


def render_password_reset():
    st.title("🔐 Choose a new password")
    access_token, refresh_token = recovery_tokens(session_manager.get_navigation())
    if not access_token or not refresh_token:
        st.error("Invalid or expired password reset link. Please request a new one.")
        _render_back_to_login()
        return

    if st.session_state.get("password_reset_done"):
        st.success("Your password has been updated. You can sign in now.")
        _render_back_to_login()
        return

    with st.form("reset_form"):
        password = st.text_input("New password", type="password")
        confirm = st.text_input("Confirm new password", type="password")
        if st.form_submit_button("Update password"):
            if password != confirm:
                st.error("Passwords do not match.")
            else:
                try:
                    auth.reset_password(access_token, refresh_token, password)
                    st.session_state.password_reset_done = True
                    st.rerun()
                except auth.PasswordResetError as e:
                    st.error(str(e))


def _render_back_to_login():
    if st.button("← Back to sign in"):
        # Leaving recovery means a fresh browser session state.
        st.query_params.clear()
        st.session_state.clear()
        st.rerun()
