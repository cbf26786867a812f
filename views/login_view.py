import asyncio
import logging

import streamlit as st

import auth
from use_cases import auth_flow
from utils import session_manager

log = logging.getLogger(__name__)


def _render_subscription_expired(resolver):
    notice = resolver.state.subscription_expired
    st.title("⏳ Subscription expired")
    st.warning("Your subscription has ended. Renew it to keep using your planner, meal assistant and check-ins.")
    if notice.renewal_url:
        st.link_button("🔄 Renew subscription", notice.renewal_url, type="primary")
    else:
        st.info("Please contact the administrator to renew your subscription.")
    if st.button("← Back to sign in"):
        resolver.store.dismiss_subscription_notice()
        st.rerun()


def _render_forgot_password():
    with st.form("forgot_form", clear_on_submit=True):
        email = st.text_input("Email")
        if st.form_submit_button("📧 Send reset link"):
            if not email.strip():
                st.error("Please enter your email.")
            else:
                try:
                    auth.request_password_reset(email)
                except Exception as e:
                    log.error(f"Password reset request failed: {e}")
                # Same answer either way so registered addresses stay hidden.
                st.success("If an account exists for this email, a reset link is on its way.")
    if st.button("← Back to sign in"):
        st.session_state.show_forgot_password = False
        st.rerun()


def render_auth_screen():
    resolver = session_manager.get_resolver()
    if resolver.state.subscription_expired is not None:
        _render_subscription_expired(resolver)
        return

    if st.session_state.get("show_forgot_password"):
        st.title("🔐 Reset password")
        _render_forgot_password()
        return

    st.title("👋 Welcome back to Nest")
    with st.form("login_form", clear_on_submit=False):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("🚀 Sign in")
        if submitted:
            result = asyncio.run(auth_flow.submit_login(resolver, email, password))
            if result.status == "CONTINUE" or result.reason == "subscription_expired":
                st.rerun()
            else:
                st.error(result.message or "Login failed. Please check your credentials.")

    if st.button("🔒 Forgot your password?"):
        st.session_state.show_forgot_password = True
        st.rerun()
