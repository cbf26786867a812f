import streamlit as st
import pandas as pd
import plotly.express as px
from urllib.parse import urlencode

import auth
import ui
from services import admin_stats_service
from use_cases import rbac_policy
from use_cases.rbac_policy import Permission
from utils import session_manager


def _render_stats_tab(state):
    if not rbac_policy.enforce(state, Permission.VIEW_STATS):
        st.error("Access denied.")
        return
    stats = admin_stats_service.get_admin_stats()

    c1, c2, c3, c4, c5, c6 = st.columns(6)
    c1.metric("Registered", stats["registered"])
    c2.metric("Active", stats["active"])
    c3.metric("Expired", stats["expired"])
    c4.metric("Renewed", stats["renewed"])
    c5.metric("Expiring soon", stats["expiring_soon"])
    c6.metric("Admins", stats["admins"])

    st.subheader("Tool usage")
    usage_df = pd.DataFrame(stats["tool_usage"]).T.rename(columns={"total": "Total", "month": "This month", "day": "Today"})
    st.dataframe(usage_df[["Today", "This month", "Total"]], use_container_width=True)

    daily = admin_stats_service.daily_usage()
    if not daily.empty:
        fig = px.bar(daily, x="date", y="runs", color="tool", title="Runs per day (30 days)")
        st.plotly_chart(ui.update_chart_layout(fig), use_container_width=True)

    st.subheader("Gemini cost (USD)")
    g1, g2, g3 = st.columns(3)
    g1.metric("Today", f"${stats['gemini_cost']['day']:.4f}")
    g2.metric("This month", f"${stats['gemini_cost']['month']:.4f}")
    g3.metric("Total", f"${stats['gemini_cost']['total']:.4f}")
    st.caption(f"Updated {stats['last_updated'][:19].replace('T', ' ')} UTC")


def _render_users_tab(state):
    if not rbac_policy.enforce(state, Permission.MANAGE_USERS):
        st.error("Access denied.")
        return
    actor = state.identity.id

    with st.expander("➕ Create user", expanded=False):
        with st.form("create_user_form", clear_on_submit=True):
            email = st.text_input("Email *")
            role = st.selectbox("Role", ["user", "admin"])
            password = st.text_input("Password (leave empty to generate)", type="password")
            if st.form_submit_button("Create"):
                if "@" not in email:
                    st.error("Please enter a valid email.")
                else:
                    try:
                        created = auth.admin_create_user(email, role=role, password=password or None, actor_user_id=actor)
                        st.success(f"Created {created['email']} ({created['role']}).")
                        if created["password"]:
                            st.code(created["password"], language=None)
                            st.caption("Generated password. Share it securely; it is not shown again.")
                    except auth.UserAlreadyExistsError:
                        st.error("A user with this email already exists.")

    with st.expander("🛡 Upgrade to admin", expanded=False):
        with st.form("upgrade_form", clear_on_submit=True):
            email = st.text_input("Email")
            if st.form_submit_button("Upgrade"):
                try:
                    auth.upgrade_user_to_admin(email, actor_user_id=actor)
                    st.success(f"{email} is now an admin.")
                except ValueError as e:
                    st.error(str(e))

    with st.expander("🔑 Password reset link", expanded=False):
        with st.form("reset_link_form", clear_on_submit=True):
            email = st.text_input("Email")
            if st.form_submit_button("Create link"):
                params = auth.request_password_reset(email)
                if params is None:
                    st.error("No account with this email.")
                else:
                    st.code(f"?{urlencode(params)}", language=None)
                    st.caption(f"Append to the app URL. Valid for {auth.RESET_TTL_MINUTES} minutes.")

    st.subheader("All users")
    users_df = admin_stats_service.users_frame()
    if users_df.empty:
        st.info("No users yet.")
    else:
        st.dataframe(users_df.drop(columns=["id"]), use_container_width=True, hide_index=True)


def _render_settings_tab(state):
    if not rbac_policy.enforce(state, Permission.MANAGE_SETTINGS):
        st.error("Access denied.")
        return
    with st.form("renewal_form"):
        url = st.text_input("Subscription renewal URL", value=auth.get_renewal_url())
        if st.form_submit_button("💾 Save"):
            try:
                auth.update_renewal_url(url, actor_user_id=state.identity.id)
                st.success("Renewal URL updated.")
            except ValueError as e:
                st.error(str(e))

    with st.form("renew_form", clear_on_submit=True):
        c1, c2 = st.columns([3, 1])
        email = c1.text_input("Renew subscription for (email)")
        days = c2.number_input("Days", min_value=1, max_value=730, value=auth.SIGNUP_SUBSCRIPTION_DAYS)
        if st.form_submit_button("🔄 Renew"):
            try:
                expiry = auth.renew_subscription(email, days=int(days), actor_user_id=state.identity.id)
                st.success(f"Renewed until {expiry[:10]}.")
            except ValueError as e:
                st.error(str(e))

    st.subheader(f"Expiring within {admin_stats_service.EXPIRING_SOON_DAYS} days")
    soon = admin_stats_service.expiring_soon()
    if soon.empty:
        st.info("No subscriptions expiring soon.")
    else:
        st.dataframe(soon, use_container_width=True, hide_index=True)


def _render_audit_tab(state):
    if not rbac_policy.enforce(state, Permission.VIEW_AUDIT_LOG):
        st.error("Access denied.")
        return
    from infrastructure.repositories.sqlite_audit_repository import AuditAction

    c1, c2 = st.columns(2)
    action = c1.selectbox("Action", ["All"] + [a.value for a in AuditAction])
    user = c2.text_input("User (email or id)", value="") or "All"
    rows = auth.get_audit_repo().get_logs(limit=200, action_filter=action, user_filter=user)
    if not rows:
        st.info("No audit entries.")
        return
    df = pd.DataFrame(rows, columns=["id", "ts", "actor", "role", "action", "target_type", "target_id", "metadata", "ip", "result"])
    st.dataframe(df.drop(columns=["id", "ip"]), use_container_width=True, hide_index=True)


def render_admin_panel():
    state = session_manager.get_resolver().state

    with st.sidebar:
        st.markdown(f"### 🛠 {state.identity.email}")
        if st.button("Sign out", key="logout_btn", type="secondary"):
            session_manager.logout()

    st.header("⚙️ Admin dashboard")
    tab_stats, tab_users, tab_settings, tab_audit = st.tabs(["📊 Statistics", "👥 Users", "🔗 Subscription", "📜 Audit log"])
    with tab_stats:
        _render_stats_tab(state)
    with tab_users:
        _render_users_tab(state)
    with tab_settings:
        _render_settings_tab(state)
    with tab_audit:
        _render_audit_tab(state)
