import streamlit as st
from datetime import time as dtime

import auth
import ui
from infrastructure.ai.gemini_provider import AIServiceError
from services import emotion_service, meal_service, planner_service, profile_service, tool_history
from use_cases import auth_flow, rbac_policy
from use_cases.rbac_policy import Permission
from utils import session_manager


def _family_defaults(identity):
    family = profile_service.get_family(identity)
    profile = family["profile"] or {}
    child = profile_service.primary_child(identity) or {"name": "", "age": 1, "age_months": 12}
    return profile, child


def _render_history(tool, user_id, render_item):
    runs = tool_history.get_history(tool, user_id, limit=10)
    with st.expander(f"🕘 History ({len(runs)})", expanded=False):
        if not runs:
            st.caption("Nothing here yet.")
        for run in runs:
            st.markdown(f"**{run['label'] or 'Untitled'}** · {run['created_at'][:16].replace('T', ' ')}")
            render_item(run["result"])
            st.divider()


def _show_plan(plan):
    for item in plan.get("daily_plan", []):
        ui.render_card(f"{item['time']} · {item['activity']}", item["details"])
    if plan.get("parenting_tip"):
        st.info(f"💡 {plan['parenting_tip']}")


def _render_planner(identity, profile, child):
    st.subheader("🗓 Daily parenting planner")
    with st.form("planner_form"):
        c1, c2 = st.columns(2)
        child_name = c1.text_input("Child's name", value=child.get("name", ""))
        child_age = c2.number_input("Child's age (years)", min_value=0, max_value=18, value=int(child.get("age") or 0))
        focus = st.text_input("Focus areas", placeholder="e.g. sleep routine, outdoor play")
        t1, t2 = st.columns(2)
        start = t1.time_input("From", value=dtime(7, 0))
        end = t2.time_input("Until", value=dtime(20, 0))
        submitted = st.form_submit_button("Generate plan", type="primary")
    if submitted:
        if not child_name.strip() or not focus.strip():
            st.error("Please fill in the child's name and focus areas.")
        else:
            placeholder = st.empty()
            with placeholder.container():
                ui.render_skeleton_cards()
            try:
                plan = planner_service.generate_plan(
                    identity.id, profile.get("name") or identity.email,
                    {"name": child_name.strip(), "age": child_age}, focus.strip(),
                    profile.get("preferred_language") or "English",
                    start.strftime("%H:%M"), end.strftime("%H:%M"),
                )
            except AIServiceError as e:
                placeholder.empty()
                st.error(str(e))
            else:
                placeholder.empty()
                _show_plan(plan)
    _render_history("planner", identity.id, _show_plan)


def _show_meal_plan(plan):
    for meal in meal_service.MEALS:
        st.markdown(f"**{meal.capitalize()}**")
        c1, c2 = st.columns(2)
        for col, who in ((c1, "baby"), (c2, "mother")):
            dish = plan[meal][who]
            with col:
                ui.render_card(dish["name"], ", ".join(dish["ingredients"]), caption=who.capitalize())
    if plan.get("shopping_list"):
        st.markdown("**🛒 Shopping list**")
        st.markdown("\n".join(f"- {i}" for i in plan["shopping_list"]))


def _show_recipe(recipe):
    st.markdown(f"### {recipe.get('dish_name', '')}")
    st.write(recipe.get("description", ""))
    st.markdown("**Ingredients**")
    st.markdown("\n".join(f"- {i.get('item', '')}" for i in recipe.get("ingredients", [])))
    st.markdown("**Steps**")
    for step in recipe.get("instructions", []):
        st.markdown(f"{step.get('step', '')}. {step.get('instruction', '')}")


def _render_meals(identity, profile, child):
    st.subheader("🥣 Meal assistant")
    mode = st.radio("Mode", ["Full day plan", "Single recipe"], horizontal=True, label_visibility="collapsed")
    language = profile.get("preferred_language") or "English"
    if mode == "Full day plan":
        with st.form("meal_form"):
            c1, c2 = st.columns(2)
            child_name = c1.text_input("Child's name", value=child.get("name", ""))
            age_months = c2.number_input("Child's age (months)", min_value=0, max_value=216,
                                         value=int(child.get("age_months") or 12))
            dietary = st.multiselect("Dietary preferences", ["Vegetarian", "Vegan", "Eggetarian", "Dairy-free", "Gluten-free", "Nut-free"])
            mother_age = st.number_input("Mother's age (optional)", min_value=0, max_value=100, value=int(profile.get("age") or 0))
            extra = st.text_input("Additional instructions")
            submitted = st.form_submit_button("Generate meal plan", type="primary")
        if submitted:
            with st.spinner("Cooking up ideas..."):
                try:
                    plan = meal_service.generate_meal_plan(
                        identity.id, {"name": child_name.strip() or "my child", "age_months": age_months},
                        dietary, language, mother_age or None, extra.strip() or None,
                    )
                    _show_meal_plan(plan)
                except AIServiceError as e:
                    st.error(str(e))
        _render_history("meal", identity.id, _show_meal_plan)
    else:
        with st.form("recipe_form"):
            dish = st.text_input("Dish name")
            submitted = st.form_submit_button("Get recipe", type="primary")
        if submitted:
            with st.spinner("Writing the recipe..."):
                try:
                    _show_recipe(meal_service.generate_single_recipe(identity.id, dish, language))
                except (AIServiceError, ValueError) as e:
                    st.error(str(e))
        _render_history("recipe", identity.id, _show_recipe)


def _render_emotion(identity, profile):
    st.subheader("💛 Emotion check-in")
    with st.form("emotion_form"):
        mood = st.selectbox("How are you feeling?", emotion_service.MOODS)
        note = st.text_area("Anything you'd like to share? (optional)")
        submitted = st.form_submit_button("Check in", type="primary")
    if submitted:
        with st.spinner("Listening..."):
            try:
                message = emotion_service.get_emotion_support(
                    identity.id, mood, note.strip() or None,
                    profile.get("preferred_language") or "English", profile.get("name"),
                )
                st.success(message)
            except AIServiceError as e:
                st.error(str(e))
    _render_history("emotion", identity.id, st.write)


def _render_subscription_notice(resolver):
    days_left = auth_flow.check_subscription(resolver)
    if days_left is not None and days_left < 0:
        # Access ran out mid-session; the login screen carries the renewal link.
        st.rerun()
    if days_left is None or days_left > auth.EXPIRY_NOTICE_DAYS:
        return
    when = "today" if days_left == 0 else f"in {days_left} day{'' if days_left == 1 else 's'}"
    renewal_url = auth.get_renewal_url()
    link = f" [Renew]({renewal_url})" if renewal_url else ""
    st.warning(f"Your subscription expires {when}.{link}")


def render_user_dashboard():
    resolver = session_manager.get_resolver()
    _render_subscription_notice(resolver)
    state = resolver.state
    identity = state.identity

    if not rbac_policy.enforce(state, Permission.USE_TOOLS):
        st.error("You don't have access to the tools.")
        return

    profile, child = _family_defaults(identity)

    with st.sidebar:
        st.markdown(f"### 👋 {profile.get('name') or identity.email}")
        if st.button("Sign out", key="logout_btn", type="secondary"):
            session_manager.logout()

    st.title("🏡 Nest")
    tab_plan, tab_meal, tab_emotion = st.tabs(["🗓 Planner", "🥣 Meals", "💛 Check-in"])
    with tab_plan:
        _render_planner(identity, profile, child)
    with tab_meal:
        _render_meals(identity, profile, child)
    with tab_emotion:
        _render_emotion(identity, profile)
