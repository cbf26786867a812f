import streamlit as st

from services import profile_service
from use_cases import auth_flow
from utils import session_manager


def render_profile_setup():
    resolver = session_manager.get_resolver()
    identity = resolver.state.identity

    st.title("🌱 Let's set up your family profile")
    st.caption("A few details help us tailor plans, meals and support to your family.")

    with st.form("profile_setup_form"):
        st.subheader("About you")
        c1, c2, c3 = st.columns([2, 1, 1])
        full_name = c1.text_input("Full name *")
        gender = c2.selectbox("Gender", [""] + profile_service.GENDERS)
        age = c3.number_input("Age *", min_value=0, max_value=120, value=30)
        phone = st.text_input("Phone")
        s1, s2, s3 = st.columns([2, 1, 1])
        spouse_name = s1.text_input("Spouse name")
        spouse_gender = s2.selectbox("Spouse gender", [""] + profile_service.GENDERS)
        spouse_age = s3.number_input("Spouse age", min_value=0, max_value=120, value=0)

        st.subheader("Where you live")
        address = st.text_input("Address")
        a1, a2, a3 = st.columns(3)
        district = a1.text_input("District")
        state = a2.text_input("State")
        pincode = a3.text_input("PIN code")
        language = st.selectbox("Preferred language", profile_service.LANGUAGES)

        st.subheader("Your child")
        k1, k2, k3 = st.columns([2, 1, 1])
        child_name = k1.text_input("Child's name *")
        child_gender = k2.selectbox("Child's gender *", [""] + profile_service.GENDERS)
        child_age = k3.number_input("Child's age (years) *", min_value=0, max_value=18, value=1)
        child_dob = st.date_input("Date of birth", value=None)
        child_interests = st.text_input("Interests")

        st.subheader("Goals")
        goals = st.text_area("What are your parenting goals? *")
        challenges = st.text_area("Any current challenges?")

        if st.form_submit_button("✅ Complete setup", type="primary"):
            form = {
                "full_name": full_name, "gender": gender, "age": age, "phone": phone,
                "spouse_name": spouse_name, "spouse_gender": spouse_gender,
                "spouse_age": spouse_age or None,
                "address": address, "district": district, "state": state, "pincode": pincode,
                "preferred_language": language, "goals": goals, "challenges": challenges,
                "child_name": child_name, "child_gender": child_gender, "child_age": child_age,
                "child_date_of_birth": child_dob.isoformat() if child_dob else None,
                "child_interests": child_interests,
            }
            try:
                profile_service.complete_profile(identity, form)
            except profile_service.ProfileValidationError as e:
                st.error(str(e))
            else:
                auth_flow.submit_profile_completion(resolver)
                st.rerun()

    if st.button("Sign out"):
        session_manager.logout()
