import pytest

import auth
from services import profile_service
from services.profile_service import ProfileValidationError
from use_cases.session_models import Identity

ANN = Identity(id="u1", email="ann.smith@example.com")

VALID_FORM = {
    "full_name": "Ann Smith",
    "age": "32",
    "gender": "Female",
    "child_name": "Mia",
    "child_age": "3",
    "child_gender": "Female",
    "preferred_language": "Hindi",
    "goals": "Better sleep routine",
}


def _form(**overrides):
    return {**VALID_FORM, **overrides}


def test_validate_profile_form_cleans_input():
    cleaned = profile_service.validate_profile_form(ANN, _form(phone="  ", spouse_age=""))
    assert cleaned["name"] == "Ann Smith"
    assert cleaned["age"] == 32
    assert cleaned["phone"] is None
    assert cleaned["spouse_age"] is None
    assert cleaned["child"]["age_months"] == 36


@pytest.mark.parametrize(
    "overrides",
    [
        {"full_name": "An"},
        {"full_name": "ann.smith"},
        {"full_name": "ann.smith@example.com"},
        {"age": "17"},
        {"age": "abc"},
        {"child_name": " "},
        {"child_age": "19"},
        {"child_gender": ""},
        {"preferred_language": "Klingon"},
        {"goals": ""},
    ],
)
def test_validate_profile_form_rejects(overrides):
    with pytest.raises(ProfileValidationError):
        profile_service.validate_profile_form(ANN, _form(**overrides))


def test_complete_profile_updates_existing_user():
    user_id = auth.create_user(ANN.email, "password123")
    identity = Identity(id=user_id, email=ANN.email)

    profile_service.complete_profile(identity, VALID_FORM)

    assert auth.get_user_repo().get_app_user(user_id)["name"] == "Ann Smith"
    family = profile_service.get_family(identity)
    assert family["profile"]["preferred_language"] == "Hindi"
    assert family["children"][0]["name"] == "Mia"
    assert len(auth.get_audit_repo().get_logs(action_filter="PROFILE_COMPLETED")) == 1


def test_complete_profile_creates_role_record_for_imported_account():
    auth.get_user_repo().create_imported_profile(ANN.email, "Ann Old", True, "2024-01-01")

    profile_service.complete_profile(ANN, VALID_FORM)

    record = auth.get_user_repo().get_app_user(ANN.id)
    assert record["role"] == "admin"
    assert record["name"] == "Ann Smith"


def test_primary_child():
    assert profile_service.primary_child(ANN) is None
    profile_service.complete_profile(ANN, VALID_FORM)
    child = profile_service.primary_child(ANN)
    assert child["name"] == "Mia"
    assert child["age"] == 3
