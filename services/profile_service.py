import logging
from datetime import datetime
from typing import Any, Dict, Optional

import auth
from infrastructure.repositories.sqlite_audit_repository import AuditAction
from use_cases.session_models import Identity
from use_cases.setup_rules import MIN_DISPLAY_NAME_LENGTH, looks_auto_generated

log = logging.getLogger(__name__)

LANGUAGES = ["English", "Hindi", "Tamil", "Telugu", "Kannada", "Malayalam", "Marathi", "Bengali"]
GENDERS = ["Female", "Male", "Other"]


class ProfileValidationError(ValueError):
    pass


def _to_int(value, label) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ProfileValidationError(f"{label} must be a number")


def validate_profile_form(identity: Identity, form: Dict[str, Any]) -> Dict[str, Any]:
    """Return a cleaned copy of the setup wizard form or raise ProfileValidationError."""
    name = (form.get("full_name") or "").strip()
    if len(name) < MIN_DISPLAY_NAME_LENGTH:
        raise ProfileValidationError(f"Please enter your full name (at least {MIN_DISPLAY_NAME_LENGTH} characters)")
    if looks_auto_generated(name, identity.email):
        # Would be read back as "setup still needed" on the next refresh.
        raise ProfileValidationError("Please enter your real name rather than your email address")

    age = _to_int(form.get("age"), "Age")
    if age is None or not 18 <= age <= 100:
        raise ProfileValidationError("Please enter a valid age (18-100 years)")

    child_name = (form.get("child_name") or "").strip()
    if not child_name:
        raise ProfileValidationError("Please enter your child's name")
    child_age = _to_int(form.get("child_age"), "Child age")
    if child_age is None or not 0 <= child_age <= 18:
        raise ProfileValidationError("Please enter a valid child age (0-18 years)")
    if not form.get("child_gender"):
        raise ProfileValidationError("Please select your child's gender")

    language = form.get("preferred_language") or "English"
    if language not in LANGUAGES:
        raise ProfileValidationError(f"Unsupported language: {language}")
    goals = (form.get("goals") or "").strip()
    if not goals:
        raise ProfileValidationError("Please share your parenting goals")

    return {
        "name": name,
        "gender": form.get("gender") or None,
        "age": age,
        "phone": (form.get("phone") or "").strip() or None,
        "spouse_name": (form.get("spouse_name") or "").strip() or None,
        "spouse_gender": form.get("spouse_gender") or None,
        "spouse_age": _to_int(form.get("spouse_age"), "Spouse age"),
        "address": (form.get("address") or "").strip() or None,
        "district": (form.get("district") or "").strip() or None,
        "state": (form.get("state") or "").strip() or None,
        "pincode": (form.get("pincode") or "").strip() or None,
        "preferred_language": language,
        "goals": goals,
        "challenges": (form.get("challenges") or "").strip() or None,
        "child": {
            "name": child_name,
            "gender": form.get("child_gender"),
            "date_of_birth": form.get("child_date_of_birth") or None,
            "age_months": child_age * 12,
            "interests": (form.get("child_interests") or "").strip() or None,
        },
    }


def complete_profile(identity: Identity, form: Dict[str, Any]) -> Dict[str, Any]:
    """Persist the setup wizard. The caller dispatches profile completion afterwards."""
    cleaned = validate_profile_form(identity, form)
    child = cleaned.pop("child")
    now = datetime.utcnow().isoformat()
    repo = auth.get_user_repo()

    repo.upsert_family_profile(identity.id, cleaned, now)
    repo.add_child(identity.id, child["name"], child["gender"], child["date_of_birth"],
                   child["age_months"], child["interests"], now)

    if repo.get_app_user(identity.id) is None:
        # Legacy imports have no role record yet.
        imported = repo.get_imported_profile(identity.email)
        role = "admin" if imported and imported["is_admin"] else "user"
        repo.create_app_user(identity.id, identity.email, cleaned["name"], role, now)
    else:
        repo.update_app_user_name(identity.id, cleaned["name"], now)

    auth.get_audit_repo().log_action(AuditAction.PROFILE_COMPLETED, target_type="profile", actor_user_id=identity.id)
    log.info(f"Profile completed for {identity.id}")
    return {"profile": cleaned, "child": child}


def get_family(identity: Identity) -> Dict[str, Any]:
    repo = auth.get_user_repo()
    return {
        "profile": repo.get_family_profile(identity.id),
        "children": repo.get_children(identity.id),
    }


def primary_child(identity: Identity) -> Optional[Dict[str, Any]]:
    children = auth.get_user_repo().get_children(identity.id)
    if not children:
        return None
    child = dict(children[0])
    child["age"] = (child.get("age_months") or 0) // 12
    return child
