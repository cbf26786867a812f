from datetime import datetime, timedelta, timezone

import pytest

from use_cases.session_models import ProfileRecord
from use_cases.setup_rules import (
    derive_setup_status,
    email_local_part,
    is_recent_account,
    looks_auto_generated,
)

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
EMAIL = "ann.smith@example.com"


def _profile(name, age, role="user"):
    return ProfileRecord(role=role, display_name=name, created_at=NOW - age)


def test_email_local_part() -> None:
    assert email_local_part(EMAIL) == "ann.smith"
    assert email_local_part("") == ""


@pytest.mark.parametrize("name", [None, "", "ann.smith", "ann@example.com", "An", "a@"])
def test_auto_generated_names(name) -> None:
    assert looks_auto_generated(name, EMAIL) is True


@pytest.mark.parametrize("name", ["Ann", "Ann Smith", "ANN.SMITH"])
def test_real_names(name) -> None:
    assert looks_auto_generated(name, EMAIL) is False


def test_exactly_three_character_name_is_not_auto_generated() -> None:
    assert looks_auto_generated("Ann", EMAIL) is False
    assert derive_setup_status(_profile("Ann", timedelta(hours=1)), EMAIL, "user", now=NOW) == "complete"


def test_two_character_name_on_new_account_needs_setup() -> None:
    assert derive_setup_status(_profile("An", timedelta(hours=1)), EMAIL, "user", now=NOW) == "needs_profile_setup"


def test_account_exactly_seven_days_old_is_not_recent() -> None:
    assert is_recent_account(NOW - timedelta(days=7), NOW) is False
    assert derive_setup_status(_profile("ann.smith", timedelta(days=7)), EMAIL, "user", now=NOW) == "complete"


def test_account_just_under_seven_days_old_is_recent() -> None:
    age = timedelta(days=7) - timedelta(seconds=1)
    assert is_recent_account(NOW - age, NOW) is True
    assert derive_setup_status(_profile("ann.smith", age), EMAIL, "user", now=NOW) == "needs_profile_setup"


def test_old_account_with_bad_name_does_not_need_setup() -> None:
    assert derive_setup_status(_profile("", timedelta(days=30)), EMAIL, "user", now=NOW) == "complete"


def test_new_account_with_good_name_does_not_need_setup() -> None:
    assert derive_setup_status(_profile("Ann Smith", timedelta(days=1)), EMAIL, "user", now=NOW) == "complete"


def test_admin_never_needs_setup() -> None:
    assert derive_setup_status(_profile("", timedelta(hours=1), role="admin"), EMAIL, "admin", now=NOW) == "complete"
    assert derive_setup_status(None, EMAIL, "admin", now=NOW) == "complete"


def test_missing_record_needs_setup() -> None:
    assert derive_setup_status(None, EMAIL, "unknown", now=NOW) == "needs_profile_setup"


def test_missing_created_at_is_treated_as_old() -> None:
    profile = ProfileRecord(role="user", display_name="", created_at=None)
    assert derive_setup_status(profile, EMAIL, "user", now=NOW) == "complete"


def test_naive_timestamps_are_read_as_utc() -> None:
    naive = (NOW - timedelta(days=1)).replace(tzinfo=None)
    assert is_recent_account(naive, NOW) is True
