"""First-login detection rules.

There is no "setup completed" flag written when an account is created:
self-serve signups and admin-issued invitations leave the profile record in
different states. Setup is therefore inferred from two conditions that must
BOTH hold:

* the account was created within the trailing window
  (strictly newer than ``now - SETUP_WINDOW``), and
* the stored display name looks auto-generated.

Both thresholds are product decisions; keep them exactly as they are.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from use_cases.session_models import ProfileRecord, Role, SetupStatus

SETUP_WINDOW = timedelta(days=7)
MIN_DISPLAY_NAME_LENGTH = 3


def email_local_part(email: str) -> str:
    return (email or "").split("@")[0]


def is_recent_account(created_at: Optional[datetime], now: datetime) -> bool:
    if created_at is None:
        return False
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return created_at > now - SETUP_WINDOW


def looks_auto_generated(display_name: Optional[str], email: str) -> bool:
    if not display_name:
        return True
    return (
        display_name == email_local_part(email)
        or "@" in display_name
        or len(display_name) < MIN_DISPLAY_NAME_LENGTH
    )


def derive_setup_status(
    profile: Optional[ProfileRecord],
    email: str,
    role: Role,
    now: Optional[datetime] = None,
) -> SetupStatus:
    if role == "admin":
        return "complete"
    if profile is None:
        return "needs_profile_setup"
    now = now or datetime.now(timezone.utc)
    if is_recent_account(profile.created_at, now) and looks_auto_generated(profile.display_name, email):
        return "needs_profile_setup"
    return "complete"
