"""Read-only inspection of the navigation target (path + query params)."""

from dataclasses import dataclass, field
from typing import Mapping, Optional

RECOVERY_PATH = "/reset-password"
RECOVERY_TYPE = "recovery"
RECOVERY_TOKEN_PARAMS = ("access_token", "refresh_token")


@dataclass(frozen=True)
class Navigation:
    path: str = "/"
    params: Mapping[str, str] = field(default_factory=dict)

    def get(self, key: str) -> Optional[str]:
        value = self.params.get(key)
        # st.query_params may hand back lists for repeated keys
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        return value


def is_recovery_navigation(nav: Navigation) -> bool:
    """True for the dedicated recovery path, or `type=recovery` plus both tokens."""
    if nav.path.rstrip("/") == RECOVERY_PATH:
        return True
    if nav.get("type") != RECOVERY_TYPE:
        return False
    return all(nav.get(p) for p in RECOVERY_TOKEN_PARAMS)


def recovery_tokens(nav: Navigation) -> tuple[Optional[str], Optional[str]]:
    return nav.get("access_token"), nav.get("refresh_token")
