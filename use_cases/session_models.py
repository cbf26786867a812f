"""Session DTOs shared across application layers."""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Union

Role = Literal["unknown", "user", "admin"]
SetupStatus = Literal["unknown", "needs_profile_setup", "complete"]


class UnhandledEventError(TypeError):
    """Raised when the reducer receives an object outside the event union."""


@dataclass(frozen=True)
class Identity:
    id: str
    email: str


@dataclass(frozen=True)
class SubscriptionNotice:
    renewal_url: str


@dataclass(frozen=True)
class ProfileRecord:
    """Canonical profile shape every backend adapter maps its rows into."""

    role: Role
    display_name: Optional[str]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class PersistedIdentity:
    """Identity left behind by a prior successful login."""

    id: str
    email: str
    authenticated: bool = True
    role: Optional[Role] = None
    setup_status: Optional[SetupStatus] = None

    @property
    def identity(self) -> Identity:
        return Identity(id=self.id, email=self.email)


@dataclass(frozen=True)
class SessionState:
    identity: Optional[Identity] = None
    role: Role = "unknown"
    setup_status: SetupStatus = "unknown"
    recovery_mode: bool = False
    subscription_expired: Optional[SubscriptionNotice] = None
    loading: bool = True


INITIAL_STATE = SessionState()
EMPTY_STATE = SessionState(loading=False)


# --- Events ---

@dataclass(frozen=True)
class LoginSuccess:
    identity: Identity
    role: Role
    setup_status: SetupStatus


@dataclass(frozen=True)
class Logout:
    pass


@dataclass(frozen=True)
class ProfileCompleted:
    pass


@dataclass(frozen=True)
class SubscriptionExpired:
    renewal_url: str


AuthEvent = Union[LoginSuccess, Logout, ProfileCompleted, SubscriptionExpired]


def is_admin(state: SessionState) -> bool:
    return state.identity is not None and state.role == "admin"


def is_authenticated(state: SessionState) -> bool:
    return state.identity is not None
