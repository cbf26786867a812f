"""Startup orchestration: schema, seed settings and the bootstrap admin."""

from dataclasses import dataclass
from typing import Literal, Tuple

import auth
from services import tool_history

StartupStatus = Literal["CONTINUE", "STOP"]


@dataclass(frozen=True)
class StartupResult:
    """Result contract for startup/bootstrap orchestration."""

    status: StartupStatus
    planned_steps: Tuple[str, ...]


def run_startup() -> StartupResult:
    """Run startup side-effects. Every step is idempotent across reruns."""
    executed_steps = []

    auth.init_db()
    executed_steps.append("init_db")

    tool_history.get_run_repo().init_db()
    executed_steps.append("init_tool_run_db")

    default_url = auth.get_config("DEFAULT_RENEWAL_URL")
    if default_url and not auth.get_user_repo().get_setting(auth.RENEWAL_URL_KEY):
        auth.get_user_repo().set_setting(auth.RENEWAL_URL_KEY, default_url)
        executed_steps.append("seed_renewal_url")

    auth.bootstrap_admin()
    executed_steps.append("bootstrap_admin")

    return StartupResult(status="CONTINUE", planned_steps=tuple(executed_steps))
