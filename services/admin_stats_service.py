import pandas as pd
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import auth
from services import tool_history

EXPIRING_SOON_DAYS = 7
USAGE_TOOLS = tuple(tool_history.TOOL_TABLES)

USER_COLUMNS = ["id", "email", "name", "role", "is_active", "subscription_expiry", "created_at", "subscription_renewed"]
USAGE_COLUMNS = ["user_id", "tool", "input_tokens", "output_tokens", "cost_usd", "success", "created_at"]


def users_frame(rows: Optional[List[tuple]] = None) -> pd.DataFrame:
    rows = auth.get_all_users() if rows is None else rows
    df = pd.DataFrame(rows, columns=USER_COLUMNS)
    df["subscription_expiry"] = pd.to_datetime(df["subscription_expiry"], errors="coerce", format="ISO8601")
    df["created_at"] = pd.to_datetime(df["created_at"], errors="coerce", format="ISO8601")
    df["is_active"] = df["is_active"].fillna(0).astype(bool)
    df["subscription_renewed"] = df["subscription_renewed"].fillna(0).astype(bool)
    return df


def usage_frame(rows: Optional[List[tuple]] = None) -> pd.DataFrame:
    rows = tool_history.get_run_repo().get_usage_rows() if rows is None else rows
    df = pd.DataFrame(rows, columns=USAGE_COLUMNS)
    df["created_at"] = pd.to_datetime(df["created_at"], errors="coerce", format="ISO8601")
    df["cost_usd"] = pd.to_numeric(df["cost_usd"], errors="coerce").fillna(0.0)
    return df


def user_stats(users: pd.DataFrame, now: datetime) -> Dict[str, int]:
    expiry = users["subscription_expiry"]
    expired = expiry.notna() & (expiry < now)
    soon = expiry.notna() & (expiry >= now) & (expiry <= now + timedelta(days=EXPIRING_SOON_DAYS))
    return {
        "registered": int(len(users)),
        "active": int((users["is_active"] & ~expired).sum()),
        "expired": int(expired.sum()),
        "renewed": int(users["subscription_renewed"].sum()),
        "expiring_soon": int(soon.sum()),
        "admins": int((users["role"] == "admin").sum()),
    }


def usage_stats(usage: pd.DataFrame, now: datetime) -> Dict[str, Any]:
    day_start = datetime(now.year, now.month, now.day)
    month_start = datetime(now.year, now.month, 1)
    ok = usage[usage["success"].astype(bool)]

    tool_usage = {}
    for tool in USAGE_TOOLS:
        runs = ok[ok["tool"] == tool]
        tool_usage[tool] = {
            "total": int(len(runs)),
            "day": int((runs["created_at"] >= day_start).sum()),
            "month": int((runs["created_at"] >= month_start).sum()),
        }

    cost = usage["cost_usd"]
    gemini_cost = {
        "total": round(float(cost.sum()), 6),
        "month": round(float(cost[usage["created_at"] >= month_start].sum()), 6),
        "day": round(float(cost[usage["created_at"] >= day_start].sum()), 6),
    }
    return {"tool_usage": tool_usage, "gemini_cost": gemini_cost}


def get_admin_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    """Dashboard numbers. Naive UTC throughout, matching what the repositories store."""
    now = now or datetime.utcnow()
    stats = user_stats(users_frame(), now)
    stats.update(usage_stats(usage_frame(), now))
    stats["last_updated"] = now.isoformat()
    return stats


def expiring_soon(users: Optional[pd.DataFrame] = None, now: Optional[datetime] = None,
                  days: int = EXPIRING_SOON_DAYS) -> pd.DataFrame:
    now = now or datetime.utcnow()
    users = users_frame() if users is None else users
    expiry = users["subscription_expiry"]
    mask = expiry.notna() & (expiry >= now) & (expiry <= now + timedelta(days=days))
    out = users.loc[mask, ["email", "name", "subscription_expiry"]].sort_values("subscription_expiry")
    out["days_left"] = (out["subscription_expiry"] - now).dt.days
    return out.reset_index(drop=True)


def daily_usage(usage: Optional[pd.DataFrame] = None, now: Optional[datetime] = None, days: int = 30) -> pd.DataFrame:
    """Successful runs per day and tool over the trailing `days`, long format for charting."""
    now = now or datetime.utcnow()
    usage = usage_frame() if usage is None else usage
    since = datetime(now.year, now.month, now.day) - timedelta(days=days - 1)
    recent = usage[usage["success"].astype(bool) & (usage["created_at"] >= since)].copy()
    if recent.empty:
        return pd.DataFrame(columns=["date", "tool", "runs"])
    recent["date"] = recent["created_at"].dt.normalize()
    return recent.groupby(["date", "tool"]).size().reset_index(name="runs")
