from datetime import datetime

import pytest

import auth
from services import admin_stats_service, tool_history

NOW = datetime(2026, 10, 15, 12, 0)

USERS = [
    ("u1", "a@x.com", "A", "admin", 1, "2027-01-01T00:00:00", "2026-01-01T00:00:00", 0),
    ("u2", "b@x.com", "B", "user", 1, "2026-10-01T00:00:00", "2026-09-01T00:00:00", 0),
    ("u3", "c@x.com", "C", "user", 1, "2026-10-18T00:00:00", "2026-09-18T00:00:00", 1),
    ("u4", "d@x.com", "D", "user", 0, None, "2026-09-20T00:00:00", 0),
]

USAGE = [
    ("u2", "planner", 100, 200, 0.01, 1, "2026-10-15T08:00:00"),
    ("u2", "planner", 100, 200, 0.01, 1, "2026-10-02T08:00:00"),
    ("u3", "meal", 100, 200, 0.02, 1, "2026-09-30T08:00:00"),
    ("u3", "emotion", 100, 200, 0.03, 0, "2026-10-15T09:00:00"),
    ("u3", "recipe", 100, 200, 0.04, 1, "2026-10-15T10:00:00.123456"),
]


def test_user_stats():
    stats = admin_stats_service.user_stats(admin_stats_service.users_frame(USERS), NOW)
    assert stats == {"registered": 4, "active": 2, "expired": 1, "renewed": 1, "expiring_soon": 1, "admins": 1}


def test_usage_stats():
    stats = admin_stats_service.usage_stats(admin_stats_service.usage_frame(USAGE), NOW)
    assert stats["tool_usage"]["planner"] == {"total": 2, "day": 1, "month": 2}
    assert stats["tool_usage"]["meal"] == {"total": 1, "day": 0, "month": 0}
    # failed runs are not counted as usage
    assert stats["tool_usage"]["emotion"] == {"total": 0, "day": 0, "month": 0}
    assert stats["tool_usage"]["recipe"] == {"total": 1, "day": 1, "month": 1}
    # but every call is billed
    assert stats["gemini_cost"]["total"] == pytest.approx(0.11)
    assert stats["gemini_cost"]["month"] == pytest.approx(0.09)
    assert stats["gemini_cost"]["day"] == pytest.approx(0.08)


def test_expiring_soon():
    soon = admin_stats_service.expiring_soon(admin_stats_service.users_frame(USERS), NOW)
    assert list(soon["email"]) == ["c@x.com"]
    assert soon.loc[0, "days_left"] == 2


def test_daily_usage():
    daily = admin_stats_service.daily_usage(admin_stats_service.usage_frame(USAGE), NOW)
    today = daily[daily["date"] == datetime(2026, 10, 15)]
    assert set(today["tool"]) == {"planner", "recipe"}
    assert "emotion" not in set(daily["tool"])


def test_empty_database_stats():
    stats = admin_stats_service.get_admin_stats(NOW)
    assert stats["registered"] == 0
    assert stats["gemini_cost"]["total"] == 0
    assert admin_stats_service.daily_usage(now=NOW).empty
    assert admin_stats_service.expiring_soon(now=NOW).empty


def test_get_admin_stats_reads_repositories():
    auth.create_user("ann@example.com", "password123")
    tool_history.get_run_repo().log_usage("u1", "planner", 10, 10, 0.5)

    stats = admin_stats_service.get_admin_stats()

    assert stats["registered"] == 1
    assert stats["active"] == 1
    assert stats["tool_usage"]["planner"]["total"] == 1
    assert stats["gemini_cost"]["day"] == pytest.approx(0.5)
