import json
from datetime import date, datetime, timedelta

import httpx
import pytest

from routerbot.config import Config
from routerbot.usage import (
    Message,
    UsageTracker,
    UserRole,
    cost_for_day,
    cost_for_month,
    total_cost,
)


def make_config(**extra):
    values = dict(
        telegram_bot_token="token",
        openai_api_key="placeholder",
        system_prompt="be brief",
        admin_chat_ids=[1],
        allowed_user_chat_ids=[2],
        user_budget=1.0,
        guest_budget=0.5,
        budget_period="daily",
    )
    values.update(extra)
    return Config(**values)


def test_cost_functions():
    costs = {"2024-05-01": 0.5, "2024-05-20": 0.25, "2024-06-01": 2.0}
    assert cost_for_day(costs, "2024-05-20") == 0.25
    assert cost_for_day(costs, "2024-05-21") == 0.0
    assert cost_for_month(costs, "2024-05-31") == 0.5 + 0.25
    assert total_cost(costs) == 0.5 + 0.25 + 2.0
    assert total_cost({}) == 0.0


def test_new_tracker_creates_usage_file(tmp_path):
    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    data = json.loads((tmp_path / "7.json").read_text(encoding="utf-8"))
    assert data == {"user_name": "", "usage_history": {"chat_cost": {}}}
    assert tracker.system_prompt == "be brief"


def test_add_cost_persists_and_reloads(tmp_path):
    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    tracker.add_cost(0.5)
    tracker.add_cost(0.25)
    today = date.today().isoformat()
    assert tracker.current_cost("daily") == 0.5 + 0.25
    assert tracker.current_cost("monthly") == 0.5 + 0.25
    reloaded = UsageTracker("7", "alice", tmp_path, make_config())
    assert reloaded.chat_cost == {today: 0.5 + 0.25}
    assert reloaded.current_cost("total") == 0.5 + 0.25


def test_invalid_period_returns_zero(tmp_path):
    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    tracker.add_cost(0.5)
    assert tracker.current_cost("weekly") == 0.0


def test_corrupt_usage_file_leaves_empty_usage(tmp_path):
    (tmp_path / "8.json").write_text("{oops", encoding="utf-8")
    tracker = UsageTracker("8", "bob", tmp_path, make_config())
    assert tracker.current_cost("total") == 0.0
    assert (tmp_path / "8.json").read_text(encoding="utf-8") == "{oops"


def test_history_add_and_clear(tmp_path):
    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    tracker.add_message("user", "hi")
    tracker.add_message("assistant", "hello")
    assert tracker.messages == [Message("user", "hi"), Message("assistant", "hello")]
    tracker.clear_history()
    assert tracker.messages == []


def test_check_history_trims_to_latest(tmp_path):
    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    for n in range(5):
        tracker.add_message("user", str(n))
    tracker.check_history(2, 60)
    assert [m.content for m in tracker.messages] == ["3", "4"]
    tracker.check_history(0, 60)
    assert tracker.messages == []


def test_check_history_expires_old_conversation(tmp_path):
    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    tracker.add_message("user", "old")
    tracker.last_message_time = datetime.now() - timedelta(minutes=61)
    tracker.check_history(10, 60)
    assert tracker.messages == []


def test_check_history_sets_time_when_unset(tmp_path):
    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    tracker.add_message("user", "fresh")
    tracker.check_history(10, 60)
    assert tracker.last_message_time is not None
    assert tracker.messages == [Message("user", "fresh")]


def test_user_roles(tmp_path):
    config = make_config()
    assert UsageTracker("1", "a", tmp_path, config).user_role(config) is UserRole.ADMIN
    assert UsageTracker("2", "u", tmp_path, config).user_role(config) is UserRole.USER
    assert UsageTracker("3", "g", tmp_path, config).user_role(config) is UserRole.GUEST


def test_access_depends_on_budget(tmp_path):
    config = make_config()
    admin = UsageTracker("1", "a", tmp_path, config)
    user = UsageTracker("2", "u", tmp_path, config)
    guest = UsageTracker("3", "g", tmp_path, config)
    assert user.have_access(config) is True
    assert guest.have_access(config) is True
    admin.add_cost(5.0)
    user.add_cost(1.0)
    guest.add_cost(0.5)
    assert admin.have_access(config) is True
    assert user.have_access(config) is False
    assert guest.have_access(config) is False


def test_can_view_stats(tmp_path):
    config = make_config()
    admin = UsageTracker("1", "a", tmp_path, config)
    user = UsageTracker("2", "u", tmp_path, config)
    guest = UsageTracker("3", "g", tmp_path, config)
    assert admin.can_view_stats(config) is True
    assert user.can_view_stats(config) is False
    upper = make_config(stats_min_role="USER")
    assert user.can_view_stats(upper) is True
    assert guest.can_view_stats(upper) is False


def test_fetch_generation_cost_records_cost(tmp_path):
    seen = {}

    def handler(request):
        seen["id"] = request.url.params["id"]
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"data": {"id": "gen-1", "total_cost": 0.25}})

    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        cost = tracker.fetch_generation_cost("gen-1", make_config(), client)
    assert cost == 0.25
    assert seen == {"id": "gen-1", "auth": "Bearer placeholder"}
    assert tracker.current_cost("total") == 0.25
    assert UsageTracker("7", "alice", tmp_path, make_config()).current_cost("daily") == 0.25


def test_fetch_generation_cost_bad_body_raises(tmp_path):
    def handler(request):
        return httpx.Response(200, text="nope")

    tracker = UsageTracker("7", "alice", tmp_path, make_config())
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ValueError):
            tracker.fetch_generation_cost("gen-1", make_config(), client)
    assert tracker.current_cost("total") == 0.0