from datetime import datetime, timedelta

from trackerbot import activity, admin_stats, bans, groups, referrals, storage, users
from trackerbot.users import UserInfo


def _seed_users(active: int, inactive: int) -> None:
    now = datetime.now().astimezone()
    data = {}
    for i in range(active + inactive):
        days = 1 if i < active else 30
        ts = (now - timedelta(days=days)).isoformat()
        data[str(i + 1)] = {
            "user_id": i + 1,
            "first_seen": ts,
            "last_seen": ts,
            "language_code": "en" if i % 2 == 0 else None,
            "country": "US/UK" if i % 2 == 0 else None,
        }
    storage.save("users", data)


def test_active_inactive_counts():
    _seed_users(active=3, inactive=7)
    stats = admin_stats.bot_stats()
    assert stats["users"] == {"total": 10, "active": 3, "inactive": 7, "banned": 0}


def test_distributions_bucket_unknown():
    _seed_users(active=2, inactive=2)
    stats = admin_stats.bot_stats()
    assert stats["language_distribution"] == {"en": 2, "unknown": 2}
    assert stats["country_distribution"] == {"US/UK": 2, "unknown": 2}


def test_activity_totals_and_tops():
    activity.track_command(1, "start")
    activity.track_command(1, "start")
    activity.track_command(2, "help")
    activity.track_button(1, "b1")
    activity.track_message(2, 500)
    groups.save_group(500, "Chat", "group")
    bans.ban(3, None, 1)
    referrals.create_link("A", code="a")
    referrals.track_click("a", 1)

    stats = admin_stats.bot_stats()
    a = stats["activity"]
    assert a["total_commands"] == 3
    assert a["total_buttons"] == 1
    assert a["total_messages"] == 1
    assert a["top_commands"] == [{"command": "start", "count": 2}, {"command": "help", "count": 1}]
    assert a["top_buttons"] == [{"button": "b1", "count": 1}]
    assert stats["top_users"][0]["user_id"] == 1
    assert stats["top_groups"][0]["chat_id"] == 500
    assert stats["groups"]["total"] == 1
    assert stats["users"]["banned"] == 1
    assert stats["referrals"]["total_clicks"] == 1


def test_top_commands_limited_to_ten():
    for i in range(12):
        activity.track_command(1, f"c{i}")
    assert len(admin_stats.bot_stats()["activity"]["top_commands"]) == 10


def test_user_stats_for_admin():
    assert admin_stats.user_stats_for_admin(1) is None

    users.track_start(UserInfo(user_id=1, first_name="Ann", last_name="Lee", username="ann", language_code="de"))
    view = admin_stats.user_stats_for_admin(1)
    assert view["activity"] == {"commands": {}, "buttons": {}, "messages": 0, "joins": [], "leaves": []}
    assert view["referral"] is None
    assert view["banned"] is False
    assert view["ban_info"] is None
    assert view["is_active"] is True

    referrals.create_link("A", code="a")
    referrals.track_click("a", 1)
    activity.track_message(1)
    bans.ban(1, "spam", 9)
    view = admin_stats.user_stats_for_admin(1)
    assert view["activity"]["messages"] == 1
    assert view["referral"]["source_link"] == "a"
    assert view["banned"] is True
    assert view["ban_info"]["reason"] == "spam"

    text = admin_stats.format_user_stats(view)
    assert "Ann Lee" in text
    assert "@ann" in text
    assert "spam" in text


def test_group_stats_for_admin():
    assert admin_stats.group_stats_for_admin(500) is None
    groups.save_group(500, "Chat <1>", "group")
    view = admin_stats.group_stats_for_admin(500)
    assert view["chat_id"] == 500
    assert view["activity"]["members"] == []
    activity.track_join(1, 500, "Chat")
    view = admin_stats.group_stats_for_admin(500)
    assert view["activity"]["members"] == [1]
    text = admin_stats.format_group_stats(view)
    assert "Chat &lt;1&gt;" in text
    assert "Members tracked: <b>1</b>" in text


def test_format_stats():
    _seed_users(active=1, inactive=1)
    activity.track_command(1, "start")
    referrals.create_link("A", code="a")
    text = admin_stats.format_stats(admin_stats.bot_stats())
    assert "Total: <b>2</b>" in text
    assert "/start: <b>1</b>" in text
    assert "Links: <b>1</b>" in text


def test_format_stats_empty_store():
    text = admin_stats.format_stats(admin_stats.bot_stats())
    assert "Total: <b>0</b>" in text
    assert "Top commands" not in text
    assert "Referrals" not in text
