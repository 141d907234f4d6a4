from dataclasses import asdict
from datetime import datetime
from html import escape
from typing import Any

from trackerbot import activity, bans, groups, referrals, users

TOP_LIMIT = 10
UNKNOWN = "unknown"


def _now() -> datetime:
    return datetime.now().astimezone()


def _top_counts(counter: dict[str, Any], label: str, limit: int = TOP_LIMIT) -> list[dict[str, Any]]:
    rows = [(str(k), int(v or 0)) for k, v in (counter or {}).items()]
    rows.sort(key=lambda kv: kv[1], reverse=True)
    return [{label: k, "count": v} for k, v in rows[:limit]]


def _distribution(records: list[dict[str, Any]], field: str) -> dict[str, int]:
    out: dict[str, int] = {}
    for rec in records:
        key = rec.get(field) or UNKNOWN
        out[key] = out.get(key, 0) + 1
    return out


def bot_stats() -> dict[str, Any]:
    """
    Everything shown on the admin stats screen, computed from the stored documents.
    """
    user_recs = list(users.all_users().values())
    now = _now()
    total = len(user_recs)
    active = sum(1 for rec in user_recs if users.is_active(rec, now))

    glob = activity.get_global_stats()
    commands = glob.get("commands") or {}
    buttons = glob.get("buttons") or {}

    return {
        "users": {
            "total": total,
            "active": active,
            "inactive": total - active,
            "banned": len(bans.all_banned()),
        },
        "groups": {"total": len(groups.all_groups())},
        "activity": {
            "total_commands": sum(int(v or 0) for v in commands.values()),
            "total_buttons": sum(int(v or 0) for v in buttons.values()),
            "total_messages": int(glob.get("messages", 0) or 0),
            "top_commands": _top_counts(commands, "command"),
            "top_buttons": _top_counts(buttons, "button"),
        },
        "top_users": activity.top_active("users", TOP_LIMIT),
        "top_groups": activity.top_active("groups", TOP_LIMIT),
        "language_distribution": _distribution(user_recs, "language_code"),
        "country_distribution": _distribution(user_recs, "country"),
        "referrals": referrals.referral_stats(),
    }


def user_stats_for_admin(user_id: int) -> dict[str, Any] | None:
    stats = users.user_stats(user_id)
    if stats is None:
        return None
    ban_info = bans.get_ban_info(user_id)
    return {
        **stats,
        "activity": activity.get_user_activity(user_id)
        or {"commands": {}, "buttons": {}, "messages": 0, "joins": [], "leaves": []},
        "referral": referrals.get_user_referral(user_id),
        "banned": bans.is_banned(user_id),
        "ban_info": asdict(ban_info) if ban_info else None,
    }


def group_stats_for_admin(chat_id: int) -> dict[str, Any] | None:
    group = groups.get_group(chat_id)
    if group is None:
        return None
    return {
        **group,
        "chat_id": int(chat_id),
        "activity": activity.get_group_activity(chat_id)
        or {"commands": {}, "buttons": {}, "messages": 0, "joins": 0, "leaves": 0, "members": []},
    }


def format_stats(stats: dict[str, Any]) -> str:
    u = stats["users"]
    a = stats["activity"]
    lines: list[str] = []
    lines.append("📊 <b>Bot statistics</b>")
    lines.append("")
    lines.append("👥 <b>Users</b>")
    lines.append(f"Total: <b>{u['total']}</b>")
    lines.append(f"Active (7 days): <b>{u['active']}</b>")
    lines.append(f"Inactive: <b>{u['inactive']}</b>")
    lines.append(f"Banned: <b>{u['banned']}</b>")
    lines.append("")
    lines.append(f"🏘 <b>Groups</b>: <b>{stats['groups']['total']}</b>")
    lines.append("")
    lines.append("📈 <b>Activity</b>")
    lines.append(f"Commands: <b>{a['total_commands']}</b>")
    lines.append(f"Buttons: <b>{a['total_buttons']}</b>")
    lines.append(f"Messages: <b>{a['total_messages']}</b>")

    if a["top_commands"]:
        lines.append("")
        lines.append("🔥 <b>Top commands</b>")
        for i, row in enumerate(a["top_commands"], start=1):
            lines.append(f"{i}. /{escape(row['command'])}: <b>{row['count']}</b>")

    if stats["top_users"]:
        lines.append("")
        lines.append("⭐ <b>Top users</b>")
        for i, row in enumerate(stats["top_users"][:5], start=1):
            lines.append(f"{i}. <code>{row['user_id']}</code>: <b>{row['total_activity']}</b> actions")

    if stats["top_groups"]:
        lines.append("")
        lines.append("🏆 <b>Top groups</b>")
        for i, row in enumerate(stats["top_groups"][:5], start=1):
            lines.append(f"{i}. <code>{row['chat_id']}</code>: <b>{row['total_activity']}</b> actions")

    langs = stats.get("language_distribution") or {}
    if langs:
        lines.append("")
        lines.append("🌐 <b>Languages</b>")
        for lang, count in sorted(langs.items(), key=lambda kv: kv[1], reverse=True)[:TOP_LIMIT]:
            lines.append(f"{escape(str(lang))}: <b>{count}</b>")

    ref = stats["referrals"]
    if ref["total_links"] > 0:
        lines.append("")
        lines.append("🔗 <b>Referrals</b>")
        lines.append(f"Links: <b>{ref['total_links']}</b>")
        lines.append(f"Clicks: <b>{ref['total_clicks']}</b>")
        lines.append(f"Unique users: <b>{ref['total_unique_users']}</b>")

    return "\n".join(lines)


def format_user_stats(view: dict[str, Any]) -> str:
    name = " ".join(x for x in [view.get("first_name") or "", view.get("last_name") or ""] if x).strip()
    username = view.get("username")
    act = view["activity"]
    total_commands = sum(int(v or 0) for v in (act.get("commands") or {}).values())
    total_buttons = sum(int(v or 0) for v in (act.get("buttons") or {}).values())

    lines: list[str] = []
    lines.append(f"👤 <b>{escape(name or 'No name')}</b>" + (f" (@{escape(username)})" if username else ""))
    lines.append(f"ID: <code>{view['user_id']}</code>")
    lines.append(f"Language: {escape(str(view.get('language_code') or UNKNOWN))}")
    lines.append(f"First seen: {view.get('days_since_first_seen')} days ago")
    lines.append(f"Last seen: {view.get('days_since_last_seen')} days ago")
    lines.append(f"Status: {'active' if view.get('is_active') else 'inactive'}")
    lines.append(f"Starts: <b>{view.get('start_count', 0)}</b>")
    lines.append("")
    lines.append(f"Commands: <b>{total_commands}</b>")
    lines.append(f"Buttons: <b>{total_buttons}</b>")
    lines.append(f"Messages: <b>{int(act.get('messages', 0) or 0)}</b>")
    lines.append(f"Joins: <b>{len(act.get('joins') or [])}</b>, leaves: <b>{len(act.get('leaves') or [])}</b>")

    ref = view.get("referral")
    if ref:
        lines.append("")
        lines.append(f"Referral: {escape(str(ref.get('source') or ''))} (<code>{escape(str(ref.get('source_link')))}</code>)")

    if view.get("banned"):
        info = view.get("ban_info") or {}
        lines.append("")
        lines.append(f"🚫 Banned: {escape(str(info.get('reason') or 'no reason'))}")

    return "\n".join(lines)


def format_group_stats(view: dict[str, Any]) -> str:
    act = view["activity"]
    lines: list[str] = []
    lines.append(f"🏘 <b>{escape(str(view.get('title') or view['chat_id']))}</b>")
    lines.append(f"ID: <code>{view['chat_id']}</code>")
    lines.append(f"Tracking since: {escape(str(view.get('added_at') or '-'))}")
    if view.get("left_at"):
        lines.append(f"Bot left: {escape(str(view['left_at']))}")
    lines.append(f"Members tracked: <b>{len(act.get('members') or [])}</b>")
    lines.append(f"Joins: <b>{int(act.get('joins', 0) or 0)}</b>, leaves: <b>{int(act.get('leaves', 0) or 0)}</b>")
    lines.append(f"Messages: <b>{int(act.get('messages', 0) or 0)}</b>")
    lines.append(f"Commands: <b>{sum(int(v or 0) for v in (act.get('commands') or {}).values())}</b>")
    return "\n".join(lines)
