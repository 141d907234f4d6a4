"""
Per-user, per-group and bot-wide activity counters.

A tracked event updates the user entry and (when a chat is given) the group
entry in two separate load/save cycles of the `activities` document, and bumps
the user's last_seen. Join/leave are not counted globally.
"""
from datetime import datetime
from typing import Any

from trackerbot import storage, users

DOC = "activities"

KINDS = ("command", "button", "message", "join", "leave")

# Max entries kept in each per-user join/leave history; 0 keeps everything.
HISTORY_LIMIT = 0


def set_history_limit(limit: int) -> None:
    global HISTORY_LIMIT
    HISTORY_LIMIT = max(int(limit or 0), 0)


def _now() -> datetime:
    return datetime.now().astimezone()


def _new_user_entry() -> dict[str, Any]:
    return {"commands": {}, "buttons": {}, "messages": 0, "joins": [], "leaves": []}


def _new_group_entry() -> dict[str, Any]:
    return {"commands": {}, "buttons": {}, "messages": 0, "joins": 0, "leaves": 0, "members": []}


def _inc(counter: dict[str, int], key: str) -> None:
    counter[key] = int(counter.get(key, 0) or 0) + 1


def _append_history(events: list[dict[str, Any]], event: dict[str, Any]) -> None:
    events.append(event)
    if HISTORY_LIMIT and len(events) > HISTORY_LIMIT:
        del events[: len(events) - HISTORY_LIMIT]


def _record_user(
    user_id: int,
    kind: str,
    *,
    chat_id: int | None,
    chat_title: str | None,
    command: str | None,
    button: str | None,
) -> bool:
    data = storage.load(DOC)
    uid = str(int(user_id))
    entry = data["users"].get(uid)
    if not isinstance(entry, dict):
        entry = _new_user_entry()
        data["users"][uid] = entry
    for key, value in _new_user_entry().items():
        entry.setdefault(key, value)
    glob = data["global"]
    glob.setdefault("commands", {})
    glob.setdefault("buttons", {})

    if kind == "command":
        _inc(entry["commands"], command)
        _inc(glob["commands"], command)
    elif kind == "button":
        _inc(entry["buttons"], button)
        _inc(glob["buttons"], button)
    elif kind == "message":
        entry["messages"] = int(entry.get("messages", 0) or 0) + 1
        glob["messages"] = int(glob.get("messages", 0) or 0) + 1
    else:
        event = {"chat_id": chat_id, "chat_title": chat_title, "timestamp": _now().isoformat()}
        _append_history(entry["joins"] if kind == "join" else entry["leaves"], event)

    return storage.save(DOC, data)


def _record_group(
    chat_id: int,
    kind: str,
    *,
    user_id: int,
    command: str | None,
    button: str | None,
) -> bool:
    data = storage.load(DOC)
    cid = str(int(chat_id))
    entry = data["groups"].get(cid)
    if not isinstance(entry, dict):
        entry = _new_group_entry()
        data["groups"][cid] = entry
    for key, value in _new_group_entry().items():
        entry.setdefault(key, value)

    members = [int(m) for m in entry.get("members") or []]
    if kind == "command":
        _inc(entry["commands"], command)
    elif kind == "button":
        _inc(entry["buttons"], button)
    elif kind == "message":
        entry["messages"] = int(entry.get("messages", 0) or 0) + 1
    elif kind == "join":
        entry["joins"] = int(entry.get("joins", 0) or 0) + 1
        if user_id not in members:
            members.append(user_id)
    elif kind == "leave":
        entry["leaves"] = int(entry.get("leaves", 0) or 0) + 1
        members = [m for m in members if m != user_id]
    entry["members"] = members

    return storage.save(DOC, data)


def record(
    user_id: int,
    kind: str,
    *,
    chat_id: int | None = None,
    chat_title: str | None = None,
    command: str | None = None,
    button: str | None = None,
) -> bool:
    """
    Count one event of `kind` for a user (and for `chat_id` when given).

    `command` is required for kind="command", `button` for kind="button".
    Returns False if any of the writes failed.
    """
    if kind not in KINDS:
        raise ValueError(f"unknown activity kind: {kind!r}")
    if kind == "command" and not command:
        raise ValueError("command name is required")
    if kind == "button" and not button:
        raise ValueError("button id is required")

    user_id = int(user_id)
    users.touch_last_seen(user_id)
    ok = _record_user(user_id, kind, chat_id=chat_id, chat_title=chat_title, command=command, button=button)
    if chat_id is not None:
        ok = _record_group(int(chat_id), kind, user_id=user_id, command=command, button=button) and ok
    return ok


def track_command(user_id: int, command: str, chat_id: int | None = None) -> bool:
    return record(user_id, "command", chat_id=chat_id, command=command)


def track_button(user_id: int, button: str, chat_id: int | None = None) -> bool:
    return record(user_id, "button", chat_id=chat_id, button=button)


def track_message(user_id: int, chat_id: int | None = None) -> bool:
    return record(user_id, "message", chat_id=chat_id)


def track_join(user_id: int, chat_id: int, chat_title: str | None) -> bool:
    return record(user_id, "join", chat_id=chat_id, chat_title=chat_title)


def track_leave(user_id: int, chat_id: int, chat_title: str | None) -> bool:
    return record(user_id, "leave", chat_id=chat_id, chat_title=chat_title)


def get_user_activity(user_id: int) -> dict[str, Any] | None:
    entry = storage.load(DOC)["users"].get(str(int(user_id)))
    return entry if isinstance(entry, dict) else None


def get_group_activity(chat_id: int) -> dict[str, Any] | None:
    entry = storage.load(DOC)["groups"].get(str(int(chat_id)))
    return entry if isinstance(entry, dict) else None


def get_global_stats() -> dict[str, Any]:
    return storage.load(DOC)["global"]


def _sum_counts(counter: object) -> int:
    if not isinstance(counter, dict):
        return 0
    return sum(int(v or 0) for v in counter.values())


def activity_score(entry: dict[str, Any], *, group: bool = False) -> int:
    score = _sum_counts(entry.get("commands")) + _sum_counts(entry.get("buttons"))
    score += int(entry.get("messages", 0) or 0)
    if group:
        score += int(entry.get("joins", 0) or 0)
    return score


def top_active(kind: str, limit: int = 10) -> list[dict[str, Any]]:
    """
    Rank "users" or "groups" by activity score, highest first.
    Equal scores are ordered by id ascending.
    """
    if kind not in ("users", "groups"):
        raise ValueError(f"unknown ranking kind: {kind!r}")
    group = kind == "groups"
    entries = storage.load(DOC)[kind]

    rows: list[dict[str, Any]] = []
    for raw_id, entry in entries.items():
        if not isinstance(entry, dict):
            continue
        try:
            ident = int(raw_id)
        except ValueError:
            continue
        row: dict[str, Any] = {
            "chat_id" if group else "user_id": ident,
            "total_activity": activity_score(entry, group=group),
            "commands": entry.get("commands") or {},
            "buttons": entry.get("buttons") or {},
            "messages": int(entry.get("messages", 0) or 0),
        }
        if group:
            row["joins"] = int(entry.get("joins", 0) or 0)
            row["leaves"] = int(entry.get("leaves", 0) or 0)
            row["members"] = len(entry.get("members") or [])
        else:
            row["joins"] = len(entry.get("joins") or [])
            row["leaves"] = len(entry.get("leaves") or [])
        rows.append(row)

    id_key = "chat_id" if group else "user_id"
    rows.sort(key=lambda r: (-r["total_activity"], r[id_key]))
    if limit <= 0:
        return []
    return rows[:limit]
