from datetime import datetime
from typing import Any

from trackerbot import storage

DOC = "groups"

GROUP_KINDS = {"group", "supergroup"}


def _now() -> datetime:
    return datetime.now().astimezone()


def save_group(chat_id: int, title: str | None, kind: str | None) -> bool:
    """
    Register a group the bot administers (or refresh its title/kind).
    Re-adding a group that the bot had left starts tracking again.
    """
    data = storage.load(DOC)
    cid = str(int(chat_id))
    now = _now().isoformat()
    rec = data.get(cid)
    if not isinstance(rec, dict):
        rec = {"added_at": now}
        data[cid] = rec
    elif rec.get("left_at"):
        rec["added_at"] = now
    rec["title"] = title
    rec["type"] = kind
    rec["left_at"] = None
    rec["updated_at"] = now
    return storage.save(DOC, data)


def mark_left(chat_id: int) -> bool:
    """
    The bot was removed from the chat. The record and its stats stay.
    """
    data = storage.load(DOC)
    rec = data.get(str(int(chat_id)))
    if not isinstance(rec, dict):
        return False
    now = _now().isoformat()
    rec["left_at"] = now
    rec["updated_at"] = now
    return storage.save(DOC, data)


def get_group(chat_id: int) -> dict[str, Any] | None:
    rec = storage.load(DOC).get(str(int(chat_id)))
    return rec if isinstance(rec, dict) else None


def all_groups() -> dict[str, Any]:
    return {cid: rec for cid, rec in storage.load(DOC).items() if isinstance(rec, dict)}


def is_tracked(chat_id: int) -> bool:
    rec = get_group(chat_id)
    return rec is not None and not rec.get("left_at")
