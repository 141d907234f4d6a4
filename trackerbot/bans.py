from dataclasses import dataclass
from datetime import datetime
from typing import Any

from trackerbot import storage

DOC = "bans"


@dataclass(frozen=True)
class BanInfo:
    user_id: int
    reason: str | None
    banned_by: int | None
    banned_at: str | None


def _now() -> datetime:
    return datetime.now().astimezone()


def _to_info(user_id: int, rec: dict[str, Any]) -> BanInfo:
    banned_by = rec.get("banned_by")
    return BanInfo(
        user_id=int(user_id),
        reason=rec.get("reason"),
        banned_by=int(banned_by) if banned_by is not None else None,
        banned_at=rec.get("banned_at"),
    )


def ban(user_id: int, reason: str | None, banned_by: int | None) -> bool:
    """
    Ban a user. An existing ban is overwritten with the new reason/issuer.
    """
    data = storage.load(DOC)
    data["users"][str(int(user_id))] = {
        "reason": reason,
        "banned_by": banned_by,
        "banned_at": _now().isoformat(),
    }
    return storage.save(DOC, data)


def unban(user_id: int) -> bool:
    data = storage.load(DOC)
    uid = str(int(user_id))
    if uid not in data["users"]:
        return False
    data["users"].pop(uid)
    return storage.save(DOC, data)


def is_banned(user_id: int) -> bool:
    return str(int(user_id)) in storage.load(DOC)["users"]


def get_ban_info(user_id: int) -> BanInfo | None:
    rec = storage.load(DOC)["users"].get(str(int(user_id)))
    if not isinstance(rec, dict):
        return None
    return _to_info(user_id, rec)


def all_banned() -> dict[int, BanInfo]:
    out: dict[int, BanInfo] = {}
    for uid, rec in storage.load(DOC)["users"].items():
        if not isinstance(rec, dict):
            continue
        try:
            out[int(uid)] = _to_info(int(uid), rec)
        except ValueError:
            continue
    return out
