import logging
import secrets
from datetime import datetime
from typing import Any

from trackerbot import storage

log = logging.getLogger(__name__)

DOC = "referrals"


def _now() -> datetime:
    return datetime.now().astimezone()


def new_code() -> str:
    return secrets.token_hex(8)


def create_link(source: str, *, code: str | None = None) -> str | None:
    """
    Create a referral link for `source` and return its code.
    Returns None if the code is already taken or the link could not be saved.
    """
    code = code or new_code()
    data = storage.load(DOC)
    links = data["links"]
    if code in links:
        log.warning("referral code %s already exists", code)
        return None
    links[code] = {
        "source": source,
        "created_at": _now().isoformat(),
        "clicks": 0,
        "users": [],
    }
    if not storage.save(DOC, data):
        return None
    return code


def track_click(code: str, user_id: int) -> bool:
    """
    Count a click on `code`. The user's own attribution is first-touch:
    it is written on their first click on any link and never replaced.
    """
    data = storage.load(DOC)
    link = data["links"].get(code)
    if not isinstance(link, dict):
        return False

    user_id = int(user_id)
    link["clicks"] = int(link.get("clicks", 0) or 0) + 1
    clickers = link.setdefault("users", [])
    if user_id not in clickers:
        clickers.append(user_id)

    uid = str(user_id)
    if uid not in data["users"]:
        data["users"][uid] = {
            "source_link": code,
            "source": link.get("source"),
            "first_click": _now().isoformat(),
        }
    return storage.save(DOC, data)


def get_link(code: str) -> dict[str, Any] | None:
    link = storage.load(DOC)["links"].get(code)
    return link if isinstance(link, dict) else None


def get_user_referral(user_id: int) -> dict[str, Any] | None:
    rec = storage.load(DOC)["users"].get(str(int(user_id)))
    return rec if isinstance(rec, dict) else None


def referral_stats() -> dict[str, Any]:
    links: dict[str, Any] = storage.load(DOC)["links"]
    unique: set[int] = set()
    total_clicks = 0
    rows: list[dict[str, Any]] = []
    for code, link in links.items():
        if not isinstance(link, dict):
            continue
        clicks = int(link.get("clicks", 0) or 0)
        clickers = link.get("users") or []
        total_clicks += clicks
        unique.update(int(u) for u in clickers)
        rows.append(
            {
                "link_id": code,
                "source": link.get("source"),
                "clicks": clicks,
                "unique_users": len(clickers),
                "created_at": link.get("created_at"),
            }
        )
    rows.sort(key=lambda r: r["clicks"], reverse=True)
    return {
        "total_links": len(rows),
        "total_clicks": total_clicks,
        "total_unique_users": len(unique),
        "links": rows,
    }


def parse_start_payload(text: str | None) -> str | None:
    """
    "/start abc123" -> "abc123"; None when there is no payload.
    """
    parts = (text or "").split(maxsplit=1)
    if len(parts) < 2:
        return None
    return parts[1].strip() or None


def deep_link(bot_username: str, code: str) -> str:
    return f"https://t.me/{bot_username.lstrip('@')}?start={code}"
