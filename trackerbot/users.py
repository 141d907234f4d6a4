from dataclasses import dataclass
from datetime import datetime
from typing import Any

from trackerbot import storage

DOC = "users"

# Rough language -> country guess; tags not listed fall back to the tag itself.
COUNTRY_BY_LANGUAGE = {
    "en": "US/UK",
    "es": "ES/MX",
    "fr": "FR",
    "de": "DE",
    "it": "IT",
    "pt": "PT/BR",
    "ru": "RU",
    "zh": "CN",
    "ja": "JP",
    "ko": "KR",
    "ar": "AR",
    "hi": "IN",
    "th": "TH",
    "vi": "VN",
    "id": "ID",
    "ms": "MY",
    "km": "KH",
    "lo": "LA",
    "my": "MM",
}

ACTIVE_DAYS = 7


@dataclass(frozen=True)
class UserInfo:
    user_id: int
    first_name: str | None
    last_name: str | None
    username: str | None
    language_code: str | None = None
    is_bot: bool = False


def _now() -> datetime:
    return datetime.now().astimezone()


def _parse_ts(raw: object, *, fallback_tz) -> datetime | None:
    if not raw:
        return None
    try:
        ts = datetime.fromisoformat(str(raw))
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=fallback_tz)
    return ts


def days_since(raw_ts: object, now: datetime | None = None) -> int | None:
    """
    Whole days elapsed since an ISO timestamp (floored), None if unparsable.
    """
    now = now or _now()
    ts = _parse_ts(raw_ts, fallback_tz=now.tzinfo)
    if ts is None:
        return None
    return int((now - ts).total_seconds() // 86400)


def country_from_language(language_code: str | None) -> str | None:
    if not language_code:
        return None
    lang = language_code.lower().split("-")[0]
    return COUNTRY_BY_LANGUAGE.get(lang) or language_code.upper()


def track_start(user: UserInfo, referral_link: str | None = None) -> dict[str, Any]:
    """
    Create or refresh the user record on /start.
    The referral link is kept from the first start that had one.
    """
    data = storage.load(DOC)
    uid = str(int(user.user_id))
    existing = data.get(uid)
    if not isinstance(existing, dict):
        existing = {}

    now = _now().isoformat()
    rec = dict(existing)
    rec.update(
        {
            "user_id": int(user.user_id),
            "username": user.username or None,
            "first_name": user.first_name or None,
            "last_name": user.last_name or None,
            "language_code": user.language_code or None,
            "is_bot": bool(user.is_bot),
            "first_seen": existing.get("first_seen") or now,
            "last_seen": now,
            "start_count": int(existing.get("start_count", 0) or 0) + 1,
            "referral_link": existing.get("referral_link") or referral_link or None,
            "updated_at": now,
        }
    )
    if user.language_code:
        rec["country"] = country_from_language(user.language_code)
    data[uid] = rec
    storage.save(DOC, data)
    return rec


def touch_last_seen(user_id: int) -> bool:
    """
    Bump last_seen for a known user. Unknown users are not created here.
    """
    data = storage.load(DOC)
    rec = data.get(str(int(user_id)))
    if not isinstance(rec, dict):
        return False
    now = _now().isoformat()
    rec["last_seen"] = now
    rec["updated_at"] = now
    return storage.save(DOC, data)


def get_user(user_id: int) -> dict[str, Any] | None:
    rec = storage.load(DOC).get(str(int(user_id)))
    return rec if isinstance(rec, dict) else None


def all_users() -> dict[str, Any]:
    return {uid: rec for uid, rec in storage.load(DOC).items() if isinstance(rec, dict)}


def is_active(rec: dict[str, Any], now: datetime | None = None) -> bool:
    days = days_since(rec.get("last_seen"), now)
    return days is not None and days <= ACTIVE_DAYS


def user_stats(user_id: int) -> dict[str, Any] | None:
    rec = get_user(user_id)
    if rec is None:
        return None
    now = _now()
    return {
        **rec,
        "days_since_first_seen": days_since(rec.get("first_seen"), now),
        "days_since_last_seen": days_since(rec.get("last_seen"), now),
        "is_active": is_active(rec, now),
    }


def find_user_id_by_username(username: str) -> int | None:
    u = username.strip().lstrip("@").lower()
    if not u:
        return None
    for uid, rec in all_users().items():
        if str(rec.get("username") or "").lower() == u:
            try:
                return int(uid)
            except ValueError:
                continue
    return None
