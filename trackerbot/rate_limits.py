import time
from dataclasses import dataclass

from trackerbot import storage

DOC = "rate_limits"

# category -> (limit, window seconds)
RATE_LIMITS: dict[str, tuple[int, float]] = {
    "commands": (20, 60.0),
    "messages": (30, 60.0),
    "buttons": (50, 60.0),
    "spam": (10, 60.0),
}
DEFAULT_CATEGORY = "spam"


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float | None = None


def _now() -> float:
    return time.time()


def _key(user_id: int, action: str) -> str:
    return f"{int(user_id)}:{action}"


def policy_for(category: str) -> tuple[int, float]:
    return RATE_LIMITS.get(category) or RATE_LIMITS[DEFAULT_CATEGORY]


def check(user_id: int, action: str, limit: int, window_s: float) -> RateLimitResult:
    """
    Fixed-window counter for (user_id, action).

    The first call of a window opens it with count=1. Calls past the limit are
    denied without touching the stored window.
    """
    data = storage.load(DOC)
    key = _key(user_id, action)
    now = _now()
    rec = data.get(key)

    if not isinstance(rec, dict) or now > float(rec.get("reset_at", 0) or 0):
        reset_at = now + float(window_s)
        data[key] = {"count": 1, "reset_at": reset_at}
        storage.save(DOC, data)
        return RateLimitResult(allowed=True, remaining=int(limit) - 1, reset_at=reset_at)

    count = int(rec.get("count", 0) or 0)
    reset_at = float(rec["reset_at"])
    if count >= int(limit):
        return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

    count += 1
    rec["count"] = count
    storage.save(DOC, data)
    return RateLimitResult(allowed=True, remaining=int(limit) - count, reset_at=reset_at)


def check_action(user_id: int, category: str) -> RateLimitResult:
    limit, window_s = policy_for(category)
    return check(user_id, category, limit, window_s)


def reset(user_id: int, action: str) -> bool:
    data = storage.load(DOC)
    key = _key(user_id, action)
    if key not in data:
        return False
    data.pop(key)
    return storage.save(DOC, data)
