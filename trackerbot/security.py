from dataclasses import dataclass

from trackerbot import bans, rate_limits
from trackerbot.bans import BanInfo
from trackerbot.rate_limits import RateLimitResult

REASON_BANNED = "banned"
REASON_RATE_LIMITED = "rate limit exceeded"

# Checked in this order by detect_spammer().
_SPAM_CATEGORIES = (
    ("messages", "Message rate limit exceeded"),
    ("commands", "Command rate limit exceeded"),
    ("buttons", "Button click rate limit exceeded"),
)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None
    ban_info: BanInfo | None = None
    rate_limit: RateLimitResult | None = None


@dataclass(frozen=True)
class SpamVerdict:
    is_spammer: bool
    reason: str | None = None
    details: RateLimitResult | None = None


def can_perform_action(user_id: int, category: str) -> Decision:
    """
    Ban check first, then the rate limit for `category`.
    Must run before the action is counted anywhere.
    """
    if bans.is_banned(user_id):
        return Decision(allowed=False, reason=REASON_BANNED, ban_info=bans.get_ban_info(user_id))

    rl = rate_limits.check_action(user_id, category)
    if not rl.allowed:
        return Decision(allowed=False, reason=REASON_RATE_LIMITED, rate_limit=rl)

    return Decision(allowed=True, rate_limit=rl)


def detect_spammer(user_id: int) -> SpamVerdict:
    # Each check consumes one slot of its window, like any other action.
    for category, reason in _SPAM_CATEGORIES:
        rl = rate_limits.check_action(user_id, category)
        if not rl.allowed:
            return SpamVerdict(is_spammer=True, reason=reason, details=rl)
    return SpamVerdict(is_spammer=False)
