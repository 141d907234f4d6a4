from dataclasses import dataclass
import os


@dataclass(frozen=True)
class Settings:
    bot_token: str
    admin_ids: frozenset[int]
    data_dir: str
    history_limit: int
    log_path: str


def _parse_ids(raw: str) -> frozenset[int]:
    ids: set[int] = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            continue
    return frozenset(ids)


def load_settings() -> Settings:
    token = os.getenv("BOT_TOKEN", "").strip()
    if not token:
        raise RuntimeError("BOT_TOKEN is not set")

    try:
        history_limit = int(os.getenv("ACTIVITY_HISTORY_LIMIT", "0") or 0)
    except ValueError:
        history_limit = 0

    return Settings(
        bot_token=token,
        admin_ids=_parse_ids(os.getenv("ADMIN_IDS", "")),
        data_dir=os.getenv("DATA_DIR", "data").strip() or "data",
        history_limit=max(history_limit, 0),
        log_path=os.getenv("LOG_PATH", "bot.log").strip() or "bot.log",
    )
