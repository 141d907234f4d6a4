"""
JSON document store.

Every domain keeps one document on disk (`<data_dir>/<name>.json`). Callers do a
whole-document load -> mutate -> save cycle; there are no partial updates.
A missing or broken document loads as its default, a failed save is logged and
reported as False.
"""
import copy
import json
import logging
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

DATA_DIR = Path("data")

DEFAULTS: dict[str, dict[str, Any]] = {
    "users": {},
    "activities": {
        "users": {},
        "groups": {},
        "global": {"commands": {}, "buttons": {}, "messages": 0},
    },
    "groups": {},
    "referrals": {"links": {}, "users": {}},
    "bans": {"users": {}},
    "rate_limits": {},
}


def set_data_dir(path: str | Path) -> None:
    global DATA_DIR
    DATA_DIR = Path(path)


def data_dir() -> Path:
    return DATA_DIR


def doc_path(name: str) -> Path:
    if name not in DEFAULTS:
        raise KeyError(f"unknown document: {name}")
    return DATA_DIR / f"{name}.json"


def default(name: str) -> dict[str, Any]:
    return copy.deepcopy(DEFAULTS[name])


def load(name: str) -> dict[str, Any]:
    path = doc_path(name)
    if not path.exists():
        return default(name)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        log.error("failed to load %s: %s", path, e)
        return default(name)
    if not isinstance(data, dict):
        log.error("failed to load %s: not a JSON object", path)
        return default(name)
    # Older files may miss top-level keys added later.
    for key, value in DEFAULTS[name].items():
        if not isinstance(data.get(key), type(value)):
            data[key] = copy.deepcopy(value)
    return data


def save(name: str, data: dict[str, Any]) -> bool:
    path = doc_path(name)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(path)
    except (OSError, TypeError, ValueError) as e:
        log.error("failed to save %s: %s", path, e)
        return False
    return True
