import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from headlines.catalog import DEFAULT_CATALOG_PATH
from headlines.constants import DEFAULT_DIGEST_LIMIT, SEEN_HISTORY_MAX_IDS

CONFIG_DIR = Path.home() / ".config" / "headlines"
CONFIG_FILE = CONFIG_DIR / "config.json"
ENV_PREFIX = "HEADLINES_"

TAGGERS = ("llm", "keyword")


@dataclass(frozen=True)
class Settings:
    store_dir: Optional[str] = None  # None = in-memory store
    catalog_path: str = str(DEFAULT_CATALOG_PATH)
    digest_limit: int = DEFAULT_DIGEST_LIMIT
    tagger: str = "llm"
    seen_max_ids: int = SEEN_HISTORY_MAX_IDS
    log_level: str = "INFO"


def load_config() -> dict:
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return json.load(f)
    except Exception:
        return {}


def save_config(key: str, value: Any):
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    config = load_config()
    config[key] = value
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)


def _lookup(config: dict, key: str) -> Any:
    env_value = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
    if env_value is not None and env_value != "":
        return env_value
    return config.get(key)


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def get_settings() -> Settings:
    """Resolve settings: HEADLINES_<KEY> env var > config file > default."""
    config = load_config()
    defaults = Settings()

    tagger = str(_lookup(config, "tagger") or defaults.tagger).lower()
    if tagger not in TAGGERS:
        tagger = defaults.tagger

    store_dir = _lookup(config, "store_dir")
    return Settings(
        store_dir=str(store_dir) if store_dir else None,
        catalog_path=str(_lookup(config, "catalog_path") or defaults.catalog_path),
        digest_limit=_as_int(_lookup(config, "digest_limit"), defaults.digest_limit),
        tagger=tagger,
        seen_max_ids=_as_int(_lookup(config, "seen_max_ids"), defaults.seen_max_ids),
        log_level=str(_lookup(config, "log_level") or defaults.log_level).upper(),
    )
