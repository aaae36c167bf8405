from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, Optional


SETTINGS_PATH: Optional[Path] = None


def init_settings(path: Path) -> None:
    global SETTINGS_PATH
    SETTINGS_PATH = path
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        save_settings(default_settings())


def default_settings() -> Dict:
    return {
        "shopify_store": "",
        "shopify_api_version": "",
        "shopify_access_token": "",
        # Pipeline (None / blank falls back to SPLITSET_* env values)
        "max_component_price": None,
        "create_delay": None,
        "process_all_delay": None,
        "compare_at_multiplier": None,
        "rollback_on_failure": None,
        "namespace": None,
        "dry_run": None,
    }


def get_settings() -> Dict:
    assert SETTINGS_PATH is not None
    try:
        data = json.loads(SETTINGS_PATH.read_text())
    except (OSError, ValueError):
        return default_settings()
    base = default_settings()
    base.update(data or {})
    return base


def save_settings(data: Dict) -> None:
    assert SETTINGS_PATH is not None
    SETTINGS_PATH.write_text(json.dumps(data, indent=2))
