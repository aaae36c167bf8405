from __future__ import annotations
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from .pricing import DEFAULT_MAX_COMPONENT_PRICE
from .provenance import NAMESPACE
from .shopify_client import ShopifyConfig


DEFAULT_API_VERSION = "2024-07"


def load_env(dotenv_path: Optional[str] = None) -> None:
    if dotenv_path is None:
        default_env = Path.cwd() / ".env"
        if default_env.exists():
            load_dotenv(default_env)
        return
    p = Path(dotenv_path)
    if p.exists():
        load_dotenv(p)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PipelineConfig:
    max_component_price: Decimal = DEFAULT_MAX_COMPONENT_PRICE
    create_delay: float = 0.5
    process_all_delay: float = 1.0
    compare_at_multiplier: Decimal = Decimal("1.2")
    rollback_on_failure: bool = True
    namespace: str = NAMESPACE
    dry_run: bool = False

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            max_component_price=Decimal(os.getenv("SPLITSET_MAX_COMPONENT_PRICE", str(DEFAULT_MAX_COMPONENT_PRICE))),
            create_delay=float(os.getenv("SPLITSET_CREATE_DELAY", "0.5")),
            process_all_delay=float(os.getenv("SPLITSET_PROCESS_ALL_DELAY", "1.0")),
            compare_at_multiplier=Decimal(os.getenv("SPLITSET_COMPARE_AT_MULTIPLIER", "1.2")),
            rollback_on_failure=_env_bool("SPLITSET_ROLLBACK_ON_FAILURE", True),
            namespace=os.getenv("SPLITSET_NAMESPACE", NAMESPACE),
            dry_run=_env_bool("SPLITSET_DRY_RUN", False),
        )

    @classmethod
    def from_settings(cls, s: Dict) -> "PipelineConfig":
        """Stored values win; None or blank falls back to the environment."""
        base = cls.from_env()

        def pick(key: str):
            value = s.get(key)
            return getattr(base, key) if value is None or value == "" else value

        return cls(
            max_component_price=Decimal(str(pick("max_component_price"))),
            create_delay=float(pick("create_delay")),
            process_all_delay=float(pick("process_all_delay")),
            compare_at_multiplier=Decimal(str(pick("compare_at_multiplier"))),
            rollback_on_failure=bool(pick("rollback_on_failure")),
            namespace=str(pick("namespace")),
            dry_run=bool(pick("dry_run")),
        )


def shopify_config_from_env(
    store: Optional[str] = None,
    token: Optional[str] = None,
    api_version: Optional[str] = None,
) -> ShopifyConfig:
    store = (store or os.getenv("SHOPIFY_STORE", "")).strip()
    token = (token or os.getenv("SHOPIFY_ACCESS_TOKEN", "")).strip()
    api_version = (api_version or os.getenv("SHOPIFY_API_VERSION", DEFAULT_API_VERSION)).strip() or DEFAULT_API_VERSION

    missing = []
    if not store:
        missing.append("SHOPIFY_STORE")
    if not token:
        missing.append("SHOPIFY_ACCESS_TOKEN")
    if missing:
        raise ValueError(f"Missing required config: {', '.join(missing)}")

    if store.startswith("https://"):
        store = store[len("https://"):]
    store = store.rstrip("/")
    timeout = float(os.getenv("SHOPIFY_TIMEOUT", "30"))
    return ShopifyConfig(store=store, token=token, api_version=api_version, timeout=timeout)
