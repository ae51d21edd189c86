"""
Configuration for pmarket-cli.

Tunables merge order: dataclass defaults → config.yaml `pmarket:` section →
environment variables. The private key and API credentials are persisted
as JSON in the config directory (default ~/.pmarket-cli).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from eth_account import Account
from py_clob_client.clob_types import ApiCreds

log = logging.getLogger("pm.config")

CONFIG_DIR_NAME = ".pmarket-cli"
CONFIG_FILE = "config.json"
CREDENTIALS_FILE = "credentials.json"
SETTINGS_FILE = "config.yaml"
CACHE_DB = "cache.db"

DEFAULT_RPC_PROVIDER = "https://polygon-rpc.com"
PACING_STRATEGIES = ("fixed", "exponential", "jittered")


@dataclass(frozen=True)
class PmarketConfig:
    rpc_url: str = DEFAULT_RPC_PROVIDER
    chain_id: int = 137

    # Fees (Polygon validators drop tips under ~25 gwei)
    min_priority_fee_gwei: int = 30
    fallback_base_fee_gwei: int = 30

    # Gas limits
    approve_gas_limit: int = 100_000
    operator_approval_gas_limit: int = 100_000
    redeem_gas_limit: int = 300_000
    receipt_timeout_sec: int = 120

    # RPC pacing
    allowance_pace_sec: float = 30.0
    redeem_pace_sec: float = 5.0
    pacing_strategy: str = "fixed"
    pacing_max_sec: float = 120.0

    # Market cache
    cache_ttl_sec: int = 3600


def validate_config(cfg: PmarketConfig) -> None:
    """Validate config values. Raises ValueError with all issues found."""
    errors: list[str] = []

    if not cfg.rpc_url.startswith(("http://", "https://")):
        errors.append(f"rpc_url must be an http(s) URL, got {cfg.rpc_url!r}")
    if cfg.chain_id <= 0:
        errors.append(f"chain_id must be > 0, got {cfg.chain_id}")
    if cfg.min_priority_fee_gwei <= 0:
        errors.append(f"min_priority_fee_gwei must be > 0, got {cfg.min_priority_fee_gwei}")
    if cfg.fallback_base_fee_gwei <= 0:
        errors.append(f"fallback_base_fee_gwei must be > 0, got {cfg.fallback_base_fee_gwei}")
    for name in ("approve_gas_limit", "operator_approval_gas_limit", "redeem_gas_limit"):
        if getattr(cfg, name) < 21_000:
            errors.append(f"{name} must be >= 21000, got {getattr(cfg, name)}")
    if cfg.receipt_timeout_sec <= 0:
        errors.append(f"receipt_timeout_sec must be > 0, got {cfg.receipt_timeout_sec}")
    if cfg.allowance_pace_sec < 0:
        errors.append(f"allowance_pace_sec must be >= 0, got {cfg.allowance_pace_sec}")
    if cfg.redeem_pace_sec < 0:
        errors.append(f"redeem_pace_sec must be >= 0, got {cfg.redeem_pace_sec}")
    if cfg.pacing_strategy not in PACING_STRATEGIES:
        errors.append(
            f"pacing_strategy must be one of {PACING_STRATEGIES}, got {cfg.pacing_strategy!r}"
        )
    if cfg.pacing_max_sec < max(cfg.allowance_pace_sec, cfg.redeem_pace_sec):
        errors.append(
            f"pacing_max_sec ({cfg.pacing_max_sec}) must be >= the pacing delays"
        )
    if cfg.cache_ttl_sec <= 0:
        errors.append(f"cache_ttl_sec must be > 0, got {cfg.cache_ttl_sec}")

    if errors:
        raise ValueError("Invalid pmarket config:\n  " + "\n  ".join(errors))


def load_config(raw: dict[str, Any] | None) -> PmarketConfig:
    """Load PmarketConfig from config.yaml's pmarket section, then the environment."""
    section = (raw or {}).get("pmarket") or {}
    defaults = PmarketConfig()

    cfg = PmarketConfig(
        rpc_url=str(section.get("rpc_url", defaults.rpc_url)),
        chain_id=int(section.get("chain_id", defaults.chain_id)),
        min_priority_fee_gwei=int(section.get("min_priority_fee_gwei", defaults.min_priority_fee_gwei)),
        fallback_base_fee_gwei=int(section.get("fallback_base_fee_gwei", defaults.fallback_base_fee_gwei)),
        approve_gas_limit=int(section.get("approve_gas_limit", defaults.approve_gas_limit)),
        operator_approval_gas_limit=int(
            section.get("operator_approval_gas_limit", defaults.operator_approval_gas_limit)
        ),
        redeem_gas_limit=int(section.get("redeem_gas_limit", defaults.redeem_gas_limit)),
        receipt_timeout_sec=int(section.get("receipt_timeout_sec", defaults.receipt_timeout_sec)),
        allowance_pace_sec=float(section.get("allowance_pace_sec", defaults.allowance_pace_sec)),
        redeem_pace_sec=float(section.get("redeem_pace_sec", defaults.redeem_pace_sec)),
        pacing_strategy=str(section.get("pacing_strategy", defaults.pacing_strategy)),
        pacing_max_sec=float(section.get("pacing_max_sec", defaults.pacing_max_sec)),
        cache_ttl_sec=int(section.get("cache_ttl_sec", defaults.cache_ttl_sec)),
    )

    # Environment overrides YAML
    if os.getenv("POLYGON_RPC_URL"):
        cfg = replace(cfg, rpc_url=os.environ["POLYGON_RPC_URL"])

    validate_config(cfg)
    return cfg


def load_yaml_config(config_path: Path) -> dict:
    """Load configuration from YAML file"""
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def default_config_dir() -> Path:
    return Path(os.environ.get("PMARKET_CONFIG_DIR") or Path.home() / CONFIG_DIR_NAME)


class ConfigStore:
    """Private key and API credentials persisted in the config directory."""

    def __init__(self, config_dir: Path | None = None) -> None:
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.config_path = self.config_dir / CONFIG_FILE
        self.credentials_path = self.config_dir / CREDENTIALS_FILE
        self.settings_path = self.config_dir / SETTINGS_FILE
        self.cache_path = self.config_dir / CACHE_DB

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self._config = self._load_or_create_config()
        self._credentials = self._load_credentials()

    def _load_or_create_config(self) -> dict[str, Any]:
        if self.config_path.exists():
            return json.loads(self.config_path.read_text())
        config = {"privateKey": ""}
        self.config_path.write_text(json.dumps(config, indent=4))
        log.info("CONFIG_CREATED %s", self.config_path)
        return config

    def _load_credentials(self) -> dict[str, Any] | None:
        if self.credentials_path.exists():
            return json.loads(self.credentials_path.read_text())
        return None

    def settings(self) -> PmarketConfig:
        """Tunables from config.yaml in the config directory."""
        return load_config(load_yaml_config(self.settings_path))

    def private_key(self) -> str:
        """Private key; POLYMARKET_PRIVATE_KEY in the environment wins over config.json."""
        return os.environ.get("POLYMARKET_PRIVATE_KEY") or self._config.get("privateKey", "")

    def wallet_address(self) -> str:
        key = self.private_key()
        if not key:
            return ""
        try:
            return Account.from_key(key).address
        except (ValueError, TypeError):
            return ""

    def save_private_key(self, private_key: str) -> str:
        """Validate and persist *private_key*. Returns the wallet address."""
        normalized = private_key if private_key.startswith("0x") else f"0x{private_key}"
        try:
            address = Account.from_key(normalized).address
        except (ValueError, TypeError) as exc:
            raise ValueError("Invalid private key format") from exc
        self._config["privateKey"] = normalized
        self.config_path.write_text(json.dumps(self._config, indent=4))
        return address

    def has_credentials(self) -> bool:
        c = self._credentials
        return bool(c and c.get("apiKey") and c.get("apiSecret") and c.get("passphrase"))

    def get_creds(self) -> ApiCreds | None:
        if not self.has_credentials():
            return None
        c = self._credentials
        return ApiCreds(api_key=c["apiKey"], api_secret=c["apiSecret"], api_passphrase=c["passphrase"])

    def save_credentials(self, creds: ApiCreds) -> None:
        self._credentials = {
            "apiKey": creds.api_key,
            "apiSecret": creds.api_secret,
            "passphrase": creds.api_passphrase,
            "derivedAt": datetime.now(timezone.utc).isoformat(),
        }
        self.credentials_path.write_text(json.dumps(self._credentials, indent=4))
        log.info("CREDS_SAVED %s", self.credentials_path)
