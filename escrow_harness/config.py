"""Harness configuration: harness.yaml, then .env, then ESCROW_* environment overrides.

Every value that changes between a local run and CI lives here and is
threaded explicitly into the bootstrapper, injector and sessions.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from escrow_harness.errors import ConfigurationError
from escrow_harness.types import Role

logger = logging.getLogger(__name__)

CONFIG_FILE = "harness.yaml"

# env var -> config field, applied in order: ESCROW_BASE_URL wins over LOCAL_LINK
ENV_OVERRIDES = {
    "LOCAL_LINK": "base_url",
    "ESCROW_BASE_URL": "base_url",
    "ESCROW_BOT_NAME": "bot_name",
    "ESCROW_ROLE": "role",
    "ESCROW_CREDENTIAL_SET": "credential_set",
    "ESCROW_SEEDS_PATH": "seeds_path",
    "ESCROW_ARTIFACTS_DIR": "artifacts_dir",
    "ESCROW_HEADLESS": "headless",
    "ESCROW_STATE_TIMEOUT": "state_timeout",
    "ESCROW_POLL_INTERVAL": "poll_interval",
    "ESCROW_ELEMENT_TIMEOUT": "element_timeout",
    "ESCROW_NAVIGATION_TIMEOUT": "navigation_timeout",
    "ESCROW_SCENARIO_TIMEOUT": "scenario_timeout",
    "ESCROW_BOOTSTRAP_TIMEOUT": "bootstrap_timeout",
}


@dataclass(frozen=True)
class HarnessConfig:
    base_url: str = "https://escrow.test"
    bot_name: str = "bobobo_botbot"
    role: Role | None = None
    credential_set: str = ""  # testWallet | ciTestWallet; empty = pick from CI
    seeds_path: Path = Path("data/seeds.json")
    artifacts_dir: Path = Path("data-auth")
    init_route: str = "/init"
    store_db_name: str = "escrow-indexeddb"
    store_name: str = "keyvaluepairs"
    headless: bool = True
    # seconds
    state_timeout: float = 15.0
    poll_interval: float = 0.5
    element_timeout: float = 10.0
    navigation_timeout: float = 30.0
    scenario_timeout: float = 300.0
    bootstrap_timeout: float = 180.0

    @property
    def resolved_credential_set(self) -> str:
        if self.credential_set:
            return self.credential_set
        return "ciTestWallet" if os.environ.get("CI") else "testWallet"

    def require_role(self, command: str) -> Role:
        """The role given on the command line, else ESCROW_ROLE."""
        if self.role is None:
            raise ConfigurationError(
                f"No role given. Usage: escrow-harness {command} <role> (or set ESCROW_ROLE)"
            )
        return self.role

    def url(self, path: str = "") -> str:
        return self.base_url.rstrip("/") + "/" + path.lstrip("/") if path else self.base_url

    def order_url(self, order_id: str) -> str:
        return self.url(f"order-detail?id={order_id}")

    def session_path(self, role: Role) -> Path:
        return self.artifacts_dir / f"{role.slug}-session.json"

    def store_path(self, role: Role) -> Path:
        return self.artifacts_dir / f"{role.slug}-store.json"

    @property
    def runs_db(self) -> Path:
        return self.artifacts_dir / "runs.db"


_BOOL_TRUE = {"1", "true", "yes", "on"}
_BOOL_FALSE = {"0", "false", "no", "off", ""}


def _coerce(name: str, value: Any) -> Any:
    kinds = {f.name: f.type for f in fields(HarnessConfig)}
    kind = kinds[name]
    try:
        if name == "role":
            return None if value in (None, "") else Role.parse(value)
        if kind == "bool":
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _BOOL_TRUE:
                return True
            if text in _BOOL_FALSE:
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if kind == "float":
            return float(value)
        if kind == "Path":
            return Path(value)
        if kind == "str":
            return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {e}") from e
    return value


def _load_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Invalid config file {path}: expected a mapping")
    logger.debug("Loaded config file %s (%d keys)", path, len(raw))
    return raw


def load_config(cwd: str | Path | None = None, **overrides: Any) -> HarnessConfig:
    """Merge harness.yaml, .env, ESCROW_* variables and explicit overrides (later wins).

    Relative paths resolve against ``cwd``. An unknown role or key is a
    ConfigurationError, raised before anything touches a browser.
    """
    root = Path(cwd) if cwd else Path.cwd()
    load_dotenv(root / ".env", override=False)

    merged: dict[str, Any] = {}
    known = {f.name for f in fields(HarnessConfig)}

    file_values = _load_file(root / CONFIG_FILE)
    for key, value in file_values.items():
        if key not in known:
            raise ConfigurationError(f"Unknown config key in {CONFIG_FILE}: {key!r}")
        merged[key] = value

    for env_name, key in ENV_OVERRIDES.items():
        if env_name in os.environ:
            merged[key] = os.environ[env_name]

    merged.update({k: v for k, v in overrides.items() if v is not None})

    values = {k: _coerce(k, v) for k, v in merged.items()}
    config = replace(HarnessConfig(), **values)

    for key in ("seeds_path", "artifacts_dir"):
        path = getattr(config, key)
        if not path.is_absolute():
            config = replace(config, **{key: root / path})

    if config.poll_interval <= 0 or config.state_timeout <= 0:
        raise ConfigurationError("state_timeout and poll_interval must be positive")
    return config
