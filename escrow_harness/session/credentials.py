"""Per-role secret material loaded from data/seeds.json."""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from escrow_harness.errors import ConfigurationError
from escrow_harness.types import Actor, Credentials, Role

if TYPE_CHECKING:
    from pathlib import Path

    from escrow_harness.config import HarnessConfig

logger = logging.getLogger(__name__)

TEMPLATE_HINT = "Copy data/seeds.template.json to data/seeds.json and fill in the recovery phrase and phone number."

_FIELDS = {
    "recoveryPhrase": "recovery_phrase",
    "phoneNumber": "phone_number",
    "phoneCode": "phone_code",
}


class CredentialStore:
    """Read-only lookup of credentials by role.

    A credential set is either flat (one wallet shared by every role) or
    keyed by role name::

        {"testWallet": {"recoveryPhrase": "...", "phoneNumber": "..."},
         "ciTestWallet": {"Buyer": {...}, "Seller": {...}, "Arbitrator": {...}}}
    """

    def __init__(self, seeds_path: str | Path, credential_set: str):
        self.seeds_path = seeds_path
        self.credential_set = credential_set
        self._data = self._load()

    def _load(self) -> dict[str, Any]:
        try:
            with open(self.seeds_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Seeds file not found: {self.seeds_path}. {TEMPLATE_HINT}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Seeds file is not valid JSON: {self.seeds_path}: {e}") from e

        entry = data.get(self.credential_set) if isinstance(data, dict) else None
        if not isinstance(entry, dict):
            raise ConfigurationError(
                f"Credential set {self.credential_set!r} missing from {self.seeds_path}. {TEMPLATE_HINT}"
            )
        logger.info("Using %s credentials", self.credential_set)
        return entry

    def get(self, role: Role) -> Credentials:
        entry = self._data
        per_role = {Role.parse(k): v for k, v in entry.items() if _is_role(k)}
        if per_role:
            if role not in per_role:
                raise ConfigurationError(f"No credentials for {role} in set {self.credential_set!r}")
            entry = per_role[role]

        missing = [k for k in ("recoveryPhrase", "phoneNumber") if not entry.get(k)]
        if missing:
            raise ConfigurationError(
                f"Credentials for {role} missing field(s): {', '.join(missing)}. {TEMPLATE_HINT}"
            )
        return Credentials(**{py: str(entry.get(js, "")) for js, py in _FIELDS.items()})

    def actor(self, role: Role, config: HarnessConfig) -> Actor:
        return Actor(
            role=role,
            credentials=self.get(role),
            session_artifact_path=config.session_path(role),
            store_snapshot_path=config.store_path(role),
        )

    @classmethod
    def from_config(cls, config: HarnessConfig) -> CredentialStore:
        return cls(config.seeds_path, config.resolved_credential_set)


def _is_role(key: str) -> bool:
    try:
        Role.parse(key)
    except ConfigurationError:
        return False
    return True
