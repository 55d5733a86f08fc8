"""Credential store and persisted artifact files."""
from __future__ import annotations

import json

import pytest
from fakes import SESSION, SNAPSHOT

from escrow_harness.errors import (
    BootstrapError,
    ConfigurationError,
    MissingArtifactError,
    SessionRestoreError,
)
from escrow_harness.session.artifacts import read_session, read_snapshot, require_artifacts, write_pair
from escrow_harness.session.credentials import CredentialStore
from escrow_harness.types import Role

FLAT = {"recoveryPhrase": "alpha bravo charlie", "phoneNumber": "912345678", "phoneCode": "+84"}


def _seeds(tmp_path, data):
    path = tmp_path / "seeds.json"
    path.write_text(json.dumps(data))
    return path


# ═══════════════════════════════════════════════════════
# Scenario 1: Credential lookup
# ═══════════════════════════════════════════════════════

def test_s1_flat_set_shared_by_every_role(tmp_path):
    store = CredentialStore(_seeds(tmp_path, {"testWallet": FLAT}), "testWallet")
    for role in Role:
        creds = store.get(role)
        assert creds.recovery_phrase == "alpha bravo charlie"
        assert creds.phone_code == "+84"


def test_s1_per_role_set(tmp_path):
    seeds = {"ciTestWallet": {
        "Buyer": {"recoveryPhrase": "buyer words", "phoneNumber": "111"},
        "seller": {"recoveryPhrase": "seller words", "phoneNumber": "222"},
    }}
    store = CredentialStore(_seeds(tmp_path, seeds), "ciTestWallet")
    assert store.get(Role.BUYER).recovery_phrase == "buyer words"
    assert store.get(Role.SELLER).phone_number == "222"
    with pytest.raises(ConfigurationError, match="No credentials for Arbitrator"):
        store.get(Role.ARBITRATOR)


def test_s1_actor_paths_come_from_config(tmp_path, config):
    store = CredentialStore(_seeds(tmp_path, {"testWallet": FLAT}), "testWallet")
    actor = store.actor(Role.SELLER, config)
    assert actor.session_artifact_path == config.artifacts_dir / "seller-session.json"
    assert actor.store_snapshot_path == config.artifacts_dir / "seller-store.json"


def test_s1_repr_masks_secrets(tmp_path):
    creds = CredentialStore(_seeds(tmp_path, {"testWallet": FLAT}), "testWallet").get(Role.BUYER)
    text = repr(creds)
    assert "alpha" not in text
    assert "912345" not in text
    assert text.endswith("***678)")


# ═══════════════════════════════════════════════════════
# Scenario 2: Credential errors name the template
# ═══════════════════════════════════════════════════════

def test_s2_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="seeds.template.json"):
        CredentialStore(tmp_path / "nope.json", "testWallet")


def test_s2_missing_set(tmp_path):
    with pytest.raises(ConfigurationError, match="ciTestWallet"):
        CredentialStore(_seeds(tmp_path, {"testWallet": FLAT}), "ciTestWallet")


def test_s2_missing_field(tmp_path):
    store = CredentialStore(_seeds(tmp_path, {"testWallet": {"recoveryPhrase": "x"}}), "testWallet")
    with pytest.raises(ConfigurationError, match="phoneNumber") as exc:
        store.get(Role.BUYER)
    assert "seeds.template.json" in str(exc.value)


def test_s2_invalid_json(tmp_path):
    path = tmp_path / "seeds.json"
    path.write_text("{testWallet: }")
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        CredentialStore(path, "testWallet")


# ═══════════════════════════════════════════════════════
# Scenario 3: Artifact pair
# ═══════════════════════════════════════════════════════

def test_s3_write_pair_round_trip(actor):
    write_pair(actor, SESSION, SNAPSHOT)
    require_artifacts(actor)
    assert read_session(actor) == SESSION
    assert read_snapshot(actor) == SNAPSHOT


def test_s3_write_pair_is_all_or_nothing(actor, config):
    with pytest.raises(BootstrapError):
        write_pair(actor, SESSION, {"wallet": object()})
    assert not actor.session_artifact_path.exists()
    assert not actor.store_snapshot_path.exists()
    assert list(config.artifacts_dir.iterdir()) == []


def test_s3_missing_artifacts_named(actor):
    with pytest.raises(MissingArtifactError, match="bootstrap buyer") as exc:
        require_artifacts(actor)
    assert len(exc.value.missing) == 2


def test_s3_missing_one_artifact(artifacts):
    artifacts.store_snapshot_path.unlink()
    with pytest.raises(MissingArtifactError) as exc:
        require_artifacts(artifacts)
    assert exc.value.missing == [str(artifacts.store_snapshot_path)]


def test_s3_corrupt_session(artifacts):
    artifacts.session_artifact_path.write_text("{cookies: [")
    with pytest.raises(SessionRestoreError, match="corrupt"):
        read_session(artifacts)


def test_s3_session_without_cookies(artifacts):
    artifacts.session_artifact_path.write_text(json.dumps({"origins": []}))
    with pytest.raises(SessionRestoreError, match="no cookies"):
        read_session(artifacts)


def test_s3_snapshot_must_be_an_object(artifacts):
    artifacts.store_snapshot_path.write_text(json.dumps(["wallet"]))
    with pytest.raises(SessionRestoreError, match="JSON object"):
        read_snapshot(artifacts)
