"""Configuration loading: harness.yaml, .env and ESCROW_* overrides."""
from __future__ import annotations

from pathlib import Path

import pytest

from escrow_harness.config import HarnessConfig, load_config
from escrow_harness.errors import ConfigurationError
from escrow_harness.types import Role


def test_defaults_resolve_paths_against_cwd(clean_env, tmp_path):
    config = load_config(tmp_path)
    assert config.base_url == "https://escrow.test"
    assert config.artifacts_dir == tmp_path / "data-auth"
    assert config.seeds_path == tmp_path / "data" / "seeds.json"
    assert config.headless is True
    assert config.role is None


def test_yaml_file_values(clean_env, tmp_path):
    (tmp_path / "harness.yaml").write_text(
        "base_url: https://staging.escrow.test\nstate_timeout: 5\nheadless: false\nrole: seller\n"
    )
    config = load_config(tmp_path)
    assert config.base_url == "https://staging.escrow.test"
    assert config.state_timeout == 5.0
    assert config.headless is False
    assert config.role is Role.SELLER


def test_unknown_key_rejected(clean_env, tmp_path):
    (tmp_path / "harness.yaml").write_text("base_url: https://x.test\nwallet_pin: 1234\n")
    with pytest.raises(ConfigurationError, match="wallet_pin"):
        load_config(tmp_path)


def test_yaml_must_be_a_mapping(clean_env, tmp_path):
    (tmp_path / "harness.yaml").write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError, match="expected a mapping"):
        load_config(tmp_path)


def test_env_overrides_file(clean_env, tmp_path):
    (tmp_path / "harness.yaml").write_text("state_timeout: 5\n")
    clean_env.setenv("ESCROW_STATE_TIMEOUT", "3.5")
    clean_env.setenv("LOCAL_LINK", "http://localhost:3000")
    config = load_config(tmp_path)
    assert config.state_timeout == 3.5
    assert config.base_url == "http://localhost:3000"


def test_base_url_wins_over_local_link(clean_env, tmp_path):
    clean_env.setenv("ESCROW_BASE_URL", "https://staging.escrow.test")
    clean_env.setenv("LOCAL_LINK", "http://localhost:3000")
    assert load_config(tmp_path).base_url == "https://staging.escrow.test"


def test_require_role_falls_back_to_env(clean_env, tmp_path):
    with pytest.raises(ConfigurationError, match="ESCROW_ROLE"):
        load_config(tmp_path).require_role("inject")

    clean_env.setenv("ESCROW_ROLE", "seller")
    assert load_config(tmp_path).require_role("inject") is Role.SELLER
    assert load_config(tmp_path, role="buyer").require_role("inject") is Role.BUYER


def test_explicit_overrides_win(clean_env, tmp_path):
    clean_env.setenv("ESCROW_HEADLESS", "true")
    config = load_config(tmp_path, headless=False, role="arb")
    assert config.headless is False
    assert config.role is Role.ARBITRATOR


def test_dotenv_file_is_read(clean_env, tmp_path):
    # register ESCROW_BOT_NAME with monkeypatch so the value load_dotenv sets is undone
    clean_env.setenv("ESCROW_BOT_NAME", "placeholder")
    clean_env.delenv("ESCROW_BOT_NAME")
    (tmp_path / ".env").write_text("ESCROW_BOT_NAME=escrow_test_bot\n")
    config = load_config(tmp_path)
    assert config.bot_name == "escrow_test_bot"


@pytest.mark.parametrize("env,value,match", [
    ("ESCROW_HEADLESS", "maybe", "headless"),
    ("ESCROW_STATE_TIMEOUT", "soon", "state_timeout"),
    ("ESCROW_ROLE", "auditor", "Unknown role"),
])
def test_bad_values_rejected(clean_env, tmp_path, env, value, match):
    clean_env.setenv(env, value)
    with pytest.raises(ConfigurationError, match=match):
        load_config(tmp_path)


def test_non_positive_poll_interval_rejected(clean_env, tmp_path):
    with pytest.raises(ConfigurationError, match="positive"):
        load_config(tmp_path, poll_interval=0)


def test_credential_set_follows_ci(clean_env):
    config = HarnessConfig()
    assert config.resolved_credential_set == "testWallet"
    clean_env.setenv("CI", "true")
    assert config.resolved_credential_set == "ciTestWallet"
    assert HarnessConfig(credential_set="testWallet").resolved_credential_set == "testWallet"


def test_role_namespaced_paths():
    config = HarnessConfig(artifacts_dir=Path("/tmp/auth"))
    assert config.session_path(Role.BUYER) == Path("/tmp/auth/buyer-session.json")
    assert config.store_path(Role.ARBITRATOR) == Path("/tmp/auth/arbitrator-store.json")
    assert config.session_path(Role.SELLER) != config.session_path(Role.BUYER)


def test_urls():
    config = HarnessConfig(base_url="https://escrow.test/")
    assert config.url("/init") == "https://escrow.test/init"
    assert config.order_url("abc-1") == "https://escrow.test/order-detail?id=abc-1"
