"""State injection: restore a role's session and wallet store into a fresh context, then verify it."""
from __future__ import annotations

import pytest
from fakes import SNAPSHOT

from escrow_harness.errors import MissingArtifactError, SessionRestoreError, StoreIntegrityError
from escrow_harness.session.injector import StateInjector
from escrow_harness.session.store import compare_lengths


def _records(browser, config):
    return browser.idb[config.store_db_name][config.store_name]


# ═══════════════════════════════════════════════════════
# Scenario 1: Round trip
# ═══════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_s1_restores_every_record(browser, artifacts, config):
    injected = await StateInjector(config).inject(browser, artifacts)

    assert injected.report.role == "Buyer"
    assert injected.report.record_count == len(SNAPSHOT)
    assert _records(browser, config) == SNAPSHOT
    assert injected.page.url == "https://escrow.test/init"
    assert browser.contexts[0].storage["cookies"][0]["name"] == "sid"
    assert browser.contexts[0].default_timeout == config.element_timeout * 1000


@pytest.mark.asyncio
async def test_s1_stale_keys_are_wiped(browser, artifacts, config):
    browser.idb[config.store_db_name] = {config.store_name: {"oldWallet": {"mnemonic": "stale"}}}

    injected = await StateInjector(config).inject(browser, artifacts)

    assert injected.report.record_count == len(SNAPSHOT)
    assert "oldWallet" not in _records(browser, config)


@pytest.mark.asyncio
async def test_s1_injecting_twice_is_idempotent(browser, artifacts, config):
    injector = StateInjector(config)
    first = await injector.inject(browser, artifacts)
    after_first = dict(_records(browser, config))
    second = await injector.inject(browser, artifacts)

    assert first.report.record_count == second.report.record_count
    assert _records(browser, config) == after_first


# ═══════════════════════════════════════════════════════
# Scenario 2: Setup failures happen before any browser work
# ═══════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_s2_missing_snapshot(browser, artifacts, config):
    artifacts.store_snapshot_path.unlink()
    with pytest.raises(MissingArtifactError, match="Buyer"):
        await StateInjector(config).inject(browser, artifacts)
    assert browser.contexts == []


@pytest.mark.asyncio
async def test_s2_corrupt_session(browser, artifacts, config):
    artifacts.session_artifact_path.write_text("not json")
    with pytest.raises(SessionRestoreError):
        await StateInjector(config).inject(browser, artifacts)
    assert browser.contexts == []


@pytest.mark.asyncio
async def test_s2_browser_rejects_session(browser, artifacts, config):
    browser.reject_storage_state = True
    with pytest.raises(SessionRestoreError, match="Could not restore session for Buyer"):
        await StateInjector(config).inject(browser, artifacts)


# ═══════════════════════════════════════════════════════
# Scenario 3: Integrity verification
# ═══════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_s3_dropped_record_fails_count(browser, artifacts, config):
    browser.next_drop_keys = {"lastSync"}
    with pytest.raises(StoreIntegrityError) as exc:
        await StateInjector(config).inject(browser, artifacts)

    assert exc.value.expected == len(SNAPSHOT)
    assert exc.value.actual == len(SNAPSHOT) - 1
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_s3_altered_value_fails_lengths(browser, artifacts, config):
    browser.next_corrupt = {"settings": {"currency": "USD", "locale": "en-US"}}
    with pytest.raises(StoreIntegrityError, match="settings") as exc:
        await StateInjector(config).inject(browser, artifacts)

    assert exc.value.keys == ["settings"]
    assert browser.contexts[0].closed


def test_s3_compare_lengths():
    assert compare_lengths({"a": 3, "b": 4}, {"a": 3, "b": 4}) == []
    assert compare_lengths({"a": 3, "b": 5}, {"a": 3, "b": 4}) == ["b"]
    assert compare_lengths({"a": 3}, {"a": 3, "c": 1}) == ["c"]
    assert compare_lengths({"a": 3, "x": 1}, {"a": 3}) == ["x"]
