"""Shared fixtures for escrow-harness tests."""
from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from fakes import (
    SEEDS,
    SESSION,
    SNAPSHOT,
    FakeBrowser,
    FakeEscrowBackend,
    FakeSessionFactory,
    make_actor,
    role_session,
)

from escrow_harness.compiler import find_scenario, parse_scenario_yaml
from escrow_harness.config import ENV_OVERRIDES, HarnessConfig
from escrow_harness.engine.orchestrator import Orchestrator
from escrow_harness.session.browser import BrowserSessionFactory
from escrow_harness.session.credentials import CredentialStore
from escrow_harness.store.runs import RunStore
from escrow_harness.types import Role

if TYPE_CHECKING:
    from pathlib import Path

    from escrow_harness.types import RunResult, ScenarioDefinition



def make_config(tmp_path: Path, **overrides) -> HarnessConfig:
    values = {
        "base_url": "https://escrow.test",
        "seeds_path": tmp_path / "seeds.json",
        "artifacts_dir": tmp_path / "data-auth",
        "state_timeout": 2.0,
        "poll_interval": 0.01,
        "element_timeout": 0.3,
        "navigation_timeout": 1.0,
        "scenario_timeout": 20.0,
        "bootstrap_timeout": 1.0,
    }
    values.update(overrides)
    return HarnessConfig(**values)


class ScenarioHarness:
    """Runs scenarios against a FakeEscrowBackend with one fake session per role.

    Owns the backend, the session factory and a run store in a temp
    directory; every run goes through the real Orchestrator.
    """

    def __init__(self, tmp_path: Path, *, delays: dict[Role, float] | None = None, **config_overrides):
        self.tmp = tmp_path
        self.config = make_config(tmp_path, **config_overrides)
        self.backend = FakeEscrowBackend(delays=delays)
        self.factory = FakeSessionFactory(self.backend, self.config)
        self.store = RunStore(tmp_path / "runs.db")
        self.result: RunResult | None = None

    def orchestrator(self, seed: int = 7) -> Orchestrator:
        return Orchestrator(self.config, self.factory, run_store=self.store, seed=seed)

    async def run(self, scenario: str | ScenarioDefinition, seed: int = 7, **variables) -> RunResult:
        if isinstance(scenario, str):
            scenario = self.load(scenario)
        variables.setdefault("offer_id", "offer-1")
        self.result = await self.orchestrator(seed).run(scenario, variables)
        return self.result

    def use_browser(self) -> FakeBrowser:
        """Open sessions through BrowserSessionFactory, injecting each role into a FakeBrowser context."""
        self.config.artifacts_dir.mkdir(parents=True, exist_ok=True)
        for role in Role:
            self.config.session_path(role).write_text(json.dumps(role_session(role)), encoding="utf-8")
            self.config.store_path(role).write_text(json.dumps(SNAPSHOT), encoding="utf-8")
        self.config.seeds_path.write_text(json.dumps({"testWallet": SEEDS}), encoding="utf-8")
        browser = FakeBrowser(self.backend)
        credentials = CredentialStore(self.config.seeds_path, "testWallet")
        self.factory = BrowserSessionFactory(browser, self.config, credentials)
        return browser

    def load(self, name: str) -> ScenarioDefinition:
        _, content = find_scenario(name, self.tmp)
        return parse_scenario_yaml(content)

    @property
    def order_id(self) -> str:
        return next(iter(self.backend.history))

    def states(self) -> list[str]:
        return [state for _, state, _ in self.backend.history[self.order_id]]

    def close(self):
        self.store.close()


@pytest.fixture
def config(tmp_path: Path) -> HarnessConfig:
    return make_config(tmp_path)


@pytest.fixture
def harness(tmp_path: Path):
    h = ScenarioHarness(tmp_path)
    yield h
    h.close()


@pytest.fixture
def harness_factory(tmp_path: Path):
    """Factory fixture for harnesses with custom delays or timeouts."""
    created: list[ScenarioHarness] = []

    def _make(**kwargs) -> ScenarioHarness:
        sub = tmp_path / f"h{len(created)}"
        sub.mkdir()
        h = ScenarioHarness(sub, **kwargs)
        created.append(h)
        return h

    yield _make

    for h in created:
        h.close()


@pytest.fixture
def backend() -> FakeEscrowBackend:
    return FakeEscrowBackend()


@pytest.fixture
def browser(backend: FakeEscrowBackend) -> FakeBrowser:
    return FakeBrowser(backend)


@pytest.fixture
def actor(config: HarnessConfig):
    return make_actor(Role.BUYER, config)


@pytest.fixture
def artifacts(actor, config: HarnessConfig):
    """Write a valid session + store pair for the Buyer."""
    config.artifacts_dir.mkdir(parents=True, exist_ok=True)
    actor.session_artifact_path.write_text(json.dumps(SESSION), encoding="utf-8")
    actor.store_snapshot_path.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
    return actor


@pytest.fixture
def clean_env(monkeypatch):
    for name in [*ENV_OVERRIDES, "CI"]:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
