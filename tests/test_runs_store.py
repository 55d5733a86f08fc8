"""SQLite run history."""
from __future__ import annotations

import pytest

from escrow_harness.store.runs import RunStore
from escrow_harness.types import Role, StatusObservation, StepOutcome


@pytest.fixture
def store(tmp_path):
    s = RunStore(tmp_path / "runs.db")
    yield s
    s.close()


def _outcome(index=0, name="seller escrows"):
    seen = [StatusObservation(Role.BUYER, "Escrowed", "Escrowed", 0.0, 1.25)]
    return StepOutcome(index, name, Role.SELLER, "escrow", "Escrowed", seen, 2.5)


def test_start_and_finish(store):
    run_id = store.start_run("escrow_visible_to_all", seed=42)
    store.finish_run(run_id, "passed", "order-7")

    run = store.get_runs()[0]
    assert run["id"] == run_id
    assert run["scenario"] == "escrow_visible_to_all"
    assert run["status"] == "passed"
    assert run["seed"] == 42
    assert run["order_id"] == "order-7"
    assert run["finished_at"]


def test_running_until_finished(store):
    store.start_run("create_offer")
    run = store.get_runs()[0]
    assert run["status"] == "running"
    assert run["finished_at"] is None
    assert run["order_id"] is None


def test_steps_keep_observations(store):
    run_id = store.start_run("escrow_visible_to_all")
    store.record_step(run_id, _outcome())
    store.record_step(run_id, _outcome(1, "buyer claims"), "failed", "Buyer did not observe Completed")

    steps = store.get_steps(run_id)
    assert [s["index"] for s in steps] == [0, 1]
    assert steps[0]["actor"] == "Seller"
    assert steps[0]["observations"] == [
        {"role": "Buyer", "state": "Escrowed", "raw_text": "Escrowed", "elapsed": 1.25},
    ]
    assert steps[1]["status"] == "failed"
    assert steps[1]["detail"] == "Buyer did not observe Completed"


def test_runs_newest_first(store):
    ids = [store.start_run(f"s{i}") for i in range(3)]
    assert [r["id"] for r in store.get_runs()] == ids[::-1]
    assert len(store.get_runs(limit=2)) == 2


def test_reset(store):
    run_id = store.start_run("s")
    store.record_step(run_id, _outcome())
    store.reset()
    assert store.get_runs() == []
    assert store.get_steps(run_id) == []


def test_history_survives_reopen(tmp_path):
    first = RunStore(tmp_path / "runs.db")
    run_id = first.start_run("s")
    first.finish_run(run_id, "failed", failure="Step 2 failed")
    first.close()

    second = RunStore(tmp_path / "runs.db")
    try:
        assert second.get_runs()[0]["failure"] == "Step 2 failed"
    finally:
        second.close()
