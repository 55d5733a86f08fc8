"""SQLite-backed scenario run history."""
from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from escrow_harness.types import StepOutcome

INIT_SQL = """
CREATE TABLE IF NOT EXISTS scenario_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    scenario TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'running',
    seed INTEGER,
    order_id TEXT,
    failure TEXT,
    started_at TEXT NOT NULL,
    finished_at TEXT
);

CREATE TABLE IF NOT EXISTS run_steps (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER NOT NULL REFERENCES scenario_runs(id),
    step_index INTEGER NOT NULL,
    name TEXT NOT NULL,
    actor TEXT NOT NULL,
    action TEXT NOT NULL,
    state TEXT NOT NULL,
    status TEXT NOT NULL,
    elapsed REAL NOT NULL DEFAULT 0,
    observations TEXT NOT NULL DEFAULT '[]',
    detail TEXT,
    timestamp TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


def _now() -> str:
    return datetime.now(tz=UTC).strftime("%Y-%m-%d %H:%M:%S")


class RunStore:
    def __init__(self, db_path: str | Path):
        self.db = sqlite3.connect(str(db_path))
        self.db.execute("PRAGMA journal_mode = WAL")
        self.db.executescript(INIT_SQL)

    def start_run(self, scenario: str, seed: int | None = None) -> int:
        cur = self.db.execute(
            "INSERT INTO scenario_runs (scenario, seed, started_at) VALUES (?, ?, ?)",
            (scenario, seed, _now()),
        )
        self.db.commit()
        return cur.lastrowid

    def record_step(self, run_id: int, outcome: StepOutcome, status: str = "passed", detail: str | None = None) -> None:
        observations = [
            {"role": o.role.value, "state": o.state, "raw_text": o.raw_text, "elapsed": round(o.elapsed, 3)}
            for o in outcome.observations
        ]
        self.db.execute(
            """INSERT INTO run_steps
               (run_id, step_index, name, actor, action, state, status, elapsed, observations, detail)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                run_id,
                outcome.index,
                outcome.name,
                outcome.actor.value,
                outcome.action,
                outcome.state,
                status,
                outcome.elapsed,
                json.dumps(observations),
                detail,
            ),
        )
        self.db.commit()

    def finish_run(self, run_id: int, status: str, order_id: str | None = None, failure: str | None = None) -> None:
        self.db.execute(
            "UPDATE scenario_runs SET status = ?, order_id = ?, failure = ?, finished_at = ? WHERE id = ?",
            (status, order_id or None, failure, _now(), run_id),
        )
        self.db.commit()

    def get_runs(self, limit: int = 20) -> list[dict]:
        rows = self.db.execute(
            "SELECT id, scenario, status, seed, order_id, failure, started_at, finished_at "
            "FROM scenario_runs ORDER BY id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [
            {"id": r[0], "scenario": r[1], "status": r[2], "seed": r[3], "order_id": r[4],
             "failure": r[5], "started_at": r[6], "finished_at": r[7]}
            for r in rows
        ]

    def get_steps(self, run_id: int) -> list[dict]:
        rows = self.db.execute(
            "SELECT step_index, name, actor, action, state, status, elapsed, observations, detail "
            "FROM run_steps WHERE run_id = ? ORDER BY id",
            (run_id,),
        ).fetchall()
        return [
            {"index": r[0], "name": r[1], "actor": r[2], "action": r[3], "state": r[4],
             "status": r[5], "elapsed": r[6], "observations": json.loads(r[7]), "detail": r[8]}
            for r in rows
        ]

    def reset(self) -> None:
        self.db.execute("DELETE FROM run_steps")
        self.db.execute("DELETE FROM scenario_runs")
        self.db.commit()

    def close(self) -> None:
        self.db.close()
