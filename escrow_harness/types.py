from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from escrow_harness.errors import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path

# ─── Roles ───

class Role(StrEnum):
    BUYER = "Buyer"
    SELLER = "Seller"
    ARBITRATOR = "Arbitrator"

    @property
    def slug(self) -> str:
        return self.value.lower()

    @classmethod
    def parse(cls, raw: str | Role) -> Role:
        if isinstance(raw, Role):
            return raw
        key = str(raw).strip().lower()
        for role in cls:
            if role.slug == key:
                return role
        if key == "arb":
            return cls.ARBITRATOR
        allowed = ", ".join(r.value for r in cls)
        raise ConfigurationError(f"Unknown role: {raw!r} (expected one of: {allowed})")


# ─── Actors ───

@dataclass(frozen=True)
class Credentials:
    recovery_phrase: str
    phone_number: str
    phone_code: str = ""

    def __repr__(self) -> str:
        tail = self.phone_number[-3:] if self.phone_number else ""
        return f"Credentials(phone=***{tail})"


@dataclass(frozen=True)
class Actor:
    role: Role
    credentials: Credentials
    session_artifact_path: Path
    store_snapshot_path: Path


# ─── Order model ───

@dataclass
class Order:
    id: str = ""
    state: str = "Created"
    parties: dict[str, str] = field(default_factory=dict)  # {role slug: handle}
    payment_method: str = ""
    amount_range: tuple[str, str] | None = None
    headline: str = ""
    visibility: str = ""  # Listed | Unlisted
    dispute_reason: str | None = None
    resolution_outcome: str | None = None
    deposit_choice: str | None = None


@dataclass(frozen=True)
class StatusObservation:
    role: Role
    state: str | None  # None when the label is not part of the vocabulary
    raw_text: str
    observed_at: float
    elapsed: float = 0.0


# ─── Scenario IR (parsed from YAML) ───

@dataclass
class Expectation:
    state: str
    observers: list[Role] = field(default_factory=list)
    allow_later: bool = False
    timeout: float | None = None


@dataclass
class ScenarioStep:
    name: str
    actor: Role
    action: str
    target: str | None = None
    value: str | None = None
    inputs: dict[str, Any] = field(default_factory=dict)
    gate: str | None = None  # state the actor must see before acting
    expect: Expectation | None = None
    texts: list[str] = field(default_factory=list)  # messages the actor must see afterwards
    forbid: dict[Role, list[str]] = field(default_factory=dict)
    capture: dict[str, dict[str, str]] = field(default_factory=dict)
    settle: float = 0.0


@dataclass
class ScenarioDefinition:
    name: str
    description: str = ""
    variables: dict[str, Any] = field(default_factory=dict)
    steps: list[ScenarioStep] = field(default_factory=list)

    @property
    def roles(self) -> list[Role]:
        seen: list[Role] = []
        for step in self.steps:
            for role in [step.actor, *(step.expect.observers if step.expect else []), *step.forbid]:
                if role not in seen:
                    seen.append(role)
        return seen


# ─── Run bookkeeping ───

@dataclass
class StepOutcome:
    index: int
    name: str
    actor: Role
    action: str
    state: str
    observations: list[StatusObservation] = field(default_factory=list)
    elapsed: float = 0.0


@dataclass
class RunResult:
    scenario: str
    run_id: int | None = None
    status: str = "running"  # running | passed | failed
    outcomes: list[StepOutcome] = field(default_factory=list)
    order: Order = field(default_factory=Order)
    failure: str | None = None
