"""Harness error taxonomy.

Configuration and setup errors are raised before a scenario drives any
actor; interaction, convergence, integrity and model errors abort the
running scenario. None of them are retried.
"""
from __future__ import annotations


class HarnessError(Exception):
    """Root of every error the harness raises on purpose."""


# ─── Configuration ───

class ConfigurationError(HarnessError):
    pass


# ─── Setup ───

class SetupError(HarnessError):
    pass


class MissingArtifactError(SetupError):
    def __init__(self, role: str, missing: list[str]):
        self.role = role
        self.missing = missing
        joined = ", ".join(missing)
        super().__init__(
            f"Persisted artifacts for {role} not found ({joined}). "
            f"Run `escrow-harness bootstrap {role.lower()}` first."
        )


class SessionRestoreError(SetupError):
    pass


class BootstrapError(SetupError):
    pass


# ─── Interaction ───

class InteractionError(HarnessError):
    def __init__(self, role: str, action: str, target: str, detail: str = ""):
        self.role = role
        self.action = action
        self.target = target
        msg = f"{role}: {action} on {target!r} failed"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ElementNotFoundError(InteractionError):
    pass


class ElementNotInteractableError(InteractionError):
    pass


# ─── Convergence ───

class ConvergenceError(HarnessError):
    pass


class StateTimeoutError(ConvergenceError):
    def __init__(
        self,
        role: str,
        expected: str,
        last_observed: str | None,
        initial_observed: str | None,
        elapsed: float,
        terminal: bool = False,
    ):
        self.role = role
        self.expected = expected
        self.last_observed = last_observed
        self.initial_observed = initial_observed
        self.elapsed = elapsed
        if terminal:
            self.kind = "wrong terminal state"
        elif last_observed == initial_observed:
            self.kind = "never changed"
        else:
            self.kind = "stalled"
        super().__init__(
            f"{role} did not observe {expected} within {elapsed:.1f}s "
            f"({self.kind}; last observed: {last_observed or 'nothing'})"
        )


# ─── Integrity ───

class IntegrityError(HarnessError):
    pass


class StoreRestoreError(IntegrityError):
    pass


class StoreIntegrityError(IntegrityError):
    def __init__(self, message: str, expected: int = 0, actual: int = 0, keys: list[str] | None = None):
        self.expected = expected
        self.actual = actual
        self.keys = keys or []
        super().__init__(message)


# ─── Order model ───

class ModelError(HarnessError):
    pass


class IllegalTransitionError(ModelError):
    pass


class RoleViolationError(ModelError):
    pass


# ─── Verification / scenarios ───

class VerificationError(HarnessError):
    pass


class ScenarioError(HarnessError):
    """Scenario file could not be parsed or failed static validation."""


class ScenarioFailure(HarnessError):
    def __init__(
        self,
        index: int,
        step: str,
        actor: str,
        cause: BaseException,
        expected: str | None = None,
        observed: str | None = None,
    ):
        self.index = index
        self.step = step
        self.actor = actor
        self.cause = cause
        self.expected = expected
        self.observed = observed
        parts = [f"Step {index} ({step!r}, {actor}) failed: {cause}"]
        if expected is not None:
            parts.append(f"expected {expected}, observed {observed or 'nothing'}")
        super().__init__("; ".join(parts))
