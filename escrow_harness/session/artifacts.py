"""Role-namespaced persisted artifacts: <role>-session.json and <role>-store.json."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

from escrow_harness.errors import BootstrapError, MissingArtifactError, SessionRestoreError

if TYPE_CHECKING:
    from escrow_harness.types import Actor

logger = logging.getLogger(__name__)


def require_artifacts(actor: Actor) -> None:
    missing = [
        str(p) for p in (actor.session_artifact_path, actor.store_snapshot_path)
        if not Path(p).is_file()
    ]
    if missing:
        raise MissingArtifactError(actor.role.value, missing)


def read_snapshot(actor: Actor) -> dict[str, Any]:
    path = Path(actor.store_snapshot_path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise MissingArtifactError(actor.role.value, [str(path)]) from e
    except json.JSONDecodeError as e:
        raise SessionRestoreError(f"Store snapshot {path} is corrupt: {e}") from e
    if not isinstance(data, dict):
        raise SessionRestoreError(f"Store snapshot {path} must be a JSON object of key -> value")
    return data


def read_session(actor: Actor) -> dict[str, Any]:
    path = Path(actor.session_artifact_path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise MissingArtifactError(actor.role.value, [str(path)]) from e
    except json.JSONDecodeError as e:
        raise SessionRestoreError(f"Session snapshot {path} is corrupt: {e}") from e
    if not isinstance(data, dict) or "cookies" not in data:
        raise SessionRestoreError(f"Session snapshot {path} has no cookies section")
    return data


def write_pair(actor: Actor, session_state: dict[str, Any], snapshot: dict[str, Any]) -> None:
    """Write both artifacts or neither.

    Both documents are serialized to temp files next to their targets
    first; only when both temp files exist are they renamed into place.
    """
    targets = [Path(actor.session_artifact_path), Path(actor.store_snapshot_path)]
    payloads = [session_state, snapshot]
    temps: list[Path] = []
    replaced: list[Path] = []
    try:
        for target, payload in zip(targets, payloads, strict=True):
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
            temps.append(Path(tmp))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
        for tmp, target in zip(temps, targets, strict=True):
            os.replace(tmp, target)
            replaced.append(target)
    except (OSError, TypeError, ValueError) as e:
        for tmp in temps:
            tmp.unlink(missing_ok=True)
        # a half-written pair is worse than none
        for target in replaced:
            target.unlink(missing_ok=True)
        raise BootstrapError(f"Could not write artifacts for {actor.role}: {e}") from e

    for target in targets:
        logger.info("Saved %s (%d bytes)", target, target.stat().st_size)
