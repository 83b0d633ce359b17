"""Unlocker run state with atomic writes to data/unlocker_state.yaml."""

import logging
import shutil
import tempfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class UnlockerState(str, Enum):
    RUNNING = "running"
    HALTED = "halted"


class UnlockerStatus(BaseModel):
    """Halt guard state, persisted so another process can inspect or resume it."""

    state: UnlockerState = UnlockerState.RUNNING
    reason: str | None = None
    error_type: str | None = None
    context: str | None = None
    halted_at: datetime | None = None
    resumed_at: datetime | None = None
    consecutive_transient_failures: int = 0
    last_updated: datetime | None = None

    @property
    def halted(self) -> bool:
        return self.state == UnlockerState.HALTED


def atomic_write_yaml(path: Path, data: dict[str, Any]) -> None:
    """Write YAML through a temp file and rename it over ``path``.

    If the process crashes mid-write, the previous file remains intact.
    """
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            delete=False,
            suffix=".yaml",
            encoding="utf-8",
        ) as temp_file:
            yaml.safe_dump(
                data,
                temp_file,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
            temp_path = Path(temp_file.name)

        shutil.move(str(temp_path), str(path))
        logger.debug(f"Saved {path}")

    except Exception:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        raise


def load_status(path: Path) -> UnlockerStatus:
    """Load unlocker status, returning a running status if none was saved."""
    if not path.exists():
        return UnlockerStatus()

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)

        if not raw_data:
            logger.warning(f"Empty state file: {path}. Returning default state.")
            return UnlockerStatus()

        return UnlockerStatus(**raw_data)

    except yaml.YAMLError as e:
        logger.error(f"Corrupted YAML in state file: {e}")
        raise


def save_status(status: UnlockerStatus, path: Path) -> None:
    """Atomically save unlocker status."""
    status.last_updated = datetime.now(timezone.utc)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_yaml(path, status.model_dump(mode="json"))
    except Exception as e:
        logger.error(f"Failed to save unlocker state: {e}")
        raise
