"""
Trend state — the previous run's readings, carried over for comparison.

One JSON file, overwritten after every successful run. A missing file is the
normal first-run condition and loads as None.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from marvinous.collectors.base import DriveHealth, GpuStatus, SensorReading, to_dict

logger = logging.getLogger("marvinous.state")


class StateError(Exception):
    """Snapshot could not be read or written."""


@dataclass(frozen=True)
class PreviousSnapshot:
    timestamp: datetime
    sensors: List[SensorReading] = field(default_factory=list)
    gpu: Optional[GpuStatus] = None
    drives: List[DriveHealth] = field(default_factory=list)

    @classmethod
    def now(cls, sensors, gpu, drives) -> "PreviousSnapshot":
        return cls(
            timestamp=datetime.now(timezone.utc),
            sensors=list(sensors),
            gpu=gpu,
            drives=list(drives),
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "sensors": [to_dict(s) for s in self.sensors],
            "gpu": to_dict(self.gpu) if self.gpu else None,
            "drives": [to_dict(d) for d in self.drives],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PreviousSnapshot":
        timestamp = datetime.fromisoformat(data["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        gpu = data.get("gpu")
        return cls(
            timestamp=timestamp,
            sensors=[SensorReading.from_dict(s) for s in data.get("sensors") or []],
            gpu=GpuStatus.from_dict(gpu) if gpu else None,
            drives=[DriveHealth.from_dict(d) for d in data.get("drives") or []],
        )


def load_previous(path: Path) -> Optional[PreviousSnapshot]:
    """Load the previous snapshot; None if this is the first run."""
    path = Path(path)
    if not path.exists():
        logger.info(f"No previous state file found at {path}")
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        snapshot = PreviousSnapshot.from_dict(data)
    except OSError as e:
        raise StateError(f"Failed to read state file {path}: {e}") from e
    except (ValueError, KeyError, TypeError) as e:
        raise StateError(f"Failed to parse state file {path}: {e}") from e

    logger.info(f"Loaded previous state from {path} ({snapshot.timestamp.isoformat()})")
    return snapshot


def save_current(path: Path, snapshot: PreviousSnapshot) -> None:
    """Atomically replace the snapshot at `path`."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(snapshot.to_dict(), indent=2)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise StateError(f"Failed to write state file {path}: {e}") from e

    logger.info(f"Saved current state to {path}")
