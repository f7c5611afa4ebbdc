"""Durable harvest progress: per-source offsets, counters and fingerprints."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from harvester.exceptions import CheckpointPersistError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HarvestCheckpoint(BaseModel):
    """Progress document rewritten after every harvest round.

    Serialized with camelCase keys (``sourceOffsets``, ``processedFingerprints``,
    ``totalCollected``, ``totalImported``, ``lastRun``). The extra counters
    default to zero so documents written without them still load.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source_offsets: Dict[str, NonNegativeInt] = Field(default_factory=dict)
    processed_fingerprints: Set[str] = Field(default_factory=set)
    total_collected: NonNegativeInt = 0
    total_imported: NonNegativeInt = 0
    total_duplicates: NonNegativeInt = 0
    total_irrelevant: NonNegativeInt = 0
    total_failed: NonNegativeInt = 0
    last_run: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def check_counters(self) -> "HarvestCheckpoint":
        if self.total_imported > self.total_collected:
            raise ValueError("totalImported cannot exceed totalCollected")
        return self

    def offset_for(self, source: str) -> int:
        return self.source_offsets.get(source, 0)

    def advance(self, source: str, page_size: int) -> int:
        """Move ``source`` forward by one page and return the new offset."""

        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.source_offsets[source] = self.offset_for(source) + page_size
        return self.source_offsets[source]

    def record_fingerprints(self, fingerprints: Iterable[str]) -> None:
        self.processed_fingerprints.update(fingerprints)

    def touch(self) -> None:
        self.last_run = _utcnow()

    def to_json(self) -> str:
        payload = self.model_dump(mode="json", by_alias=True)
        payload["processedFingerprints"] = sorted(self.processed_fingerprints)
        return json.dumps(payload, indent=2)


def _atomic_write_text(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, encoding="utf-8") as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


class CheckpointStore:
    """JSON file holding one :class:`HarvestCheckpoint`.

    Writes go through a temporary file and ``os.replace`` so a crash mid-write
    leaves the previous round's document intact. The file is only removed by
    :meth:`reset`, which is an explicit operator action.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[HarvestCheckpoint]:
        if not self.path.exists():
            return None
        try:
            data = self.path.read_text(encoding="utf-8")
            checkpoint = HarvestCheckpoint.model_validate_json(data)
        except (OSError, ValidationError) as exc:
            raise CheckpointPersistError(
                f"Checkpoint at {self.path} is unreadable: {exc}"
            ) from exc
        logger.info(
            "Resuming from checkpoint %s (offsets=%s)", self.path, checkpoint.source_offsets
        )
        return checkpoint

    def load_or_create(self) -> HarvestCheckpoint:
        checkpoint = self.load()
        if checkpoint is None:
            logger.info("No checkpoint at %s; starting fresh", self.path)
            checkpoint = HarvestCheckpoint()
        return checkpoint

    def save(self, checkpoint: HarvestCheckpoint) -> None:
        checkpoint.touch()
        try:
            _atomic_write_text(self.path, checkpoint.to_json())
        except (OSError, ValueError) as exc:
            raise CheckpointPersistError(
                f"Failed to write checkpoint to {self.path}: {exc}"
            ) from exc
        logger.info(
            "Progress saved: %s collected, %s imported",
            checkpoint.total_collected,
            checkpoint.total_imported,
        )

    def reset(self) -> bool:
        """Delete the checkpoint file; returns whether one existed."""

        if not self.path.exists():
            return False
        self.path.unlink()
        logger.info("Deleted checkpoint %s", self.path)
        return True
