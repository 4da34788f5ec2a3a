"""
Durable per-session checkpoints.

Each session has one JSON file, ``<checkpoint_dir>/<session_id>.json``.
Writes go to a uniquely named temporary file in the same directory, are
fsynced and then renamed over the target, so a reader sees either the old
record or the new one and never a torn write.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import tempfile
import time
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from vnscan.exceptions import CheckpointError
from vnscan.models import (
    Checkpoint,
    SessionStatistics,
    SweepStats,
    utcnow,
    validate_session_id,
)

if TYPE_CHECKING:
    from vnscan.storage.sessions import SessionOutputStore

logger = logging.getLogger(__name__)

CHECKPOINT_SUFFIX = ".json"
TEMP_SUFFIX = ".tmp"

# Fields callers may change through update()
_UPDATABLE_FIELDS = frozenset(
    f.name for f in dataclasses.fields(Checkpoint) if f.name not in ("session_id", "updated_at")
)


class CheckpointStore:
    """
    Load and save Checkpoint records.

    Example:
        >>> store = CheckpointStore(Path("checkpoints"))
        >>> store.save(Checkpoint("abc", total_pages=10))
        >>> store.load("abc").total_pages
        10
    """

    def __init__(self, directory: Path | str):
        self.directory = Path(directory)

    def path_for(self, session_id: str) -> Path:
        return self.directory / f"{validate_session_id(session_id)}{CHECKPOINT_SUFFIX}"

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).exists()

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def save(self, checkpoint: Checkpoint) -> None:
        """
        Atomically persist a checkpoint, refreshing its timestamp.

        Raises:
            CheckpointError: If the record could not be written. The previous
                record, if any, is left in place.
        """
        target = self.path_for(checkpoint.session_id)
        checkpoint.updated_at = utcnow()
        payload = json.dumps(checkpoint.to_dict(), ensure_ascii=False, indent=2)

        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f"{checkpoint.session_id}.",
                suffix=TEMP_SUFFIX,
                dir=self.directory,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass
                except OSError as cleanup_error:
                    logger.warning("Could not remove temp checkpoint %s: %s", tmp_name, cleanup_error)
            raise CheckpointError(
                f"Failed to save checkpoint for {checkpoint.session_id}: {e}"
            ) from e

        logger.debug(
            "Saved checkpoint %s at page %d/%d",
            checkpoint.session_id,
            checkpoint.last_page_processed,
            checkpoint.total_pages,
        )

    def load(self, session_id: str) -> Checkpoint | None:
        """Return the session's checkpoint, or None if missing or invalid."""
        return self._read(self.path_for(session_id))

    def _read(self, path: Path) -> Checkpoint | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Unreadable checkpoint %s: %s", path, e)
            return None

        try:
            checkpoint = Checkpoint.from_dict(data)
        except ValueError as e:
            logger.warning("Invalid checkpoint %s: %s", path, e)
            return None
        if path.stem != checkpoint.session_id:
            logger.warning("Checkpoint %s names session %s", path, checkpoint.session_id)
            return None
        return checkpoint

    def update(self, session_id: str, **changes: Any) -> bool:
        """
        Merge ``changes`` into an existing checkpoint and save it.

        Returns:
            False if there is no valid checkpoint or the save failed.

        Raises:
            ValueError: For unknown field names or values that break the
                checkpoint's invariants.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update checkpoint fields: {sorted(unknown)}")

        checkpoint = self.load(session_id)
        if checkpoint is None:
            return False
        updated = dataclasses.replace(checkpoint, **changes)
        try:
            self.save(updated)
        except CheckpointError as e:
            logger.error("%s", e)
            return False
        return True

    def remove(self, session_id: str) -> bool:
        """Delete the session's checkpoint. Returns False if there was none."""
        try:
            self.path_for(session_id).unlink()
        except FileNotFoundError:
            return False
        logger.info("Removed checkpoint %s", session_id)
        return True

    def list(self) -> list[Checkpoint]:
        """All valid checkpoints, most recently updated first."""
        if not self.directory.is_dir():
            return []
        checkpoints = [
            cp
            for path in self.directory.glob(f"*{CHECKPOINT_SUFFIX}")
            if (cp := self._read(path)) is not None
        ]
        checkpoints.sort(key=lambda cp: cp.updated_at, reverse=True)
        return checkpoints

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(
        self,
        max_age: timedelta,
        outputs: SessionOutputStore | None = None,
    ) -> SweepStats:
        """
        Remove checkpoints (and, given ``outputs``, session files) older than ``max_age``.

        Age is measured from file modification time. Failures on individual
        files are collected in ``SweepStats.errors``.
        """
        stats = SweepStats()
        cutoff = time.time() - max_age.total_seconds()

        if self.directory.is_dir():
            for path in self.directory.iterdir():
                if path.suffix not in (CHECKPOINT_SUFFIX, TEMP_SUFFIX) or not path.is_file():
                    continue
                try:
                    if path.stat().st_mtime >= cutoff:
                        continue
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    stats.errors.append(f"{path.name}: {e}")
                    continue
                if path.suffix == CHECKPOINT_SUFFIX:
                    stats.checkpoints_removed += 1

        if outputs is not None:
            outputs.sweep_expired(cutoff, stats)

        if stats.checkpoints_removed or stats.outputs_removed or stats.images_removed:
            logger.info(
                "Swept %d checkpoints, %d outputs, %d images",
                stats.checkpoints_removed,
                stats.outputs_removed,
                stats.images_removed,
            )
        for error in stats.errors:
            logger.warning("Sweep failed for %s", error)
        return stats

    def summarize(self) -> SessionStatistics:
        """Totals across every stored checkpoint."""
        stats = SessionStatistics()
        for cp in self.list():
            stats.total_sessions += 1
            if cp.complete:
                stats.completed += 1
            else:
                stats.in_progress += 1
            if cp.error_count:
                stats.with_errors += 1
            stats.pages_processed += cp.last_page_processed
            stats.pages_queued += cp.total_pages
        return stats
