"""
Backup and restore - point-in-time JSON snapshots of the context store.

Each backup is one self-describing file, ``backup-<timestamp>.json``:

    {"metadata": {"timestamp": ..., "contextCount": ..., "version": "1.0.0"},
     "contexts": [...]}

Restoring only reads and validates a snapshot; replacing the store contents
is the caller's job.
"""

import json
import os
import tempfile
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .config import (
    BACKUP_ENABLED,
    BACKUP_FORMAT_VERSION,
    BACKUP_FREQUENCY_MS,
    BACKUP_INITIAL_DELAY_MS,
    BACKUP_RETENTION_DAYS,
)
from .schema import BackupMetadata, Context, now_ms
from ..util.logging import audit_event, logger

BACKUP_PREFIX = "backup-"
BACKUP_SUFFIX = ".json"
AUTO_BACKUP_TASK = "automatic_backup"

MS_PER_DAY = 24 * 60 * 60 * 1000


class BackupError(Exception):
    """Custom exception for backup operations."""
    pass


class RestoreError(Exception):
    """Custom exception for restore operations."""
    pass


class VersionMismatchError(RestoreError):
    """The backup was written by an incompatible format version."""

    def __init__(self, found: str, expected: str):
        super().__init__(f"Backup version mismatch: found {found}, expected {expected}")
        self.found = found
        self.expected = expected


@dataclass
class BackupConfig:
    auto_backup_enabled: bool = BACKUP_ENABLED
    backup_frequency_ms: int = BACKUP_FREQUENCY_MS
    retention_period_days: float = BACKUP_RETENTION_DAYS
    initial_backup_delay_ms: int = BACKUP_INITIAL_DELAY_MS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _backup_filename(timestamp: int) -> str:
    return f"{BACKUP_PREFIX}{timestamp}{BACKUP_SUFFIX}"


class BackupManager:
    """
    Creates, lists, restores and expires context backups.

    With a scheduler attached, ``initialize()`` starts an automatic backup job
    that snapshots ``contexts_source()`` and then sweeps expired files.
    """

    def __init__(self, backup_dir: Union[str, Path],
                 contexts_source: Optional[Callable[[], Iterable[Context]]] = None,
                 config: Optional[BackupConfig] = None,
                 scheduler=None,
                 version: str = BACKUP_FORMAT_VERSION,
                 clock: Callable[[], int] = now_ms):
        self.backup_dir = Path(backup_dir)
        self.contexts_source = contexts_source
        self.config = config or BackupConfig()
        self.scheduler = scheduler
        self.version = version
        self._clock = clock
        self._initialized = False

    def initialize(self) -> None:
        """Create the backup directory and start automatic backups. Idempotent."""
        if self._initialized:
            return

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupError(f"Cannot create backup directory {self.backup_dir}: {e}")

        self._initialized = True
        if self.config.auto_backup_enabled:
            self._schedule(self.config.initial_backup_delay_ms)

        logger.log_backup_operation("initialize", details={
            "backup_dir": str(self.backup_dir),
            "auto_backup_enabled": self.config.auto_backup_enabled,
        })

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _schedule(self, initial_delay_ms: int) -> None:
        if self.scheduler is None or self.contexts_source is None:
            return
        self.scheduler.schedule(
            AUTO_BACKUP_TASK,
            self.config.backup_frequency_ms / 1000,
            self.perform_automatic_backup,
            initial_delay_sec=initial_delay_ms / 1000,
        )

    def _unschedule(self) -> None:
        if self.scheduler is not None:
            self.scheduler.cancel(AUTO_BACKUP_TASK)

    def set_config(self, **changes) -> BackupConfig:
        """
        Update backup settings and reschedule the automatic job.

        Enabling (or changing the frequency) schedules the next backup after
        the warm-up delay. Disabling stops future automatic backups; existing
        files are kept.

        Raises:
            ValueError: On an unknown setting name
        """
        unknown = set(changes) - set(BackupConfig.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown backup settings: {sorted(unknown)}")

        for key, value in changes.items():
            setattr(self.config, key, value)

        self._unschedule()
        if self._initialized and self.config.auto_backup_enabled:
            self._schedule(self.config.initial_backup_delay_ms)

        audit_event("backup.config_changed", {"changed": sorted(changes)}, payload=self.config.to_dict())
        return self.get_config()

    def get_config(self) -> BackupConfig:
        return BackupConfig(**self.config.to_dict())

    def shutdown(self) -> None:
        self._unschedule()
        logger.log_backup_operation("shutdown")

    # -------------------------------------------------------------------------
    # Backup files
    # -------------------------------------------------------------------------

    def _path_for(self, backup_id: str) -> Path:
        if not backup_id or "/" in backup_id or "\\" in backup_id or backup_id in (".", ".."):
            raise RestoreError(f"Invalid backup id: {backup_id!r}")
        return self.backup_dir / backup_id

    def create_backup(self, contexts: Optional[Iterable[Context]] = None) -> str:
        """
        Write a snapshot of the given contexts (or of ``contexts_source()``).

        Returns:
            The backup filename, which is also its id

        Raises:
            BackupError: If the snapshot cannot be written
        """
        if contexts is None:
            contexts = self.contexts_source() if self.contexts_source else []
        contexts = list(contexts)

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)

            timestamp = self._clock()
            while (self.backup_dir / _backup_filename(timestamp)).exists():
                timestamp += 1
            filename = _backup_filename(timestamp)

            body = {
                "metadata": BackupMetadata(
                    timestamp=timestamp,
                    context_count=len(contexts),
                    version=self.version,
                ).to_dict(),
                "contexts": [c.to_dict() for c in contexts],
            }

            fd, tmp_path = tempfile.mkstemp(dir=self.backup_dir, prefix=".backup-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(body, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.backup_dir / filename)
            except Exception:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.log_backup_operation("create", details={"error": str(e)}, status="failed")
            raise BackupError(f"Backup creation failed: {e}")

        audit_event("backup.created", {"backup_id": filename}, payload={"context_count": len(contexts)})
        return filename

    def restore_backup(self, backup_id: str) -> List[Context]:
        """
        Read and validate a backup, returning its contexts.

        Raises:
            RestoreError: Missing, unreadable or malformed backup
            VersionMismatchError: Backup version differs from this manager's
        """
        path = self._path_for(backup_id)
        if not path.is_file():
            raise RestoreError(f"Backup not found: {backup_id}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                body = json.load(f)
        except (OSError, ValueError) as e:
            raise RestoreError(f"Backup {backup_id} is unreadable: {e}")

        if not isinstance(body, dict) or not isinstance(body.get("metadata"), dict):
            raise RestoreError(f"Backup {backup_id} has no metadata block")

        found = body["metadata"].get("version")
        if found != self.version:
            logger.log_backup_operation("restore", backup_id, {"found": found, "expected": self.version}, status="failed")
            raise VersionMismatchError(str(found), self.version)

        try:
            contexts = [Context.from_dict(item) for item in body.get("contexts", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise RestoreError(f"Backup {backup_id} contains malformed contexts: {e}")

        audit_event("backup.restored", {"backup_id": backup_id}, payload={"context_count": len(contexts)})
        return contexts

    def list_backups(self) -> List[BackupMetadata]:
        """List readable backups, newest first. Unreadable files are skipped."""
        if not self.backup_dir.is_dir():
            return []

        backups = []
        for path in self.backup_dir.glob(f"{BACKUP_PREFIX}*{BACKUP_SUFFIX}"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    body = json.load(f)
                backups.append(BackupMetadata.from_dict(body["metadata"], filename=path.name))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.log_backup_operation("list", path.name, {"error": str(e)}, status="skipped")

        backups.sort(key=lambda b: b.timestamp, reverse=True)
        return backups

    def delete_backup(self, backup_id: str) -> bool:
        """Remove one backup file. False when it does not exist."""
        path = self._path_for(backup_id)
        if not path.is_file():
            return False

        try:
            path.unlink()
        except OSError as e:
            raise BackupError(f"Failed to delete backup {backup_id}: {e}")

        audit_event("backup.deleted", {"backup_id": backup_id})
        return True

    def cleanup_old_backups(self) -> int:
        """Delete backups whose file modification time is past the retention period."""
        if not self.backup_dir.is_dir():
            return 0

        cutoff = time.time() - self.config.retention_period_days * MS_PER_DAY / 1000
        removed = 0
        for path in self.backup_dir.glob(f"{BACKUP_PREFIX}*{BACKUP_SUFFIX}"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.log_backup_operation("cleanup", path.name, {"error": str(e)}, status="failed")

        if removed:
            logger.log_backup_operation("cleanup", details={"removed": removed})
        return removed

    def perform_automatic_backup(self) -> Optional[str]:
        """Scheduled job: snapshot then expire. Never raises."""
        try:
            contexts = self.contexts_source() if self.contexts_source else []
            filename = self.create_backup(contexts)
            self.cleanup_old_backups()
            return filename
        except Exception as e:
            logger.log_backup_operation("automatic", details={"error": str(e)}, status="failed")
            return None
