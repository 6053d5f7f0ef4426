# familytree/core/tree_store.py

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from familytree.config import settings
from familytree.core.errors import InvalidInputError, IOFailureError, NotFoundError
from familytree.schemas.tree_schema import TreeDocument
from familytree.utils.timestamps import (
    backup_timestamp,
    human_date as format_human_date,
    iso_timestamp,
    parse_backup_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

TREE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

DELETED_TAG = "DELETED"
PRE_RESTORE_TAG = "PRE_RESTORE"
BACKUP_TAGS = (DELETED_TAG, PRE_RESTORE_TAG)


# ============================================================
# HELPERS
# ============================================================

def validate_tree_id(tree_id: str) -> str:
    if not tree_id or ".." in tree_id or not TREE_ID_RE.match(tree_id):
        raise InvalidInputError(f"Invalid tree id: {tree_id!r}")
    # "A_DELETED" backups would be listed (and pruned) as tagged backups of "A"
    if any(tree_id.endswith(f"_{tag}") for tag in BACKUP_TAGS):
        raise InvalidInputError(f"Invalid tree id: {tree_id!r}")
    return tree_id


def decode_document(tree_id: str, raw: Any) -> TreeDocument:
    """
    The only place that knows about the legacy shape.

    - bare list  → data, empty metadata, no lastModified
    - dict       → {treeId, data, metadata, lastModified}
    """
    try:
        if isinstance(raw, list):
            return TreeDocument(tree_id=tree_id, data=raw)

        if isinstance(raw, dict):
            return TreeDocument(
                tree_id=tree_id,
                data=raw.get("data") or [],
                metadata=raw.get("metadata") or {},
                last_modified=raw.get("lastModified"),
            )
    except ValidationError as e:
        raise IOFailureError(f"Malformed document for tree {tree_id}: {e}") from e

    raise IOFailureError(f"Unrecognised document shape for tree {tree_id}")


def count_avatars(data: list[Any]) -> int:
    """
    Persons with a non-empty avatar, either top level
    or nested under the chart's `data` mapping.
    """
    count = 0
    for person in data or []:
        if not isinstance(person, dict):
            continue

        avatar = person.get("avatar")
        nested = person.get("data")
        if not avatar and isinstance(nested, dict):
            avatar = nested.get("avatar")

        if isinstance(avatar, str) and avatar.strip():
            count += 1
    return count


@dataclass(frozen=True)
class BackupRecord:
    filename: str
    timestamp: str
    tag: Optional[str] = None
    size: Optional[int] = None

    @property
    def human_date(self) -> str:
        return format_human_date(self.timestamp)

    @property
    def created_at(self) -> Optional[datetime]:
        return parse_backup_timestamp(self.timestamp)


# ============================================================
# STORE
# ============================================================

class TreeStore:
    """
    One JSON file per tree under data_dir, rolling backups under backup_dir.

    Writes to the same tree are serialized with a per-tree lock;
    different trees never block each other.
    """

    def __init__(
        self,
        data_dir: str | Path | None = None,
        backup_dir: str | Path | None = None,
        retention: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.data_dir = Path(data_dir or settings.DATA_DIR)
        self.backup_dir = Path(backup_dir or settings.BACKUP_DIR)
        self.retention = (
            settings.BACKUP_RETENTION_COUNT if retention is None else retention
        )
        self.clock = clock

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # --------------------------------------------------------
    # paths / io
    # --------------------------------------------------------
    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.backup_dir.mkdir(parents=True, exist_ok=True)

    def tree_path(self, tree_id: str) -> Path:
        return self.data_dir / f"{validate_tree_id(tree_id)}.json"

    def _lock_for(self, tree_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(tree_id, threading.Lock())

    def _read_raw(self, path: Path) -> Optional[Any]:
        """Parsed JSON, or None when the file does not exist."""
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            raise IOFailureError(f"Corrupt JSON in {path.name}: {e}") from e
        except OSError as e:
            raise IOFailureError(f"Could not read {path.name}: {e}") from e

    def _write_document(self, path: Path, doc: TreeDocument) -> None:
        """Temp file in the same folder + os.replace, so readers never see half a file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(doc.model_dump(by_alias=True), indent=2, ensure_ascii=False)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.stem}-", suffix=".tmp", dir=str(path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise IOFailureError(f"Could not write {path.name}: {e}") from e

    # --------------------------------------------------------
    # backups
    # --------------------------------------------------------
    def _backup_name(self, tree_id: str, tag: Optional[str]) -> str:
        stamp = backup_timestamp(self.clock())
        prefix = f"{tree_id}_{tag}_" if tag else f"{tree_id}_"

        name = f"{prefix}{stamp}.json"
        n = 1
        while (self.backup_dir / name).exists():
            name = f"{prefix}{stamp}-{n:03d}.json"
            n += 1
        return name

    def _snapshot(self, tree_id: str, tag: Optional[str] = None) -> Optional[str]:
        """
        Copy the live file verbatim into the backup folder.
        Best effort: returns the backup filename, or None when there was
        nothing to copy or the copy failed.
        """
        source = self.tree_path(tree_id)
        if not source.exists():
            return None

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            name = self._backup_name(tree_id, tag)
            shutil.copyfile(source, self.backup_dir / name)
        except OSError as e:
            logger.warning("Could not create %s backup for %s: %s", tag or "save", tree_id, e)
            return None

        logger.info("Created backup: %s", name)
        return name

    def _parse_backup(self, tree_id: str, path: Path) -> Optional[BackupRecord]:
        name = path.name
        prefix = f"{tree_id}_"
        if not name.startswith(prefix) or not name.endswith(".json"):
            return None

        rest = name[len(prefix):-len(".json")]
        tag = None
        for candidate in BACKUP_TAGS:
            if rest.startswith(f"{candidate}_"):
                tag = candidate
                rest = rest[len(candidate) + 1:]
                break

        # "A_b_2025-..." belongs to tree "A_b", not "A"
        if parse_backup_timestamp(rest) is None:
            return None

        try:
            size = path.stat().st_size
        except OSError:
            size = None

        return BackupRecord(filename=name, timestamp=rest, tag=tag, size=size)

    def list_backups(self, tree_id: str) -> list[BackupRecord]:
        validate_tree_id(tree_id)

        if not self.backup_dir.exists():
            return []

        try:
            candidates = list(self.backup_dir.iterdir())
        except OSError as e:
            raise IOFailureError(f"Could not list backups: {e}") from e

        records = [
            record
            for record in (self._parse_backup(tree_id, p) for p in candidates)
            if record is not None
        ]
        records.sort(key=lambda r: (r.timestamp, r.filename), reverse=True)
        return records

    def prune_backups(self, tree_id: str) -> list[str]:
        removed = []
        for record in self.list_backups(tree_id)[self.retention:]:
            try:
                (self.backup_dir / record.filename).unlink()
            except OSError as e:
                logger.warning("Could not delete old backup %s: %s", record.filename, e)
                continue
            removed.append(record.filename)
            logger.info("Deleted old backup: %s", record.filename)
        return removed

    # --------------------------------------------------------
    # trees
    # --------------------------------------------------------
    def list_trees(self) -> list[str]:
        if not self.data_dir.exists():
            return []

        try:
            return sorted(
                p.stem
                for p in self.data_dir.iterdir()
                if p.suffix == ".json" and p.is_file() and not p.name.startswith(".")
            )
        except OSError as e:
            raise IOFailureError(f"Could not list trees: {e}") from e

    def load(self, tree_id: str) -> TreeDocument:
        raw = self._read_raw(self.tree_path(tree_id))
        if raw is None:
            return TreeDocument(tree_id=tree_id)
        return decode_document(tree_id, raw)

    def load_initial(self, tree_id: str) -> list[Any]:
        """Seed data for a first load: always the bare list."""
        return self.load(tree_id).data

    def save(
        self,
        tree_id: str,
        data: list[Any],
        metadata: dict[str, Any] | None = None,
    ) -> tuple[TreeDocument, bool]:
        path = self.tree_path(tree_id)
        data = data or []

        with self._lock_for(tree_id):
            try:
                previous_metadata = self.load(tree_id).metadata
            except IOFailureError as e:
                logger.warning("Previous version of %s is unreadable: %s", tree_id, e)
                previous_metadata = {}

            backup_name = self._snapshot(tree_id)

            now = iso_timestamp(self.clock())
            prior_version = previous_metadata.get("version")
            if not isinstance(prior_version, int):
                prior_version = 0

            doc = TreeDocument(
                tree_id=tree_id,
                data=data,
                metadata={
                    **(metadata or {}),
                    "savedAt": now,
                    "version": prior_version + 1,
                    "imageCount": count_avatars(data),
                },
                last_modified=now,
            )
            self._write_document(path, doc)
            self.prune_backups(tree_id)

        logger.info(
            "Saved tree: %s (%d people, %d with avatars, version %d)",
            tree_id, len(data), doc.metadata["imageCount"], doc.metadata["version"],
        )
        return doc, backup_name is not None

    def autosave(self, tree_id: str, data: list[Any]) -> TreeDocument:
        path = self.tree_path(tree_id)
        data = data or []

        with self._lock_for(tree_id):
            try:
                existing = self.load(tree_id).metadata
            except IOFailureError as e:
                # unreadable previous file: start fresh rather than refuse the save
                logger.warning("Ignoring unreadable metadata for %s: %s", tree_id, e)
                existing = {}

            now = iso_timestamp(self.clock())
            doc = TreeDocument(
                tree_id=tree_id,
                data=data,
                metadata={**existing, "autoSavedAt": now},
                last_modified=now,
            )
            self._write_document(path, doc)

        logger.info("Auto-saved tree: %s (%d people)", tree_id, len(data))
        return doc

    def delete(self, tree_id: str) -> bool:
        path = self.tree_path(tree_id)

        with self._lock_for(tree_id):
            if not path.exists():
                raise NotFoundError(f"Tree not found: {tree_id}")

            backup_name = self._snapshot(tree_id, DELETED_TAG)

            try:
                path.unlink()
            except FileNotFoundError as e:
                raise NotFoundError(f"Tree not found: {tree_id}") from e
            except OSError as e:
                raise IOFailureError(f"Could not delete {path.name}: {e}") from e

        logger.info("Deleted tree: %s", tree_id)
        return backup_name is not None

    def restore(self, tree_id: str, backup_filename: str) -> TreeDocument:
        validate_tree_id(tree_id)

        if (
            not backup_filename.startswith(f"{tree_id}_")
            or not backup_filename.endswith(".json")
            or ".." in backup_filename
            or "/" in backup_filename
            or "\\" in backup_filename
        ):
            raise InvalidInputError("Invalid backup file for this tree")

        backup_path = self.backup_dir / backup_filename

        with self._lock_for(tree_id):
            raw = self._read_raw(backup_path)
            if raw is None:
                raise NotFoundError(f"Backup file not found: {backup_filename}")
            backup = decode_document(tree_id, raw)

            self._snapshot(tree_id, PRE_RESTORE_TAG)

            now = iso_timestamp(self.clock())
            doc = TreeDocument(
                tree_id=tree_id,
                data=backup.data,
                metadata={
                    **backup.metadata,
                    "restoredAt": now,
                    "restoredFrom": backup_filename,
                },
                last_modified=now,
            )
            self._write_document(self.tree_path(tree_id), doc)

        logger.info("Restored tree %s from backup: %s", tree_id, backup_filename)
        return doc
