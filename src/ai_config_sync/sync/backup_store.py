"""Append-only store of pre-image snapshots, and restore from them.

Layout under ``<app_root>/backups``::

    <backup_id>/
        manifest.json
        files/<scope>/<target_relative_path>    raw pre-image bytes

A backup is assembled in a hidden staging directory and renamed into place,
so any directory that is listed is complete.  Every backup owns full copies
of its content; deleting one never affects another.

Callers hold the workspace mutation lock around ``create``, ``restore`` and
``delete``.
"""

import json
import logging
import os
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from ..config.settings import AppSettings, Scope, SCOPES
from ..exceptions import IOFailureError, NotFoundError, PartialApplyError
from ..utils.file_utils import FileHelper
from ..utils.logging import TimedOperation
from .models import BackupDetail, BackupEntry, BackupInfo, BackupTrigger, RestoreResult

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
FILES_DIR = "files"
STAGING_PREFIX = ".staging-"
DELETING_PREFIX = ".deleting-"
MAPPING_SCOPE = "mapping"
BACKUP_ID_RE = re.compile(r"^[0-9A-Za-z_-]+$")


@dataclass(frozen=True)
class BackupTarget:
    """A file about to be mutated, identified by scope and relative path."""
    agent: str
    target_relative_path: str


class BackupStore:
    """Creates, lists, restores and deletes backups."""

    def __init__(self, settings: AppSettings):
        """Initialize the backup store.

        Args:
            settings: Application settings providing the backups root
        """
        self.settings = settings
        self.root = settings.backups_root

    # Paths

    def target_path(self, agent: str, relative_path: str) -> Path:
        """Live location of a backed up file."""
        if agent == MAPPING_SCOPE:
            return self.settings.mapping_path
        parts = FileHelper.normalize_relative_path(relative_path).parts
        if agent == Scope.SOURCE.value:
            return self.settings.source_root.joinpath(*parts)
        if agent in SCOPES:
            return self.settings.agent_root(agent).joinpath(*parts)
        raise IOFailureError(f"Backup entry has unknown scope '{agent}'")

    def _backup_dir(self, backup_id: str) -> Path:
        if not BACKUP_ID_RE.match(backup_id or ""):
            raise NotFoundError(f"Backup not found: {backup_id}")
        backup_dir = self.root / backup_id
        if not (backup_dir / MANIFEST_FILE).is_file():
            raise NotFoundError(f"Backup not found: {backup_id}")
        return backup_dir

    def _new_backup_id(self) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        existing = self._existing_ids()
        backup_id = stamp
        counter = 0
        while backup_id in existing:
            counter += 1
            backup_id = f"{stamp}-{counter:02d}"
        return backup_id

    def _existing_ids(self) -> set:
        if not self.root.is_dir():
            return set()
        return {p.name for p in self.root.iterdir()
                if p.is_dir() and not p.name.startswith('.')}

    # Manifest handling

    def _read_manifest(self, backup_dir: Path) -> Dict:
        text = FileHelper.read_text(backup_dir / MANIFEST_FILE)
        if text is None:
            raise NotFoundError(f"Backup not found: {backup_dir.name}")
        try:
            manifest = json.loads(text)
            manifest['entries'] = list(manifest.get('entries', []))
            manifest['backup_id'] = str(manifest['backup_id'])
            manifest['trigger'] = BackupTrigger(manifest['trigger'])
            manifest['created_at'] = _parse_timestamp(manifest['created_at'])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise IOFailureError("Backup manifest is corrupt",
                                 str(backup_dir / MANIFEST_FILE), e) from e
        return manifest

    @staticmethod
    def _content_path(backup_dir: Path, entry: Dict) -> Optional[Path]:
        content_file = entry.get('content_file')
        if not content_file:
            return None
        normalized = FileHelper.normalize_relative_path(content_file)
        return backup_dir.joinpath(*normalized.parts)

    # Operations

    def create(self, trigger: BackupTrigger, targets: Iterable[BackupTarget]) -> BackupInfo:
        """Snapshot the current content of every target into one new backup.

        Targets that do not exist are recorded with ``existed_before = False``.

        Args:
            trigger: Operation creating the backup
            targets: Files about to be mutated

        Returns:
            Summary of the new backup

        Raises:
            IOFailureError: If the snapshot cannot be written; nothing is kept
        """
        unique: List[BackupTarget] = list(dict.fromkeys(targets))
        backup_id = self._new_backup_id()
        staging = self.root / f"{STAGING_PREFIX}{backup_id}"
        created_at = datetime.now(timezone.utc)

        entries = []
        try:
            staging.mkdir(parents=True, exist_ok=False)
            for target in unique:
                live = self.target_path(target.agent, target.target_relative_path)
                data = FileHelper.read_bytes(live)
                content_file = None
                if data is not None:
                    content_file = f"{FILES_DIR}/{target.agent}/{target.target_relative_path}"
                    FileHelper.write_atomic(staging / content_file, data)
                entries.append({
                    'agent': target.agent,
                    'target_relative_path': target.target_relative_path,
                    'target_absolute_path': str(live),
                    'existed_before': data is not None,
                    'content_file': content_file,
                })

            manifest = {
                'backup_id': backup_id,
                'created_at': created_at.isoformat(),
                'trigger': trigger.value,
                'entries': entries,
            }
            FileHelper.write_text(staging / MANIFEST_FILE,
                                  json.dumps(manifest, indent=2, ensure_ascii=False))
            os.replace(staging, self.root / backup_id)
        except (OSError, IOFailureError) as e:
            shutil.rmtree(staging, ignore_errors=True)
            if isinstance(e, IOFailureError):
                raise
            raise IOFailureError("Failed to create backup", str(staging), e) from e

        logger.info("Created %s backup %s with %d entries", trigger.value, backup_id, len(entries))
        return BackupInfo(backup_id=backup_id, created_at=created_at,
                          trigger=trigger, entry_count=len(entries))

    def list(self) -> List[BackupInfo]:
        """List complete backups, newest first."""
        backups = []
        for backup_id in self._existing_ids():
            backup_dir = self.root / backup_id
            if not (backup_dir / MANIFEST_FILE).is_file():
                continue
            try:
                manifest = self._read_manifest(backup_dir)
            except NotFoundError:
                logger.debug("Backup %s disappeared while listing", backup_id)
                continue
            except IOFailureError as e:
                logger.warning("Skipping unreadable backup %s: %s", backup_id, e)
                continue
            backups.append(BackupInfo(
                backup_id=manifest['backup_id'],
                created_at=manifest['created_at'],
                trigger=manifest['trigger'],
                entry_count=len(manifest['entries']),
            ))

        backups.sort(key=lambda b: (b.created_at, b.backup_id), reverse=True)
        return backups

    def detail(self, backup_id: str) -> BackupDetail:
        """Pair each stored pre-image with the file's current content.

        Raises:
            NotFoundError: If the backup does not exist
        """
        backup_dir = self._backup_dir(backup_id)
        manifest = self._read_manifest(backup_dir)

        entries = []
        for entry in manifest['entries']:
            content_path = self._content_path(backup_dir, entry)
            backup_content = None
            if entry.get('existed_before'):
                backup_content = FileHelper.read_text(content_path) if content_path else None
                if backup_content is None:
                    raise IOFailureError("Backup content is missing",
                                         str(content_path or backup_dir))

            live = self.target_path(entry['agent'], entry['target_relative_path'])
            entries.append(BackupEntry(
                agent=entry['agent'],
                target_relative_path=entry['target_relative_path'],
                existed_before=bool(entry.get('existed_before')),
                backup_content=backup_content,
                current_content=FileHelper.read_text(live),
            ))

        return BackupDetail(
            backup_id=manifest['backup_id'],
            created_at=manifest['created_at'],
            trigger=manifest['trigger'],
            entries=entries,
        )

    def restore(self, backup_id: str) -> RestoreResult:
        """Replay a backup's pre-images onto the live files.

        Files that did not exist when the backup was taken are deleted. Only
        files whose live content differs from the desired state are touched
        and counted.

        Raises:
            NotFoundError: If the backup does not exist
            PartialApplyError: If a write fails after earlier ones succeeded
        """
        backup_dir = self._backup_dir(backup_id)
        manifest = self._read_manifest(backup_dir)

        # Load every pre-image up front so a damaged backup fails before any write
        plan = []
        for entry in manifest['entries']:
            desired = None
            if entry.get('existed_before'):
                content_path = self._content_path(backup_dir, entry)
                desired = FileHelper.read_bytes(content_path) if content_path else None
                if desired is None:
                    raise IOFailureError("Backup content is missing",
                                         str(content_path or backup_dir))
            live = self.target_path(entry['agent'], entry['target_relative_path'])
            plan.append((entry, live, desired))

        restored: List[str] = []
        with TimedOperation(logger, f"restore of backup {backup_id}"):
            for entry, live, desired in plan:
                label = f"{entry['agent']}/{entry['target_relative_path']}"
                try:
                    current = FileHelper.read_bytes(live)
                    if current == desired:
                        continue
                    if desired is None:
                        FileHelper.remove_file(live)
                    else:
                        FileHelper.write_atomic(live, desired)
                except IOFailureError as e:
                    raise PartialApplyError("restore", str(live), e, restored) from e
                restored.append(label)
                logger.debug("Restored %s", label)

        logger.info("Restored %d file(s) from backup %s", len(restored), backup_id)
        return RestoreResult(restored_count=len(restored))

    def delete(self, backup_id: str) -> None:
        """Remove a backup irreversibly.

        Raises:
            NotFoundError: If the backup does not exist
        """
        backup_dir = self._backup_dir(backup_id)
        # Hidden names are never listed, so the backup vanishes in one rename
        trash = self.root / f"{DELETING_PREFIX}{backup_id}"
        try:
            os.replace(backup_dir, trash)
            shutil.rmtree(trash)
        except OSError as e:
            raise IOFailureError("Failed to delete backup", str(backup_dir), e) from e
        logger.info("Deleted backup %s", backup_id)


def _parse_timestamp(value) -> datetime:
    from dateutil import parser as date_parser

    if isinstance(value, (int, float)):
        # Millisecond epoch timestamps written by older releases
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    parsed = date_parser.isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
