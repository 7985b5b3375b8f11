"""Share package export and import.

A share package is a zip archive::

    manifest.json            format, version, created_at, sanitized, files
    mapping.json             the exporting workspace's mapping
    source/<relative_path>   one entry per source scope file

Import previews read only the archive directory; nothing touches the
workspace until ``apply_import`` runs under the mutation lock.
"""

import json
import logging
import os
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, ContextManager, Dict, List, Optional, Union

from ..config.mapping import MappingConfig, parse_mapping, save_mapping_file
from ..config.settings import AppSettings, MAPPING_FILE_NAME, Scope
from ..exceptions import (
    ArchiveError,
    InvalidPathError,
    IOFailureError,
    NotFoundError,
    PartialApplyError,
)
from ..sync.backup_store import MAPPING_SCOPE, BackupStore, BackupTarget
from ..sync.models import BackupTrigger
from ..utils.file_utils import TEMP_MARKER, FileHelper
from ..utils.logging import TimedOperation
from .sanitizer import Sanitizer

logger = logging.getLogger(__name__)

PACKAGE_FORMAT = "ai-config-sync-share"
PACKAGE_FORMAT_VERSION = 1
MANIFEST_ENTRY = "manifest.json"
MAPPING_ENTRY = "mapping.json"
SOURCE_PREFIX = "source/"


class ImportStatus(str, Enum):
    CREATE = "create"
    OVERWRITE = "overwrite"


@dataclass
class ExportResult:
    path: str
    files: int
    sanitized: bool


@dataclass
class ImportFilePreview:
    """Decision for one archived file.

    ``scope`` is ``"source"`` for source files and ``"mapping"`` for the
    archived mapping, whose ``relative_path`` is ``mapping.json``.
    """
    relative_path: str
    status: ImportStatus
    scope: str = Scope.SOURCE.value


@dataclass
class ImportPreview:
    zip_path: str
    files: List[ImportFilePreview] = field(default_factory=list)
    has_mapping: bool = False


@dataclass
class ImportResult:
    backup_id: Optional[str]
    applied_count: int
    skipped_count: int


@dataclass
class _ArchiveEntry:
    scope: str
    relative_path: str
    member: str


class SharePackageManager:
    """Builds share packages from the source scope and imports them back."""

    def __init__(self, settings: AppSettings, backup_store: BackupStore,
                 lock: Callable[[], ContextManager]):
        """Initialize the share package manager.

        Args:
            settings: Application settings
            backup_store: Store receiving pre-images of overwritten files
            lock: Factory for the workspace mutation lock
        """
        self.settings = settings
        self.backup_store = backup_store
        self.lock = lock

    # Export

    def _default_output_path(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        output = self.settings.exports_root / f"share-{stamp}.zip"
        counter = 0
        while output.exists():
            counter += 1
            output = self.settings.exports_root / f"share-{stamp}-{counter:02d}.zip"
        return output

    def export(self, mapping: MappingConfig, sanitize: bool,
               output_path: Optional[Union[str, Path]] = None) -> ExportResult:
        """Bundle the source scope and the mapping into a zip archive.

        Args:
            mapping: Current mapping to include
            sanitize: Whether to redact secret-like content
            output_path: Archive location; defaults to the exports directory

        Returns:
            Archive path, number of source files and whether sanitization ran
        """
        output = Path(output_path) if output_path else self._default_output_path()
        source_root = self.settings.source_root
        files = FileHelper.list_files_recursive(source_root, include_hidden=False,
                                                include_system=False)
        sanitizer = Sanitizer(self.settings.sanitize) if sanitize else None

        manifest = {
            'format': PACKAGE_FORMAT,
            'format_version': PACKAGE_FORMAT_VERSION,
            'created_at': datetime.now(timezone.utc).isoformat(),
            'sanitized': sanitize,
            'files': files,
        }

        redactions = 0
        tmp = output.parent / f".{output.name}{TEMP_MARKER}{os.getpid()}"
        with TimedOperation(logger, f"export of {len(files)} source file(s)"):
            try:
                output.parent.mkdir(parents=True, exist_ok=True)
                with zipfile.ZipFile(tmp, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
                    archive.writestr(MANIFEST_ENTRY, json.dumps(manifest, indent=2))
                    archive.writestr(MAPPING_ENTRY, mapping.to_json())
                    for relative_path in files:
                        data = FileHelper.read_bytes(source_root / relative_path)
                        if data is None:
                            continue
                        if sanitizer:
                            text, count = sanitizer.sanitize(data.decode('utf-8', errors='replace'))
                            redactions += count
                            data = text.encode('utf-8')
                        archive.writestr(SOURCE_PREFIX + relative_path, data)
                os.replace(tmp, output)
            except OSError as e:
                tmp.unlink(missing_ok=True)
                raise ArchiveError("Failed to write share package", str(output), e) from e

        if sanitizer:
            logger.info(f"Sanitized export: {redactions} redaction(s)")
        logger.info(f"Exported {len(files)} file(s) to {output}")
        return ExportResult(path=str(output), files=len(files), sanitized=sanitize)

    # Import

    def _open(self, zip_path: Union[str, Path]) -> zipfile.ZipFile:
        path = Path(zip_path)
        if not path.is_file():
            raise NotFoundError(f"Share package not found: {path}")
        try:
            return zipfile.ZipFile(path, 'r')
        except zipfile.BadZipFile as e:
            raise ArchiveError("Not a valid share package", str(path), e) from e
        except OSError as e:
            raise ArchiveError("Failed to open share package", str(path), e) from e

    def _read_member(self, archive: zipfile.ZipFile, member: str) -> bytes:
        try:
            return archive.read(member)
        except (zipfile.BadZipFile, OSError, KeyError) as e:
            raise ArchiveError("Failed to read archive entry", member, e) from e

    def _scan(self, archive: zipfile.ZipFile) -> List[_ArchiveEntry]:
        """Classify archive members, rejecting unsafe names and bad mappings."""
        entries = []
        seen = set()
        for info in archive.infolist():
            name = info.filename
            if info.is_dir():
                continue
            try:
                normalized = FileHelper.to_slash_path(FileHelper.normalize_relative_path(name))
            except InvalidPathError as e:
                raise ArchiveError("Unsafe archive entry", name, e) from e
            if normalized in seen:
                raise ArchiveError("Duplicate archive entry", name)
            seen.add(normalized)

            if normalized == MANIFEST_ENTRY:
                self._check_manifest(self._read_member(archive, name))
            elif normalized == MAPPING_ENTRY:
                text = self._read_member(archive, name).decode('utf-8', errors='replace')
                parse_mapping(text)
                entries.append(_ArchiveEntry(MAPPING_SCOPE, MAPPING_FILE_NAME, name))
            elif normalized.startswith(SOURCE_PREFIX):
                entries.append(_ArchiveEntry(Scope.SOURCE.value,
                                             normalized[len(SOURCE_PREFIX):], name))
            else:
                logger.debug(f"Ignoring unrecognized archive entry {name}")
        return entries

    @staticmethod
    def _check_manifest(data: bytes) -> None:
        try:
            manifest = json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise ArchiveError("Share package manifest is corrupt", MANIFEST_ENTRY, e) from e
        if not isinstance(manifest, dict) or manifest.get('format') != PACKAGE_FORMAT:
            raise ArchiveError("Archive is not an ai-config-sync share package", MANIFEST_ENTRY)
        version = manifest.get('format_version')
        if not isinstance(version, int) or version > PACKAGE_FORMAT_VERSION:
            raise ArchiveError(f"Unsupported share package version: {version}", MANIFEST_ENTRY)

    def _destination(self, entry: _ArchiveEntry) -> Path:
        if entry.scope == MAPPING_SCOPE:
            return self.settings.mapping_path
        parts = FileHelper.normalize_relative_path(entry.relative_path).parts
        return self.settings.source_root.joinpath(*parts)

    def _status(self, entry: _ArchiveEntry) -> ImportStatus:
        if self._destination(entry).exists():
            return ImportStatus.OVERWRITE
        return ImportStatus.CREATE

    def preview_import(self, zip_path: Union[str, Path]) -> ImportPreview:
        """Report what importing a share package would create or overwrite.

        Raises:
            NotFoundError: If the archive does not exist
            ArchiveError: If it is not a zip or has unsafe entries
            InvalidConfigError: If the archived mapping is malformed
        """
        with self._open(zip_path) as archive:
            entries = self._scan(archive)

        return ImportPreview(
            zip_path=str(zip_path),
            files=[ImportFilePreview(relative_path=entry.relative_path,
                                     status=self._status(entry),
                                     scope=entry.scope)
                   for entry in entries],
            has_mapping=any(entry.scope == MAPPING_SCOPE for entry in entries),
        )

    def apply_import(self, zip_path: Union[str, Path], overwrite: bool) -> ImportResult:
        """Write a share package into the source scope and mapping.

        Args:
            zip_path: Archive to import
            overwrite: Whether colliding files are replaced or skipped

        Returns:
            Backup id (None when nothing was overwritten) and counts

        Raises:
            PartialApplyError: If a write fails after the backup was created
        """
        with self._open(zip_path) as archive:
            entries = self._scan(archive)
            contents: Dict[str, bytes] = {
                entry.member: self._read_member(archive, entry.member) for entry in entries
            }

        with self.lock():
            staged = []
            skipped = 0
            for entry in entries:
                status = self._status(entry)
                if status == ImportStatus.OVERWRITE and not overwrite:
                    skipped += 1
                    continue
                staged.append((entry, status))

            targets = [BackupTarget(entry.scope, entry.relative_path)
                       for entry, status in staged if status == ImportStatus.OVERWRITE]
            backup_id = None
            if targets:
                backup_id = self.backup_store.create(BackupTrigger.IMPORT, targets).backup_id

            applied: List[str] = []
            with TimedOperation(logger, f"import of {len(staged)} file(s) from {zip_path}"):
                for entry, _status in staged:
                    destination = self._destination(entry)
                    data = contents[entry.member]
                    try:
                        if entry.scope == MAPPING_SCOPE:
                            save_mapping_file(destination,
                                              parse_mapping(data.decode('utf-8', errors='replace')))
                        else:
                            FileHelper.write_atomic(destination, data)
                    except IOFailureError as e:
                        raise PartialApplyError("import", str(destination), e, applied,
                                                backup_id=backup_id) from e
                    applied.append(f"{entry.scope}/{entry.relative_path}")

        logger.info(f"Imported {len(applied)} file(s), skipped {skipped}")
        return ImportResult(backup_id=backup_id, applied_count=len(applied), skipped_count=skipped)
