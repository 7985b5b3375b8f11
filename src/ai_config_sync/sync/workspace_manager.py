"""Workspace manager orchestrating every engine behind one surface."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from filelock import FileLock, Timeout

from ..config.mapping import MappingConfig, MappingResolver, load_mapping, save_mapping_file, validate_mapping_data
from ..config.settings import AppSettings, INSTRUCTIONS_DIR_NAME, SCOPES
from ..destinations.agent_targets import AgentEndpoint, discover_endpoints
from ..exceptions import WorkspaceBusyError
from ..share.package import ExportResult, ImportPreview, ImportResult, SharePackageManager
from ..sources.scope_files import FileContent, ScopeFileManager, ScopeFiles
from ..utils.file_utils import FileHelper
from .backup_store import BackupStore, BackupTarget
from .models import ApplySyncResult, BackupDetail, BackupInfo, BackupTrigger, RestoreResult, SyncPreview
from .preview import PreviewEngine, source_relative_path
from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)

# Agents consulted, in order, when seeding an empty source scope
BOOTSTRAP_ORDER = ["claude", "codex", "gemini"]


@dataclass
class ScopeInfo:
    name: str
    path: str


@dataclass
class WorkspaceInfo:
    """Resolved workspace layout returned by ``init_workspace``."""
    app_root: str
    source_root: str
    mapping_path: str
    categories: List[str] = field(default_factory=list)
    scopes: List[ScopeInfo] = field(default_factory=list)
    bootstrapped: bool = False


class WorkspaceManager:
    """Entry point for every workspace operation.

    Mutating operations run inside ``mutation()``, which holds the
    workspace-wide file lock.  Reads never take the lock.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        """Initialize the workspace manager.

        Args:
            settings: Application settings; resolved from the environment
                and ``settings.yaml`` when omitted
        """
        self.settings = settings or AppSettings.load()
        self._lock = FileLock(str(self.settings.lock_path), timeout=self.settings.lock_timeout)

        self.scope_files = ScopeFileManager(self.settings)
        self.backup_store = BackupStore(self.settings)
        self.sync_engine = SyncEngine(self.settings, self.backup_store, self.mutation)
        self.share = SharePackageManager(self.settings, self.backup_store, self.mutation)

    @contextmanager
    def mutation(self):
        """Hold the workspace mutation lock.

        Raises:
            WorkspaceBusyError: If another process keeps the lock past the timeout
        """
        self.settings.app_root.mkdir(parents=True, exist_ok=True)
        try:
            self._lock.acquire()
        except Timeout as e:
            raise WorkspaceBusyError("Workspace is busy", str(self.settings.lock_path), e) from e
        try:
            yield
        finally:
            self._lock.release()

    # Workspace

    def init_workspace(self) -> WorkspaceInfo:
        """Create the workspace layout, the default mapping and seed the source scope.

        Returns:
            Workspace paths, categories and whether the source was bootstrapped
        """
        with self.mutation():
            for directory in (self.settings.source_root / INSTRUCTIONS_DIR_NAME,
                              self.settings.backups_root):
                directory.mkdir(parents=True, exist_ok=True)
            mapping = load_mapping(self.settings.mapping_path)
            bootstrapped = self._bootstrap_source(mapping)

        scopes = [ScopeInfo(name=scope, path=str(self.scope_files.scope_root(scope)))
                  for scope in SCOPES]
        info = WorkspaceInfo(
            app_root=str(self.settings.app_root),
            source_root=str(self.settings.source_root),
            mapping_path=str(self.settings.mapping_path),
            categories=mapping.category_names(),
            scopes=scopes,
            bootstrapped=bootstrapped,
        )
        logger.info(f"Workspace ready at {info.app_root}")
        return info

    def _bootstrap_source(self, mapping: MappingConfig) -> bool:
        """Seed each category's source file from existing agent targets.

        Only runs while the source scope holds no files.
        """
        if FileHelper.list_files_recursive(self.settings.source_root):
            return False

        resolver = MappingResolver(mapping)
        bootstrapped = False
        for category in mapping.categories:
            for agent in BOOTSTRAP_ORDER:
                resolved = resolver.resolve(category, agent)
                if resolved is None:
                    continue
                content = FileHelper.read_text(self.settings.agent_root(agent)
                                               / resolved.target_relative_path)
                if content is None or not content.strip():
                    continue
                FileHelper.write_text(self.settings.source_root / source_relative_path(category),
                                      content)
                logger.info(f"Bootstrapped category {category} from {agent}/{resolved.target_relative_path}")
                bootstrapped = True
                break

        return bootstrapped

    def get_agent_endpoints(self) -> List[AgentEndpoint]:
        return discover_endpoints(self.settings, MappingResolver(self.get_mapping()))

    # Scope files

    def list_scope_files(self, scope: str) -> ScopeFiles:
        return self.scope_files.list_files(scope)

    def read_scope_file(self, scope: str, relative_path: str) -> FileContent:
        return self.scope_files.read_file(scope, relative_path)

    def save_scope_file(self, scope: str, relative_path: str, content: str) -> None:
        with self.mutation():
            self.scope_files.save_file(scope, relative_path, content)

    def delete_scope_file(self, scope: str, relative_path: str) -> None:
        with self.mutation():
            self.scope_files.delete_file(scope, relative_path)

    # Mapping

    def get_mapping(self) -> MappingConfig:
        """Load the mapping, writing the default one on first use.

        Raises:
            InvalidConfigError: If the mapping file is malformed
        """
        if not self.settings.mapping_path.exists():
            with self.mutation():
                return load_mapping(self.settings.mapping_path)
        return load_mapping(self.settings.mapping_path)

    def save_mapping(self, config: Union[MappingConfig, Dict[str, Any]]) -> MappingConfig:
        """Validate and persist a mapping.

        Args:
            config: Mapping model or its plain JSON-like form

        Raises:
            InvalidConfigError: If the mapping is malformed; nothing is written
        """
        if not isinstance(config, MappingConfig):
            config = validate_mapping_data(config)
        with self.mutation():
            saved = save_mapping_file(self.settings.mapping_path, config)
        logger.info(f"Saved mapping with {len(saved.categories)} categories")
        return saved

    # Sync

    def preview_sync(self) -> SyncPreview:
        return PreviewEngine(self.settings, MappingResolver(self.get_mapping())).preview()

    def apply_sync(self, selected_ids: Iterable[str]) -> ApplySyncResult:
        return self.sync_engine.apply(MappingResolver(self.get_mapping()), selected_ids)

    # Backups

    def list_backups(self) -> List[BackupInfo]:
        return self.backup_store.list()

    def get_backup_detail(self, backup_id: str) -> BackupDetail:
        return self.backup_store.detail(backup_id)

    def restore_backup(self, backup_id: str) -> RestoreResult:
        with self.mutation():
            return self.backup_store.restore(backup_id)

    def delete_backup(self, backup_id: str) -> None:
        with self.mutation():
            self.backup_store.delete(backup_id)

    def create_manual_backup(self) -> Optional[BackupInfo]:
        """Snapshot every mapped agent target that currently exists.

        Returns:
            The new backup, or None when no mapped target exists
        """
        resolver = MappingResolver(self.get_mapping())
        with self.mutation():
            targets = [
                BackupTarget(agent, resolved.target_relative_path)
                for _category, agent, resolved in resolver.iter_targets()
                if (self.settings.agent_root(agent) / resolved.target_relative_path).is_file()
            ]
            if not targets:
                logger.info("No existing targets to back up")
                return None
            return self.backup_store.create(BackupTrigger.MANUAL, targets)

    # Share packages

    def export_share_package(self, sanitize: bool,
                             output_path: Optional[Union[str, Path]] = None) -> ExportResult:
        return self.share.export(self.get_mapping(), sanitize, output_path)

    def preview_import_package(self, zip_path: Union[str, Path]) -> ImportPreview:
        return self.share.preview_import(zip_path)

    def apply_import_package(self, zip_path: Union[str, Path], overwrite: bool) -> ImportResult:
        return self.share.apply_import(zip_path, overwrite)
