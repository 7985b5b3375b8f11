"""Sync apply engine."""

import logging
from pathlib import Path
from typing import Callable, ContextManager, Dict, Iterable, List

from ..config.mapping import MappingResolver
from ..config.settings import AppSettings
from ..exceptions import IOFailureError, PartialApplyError, StaleSelectionError
from ..utils.file_utils import FileHelper
from ..utils.logging import TimedOperation
from .backup_store import BackupStore, BackupTarget
from .models import ApplySyncResult, BackupTrigger, SyncItem
from .preview import PreviewEngine

logger = logging.getLogger(__name__)


class SyncEngine:
    """Applies a selection of previewed sync items to the agent targets."""

    def __init__(self, settings: AppSettings, backup_store: BackupStore,
                 lock: Callable[[], ContextManager]):
        """Initialize the sync engine.

        Args:
            settings: Application settings
            backup_store: Store receiving the pre-images of every apply
            lock: Factory for the workspace mutation lock
        """
        self.settings = settings
        self.backup_store = backup_store
        self.lock = lock

    def apply(self, resolver: MappingResolver, selected_ids: Iterable[str]) -> ApplySyncResult:
        """Write the selected items whose target still differs from the source.

        Status is always recomputed from disk; the caller's preview is only
        used to name the items.

        Args:
            resolver: Resolver over the current mapping
            selected_ids: Ids taken from a preview

        Returns:
            Backup id, number of files written and their relative paths

        Raises:
            StaleSelectionError: If any id is not part of a fresh preview
            PartialApplyError: If a write fails after the backup was created
        """
        selection = list(dict.fromkeys(selected_ids))
        preview = PreviewEngine(self.settings, resolver)
        current: Dict[str, SyncItem] = {item.id: item for item in preview.build_items()}

        unknown = [item_id for item_id in selection if item_id not in current]
        if unknown:
            raise StaleSelectionError(unknown)

        wanted = set(selection)
        pending = [item for item in current.values() if item.id in wanted and item.is_changed]
        if not pending:
            logger.info("Nothing to apply for %d selected item(s)", len(selection))
            return ApplySyncResult(backup_id=None, applied_count=0, files=[])

        with self.lock():
            # Targets may have changed while waiting for the lock
            pending = [preview.plan_item(item.category, item.agent) for item in pending]
            pending = [item for item in pending if item is not None and item.is_changed]
            if not pending:
                return ApplySyncResult(backup_id=None, applied_count=0, files=[])

            backup = self.backup_store.create(
                BackupTrigger.SYNC,
                [BackupTarget(item.agent, item.target_relative_path) for item in pending],
            )

            written: List[str] = []
            with TimedOperation(logger, f"sync apply of {len(pending)} item(s)"):
                for item in pending:
                    try:
                        FileHelper.write_text(Path(item.target_absolute_path), item.after)
                    except IOFailureError as e:
                        raise PartialApplyError("sync", item.target_absolute_path, e,
                                                written, backup_id=backup.backup_id) from e
                    written.append(item.target_relative_path)
                    logger.info(f"Applied {item.id} ({item.status.value}) -> {item.target_absolute_path}")

        return ApplySyncResult(backup_id=backup.backup_id, applied_count=len(written), files=written)
