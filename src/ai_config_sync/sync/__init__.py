"""Preview, apply and backup engines."""

from .models import (
    ApplySyncResult,
    BackupDetail,
    BackupEntry,
    BackupInfo,
    BackupTrigger,
    RestoreResult,
    SyncItem,
    SyncPreview,
    SyncStatus,
)
from .backup_store import BackupStore, BackupTarget
from .preview import PreviewEngine
from .sync_engine import SyncEngine

__all__ = [
    "ApplySyncResult", "BackupDetail", "BackupEntry", "BackupInfo", "BackupTrigger",
    "RestoreResult", "SyncItem", "SyncPreview", "SyncStatus",
    "BackupStore", "BackupTarget", "PreviewEngine", "SyncEngine",
]
