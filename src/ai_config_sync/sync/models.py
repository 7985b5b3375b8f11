"""Data types shared by the preview, apply, backup and share engines."""

import difflib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class SyncStatus(str, Enum):
    """Classification of a planned transfer."""
    CREATE = "create"
    UPDATE = "update"
    UNCHANGED = "unchanged"
    APPEND = "append"


class BackupTrigger(str, Enum):
    """Operation that produced a backup."""
    SYNC = "sync"
    IMPORT = "import"
    MANUAL = "manual"


def make_item_id(agent: str, category: str) -> str:
    """Stable identity of a (category, agent) pair across previews."""
    return f"{agent}:{category}"


@dataclass
class SyncItem:
    """One planned transfer from the source scope to an agent target."""
    id: str
    agent: str
    category: str
    source_file: str
    target_relative_path: str
    target_absolute_path: str
    status: SyncStatus
    before: str
    after: str

    @property
    def is_changed(self) -> bool:
        return self.status != SyncStatus.UNCHANGED

    def unified_diff(self, context: int = 3) -> str:
        """Render the change as a unified diff (empty when unchanged)."""
        if not self.is_changed:
            return ""
        label = f"{self.agent}/{self.target_relative_path}"
        lines = difflib.unified_diff(
            self.before.splitlines(keepends=True),
            self.after.splitlines(keepends=True),
            fromfile=f"a/{label}",
            tofile=f"b/{label}",
            n=context,
        )
        return "".join(line if line.endswith("\n") else line + "\n" for line in lines)


@dataclass
class SyncPreview:
    """Side-effect-free plan over the current filesystem state."""
    generated_at: datetime
    items: List[SyncItem] = field(default_factory=list)

    def changed_items(self) -> List[SyncItem]:
        return [item for item in self.items if item.is_changed]

    def ids(self) -> List[str]:
        return [item.id for item in self.items]


@dataclass
class ApplySyncResult:
    backup_id: Optional[str]
    applied_count: int
    files: List[str] = field(default_factory=list)


@dataclass
class BackupInfo:
    """Summary of a stored backup."""
    backup_id: str
    created_at: datetime
    trigger: BackupTrigger
    entry_count: int


@dataclass
class BackupEntry:
    """Pre-image of one file next to its current content.

    ``backup_content`` is None exactly when the file did not exist before the
    operation that created the backup.
    """
    agent: str
    target_relative_path: str
    existed_before: bool
    backup_content: Optional[str]
    current_content: Optional[str]


@dataclass
class BackupDetail:
    backup_id: str
    created_at: datetime
    trigger: BackupTrigger
    entries: List[BackupEntry] = field(default_factory=list)

    @property
    def entry_count(self) -> int:
        return len(self.entries)


@dataclass
class RestoreResult:
    restored_count: int
