"""Error types raised by the synchronization engine.

Convention:
- ``NotFoundError``: a source/target/backup/archive that does not exist.
- ``InvalidConfigError``: a malformed mapping; ``problems`` lists every
  offending category so a single load reports everything at once.
- ``StaleSelectionError``: an apply referenced ids missing from a freshly
  recomputed preview.
- ``IOFailureError``: read/write/archive failures; carries ``path`` and the
  underlying ``cause``.
- ``PartialApplyError``: an apply-family operation stopped midway.  It
  records what was completed (in order) and the backup taken beforehand so
  the caller can always restore.

Skipped import conflicts are not errors; they surface as ``skipped_count``.
"""

from typing import List, Optional, Sequence


class SyncToolError(Exception):
    """Base class for all engine errors."""


class NotFoundError(SyncToolError, LookupError):
    """Raised when a scope file, backup or archive does not exist."""


class InvalidScopeError(SyncToolError, ValueError):
    """Raised for scope or agent names outside the fixed set."""


class InvalidPathError(SyncToolError, ValueError):
    """Raised for empty, absolute or parent-escaping relative paths."""


class InvalidConfigError(SyncToolError, ValueError):
    """Raised when a mapping configuration fails validation."""

    def __init__(self, message: str, problems: Optional[Sequence[str]] = None):
        self.problems: List[str] = list(problems or [])
        if self.problems:
            message = f"{message}: " + "; ".join(self.problems)
        super().__init__(message)


class StaleSelectionError(SyncToolError):
    """Raised when selected sync ids are unknown to the current preview."""

    def __init__(self, unknown_ids: Sequence[str]):
        self.unknown_ids = list(unknown_ids)
        super().__init__(
            "Selection references items not present in the current preview: "
            + ", ".join(self.unknown_ids)
        )


class IOFailureError(SyncToolError):
    """Raised when a filesystem or archive operation fails."""

    def __init__(self, message: str, path: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        detail = message
        if path:
            detail = f"{detail} [{path}]"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)


class ArchiveError(IOFailureError):
    """Raised for unreadable share packages or unsafe archive entries."""


class WorkspaceBusyError(IOFailureError):
    """Raised when the workspace mutation lock cannot be acquired in time."""


class PartialApplyError(IOFailureError):
    """Raised when a write fails after earlier writes already succeeded."""

    def __init__(self, operation: str, path: str, cause: BaseException,
                 completed: Sequence[str], backup_id: Optional[str] = None):
        self.operation = operation
        self.completed = list(completed)
        self.backup_id = backup_id
        message = f"{operation} failed after {len(self.completed)} file(s)"
        if self.completed:
            message += " (completed: " + ", ".join(self.completed) + ")"
        if backup_id:
            message += f"; restore backup {backup_id} to roll back"
        super().__init__(message, path=path, cause=cause)
