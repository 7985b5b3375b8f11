"""File access for the source scope and the three agent scopes."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from ..config.settings import AppSettings, Scope, SCOPES
from ..exceptions import InvalidScopeError, NotFoundError
from ..utils.file_utils import FileHelper

logger = logging.getLogger(__name__)


@dataclass
class ScopeFiles:
    """Files present in one scope."""
    scope: str
    base_path: str
    files: List[str] = field(default_factory=list)


@dataclass
class FileContent:
    """Content of one scope file."""
    scope: str
    relative_path: str
    absolute_path: str
    content: str


class ScopeFileManager:
    """Reads and writes files inside the four scope roots."""

    def __init__(self, settings: AppSettings):
        """Initialize the scope file manager.

        Args:
            settings: Application settings providing the scope roots
        """
        self.settings = settings

    def scope_root(self, scope: str) -> Path:
        """Resolve the base directory of a scope.

        Raises:
            InvalidScopeError: If the scope name is unknown
        """
        if scope == Scope.SOURCE.value:
            return self.settings.source_root
        if scope in SCOPES:
            return self.settings.agent_root(scope)
        raise InvalidScopeError(f"Unsupported scope: {scope}")

    def resolve(self, scope: str, relative_path: str) -> Path:
        """Resolve a scope-relative path to an absolute path under the scope root."""
        normalized = FileHelper.normalize_relative_path(relative_path)
        return self.scope_root(scope).joinpath(*normalized.parts)

    def list_files(self, scope: str) -> ScopeFiles:
        """List every file in a scope as sorted relative paths."""
        base = self.scope_root(scope)
        return ScopeFiles(
            scope=scope,
            base_path=str(base),
            files=FileHelper.list_files_recursive(base),
        )

    def read_file(self, scope: str, relative_path: str) -> FileContent:
        """Read a scope file.

        Raises:
            NotFoundError: If the file does not exist
        """
        target = self.resolve(scope, relative_path)
        content = FileHelper.read_text(target)
        if content is None:
            raise NotFoundError(f"File does not exist: {target}")

        return FileContent(
            scope=scope,
            relative_path=FileHelper.to_slash_path(FileHelper.normalize_relative_path(relative_path)),
            absolute_path=str(target),
            content=content,
        )

    def save_file(self, scope: str, relative_path: str, content: str) -> Path:
        """Atomically write a scope file, creating parent directories."""
        target = self.resolve(scope, relative_path)
        FileHelper.write_text(target, content)
        logger.info("Saved %s file %s", scope, relative_path)
        return target

    def delete_file(self, scope: str, relative_path: str) -> None:
        """Delete a scope file.

        Raises:
            NotFoundError: If the file does not exist
        """
        target = self.resolve(scope, relative_path)
        if not target.is_file():
            raise NotFoundError(f"File does not exist: {target}")
        FileHelper.remove_file(target)
        logger.info("Deleted %s file %s", scope, relative_path)
