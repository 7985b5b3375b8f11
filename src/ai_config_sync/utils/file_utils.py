"""File utility functions."""

import os
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import List, Optional

from ..exceptions import InvalidPathError, IOFailureError

TEMP_MARKER = ".tmp."


class FileHelper:
    """Helper class for workspace file operations."""

    @staticmethod
    def normalize_relative_path(relative_path: str) -> PurePosixPath:
        """Normalize a user supplied relative path.

        Backslashes are treated as separators and ``.`` components dropped.

        Args:
            relative_path: Path relative to a scope root

        Returns:
            Normalized relative path

        Raises:
            InvalidPathError: If the path is empty, absolute or escapes its root
        """
        raw = (relative_path or "").replace('\\', '/')
        if raw.startswith('/') or (len(raw) > 1 and raw[1] == ':'):
            raise InvalidPathError(f"Path must be relative: {relative_path}")

        parts = []
        for part in raw.split('/'):
            if part in ('', '.'):
                continue
            if part == '..':
                raise InvalidPathError(f"Path contains invalid components: {relative_path}")
            parts.append(part)

        if not parts:
            raise InvalidPathError("Relative path cannot be empty")
        return PurePosixPath(*parts)

    @staticmethod
    def to_slash_path(path) -> str:
        """Render a path with forward slashes."""
        return str(path).replace('\\', '/')

    @staticmethod
    def is_hidden_file(file_path: Path) -> bool:
        """Check if a file is hidden (dot-prefixed)."""
        return file_path.name.startswith('.')

    @staticmethod
    def is_system_file(file_path: Path) -> bool:
        """Check if a file is an OS or editor artifact.

        Args:
            file_path: Path to check

        Returns:
            True if file is a system file
        """
        system_names = {'thumbs.db', 'desktop.ini', '.ds_store'}
        file_name_lower = file_path.name.lower()

        if file_name_lower in system_names:
            return True
        if file_name_lower.startswith('~$') or file_name_lower.endswith('~'):
            return True
        return file_name_lower.endswith(('.swp', '.tmp'))

    @staticmethod
    def is_temp_file(file_path: Path) -> bool:
        """Check if a file is an in-flight atomic write."""
        return file_path.name.startswith('.') and TEMP_MARKER in file_path.name

    @staticmethod
    def should_exclude_file(file_path: Path, include_hidden: bool = True,
                            include_system: bool = True) -> bool:
        """Check if a file should be skipped when walking a scope.

        Args:
            file_path: Path to check
            include_hidden: Whether to include hidden files
            include_system: Whether to include system files

        Returns:
            True if file should be excluded
        """
        if FileHelper.is_temp_file(file_path):
            return True

        if not include_hidden and FileHelper.is_hidden_file(file_path):
            return True

        if not include_system and FileHelper.is_system_file(file_path):
            return True

        return False

    @staticmethod
    def list_files_recursive(base: Path, include_hidden: bool = True,
                             include_system: bool = True) -> List[str]:
        """List files under a directory as sorted slash-separated relative paths.

        Args:
            base: Directory to walk
            include_hidden: Whether to include hidden files and directories
            include_system: Whether to include system files

        Returns:
            Sorted relative paths; empty if the directory does not exist
        """
        if not base.is_dir():
            return []

        files = []
        for root, dirs, names in os.walk(base):
            if not include_hidden:
                dirs[:] = [d for d in dirs if not d.startswith('.')]
            for name in names:
                full = Path(root) / name
                if FileHelper.should_exclude_file(full, include_hidden, include_system):
                    continue
                files.append(FileHelper.to_slash_path(full.relative_to(base)))

        return sorted(files)

    @staticmethod
    def read_bytes(path: Path) -> Optional[bytes]:
        """Read a file's bytes, returning None when it does not exist."""
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except IsADirectoryError as e:
            raise IOFailureError("Expected a file but found a directory", str(path), e) from e
        except OSError as e:
            raise IOFailureError("Failed to read file", str(path), e) from e

    @staticmethod
    def read_text(path: Path) -> Optional[str]:
        """Read a file as text, decoding invalid UTF-8 lossily.

        Returns:
            File content, or None when the file does not exist
        """
        data = FileHelper.read_bytes(path)
        if data is None:
            return None
        return data.decode('utf-8', errors='replace')

    @staticmethod
    def write_atomic(path: Path, data: bytes) -> None:
        """Write bytes through a sibling temp file and an atomic rename.

        Parent directories are created as needed.

        Raises:
            IOFailureError: If any step fails; the temp file is removed
        """
        stamp = datetime.now().strftime('%Y%m%d%H%M%S%f')
        tmp = path.parent / f".{path.name}{TEMP_MARKER}{os.getpid()}.{stamp}"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise IOFailureError("Failed to write file", str(path), e) from e

    @staticmethod
    def write_text(path: Path, content: str) -> None:
        """Atomically write UTF-8 text."""
        FileHelper.write_atomic(path, content.encode('utf-8'))

    @staticmethod
    def remove_file(path: Path) -> bool:
        """Delete a file.

        Returns:
            True if a file was removed, False if it did not exist
        """
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise IOFailureError("Failed to delete file", str(path), e) from e
