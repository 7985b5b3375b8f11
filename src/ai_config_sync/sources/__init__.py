"""Scope file access."""

from .scope_files import FileContent, ScopeFileManager, ScopeFiles

__all__ = ["FileContent", "ScopeFileManager", "ScopeFiles"]
