"""
AI Config Sync

Keeps the instruction files of several AI coding agents (Codex, Gemini,
Claude) in step with one canonical source workspace, with previews,
per-operation backups and shareable packages.
"""

__version__ = "0.3.0"
__author__ = "AI Config Sync"
__description__ = "Synchronize AI agent instruction files from a single source"

from .config.settings import AppSettings
from .sync.workspace_manager import WorkspaceManager

__all__ = ["AppSettings", "WorkspaceManager"]
