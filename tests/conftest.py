"""Shared fixtures: an isolated home directory and a workspace over it."""

import sys
from pathlib import Path

import pytest

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ai_config_sync.config.settings import AppSettings
from ai_config_sync.sync.workspace_manager import WorkspaceManager


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("AI_CONFIG_SYNC_HOME", "AI_CONFIG_SYNC_LOG_LEVEL", "AI_CONFIG_SYNC_LOG_FILE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def home(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def settings(home):
    return AppSettings(home=home, lock_timeout=5)


@pytest.fixture
def manager(settings):
    return WorkspaceManager(settings)


@pytest.fixture
def workspace(manager):
    manager.init_workspace()
    return manager


@pytest.fixture
def codex_only(workspace):
    """Workspace whose mapping targets only codex/AGENTS.md in replace mode."""
    workspace.save_mapping({
        "version": 1,
        "categories": {"global": {"codex": "AGENTS.md", "sync_mode": "replace"}},
    })
    return workspace

