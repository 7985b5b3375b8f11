"""Tests for the backup store: listing, detail, restore and deletion."""

import shutil

import pytest

from ai_config_sync.exceptions import IOFailureError, NotFoundError, PartialApplyError
from ai_config_sync.sync.backup_store import BackupStore, BackupTarget
from ai_config_sync.sync.models import BackupTrigger
from ai_config_sync.utils.file_utils import FileHelper


def _write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def synced(codex_only):
    """Workspace where codex/AGENTS.md was updated by one sync."""
    _write(codex_only.settings.agent_root("codex") / "AGENTS.md", "Old rules\n")
    _write(codex_only.settings.source_root / "instructions/global.md", "New rules\n")
    result = codex_only.apply_sync(["codex:global"])
    return codex_only, result.backup_id


def test_backup_layout(synced):
    manager, backup_id = synced
    backup_dir = manager.settings.backups_root / backup_id

    assert (backup_dir / "manifest.json").is_file()
    assert (backup_dir / "files" / "codex" / "AGENTS.md").read_text(encoding="utf-8") == "Old rules\n"


def test_detail_pairs_backup_with_current_content(synced):
    manager, backup_id = synced

    detail = manager.get_backup_detail(backup_id)

    assert detail.backup_id == backup_id
    assert detail.entry_count == 1
    entry = detail.entries[0]
    assert entry.existed_before is True
    assert entry.backup_content == "Old rules\n"
    assert entry.current_content == "New rules\n"


def test_restore_returns_pre_image(synced):
    manager, backup_id = synced
    target = manager.settings.agent_root("codex") / "AGENTS.md"

    result = manager.restore_backup(backup_id)

    assert result.restored_count == 1
    assert target.read_text(encoding="utf-8") == "Old rules\n"


def test_restore_onto_matching_state_is_a_no_op(synced):
    manager, backup_id = synced
    manager.restore_backup(backup_id)

    again = manager.restore_backup(backup_id)

    assert again.restored_count == 0


def test_list_is_newest_first(synced):
    manager, first_id = synced
    _write(manager.settings.source_root / "instructions/global.md", "Newest rules\n")
    second_id = manager.apply_sync(["codex:global"]).backup_id
    third = manager.create_manual_backup()

    listed = [backup.backup_id for backup in manager.list_backups()]

    assert listed == [third.backup_id, second_id, first_id]
    assert len(set(listed)) == 3
    assert [b.trigger for b in manager.list_backups()] == [
        BackupTrigger.MANUAL, BackupTrigger.SYNC, BackupTrigger.SYNC,
    ]


def test_deleting_one_backup_keeps_the_others(synced):
    manager, first_id = synced
    _write(manager.settings.source_root / "instructions/global.md", "Newest rules\n")
    second_id = manager.apply_sync(["codex:global"]).backup_id

    manager.delete_backup(first_id)

    assert [b.backup_id for b in manager.list_backups()] == [second_id]
    assert manager.get_backup_detail(second_id).entries[0].backup_content == "New rules\n"
    assert manager.restore_backup(second_id).restored_count == 1
    with pytest.raises(NotFoundError):
        manager.get_backup_detail(first_id)
    with pytest.raises(NotFoundError):
        manager.restore_backup(first_id)
    with pytest.raises(NotFoundError):
        manager.delete_backup(first_id)


@pytest.mark.parametrize("backup_id", ["20990101T000000000000Z", "../mapping.json", ""])
def test_unknown_backup_is_not_found(workspace, backup_id):
    with pytest.raises(NotFoundError):
        workspace.get_backup_detail(backup_id)


def test_manual_backup_snapshots_existing_targets(workspace):
    assert workspace.create_manual_backup() is None

    _write(workspace.settings.agent_root("claude") / "CLAUDE.md", "Claude rules")
    backup = workspace.create_manual_backup()

    assert backup.trigger == BackupTrigger.MANUAL
    assert backup.entry_count == 1
    entry = workspace.get_backup_detail(backup.backup_id).entries[0]
    assert (entry.agent, entry.target_relative_path) == ("claude", "CLAUDE.md")
    assert entry.backup_content == "Claude rules"


def test_incomplete_backups_are_not_listed(synced):
    manager, backup_id = synced
    staging = manager.settings.backups_root / ".staging-20990101T000000000000Z"
    staging.mkdir()
    (staging / "manifest.json").write_text("{}", encoding="utf-8")

    assert [b.backup_id for b in manager.list_backups()] == [backup_id]


def test_corrupt_manifest_skipped_in_list_but_fails_detail(synced):
    manager, backup_id = synced
    broken = manager.settings.backups_root / "20000101T000000000000Z"
    broken.mkdir()
    (broken / "manifest.json").write_text("not json", encoding="utf-8")

    assert [b.backup_id for b in manager.list_backups()] == [backup_id]
    with pytest.raises(IOFailureError):
        manager.get_backup_detail(broken.name)


def test_failed_backup_leaves_nothing_behind(codex_only, monkeypatch):
    target = codex_only.settings.agent_root("codex") / "AGENTS.md"
    _write(target, "Old rules\n")
    _write(codex_only.settings.source_root / "instructions/global.md", "New rules\n")

    def failing_write(path, data):
        raise IOFailureError("Failed to write file", str(path), OSError("disk full"))

    monkeypatch.setattr(FileHelper, "write_atomic", staticmethod(failing_write))

    with pytest.raises(IOFailureError):
        codex_only.apply_sync(["codex:global"])

    monkeypatch.undo()
    assert list(codex_only.settings.backups_root.iterdir()) == []
    assert target.read_text(encoding="utf-8") == "Old rules\n"


def test_backup_ids_are_unique_within_the_same_instant(workspace):
    _write(workspace.settings.agent_root("codex") / "AGENTS.md", "rules")
    store = workspace.backup_store
    targets = [BackupTarget("codex", "AGENTS.md")]

    with workspace.mutation():
        ids = [store.create(BackupTrigger.MANUAL, targets).backup_id for _ in range(5)]

    assert len(set(ids)) == 5


def test_deleted_backup_leaves_no_directory_behind(synced):
    manager, backup_id = synced

    manager.delete_backup(backup_id)

    assert list(manager.settings.backups_root.iterdir()) == []


def test_list_skips_backup_deleted_while_listing(synced, monkeypatch):
    manager, first_id = synced
    second = manager.create_manual_backup()
    original_read = BackupStore._read_manifest

    def vanishing_read(self, backup_dir):
        if backup_dir.name == first_id:
            shutil.rmtree(backup_dir)
        return original_read(self, backup_dir)

    monkeypatch.setattr(BackupStore, "_read_manifest", vanishing_read)

    assert [b.backup_id for b in manager.list_backups()] == [second.backup_id]


def test_failed_restore_reports_progress(workspace, monkeypatch):
    codex = workspace.settings.agent_root("codex") / "AGENTS.md"
    gemini = workspace.settings.agent_root("gemini") / "GEMINI.md"
    _write(codex, "Codex rules\n")
    _write(gemini, "Gemini rules\n")
    backup = workspace.create_manual_backup()
    _write(codex, "Changed\n")
    _write(gemini, "Changed\n")
    original_write = FileHelper.write_atomic

    def failing_write(path, data):
        if path.name == "GEMINI.md":
            raise IOFailureError("Failed to write file", str(path), OSError("disk full"))
        return original_write(path, data)

    monkeypatch.setattr(FileHelper, "write_atomic", staticmethod(failing_write))

    with pytest.raises(PartialApplyError) as exc_info:
        workspace.restore_backup(backup.backup_id)

    error = exc_info.value
    assert error.operation == "restore"
    assert error.completed == ["codex/AGENTS.md"]
    assert error.path.endswith("GEMINI.md")
    assert codex.read_text(encoding="utf-8") == "Codex rules\n"
    assert gemini.read_text(encoding="utf-8") == "Changed\n"

    monkeypatch.undo()
    assert workspace.restore_backup(backup.backup_id).restored_count == 1
    assert gemini.read_text(encoding="utf-8") == "Gemini rules\n"
