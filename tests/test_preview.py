"""Tests for sync previews: status classification, append merging and ordering."""

import pytest

from ai_config_sync.sync.models import SyncStatus
from ai_config_sync.sync.preview import append_block, merge_append

BEGIN = "<!-- ai-config-sync:begin global -->"
END = "<!-- ai-config-sync:end global -->"


def _write(path, content):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.fixture
def append_mode(workspace):
    workspace.save_mapping({
        "version": 1,
        "categories": {"global": {"codex": "AGENTS.md", "sync_mode": "append"}},
    })
    return workspace


def source(manager, relative_path="instructions/global.md"):
    return manager.settings.source_root / relative_path


def codex_target(manager, relative_path="AGENTS.md"):
    return manager.settings.agent_root("codex") / relative_path


def test_new_target_is_created(codex_only):
    _write(source(codex_only), "Be concise.")

    preview = codex_only.preview_sync()

    assert len(preview.items) == 1
    item = preview.items[0]
    assert item.id == "codex:global"
    assert item.status == SyncStatus.CREATE
    assert item.before == ""
    assert item.after == "Be concise."
    assert item.source_file == "instructions/global.md"
    assert item.target_relative_path == "AGENTS.md"
    assert item.target_absolute_path == str(codex_target(codex_only))


def test_preview_never_writes(codex_only):
    _write(source(codex_only), "Be concise.")

    codex_only.preview_sync()

    assert not codex_target(codex_only).exists()


def test_matching_target_is_unchanged(codex_only):
    _write(source(codex_only), "Be concise.")
    _write(codex_target(codex_only), "Be concise.")

    item = codex_only.preview_sync().items[0]

    assert item.status == SyncStatus.UNCHANGED
    assert not item.is_changed
    assert item.unified_diff() == ""


def test_different_target_is_updated(codex_only):
    _write(source(codex_only), "Be concise.")
    _write(codex_target(codex_only), "Be verbose.")

    item = codex_only.preview_sync().items[0]

    assert item.status == SyncStatus.UPDATE
    assert item.before == "Be verbose."
    assert item.after == "Be concise."


def test_missing_source_and_target_is_unchanged(codex_only):
    item = codex_only.preview_sync().items[0]

    assert item.status == SyncStatus.UNCHANGED
    assert item.before == ""
    assert item.after == ""


def test_missing_source_replaces_with_empty_content(codex_only):
    _write(codex_target(codex_only), "Old rules")

    item = codex_only.preview_sync().items[0]

    assert item.status == SyncStatus.UPDATE
    assert item.after == ""


def test_agent_overlay_is_appended_to_base(codex_only):
    _write(source(codex_only), "Shared rules\n")
    _write(source(codex_only, "instructions/global.codex.md"), "Codex only\n")

    item = codex_only.preview_sync().items[0]

    assert item.after == "Shared rules\n\nCodex only\n"
    assert item.source_file == "instructions/global.md + instructions/global.codex.md"


def test_items_ordered_by_category_then_agent(workspace):
    workspace.save_mapping({
        "version": 1,
        "categories": {
            "global": {"codex": "AGENTS.md", "gemini": "GEMINI.md", "claude": "CLAUDE.md"},
            "review": {"claude": "commands/review.md", "codex": "prompts/review.md"},
        },
    })

    first = workspace.preview_sync().ids()
    second = workspace.preview_sync().ids()

    assert first == ["codex:global", "gemini:global", "claude:global",
                     "codex:review", "claude:review"]
    assert first == second


def test_append_to_existing_target(append_mode):
    _write(source(append_mode), "Be concise.\n")
    _write(codex_target(append_mode), "Existing rules\n")

    item = append_mode.preview_sync().items[0]

    assert item.status == SyncStatus.APPEND
    assert item.after == f"Existing rules\n\n{BEGIN}\nBe concise.\n{END}\n"


def test_append_to_missing_target_creates_it(append_mode):
    _write(source(append_mode), "Be concise.")

    item = append_mode.preview_sync().items[0]

    assert item.status == SyncStatus.CREATE
    assert item.after == f"{BEGIN}\nBe concise.\n{END}\n"


def test_append_is_idempotent(append_mode):
    _write(source(append_mode), "Be concise.\n")
    _write(codex_target(append_mode), "Existing rules\n")

    first = append_mode.preview_sync().items[0]
    _write(codex_target(append_mode), first.after)
    second = append_mode.preview_sync().items[0]

    assert second.status == SyncStatus.UNCHANGED
    assert second.after == second.before
    assert second.after.count(BEGIN) == 1


def test_append_is_idempotent_on_crlf_targets(append_mode):
    _write(source(append_mode), "Be concise.\n")
    _write(codex_target(append_mode), "Existing rules\n")

    first = append_mode.preview_sync().items[0]
    codex_target(append_mode).write_bytes(first.after.replace("\n", "\r\n").encode("utf-8"))
    second = append_mode.preview_sync().items[0]

    assert second.status == SyncStatus.UNCHANGED
    assert second.after == second.before
    assert second.after.count(BEGIN) == 1


def test_append_rewrites_crlf_block_in_crlf_style(append_mode):
    before = f"Intro\r\n\r\n{BEGIN}\r\nOld rule\r\n{END}\r\n"
    codex_target(append_mode).write_bytes(before.encode("utf-8"))
    _write(source(append_mode), "New rule\n")

    item = append_mode.preview_sync().items[0]

    assert item.status == SyncStatus.APPEND
    assert item.after == f"Intro\r\n\r\n{BEGIN}\r\nNew rule\r\n{END}\r\n"


def test_append_to_crlf_target_uses_crlf():
    after = merge_append("Existing rules\r\n", "Be concise.\n", "global")

    assert after == f"Existing rules\r\n\r\n{BEGIN}\r\nBe concise.\r\n{END}\r\n"


def test_append_rewrites_block_in_place_when_source_changes(append_mode):
    _write(codex_target(append_mode), f"Intro\n\n{BEGIN}\nOld rule\n{END}\n\nFooter\n")
    _write(source(append_mode), "New rule\n")

    item = append_mode.preview_sync().items[0]

    assert item.status == SyncStatus.APPEND
    assert item.after == f"Intro\n\n{BEGIN}\nNew rule\n{END}\n\nFooter\n"


def test_append_recognizes_unmarked_trailing_content(append_mode):
    _write(codex_target(append_mode), "Intro\n\nBe concise.\n")
    _write(source(append_mode), "Be concise.")

    item = append_mode.preview_sync().items[0]

    assert item.status == SyncStatus.UNCHANGED


def test_unmarked_content_must_start_a_line(append_mode):
    _write(codex_target(append_mode), "Intro\n\nNever Be concise.\n")
    _write(source(append_mode), "Be concise.")

    item = append_mode.preview_sync().items[0]

    assert item.status == SyncStatus.APPEND
    assert item.after == f"Intro\n\nNever Be concise.\n\n{BEGIN}\nBe concise.\n{END}\n"


def test_blank_source_appends_nothing():
    assert merge_append("Existing\n", "  \n", "global") == "Existing\n"


def test_blocks_of_other_categories_are_left_alone():
    other = append_block("review", "Review carefully.")
    before = f"{other}\n"

    after = merge_append(before, "Be concise.", "global")

    assert after == f"{other}\n\n{BEGIN}\nBe concise.\n{END}\n"


def test_unified_diff_labels_agent_target(codex_only):
    _write(source(codex_only), "Be concise.\n")
    _write(codex_target(codex_only), "Be verbose.\n")

    diff = codex_only.preview_sync().items[0].unified_diff()

    assert "--- a/codex/AGENTS.md" in diff
    assert "+++ b/codex/AGENTS.md" in diff
    assert "-Be verbose." in diff
    assert "+Be concise." in diff
