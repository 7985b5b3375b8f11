"""Tests for the mapping model, loader and resolver."""

import json

import pytest

from ai_config_sync.config.mapping import (
    MappingResolver,
    ResolvedTarget,
    SyncMode,
    default_mapping,
    load_mapping,
    parse_mapping,
    save_mapping_file,
)
from ai_config_sync.exceptions import InvalidConfigError, InvalidScopeError


def test_missing_mapping_writes_default(tmp_path):
    mapping_path = tmp_path / "mapping.json"

    mapping = load_mapping(mapping_path)

    assert mapping_path.exists()
    assert mapping.category_names() == ["global"]
    assert mapping.categories["global"].codex == "AGENTS.md"
    assert mapping.categories["global"].gemini == "GEMINI.md"
    assert mapping.categories["global"].claude == "CLAUDE.md"
    assert mapping.categories["global"].sync_mode == SyncMode.REPLACE
    assert parse_mapping(mapping_path.read_text(encoding="utf-8")) == mapping


def test_corrupt_mapping_is_not_replaced(tmp_path):
    mapping_path = tmp_path / "mapping.json"
    mapping_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(InvalidConfigError):
        load_mapping(mapping_path)

    assert mapping_path.read_text(encoding="utf-8") == "{not json"


def test_resolve_returns_target_and_mode():
    resolver = MappingResolver(parse_mapping(json.dumps({
        "version": 1,
        "categories": {
            "global": {"codex": "AGENTS.md", "gemini": "", "claude": "CLAUDE.md",
                       "sync_mode": "append"},
        },
    })))

    assert resolver.resolve("global", "codex") == ResolvedTarget("AGENTS.md", SyncMode.APPEND)
    assert resolver.resolve("global", "gemini") is None
    assert resolver.resolve("missing", "codex") is None


def test_resolve_rejects_unknown_agent():
    resolver = MappingResolver(default_mapping())

    with pytest.raises(InvalidScopeError):
        resolver.resolve("global", "copilot")


def test_sync_mode_defaults_to_replace():
    mapping = parse_mapping('{"version": 1, "categories": {"global": {"codex": "AGENTS.md"}}}')

    assert mapping.categories["global"].sync_mode == SyncMode.REPLACE


def test_iter_targets_follows_declaration_then_agent_order():
    mapping = parse_mapping(json.dumps({
        "version": 1,
        "categories": {
            "zeta": {"claude": "z.md", "codex": "z.md"},
            "alpha": {"gemini": "a.md", "codex": "a.md"},
        },
    }))

    order = [(category, agent) for category, agent, _ in MappingResolver(mapping).iter_targets()]

    assert order == [("zeta", "codex"), ("zeta", "claude"), ("alpha", "codex"), ("alpha", "gemini")]


def test_all_problems_reported_together():
    text = json.dumps({
        "version": 1,
        "categories": {
            "bad name": {"codex": "a.md"},
            "escape": {"codex": "../outside.md"},
            "absolute": {"gemini": "/etc/passwd"},
            "mode": {"claude": "c.md", "sync_mode": "merge"},
            "fine": {"codex": "ok.md"},
        },
    })

    with pytest.raises(InvalidConfigError) as exc_info:
        parse_mapping(text)

    problems = exc_info.value.problems
    for category in ("bad name", "escape", "absolute", "mode"):
        assert any(f"'{category}'" in problem for problem in problems), category
    assert not any("'fine'" in problem for problem in problems)


def test_unsupported_version_rejected():
    with pytest.raises(InvalidConfigError, match="unsupported mapping version 2"):
        parse_mapping('{"version": 2, "categories": {}}')


def test_duplicate_category_keys_rejected():
    text = ('{"version": 1, "categories": {"global": {"codex": "A.md"}, '
            '"global": {"codex": "B.md"}}}')

    with pytest.raises(InvalidConfigError, match="duplicate key 'global'"):
        parse_mapping(text)


def test_duplicate_keys_reported_with_other_problems():
    text = ('{"version": 9, "categories": {"a": {"codex": "A.md"}, '
            '"a": {"codex": "B.md"}, "b": {"codex": "C.md", "sync_mode": "merge"}}}')

    with pytest.raises(InvalidConfigError) as exc_info:
        parse_mapping(text)

    problems = exc_info.value.problems
    assert "duplicate key 'a'" in problems
    assert "unsupported mapping version 9" in problems
    assert any(problem.startswith("category 'b': sync_mode") for problem in problems)


def test_two_categories_cannot_share_a_target():
    text = json.dumps({
        "version": 1,
        "categories": {
            "one": {"codex": "AGENTS.md"},
            "two": {"codex": "./AGENTS.md"},
        },
    })

    with pytest.raises(InvalidConfigError, match="already mapped by 'one'"):
        parse_mapping(text)


def test_legacy_prompts_category_renamed():
    mapping = parse_mapping(json.dumps({
        "version": 1,
        "categories": {"prompts": {"codex": "AGENTS.md"}},
    }))

    assert mapping.category_names() == ["global"]


def test_target_paths_are_normalized():
    mapping = parse_mapping(json.dumps({
        "version": 1,
        "categories": {"global": {"codex": "docs\\AGENTS.md", "claude": "./CLAUDE.md"}},
    }))

    assert mapping.categories["global"].codex == "docs/AGENTS.md"
    assert mapping.categories["global"].claude == "CLAUDE.md"


def test_save_validates_before_writing(tmp_path):
    mapping_path = tmp_path / "mapping.json"
    save_mapping_file(mapping_path, default_mapping())
    original = mapping_path.read_text(encoding="utf-8")

    invalid = default_mapping()
    invalid.version = 7
    with pytest.raises(InvalidConfigError):
        save_mapping_file(mapping_path, invalid)

    assert mapping_path.read_text(encoding="utf-8") == original


def test_workspace_save_mapping_accepts_plain_dict(workspace):
    saved = workspace.save_mapping({
        "version": 1,
        "categories": {
            "global": {"codex": "AGENTS.md"},
            "review": {"claude": "commands/review.md", "sync_mode": "append"},
        },
    })

    assert saved.category_names() == ["global", "review"]
    assert workspace.get_mapping() == saved
