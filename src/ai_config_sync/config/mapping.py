"""Category mapping model, loader and resolver.

The mapping is a JSON document at a fixed path in the workspace::

    {
      "version": 1,
      "categories": {
        "global": {"codex": "AGENTS.md", "gemini": "GEMINI.md",
                   "claude": "CLAUDE.md", "sync_mode": "replace"}
      }
    }

Declaration order of ``categories`` is significant: previews are grouped in
that order.  Loading validates the whole table and rejects it wholesale,
reporting every offending category in a single ``InvalidConfigError``.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ValidationError, field_validator

from ..exceptions import InvalidConfigError, InvalidScopeError
from ..utils.file_utils import FileHelper
from .settings import AGENTS

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = (1,)
DEFAULT_CATEGORY = "global"
LEGACY_PROMPTS_CATEGORY = "prompts"
CATEGORY_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class SyncMode(str, Enum):
    """How source content is merged into a target."""
    REPLACE = "replace"
    APPEND = "append"


class CategoryMapping(BaseModel):
    """Per-agent target paths of one category. An empty path means not targeted."""
    codex: str = ""
    gemini: str = ""
    claude: str = ""
    sync_mode: SyncMode = SyncMode.REPLACE

    @field_validator('codex', 'gemini', 'claude')
    @classmethod
    def validate_target_path(cls, v):
        v = (v or "").strip()
        if not v:
            return ""
        # Raises InvalidPathError (a ValueError) for absolute or escaping paths
        return FileHelper.to_slash_path(FileHelper.normalize_relative_path(v))

    def target_for(self, agent: str) -> str:
        return getattr(self, agent)


class MappingConfig(BaseModel):
    """Validated mapping table."""
    version: int = 1
    categories: Dict[str, CategoryMapping]

    def category_names(self) -> List[str]:
        return list(self.categories.keys())

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode='json'), indent=2, ensure_ascii=False) + "\n"


@dataclass(frozen=True)
class ResolvedTarget:
    """Target of one (category, agent) pair."""
    target_relative_path: str
    sync_mode: SyncMode


class MappingResolver:
    """Resolves categories to per-agent targets over a validated mapping."""

    def __init__(self, config: MappingConfig):
        self.config = config

    def resolve(self, category: str, agent: str) -> Optional[ResolvedTarget]:
        """Resolve the target of a category for an agent.

        Args:
            category: Category name
            agent: One of ``codex``, ``gemini``, ``claude``

        Returns:
            The target path and sync mode, or None when the category is unknown
            or the agent is not targeted

        Raises:
            InvalidScopeError: If ``agent`` is not a known agent
        """
        if agent not in AGENTS:
            raise InvalidScopeError(f"Unsupported agent: {agent}")

        mapping = self.config.categories.get(category)
        if mapping is None:
            return None

        target = mapping.target_for(agent)
        if not target:
            return None
        return ResolvedTarget(target_relative_path=target, sync_mode=mapping.sync_mode)

    def iter_targets(self):
        """Yield ``(category, agent, ResolvedTarget)`` in preview order."""
        for category in self.config.categories:
            for agent in AGENTS:
                resolved = self.resolve(category, agent)
                if resolved is not None:
                    yield category, agent, resolved


def default_mapping() -> MappingConfig:
    """Mapping written on first launch."""
    return MappingConfig(
        version=1,
        categories={
            DEFAULT_CATEGORY: CategoryMapping(
                codex="AGENTS.md",
                gemini="GEMINI.md",
                claude="CLAUDE.md",
                sync_mode=SyncMode.REPLACE,
            )
        },
    )


def _duplicate_key_collector(duplicates: List[str]):
    """Build a JSON object hook that records repeated keys into ``duplicates``."""
    def hook(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
        seen: Dict[str, Any] = {}
        for key, value in pairs:
            if key in seen and key not in duplicates:
                duplicates.append(key)
            seen[key] = value
        return seen
    return hook


def _format_validation_error(category: str, error: ValidationError) -> List[str]:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get('loc', ()))
        message = item.get('msg', 'invalid value')
        if location:
            problems.append(f"category '{category}': {location}: {message}")
        else:
            problems.append(f"category '{category}': {message}")
    return problems


def _normalize_legacy(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Carry forward mappings written by older releases."""
    categories = raw.get('categories')
    if isinstance(categories, dict) and DEFAULT_CATEGORY not in categories \
            and LEGACY_PROMPTS_CATEGORY in categories:
        logger.info("Renaming legacy '%s' category to '%s'",
                    LEGACY_PROMPTS_CATEGORY, DEFAULT_CATEGORY)
        renamed = {}
        for name, value in categories.items():
            renamed[DEFAULT_CATEGORY if name == LEGACY_PROMPTS_CATEGORY else name] = value
        raw = dict(raw, categories=renamed)
    return raw


def validate_mapping_data(raw: Any, duplicate_keys: Optional[List[str]] = None) -> MappingConfig:
    """Validate a decoded mapping document.

    Every category is checked; all problems are reported together.

    Args:
        raw: Decoded mapping document
        duplicate_keys: Object keys that appeared more than once in the JSON text

    Raises:
        InvalidConfigError: If anything is malformed
    """
    problems: List[str] = [f"duplicate key '{key}'" for key in duplicate_keys or []]
    if not isinstance(raw, dict):
        raise InvalidConfigError("Mapping must be a JSON object", problems)

    raw = _normalize_legacy(raw)

    version = raw.get('version')
    if isinstance(version, bool) or not isinstance(version, int):
        problems.append(f"version must be an integer, got {version!r}")
    elif version not in SUPPORTED_VERSIONS:
        problems.append(f"unsupported mapping version {version}")

    categories = raw.get('categories')
    parsed: Dict[str, CategoryMapping] = {}
    if not isinstance(categories, dict):
        problems.append("categories must be an object")
        categories = {}

    for name, value in categories.items():
        if not isinstance(name, str) or not name.strip():
            problems.append("category name cannot be empty")
            continue
        if not CATEGORY_NAME_RE.match(name):
            problems.append(
                f"category '{name}': name may only contain letters, digits, '-' and '_'"
            )
            continue
        if not isinstance(value, dict):
            problems.append(f"category '{name}': mapping must be an object")
            continue
        try:
            parsed[name] = CategoryMapping.model_validate(value)
        except ValidationError as e:
            problems.extend(_format_validation_error(name, e))

    # A target written by two categories would be clobbered by whichever applies last
    claimed: Dict[Tuple[str, str], str] = {}
    for name, mapping in parsed.items():
        for agent in AGENTS:
            target = mapping.target_for(agent)
            if not target:
                continue
            owner = claimed.get((agent, target))
            if owner is not None:
                problems.append(
                    f"category '{name}': {agent} target '{target}' is already mapped by '{owner}'"
                )
            else:
                claimed[(agent, target)] = name

    if problems:
        raise InvalidConfigError("Invalid mapping configuration", problems)

    return MappingConfig(version=version, categories=parsed)


def parse_mapping(text: str) -> MappingConfig:
    """Parse and validate mapping JSON text."""
    duplicates: List[str] = []
    try:
        raw = json.loads(text, object_pairs_hook=_duplicate_key_collector(duplicates))
    except json.JSONDecodeError as e:
        raise InvalidConfigError("Mapping is not valid JSON", [str(e)]) from e
    return validate_mapping_data(raw, duplicates)


def load_mapping(mapping_path: Path) -> MappingConfig:
    """Load the mapping file, writing the default mapping if it is missing.

    Args:
        mapping_path: Location of ``mapping.json``

    Returns:
        Validated mapping

    Raises:
        InvalidConfigError: If the file exists but is malformed
    """
    text = FileHelper.read_text(mapping_path)
    if text is None:
        mapping = default_mapping()
        save_mapping_file(mapping_path, mapping)
        logger.info("Created default mapping at %s", mapping_path)
        return mapping

    return parse_mapping(text)


def save_mapping_file(mapping_path: Path, mapping: MappingConfig) -> MappingConfig:
    """Validate and atomically persist a mapping.

    The mapping is re-validated from its serialized form so saving obeys
    exactly the rules loading does.
    """
    validated = validate_mapping_data(mapping.model_dump(mode='json'))
    FileHelper.write_text(mapping_path, validated.to_json())
    return validated
