"""Diff/preview engine: computes what every (category, agent) target would become.

Category ``C`` is authored at ``instructions/C.md`` in the source scope.  An
optional per-agent overlay ``instructions/C.<agent>.md`` is appended to the
base content for that agent only.

Append mode wraps the source in a marked block::

    <!-- ai-config-sync:begin C -->
    ...source content...
    <!-- ai-config-sync:end C -->

so repeated previews find the previously applied block and never append a
second copy.  When the source changes the block is rewritten in place.
Blocks are matched regardless of CRLF or LF line endings and are written
back in the target's own style.

A target without a block whose trailing content equals the source is also
left alone, but only when that content starts at the beginning of a line.
A source that matches just the end of a longer line is still appended.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from ..config.mapping import MappingResolver, ResolvedTarget, SyncMode
from ..config.settings import AppSettings, INSTRUCTIONS_DIR_NAME
from ..utils.file_utils import FileHelper
from .models import SyncItem, SyncPreview, SyncStatus, make_item_id

logger = logging.getLogger(__name__)

BLOCK_BEGIN = "<!-- ai-config-sync:begin {category} -->"
BLOCK_END = "<!-- ai-config-sync:end {category} -->"


def source_relative_path(category: str, agent: Optional[str] = None) -> str:
    """Source-scope path of a category's base file or an agent overlay."""
    if agent:
        return f"{INSTRUCTIONS_DIR_NAME}/{category}.{agent}.md"
    return f"{INSTRUCTIONS_DIR_NAME}/{category}.md"


def compose_source(source_root: Path, category: str, agent: str) -> Tuple[str, str]:
    """Build the source content a category contributes to one agent.

    Args:
        source_root: Root of the source scope
        category: Category name
        agent: Agent the content is composed for

    Returns:
        Tuple of (content, description of the source file(s) used). A missing
        base file contributes empty content.
    """
    base_rel = source_relative_path(category)
    overlay_rel = source_relative_path(category, agent)
    base = FileHelper.read_text(source_root / base_rel) or ""
    overlay = FileHelper.read_text(source_root / overlay_rel) or ""

    if not overlay.strip():
        return base, base_rel
    if not base.strip():
        return overlay, overlay_rel
    return f"{base.rstrip()}\n\n{overlay}", f"{base_rel} + {overlay_rel}"


def append_block(category: str, content: str) -> str:
    body = content.strip("\n")
    return "\n".join([
        BLOCK_BEGIN.format(category=category),
        body,
        BLOCK_END.format(category=category),
    ])


def merge_append(before: str, source: str, category: str) -> str:
    """Merge source content into a target without ever duplicating it.

    Args:
        before: Current target content ("" if absent)
        source: Source content for the category
        category: Category name used in the block markers

    Returns:
        The target content after the append
    """
    source = source.replace("\r\n", "\n")
    if not source.strip():
        return before

    newline = "\r\n" if "\r\n" in before else "\n"
    block = append_block(category, source)
    pattern = re.compile(
        re.escape(BLOCK_BEGIN.format(category=category))
        + r"\r?\n.*?"
        + re.escape(BLOCK_END.format(category=category)),
        re.DOTALL,
    )
    match = pattern.search(before)
    if match:
        if match.group(0).replace("\r\n", "\n") == block:
            return before
        return before[:match.start()] + block.replace("\n", newline) + before[match.end():]

    # Content appended by hand or by older releases, without markers
    tail = before.replace("\r\n", "\n").rstrip()
    trimmed = source.strip()
    if tail == trimmed or tail.endswith("\n" + trimmed):
        return before

    if not before.strip():
        return block.replace("\n", newline) + newline
    return before.rstrip("\r\n") + newline * 2 + block.replace("\n", newline) + newline


def classify(before: str, after: str, target_exists: bool, sync_mode: SyncMode) -> SyncStatus:
    if after == before:
        return SyncStatus.UNCHANGED
    if not target_exists:
        return SyncStatus.CREATE
    if sync_mode == SyncMode.APPEND:
        return SyncStatus.APPEND
    return SyncStatus.UPDATE


class PreviewEngine:
    """Computes sync items from the mapping and the current filesystem state.

    Nothing here writes to disk.
    """

    def __init__(self, settings: AppSettings, resolver: MappingResolver):
        self.settings = settings
        self.resolver = resolver

    def plan_item(self, category: str, agent: str,
                  resolved: Optional[ResolvedTarget] = None) -> Optional[SyncItem]:
        """Plan the transfer for one (category, agent) pair.

        Returns:
            The planned item, or None when the agent is not targeted
        """
        if resolved is None:
            resolved = self.resolver.resolve(category, agent)
            if resolved is None:
                return None

        source, source_file = compose_source(self.settings.source_root, category, agent)

        target_abs = self.settings.agent_root(agent) / resolved.target_relative_path
        current = FileHelper.read_text(target_abs)
        target_exists = current is not None
        before = current or ""

        if resolved.sync_mode == SyncMode.APPEND:
            after = merge_append(before, source, category)
        else:
            after = source

        return SyncItem(
            id=make_item_id(agent, category),
            agent=agent,
            category=category,
            source_file=source_file,
            target_relative_path=resolved.target_relative_path,
            target_absolute_path=str(target_abs),
            status=classify(before, after, target_exists, resolved.sync_mode),
            before=before,
            after=after,
        )

    def build_items(self) -> List[SyncItem]:
        """Plan every targeted pair, grouped by category then agent order."""
        items = []
        for category, agent, resolved in self.resolver.iter_targets():
            items.append(self.plan_item(category, agent, resolved))
        return items

    def preview(self) -> SyncPreview:
        items = self.build_items()
        logger.debug("Preview computed: %d items, %d changed",
                     len(items), sum(1 for item in items if item.is_changed))
        return SyncPreview(generated_at=datetime.now(timezone.utc), items=items)
