"""Redaction of secret-like content in exported files."""

import logging
import re
from typing import List, Optional, Tuple

from ..config.settings import SanitizeOptions

logger = logging.getLogger(__name__)

VALUE_GROUP = "value"


class Sanitizer:
    """Applies the configured redaction rules, in order, to text.

    A rule whose pattern defines a ``value`` group only has that group
    replaced, so ``api_key = abc123`` becomes ``api_key = [REDACTED]``.
    """

    def __init__(self, options: Optional[SanitizeOptions] = None):
        self.options = options or SanitizeOptions()
        self.replacement = self.options.replacement
        self._rules: List[Tuple[str, re.Pattern]] = [
            (rule.name, re.compile(rule.pattern)) for rule in self.options.rules
        ]

    def _replace(self, match: re.Match) -> str:
        if VALUE_GROUP in match.re.groupindex and match.group(VALUE_GROUP) is not None:
            start, end = match.span(VALUE_GROUP)
            offset = match.start()
            whole = match.group(0)
            return whole[:start - offset] + self.replacement + whole[end - offset:]
        return self.replacement

    def sanitize(self, text: str) -> Tuple[str, int]:
        """Redact every rule match.

        Args:
            text: Content to sanitize

        Returns:
            Tuple of (sanitized text, number of redactions)
        """
        total = 0
        for name, pattern in self._rules:
            redacted = []

            def replace(match: re.Match) -> str:
                result = self._replace(match)
                if result != match.group(0):
                    redacted.append(match.group(0))
                return result

            text = pattern.sub(replace, text)
            if redacted:
                logger.debug("Rule %s redacted %d match(es)", name, len(redacted))
            total += len(redacted)
        return text, total
