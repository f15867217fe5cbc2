"""Denylist check applied to every command before it reaches the executor."""

import logging
import re
from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Patterns that must never be executed, regardless of what the planner asks for
DANGEROUS_PATTERNS: list[str] = [
    r"rm\s+(-[a-zA-Z]*\s+)*-[a-zA-Z]*[rR][a-zA-Z]*\s+(-[a-zA-Z]*\s+)*/\*?(\s|$)",  # rm -rf /
    r"rm\s+.*--no-preserve-root",
    r"dd\s+.*of=/dev/(sd|hd|nvme|vd|xvd)",  # Raw block device writes
    r">\s*/dev/(sd|hd|nvme|vd|xvd)",
    r"\bmkfs(\.\w+)?\b",  # Filesystem formatting
    r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",  # Fork bomb
]

BLOCKED_ERROR = "blocked by security"


class SafetyFilter:
    """Matches candidate commands against a compiled denylist.

    Args:
        patterns: Replaces the default denylist when given.
        extra_patterns: Appended to whichever base list is in use.
    """

    def __init__(
        self,
        patterns: Iterable[str] | None = None,
        extra_patterns: Iterable[str] | None = None,
    ):
        base = list(patterns) if patterns is not None else list(DANGEROUS_PATTERNS)
        base.extend(extra_patterns or [])
        self.patterns = [re.compile(p) for p in base]

    def is_dangerous(self, command: str) -> bool:
        for pattern in self.patterns:
            if pattern.search(command):
                logger.warning("Command blocked by pattern %s: %s", pattern.pattern, command)
                return True
        return False


def is_dangerous(command: str, patterns: Iterable[str] | None = None) -> bool:
    """Check a single command against the default (or given) denylist."""
    return SafetyFilter(patterns).is_dangerous(command)
