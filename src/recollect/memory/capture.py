"""Quick capture — `#` prefixed notes straight into the index.

    #important: Database migrations run at 2AM UTC
    #bug: Auth token expires after 5 minutes on staging
    #Use 2-space indentation in YAML files
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from recollect.memory.index import MemoryIndexEntry, SemanticIndex
    from recollect.memory.linter import MemoryLinter

logger = logging.getLogger(__name__)

Priority = Literal["low", "medium", "high"]

# prefix -> (priority, tag)
PREFIXES: dict[str, tuple[Priority, str]] = {
    "important": ("high", "important"),
    "urgent": ("high", "important"),
    "note": ("medium", "note"),
    "remember": ("medium", "note"),
    "todo": ("high", "todo"),
    "task": ("high", "todo"),
    "bug": ("high", "bug"),
    "issue": ("high", "bug"),
}

TECH_TAGS = ["npm", "git", "docker", "api", "database", "config", "test", "deploy"]
PATTERN_TAGS = [
    ("error", ("error", "fail")),
    ("solution", ("fix", "solve")),
    ("performance", ("perf", "slow")),
]


@dataclass
class CapturedNote:
    content: str
    priority: Priority = "medium"
    tags: list[str] = field(default_factory=list)


def _auto_tags(content: str) -> list[str]:
    lower = content.lower()
    tags = [keyword for keyword in TECH_TAGS if keyword in lower]
    for tag, markers in PATTERN_TAGS:
        if any(marker in lower for marker in markers):
            tags.append(tag)
    return tags


def parse_quick_capture(text: str, auto_tag: bool = True) -> CapturedNote:
    """Parse `#text` or `#prefix: text` into a note."""
    if not text.startswith("#"):
        raise ValueError("Invalid quick capture syntax. Use #text or #tag: text")

    body = text[1:]
    priority: Priority = "medium"
    tags: list[str] = []

    prefix, sep, rest = body.partition(":")
    known = PREFIXES.get(prefix.strip().lower()) if sep else None
    if known:
        priority, tag = known
        tags.append(tag)
        body = rest

    content = body.strip()
    if not content:
        raise ValueError("Quick capture note is empty")
    if auto_tag:
        tags.extend(_auto_tags(content))
    return CapturedNote(content=content, priority=priority, tags=list(dict.fromkeys(tags)))


def _generate_id() -> str:
    return f"qc_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def capture_into(
    index: SemanticIndex,
    text: str,
    source: str = "cli",
    linter: MemoryLinter | None = None,
    min_score: float | None = None,
) -> MemoryIndexEntry | None:
    """Parse a quick note and index it. Returns None if the lint gate rejects it.

    Without an explicit `min_score` the linter's own threshold applies.
    """
    note = parse_quick_capture(text)

    if linter is not None and min_score is None:
        min_score = linter.min_score
    if linter is not None and min_score is not None:
        result = linter.lint_memory(note.content)
        if result.score < min_score:
            logger.info(
                "Quick capture rejected: score %.1f below %.1f (%d issues)",
                result.score, min_score, len(result.issues),
            )
            return None

    entry = index.index_memory(
        _generate_id(),
        note.content,
        metadata={"priority": note.priority, "tags": note.tags, "originalInput": text},
        source=source,
    )
    logger.info("Memory captured: %s (%s)", entry.id, ", ".join(note.tags) or "untagged")
    return entry
