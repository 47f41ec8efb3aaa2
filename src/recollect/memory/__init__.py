"""Memory engine — import resolution, semantic indexing, quality linting.

Components:
    imports.py   # `@path` composition: ordered, cycle-safe, depth-bounded
    text.py      # keyword/entity extraction + hash-bucket pseudo-embedding
    index.py     # postings maps, vectors, ranked search, JSON snapshots
    linter.py    # rule registry + quality score and suggestions
    capture.py   # `#prefix: note` quick capture into the index

Every component is a plain object with its own state; create one per store.
"""

from recollect.memory.capture import CapturedNote, capture_into, parse_quick_capture
from recollect.memory.imports import ImportDeadlineExceeded, ImportedContent, ImportResolver
from recollect.memory.index import (
    MemoryIndexEntry,
    MemoryNotFoundError,
    SearchOptions,
    SearchResult,
    SemanticIndex,
    TrendingKeyword,
)
from recollect.memory.linter import LintIssue, LintResult, LintRule, MemoryLinter, QualityMetrics
from recollect.memory.text import HashEmbedder

__all__ = [
    "CapturedNote",
    "HashEmbedder",
    "ImportDeadlineExceeded",
    "ImportResolver",
    "ImportedContent",
    "LintIssue",
    "LintResult",
    "LintRule",
    "MemoryIndexEntry",
    "MemoryLinter",
    "MemoryNotFoundError",
    "QualityMetrics",
    "SearchOptions",
    "SearchResult",
    "SemanticIndex",
    "TrendingKeyword",
    "capture_into",
    "parse_quick_capture",
]
