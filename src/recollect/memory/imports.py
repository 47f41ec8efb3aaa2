"""Recursive `@path` import resolution for memory documents.

A document pulls other files in with `@relative/path.md` tokens. Resolution is
depth-first pre-order (the file, then each import in declaration order),
bounded by `max_depth`, and breaks cycles per branch: a file may appear on two
independent branches (a diamond), but never twice on the same path.

The resolver keeps a cross-call cache keyed by normalized absolute path. Once
a file has been expanded, later references anywhere return just the cached
node without walking its imports again.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import frontmatter

if TYPE_CHECKING:
    from recollect.config import ImportConfig

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 5
DEFAULT_EXTENSIONS = (".md", ".txt", ".yaml", ".yml", ".json")

_IMPORT_RE = re.compile(r"@(\S+)")
_FRONTMATTER_SUFFIXES = {".md", ".markdown"}


class ImportDeadlineExceeded(TimeoutError):
    """The resolution deadline passed before the root document was read."""


@dataclass
class ImportedContent:
    """One successfully read file."""

    path: str
    content: str
    depth: int
    timestamp: int
    metadata: dict = field(default_factory=dict)


@dataclass
class _Frame:
    path: Path
    depth: int
    visited: frozenset[str]


def find_import_tokens(content: str, include_http: bool = False) -> list[str]:
    """Return every `@token` in declaration order.

    Tokens starting with `http` are URLs, not imports, unless `include_http`.
    There is no escaping: `@word` in prose counts as an import attempt.
    """
    tokens = []
    for match in _IMPORT_RE.finditer(content):
        token = match.group(1)
        if not include_http and token.startswith("http"):
            continue
        tokens.append(token)
    return tokens


def _now_ms() -> int:
    return int(time.time() * 1000)


class ImportResolver:
    """Expand `@path` imports into an ordered list of content blocks."""

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        allowed_extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        timeout: float | None = None,
    ) -> None:
        self.max_depth = max_depth
        self.allowed_extensions = tuple(allowed_extensions)
        self.timeout = timeout
        self._cache: dict[str, ImportedContent] = {}
        # Ordered set of raw tokens per file.
        self._graph: dict[str, dict[str, None]] = {}

    @classmethod
    def from_config(cls, config: ImportConfig) -> ImportResolver:
        return cls(
            max_depth=config.max_depth,
            allowed_extensions=config.allowed_extensions,
            timeout=config.timeout,
        )

    # ── Resolution ────────────────────────────────────────────

    def resolve_imports(
        self,
        path: str | Path,
        max_depth: int | None = None,
        allowed_extensions: Iterable[str] | None = None,
        base_path: str | Path | None = None,
        deadline: float | None = None,
    ) -> list[ImportedContent]:
        """Resolve `path` and everything it imports.

        `deadline` is an absolute `time.monotonic()` value checked before each
        file read. Only a failure to read the root file propagates; nested
        failures are logged and skipped.
        """
        if max_depth is None:
            max_depth = self.max_depth
        if allowed_extensions is None:
            allowed_extensions = self.allowed_extensions
        extensions = {ext.lower() for ext in allowed_extensions}
        if deadline is None and self.timeout:
            deadline = time.monotonic() + self.timeout

        root = Path(path).expanduser().resolve()
        base = Path(base_path).expanduser().resolve() if base_path else root.parent

        logger.info("Resolving imports for %s (max_depth=%d)", root, max_depth)
        results: list[ImportedContent] = []
        stack = [_Frame(root, 0, frozenset())]

        while stack:
            frame = stack.pop()
            is_root = frame.depth == 0
            key = str(frame.path)

            if key in frame.visited:
                logger.warning("Circular import detected: %s", key)
                continue
            if frame.depth > max_depth:
                logger.warning("Max depth %d reached for %s", max_depth, key)
                continue

            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Using cached import: %s", key)
                results.append(cached)
                continue

            if deadline is not None and time.monotonic() > deadline:
                if is_root:
                    raise ImportDeadlineExceeded(f"Deadline passed before reading {key}")
                logger.warning("Import deadline passed, stopping at %s", key)
                break

            try:
                content = frame.path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                if is_root:
                    logger.error("Failed to resolve imports for %s: %s", key, e)
                    raise
                logger.warning("Failed to read import %s: %s", key, e)
                continue

            node = ImportedContent(
                path=key,
                content=content,
                depth=frame.depth,
                timestamp=_now_ms(),
                metadata=self._parse_frontmatter(frame.path, content),
            )
            self._cache[key] = node
            results.append(node)

            tokens = find_import_tokens(content)
            if tokens:
                self._graph[key] = dict.fromkeys(tokens)

            visited = frame.visited | {key}
            children: list[_Frame] = []
            for token in tokens:
                try:
                    target = self._resolve_token(token, base)
                    if target.suffix.lower() not in extensions:
                        logger.warning("Skipping file with disallowed extension: %s", target)
                        continue
                    if not target.exists():
                        logger.warning(
                            "Failed to resolve import %s: %s does not exist", token, target
                        )
                        continue
                except (OSError, ValueError) as e:
                    # e.g. ENAMETOOLONG, or EACCES on a parent directory
                    logger.warning("Failed to resolve import %s: %s", token, e)
                    continue
                children.append(_Frame(target, frame.depth + 1, visited))
            # Reversed so the first declared import is popped first.
            stack.extend(reversed(children))

        logger.info("Resolved %d imports for %s", len(results), root)
        return results

    def _resolve_token(self, token: str, base: Path) -> Path:
        target = Path(token).expanduser()
        if not target.is_absolute():
            target = base / target
        return target.resolve()

    def _parse_frontmatter(self, path: Path, content: str) -> dict:
        """Parse YAML frontmatter from a markdown file."""
        if path.suffix.lower() not in _FRONTMATTER_SUFFIXES:
            return {}
        try:
            return dict(frontmatter.loads(content).metadata)
        except Exception:
            return {}

    # ── Cache & dependency graph ──────────────────────────────

    def get_dependencies(self, path: str | Path) -> list[str]:
        """Raw import tokens found in `path` when it was last resolved."""
        key = str(Path(path).expanduser().resolve())
        return list(self._graph.get(key, {}))

    def generate_dependency_graph(self) -> dict[str, list[str]]:
        return {path: list(deps) for path, deps in self._graph.items()}

    def clear_cache(self) -> None:
        self._cache.clear()
        self._graph.clear()
        logger.debug("Import cache cleared")

    def get_cache_stats(self) -> dict:
        return {"size": len(self._cache), "files": list(self._cache)}

    # ── Validation ────────────────────────────────────────────

    def validate_import_syntax(self, content: str) -> tuple[bool, list[str]]:
        """Check import tokens for common mistakes without touching the disk."""
        errors: list[str] = []
        for token in find_import_tokens(content, include_http=True):
            if "\\" in token:
                errors.append(f"Invalid Windows path separator in import: {token}")
            if token.startswith("http:"):
                errors.append(f"Insecure HTTP import detected: {token}")
        return not errors, errors
