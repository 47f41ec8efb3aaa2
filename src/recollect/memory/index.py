"""Semantic index — inverted postings plus pseudo-embedding ranking.

Each indexed memory keeps its keywords, entities and a fixed-length vector.
Two posting maps (keyword -> ids, entity -> ids) pick candidates for a query;
candidates are then ranked by a weighted mix of vector cosine, keyword
Jaccard, entity precision, exact-phrase match and recency.

An id sits in a posting set only while its current content contains the
term. Mutations drop the old postings before writing new ones.
"""

from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from recollect.memory.text import (
    DEFAULT_DIMENSIONS,
    Embedder,
    HashEmbedder,
    cosine_similarity,
    extract_entities,
    extract_keywords,
    split_sentences,
    stem,
)

if TYPE_CHECKING:
    from recollect.config import IndexConfig

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0.0"

DAY_MS = 24 * 60 * 60 * 1000
RECENT_SCOPE_MS = 7 * DAY_MS
RECENCY_DECAY_MS = 30 * DAY_MS
TRENDING_MIN_COUNT = 3
TRENDING_LIMIT = 20

WEIGHT_SEMANTIC = 0.4
WEIGHT_KEYWORD = 0.3
WEIGHT_ENTITY = 0.15
WEIGHT_PHRASE = 0.1
WEIGHT_RECENCY = 0.05
HIGH_PRIORITY_BOOST = 1.2

SearchScope = Literal["all", "recent", "important"]


class MemoryNotFoundError(KeyError):
    """No memory with the given id is indexed."""

    def __init__(self, memory_id: str) -> None:
        super().__init__(memory_id)
        self.memory_id = memory_id

    def __str__(self) -> str:
        return f"Memory not found: {self.memory_id}"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class MemoryIndexEntry:
    """The indexed unit."""

    id: str
    content: str
    vector: list[float]
    keywords: list[str]
    entities: list[str]
    metadata: dict
    timestamp: int
    source: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> MemoryIndexEntry:
        return cls(
            id=data["id"],
            content=data["content"],
            vector=list(data.get("vector", data.get("vectors", []))),
            keywords=list(data.get("keywords", [])),
            entities=list(data.get("entities", [])),
            metadata=dict(data.get("metadata") or {}),
            timestamp=int(data.get("timestamp", 0)),
            source=data.get("source", "unknown"),
        )


@dataclass
class SearchOptions:
    max_results: int = 20
    min_relevance_score: float = 0.1
    include_context: bool = True
    search_scope: SearchScope = "all"
    time_range: tuple[int, int] | None = None  # (start_ms, end_ms), inclusive


@dataclass
class SearchResult:
    id: str
    content: str
    relevance_score: float
    metadata: dict = field(default_factory=dict)
    source: str = "unknown"
    timestamp: int = 0
    context: str | None = None


@dataclass
class TrendingKeyword:
    keyword: str
    count: int
    trend: float


def _is_important(metadata: dict) -> bool:
    return metadata.get("priority") == "high" or bool(metadata.get("important"))


def keyword_relevance(query_keywords: list[str], memory_keywords: list[str]) -> float:
    """Jaccard similarity of the two keyword sets."""
    if not query_keywords or not memory_keywords:
        return 0.0
    query_set = {k.lower() for k in query_keywords}
    memory_set = {k.lower() for k in memory_keywords}
    return len(query_set & memory_set) / len(query_set | memory_set)


def entity_relevance(query_entities: list[str], memory_entities: list[str]) -> float:
    """Fraction of the query's entities present in the memory."""
    if not query_entities or not memory_entities:
        return 0.0
    query_set = {e.lower() for e in query_entities}
    memory_set = {e.lower() for e in memory_entities}
    return len(query_set & memory_set) / len(query_set)


class SemanticIndex:
    """In-memory semantic index. One instance per isolated store."""

    def __init__(
        self,
        dimensions: int = DEFAULT_DIMENSIONS,
        embedder: Embedder | None = None,
        stemming: bool = True,
        default_options: SearchOptions | None = None,
    ) -> None:
        self.dimensions = dimensions
        self.stemming = stemming
        self._embed = embedder or HashEmbedder(dimensions, stem_words=stemming)
        self.default_options = default_options or SearchOptions()
        self._entries: dict[str, MemoryIndexEntry] = {}
        self._keyword_postings: dict[str, set[str]] = {}
        self._entity_postings: dict[str, set[str]] = {}

    @classmethod
    def from_config(cls, config: IndexConfig, embedder: Embedder | None = None) -> SemanticIndex:
        return cls(
            dimensions=config.dimensions,
            embedder=embedder,
            stemming=config.stemming,
            default_options=SearchOptions(
                max_results=config.max_results,
                min_relevance_score=config.min_relevance_score,
            ),
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, memory_id: object) -> bool:
        return memory_id in self._entries

    def get(self, memory_id: str) -> MemoryIndexEntry | None:
        return self._entries.get(memory_id)

    # ── Representation ────────────────────────────────────────

    def _keywords(self, text: str) -> list[str]:
        return extract_keywords(text, self.stemming)

    def _vector(self, text: str) -> list[float]:
        vector = list(self._embed(text))
        if len(vector) != self.dimensions:
            raise ValueError(
                f"Embedder returned {len(vector)} dimensions, expected {self.dimensions}"
            )
        return vector

    # ── Mutation ──────────────────────────────────────────────

    def index_memory(
        self,
        memory_id: str,
        content: str,
        metadata: dict | None = None,
        source: str = "unknown",
    ) -> MemoryIndexEntry:
        """Index (or re-index) a memory and update the postings."""
        keywords = self._keywords(content)
        entities = extract_entities(content)
        entry = MemoryIndexEntry(
            id=memory_id,
            content=content,
            vector=self._vector(content),
            keywords=keywords,
            entities=entities,
            metadata=dict(metadata or {}),
            timestamp=_now_ms(),
            source=source,
        )

        previous = self._entries.get(memory_id)
        if previous is not None:
            self._remove_postings(previous)
        self._entries[memory_id] = entry
        self._add_postings(entry)

        logger.debug(
            "Indexed memory %s (%d keywords, %d entities)", memory_id, len(keywords), len(entities)
        )
        return entry

    def update_memory(
        self, memory_id: str, new_content: str, metadata: dict | None = None
    ) -> MemoryIndexEntry:
        existing = self._entries.get(memory_id)
        if existing is None:
            raise MemoryNotFoundError(memory_id)
        merged = {**existing.metadata, **(metadata or {}), "lastModified": _now_ms()}
        return self.index_memory(memory_id, new_content, merged, existing.source)

    def remove_memory(self, memory_id: str) -> None:
        entry = self._entries.get(memory_id)
        if entry is None:
            raise MemoryNotFoundError(memory_id)
        self._remove_postings(entry)
        del self._entries[memory_id]
        logger.debug("Removed memory from index: %s", memory_id)

    def _add_postings(self, entry: MemoryIndexEntry) -> None:
        for keyword in entry.keywords:
            self._keyword_postings.setdefault(keyword.lower(), set()).add(entry.id)
        for entity in entry.entities:
            self._entity_postings.setdefault(entity.lower(), set()).add(entry.id)

    def _remove_postings(self, entry: MemoryIndexEntry) -> None:
        for postings, terms in (
            (self._keyword_postings, entry.keywords),
            (self._entity_postings, entry.entities),
        ):
            for term in terms:
                key = term.lower()
                ids = postings.get(key)
                if ids is None:
                    continue
                ids.discard(entry.id)
                if not ids:
                    del postings[key]

    # ── Search ────────────────────────────────────────────────

    def search(self, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
        """Rank indexed memories against a free-text query."""
        opts = options or self.default_options
        if opts.search_scope not in ("all", "recent", "important"):
            raise ValueError(f"Unknown search scope: {opts.search_scope}")

        query_vector = self._vector(query)
        query_keywords = self._keywords(query)
        query_entities = extract_entities(query)
        now = _now_ms()

        candidates = self._candidates(query_keywords, query_entities, opts, now)
        results: list[SearchResult] = []
        for entry in candidates:
            score = self._relevance(
                query, query_vector, query_keywords, query_entities, entry, now
            )
            if score < opts.min_relevance_score:
                continue
            result = self._to_result(entry, score)
            if opts.include_context:
                result.context = self._context(entry, query_keywords)
            results.append(result)

        results.sort(key=lambda r: r.relevance_score, reverse=True)
        results = results[: opts.max_results]

        avg = sum(r.relevance_score for r in results) / len(results) if results else 0.0
        logger.info(
            "Found %d relevant memories for %r (%d candidates, avg score %.3f)",
            len(results), query, len(candidates), avg,
        )
        return results

    def find_similar(
        self, memory_id: str, options: SearchOptions | None = None
    ) -> list[SearchResult]:
        """Search with a memory's own content. The memory itself is not excluded."""
        entry = self._entries.get(memory_id)
        if entry is None:
            raise MemoryNotFoundError(memory_id)
        base = options or self.default_options
        opts = SearchOptions(
            max_results=base.max_results,
            min_relevance_score=base.min_relevance_score,
            include_context=base.include_context,
            search_scope="all",
            time_range=base.time_range,
        )
        return self.search(entry.content, opts)

    def get_by_keywords(self, keywords: list[str]) -> list[SearchResult]:
        # Normalize like indexed content so "tests" finds the "test" posting.
        terms = [stem(k.lower()) if self.stemming else k.lower() for k in keywords]
        ids = self._lookup(self._keyword_postings, terms)
        results = [
            self._to_result(entry, keyword_relevance(terms, entry.keywords))
            for entry in self._ordered(ids)
        ]
        results.sort(key=lambda r: r.relevance_score, reverse=True)
        return results

    def get_by_entities(self, entities: list[str]) -> list[SearchResult]:
        ids = self._lookup(self._entity_postings, entities)
        results = [
            self._to_result(entry, entity_relevance(entities, entry.entities))
            for entry in self._ordered(ids)
        ]
        results.sort(key=lambda r: r.relevance_score, reverse=True)
        return results

    def get_trending_keywords(self, window_ms: int = 7 * DAY_MS) -> list[TrendingKeyword]:
        """Keywords whose occurrences are concentrated in the trailing window."""
        window_start = _now_ms() - window_ms
        counts: dict[str, list[int]] = {}
        for entry in self._entries.values():
            recent = entry.timestamp >= window_start
            for keyword in entry.keywords:
                tally = counts.setdefault(keyword, [0, 0])
                tally[0] += 1
                if recent:
                    tally[1] += 1

        trending = [
            TrendingKeyword(keyword, total, recent / max(total - recent, 1))
            for keyword, (total, recent) in counts.items()
            if total >= TRENDING_MIN_COUNT
        ]
        trending.sort(key=lambda t: t.trend, reverse=True)
        return trending[:TRENDING_LIMIT]

    def _lookup(self, postings: dict[str, set[str]], terms: list[str]) -> set[str]:
        ids: set[str] = set()
        for term in terms:
            ids |= postings.get(term.lower(), set())
        return ids

    def _ordered(self, ids: set[str]) -> list[MemoryIndexEntry]:
        """Entries for `ids` in index insertion order, so ties sort stably."""
        return [entry for memory_id, entry in self._entries.items() if memory_id in ids]

    def _candidates(
        self,
        query_keywords: list[str],
        query_entities: list[str],
        opts: SearchOptions,
        now: int,
    ) -> list[MemoryIndexEntry]:
        ids = self._lookup(self._keyword_postings, query_keywords)
        ids |= self._lookup(self._entity_postings, query_entities)
        # No term overlap at all: let the vector score decide.
        entries = self._ordered(ids) if ids else list(self._entries.values())

        candidates = []
        for entry in entries:
            if opts.time_range is not None:
                start, end = opts.time_range
                if entry.timestamp < start or entry.timestamp > end:
                    continue
            if opts.search_scope == "recent" and now - entry.timestamp > RECENT_SCOPE_MS:
                continue
            if opts.search_scope == "important" and not _is_important(entry.metadata):
                continue
            candidates.append(entry)
        return candidates

    def _relevance(
        self,
        query: str,
        query_vector: list[float],
        query_keywords: list[str],
        query_entities: list[str],
        entry: MemoryIndexEntry,
        now: int,
    ) -> float:
        semantic = cosine_similarity(query_vector, entry.vector)
        keyword = keyword_relevance(query_keywords, entry.keywords)
        entity = entity_relevance(query_entities, entry.entities)
        phrase = 1.0 if query.lower() in entry.content.lower() else 0.0
        age = max(now - entry.timestamp, 0)
        recency = math.exp(-age / RECENCY_DECAY_MS)

        score = (
            semantic * WEIGHT_SEMANTIC
            + keyword * WEIGHT_KEYWORD
            + entity * WEIGHT_ENTITY
            + phrase * WEIGHT_PHRASE
            + recency * WEIGHT_RECENCY
        )
        if entry.metadata.get("priority") == "high":
            score *= HIGH_PRIORITY_BOOST
        return min(max(score, 0.0), 1.0)

    def _context(self, entry: MemoryIndexEntry, query_keywords: list[str]) -> str:
        """The sentence holding the largest share of the query's keywords."""
        sentences = split_sentences(entry.content)
        best, best_score = sentences[0], 0.0
        for sentence in sentences:
            words = self._keywords(sentence)
            matches = sum(1 for w in words if w in query_keywords)
            score = matches / max(len(query_keywords), 1)
            if score > best_score:
                best, best_score = sentence, score
        return best.strip()

    def _to_result(self, entry: MemoryIndexEntry, score: float) -> SearchResult:
        return SearchResult(
            id=entry.id,
            content=entry.content,
            relevance_score=score,
            metadata=dict(entry.metadata),
            source=entry.source,
            timestamp=entry.timestamp,
        )

    # ── Snapshot ──────────────────────────────────────────────

    def get_index_stats(self) -> dict:
        entries = list(self._entries.values())
        return {
            "total_memories": len(entries),
            "total_keywords": len(self._keyword_postings),
            "total_entities": len(self._entity_postings),
            "average_vector_size": (
                sum(len(e.vector) for e in entries) / len(entries) if entries else 0
            ),
            "index_size": len(json.dumps([e.to_dict() for e in entries], ensure_ascii=False)),
        }

    def export_index(self) -> dict:
        """Full JSON-compatible snapshot of entries and postings."""
        return {
            "memories": [entry.to_dict() for entry in self._entries.values()],
            "keywords": {term: sorted(ids) for term, ids in self._keyword_postings.items()},
            "entities": {term: sorted(ids) for term, ids in self._entity_postings.items()},
            "metadata": {"exported": _now_ms(), "version": SNAPSHOT_VERSION},
        }

    def import_index(self, snapshot: dict) -> int:
        """Replace all state with `snapshot`. Returns the number of memories."""
        missing = [key for key in ("memories", "keywords", "entities") if key not in snapshot]
        if missing:
            raise ValueError(f"Invalid index snapshot, missing: {', '.join(missing)}")
        entries = [MemoryIndexEntry.from_dict(m) for m in snapshot["memories"]]

        self._entries = {entry.id: entry for entry in entries}
        self._keyword_postings = {
            term: set(ids) for term, ids in snapshot["keywords"].items() if ids
        }
        self._entity_postings = {
            term: set(ids) for term, ids in snapshot["entities"].items() if ids
        }
        logger.info(
            "Imported search index: %d memories, %d keywords, %d entities",
            len(self._entries), len(self._keyword_postings), len(self._entity_postings),
        )
        return len(self._entries)

    def save_snapshot(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.export_index(), ensure_ascii=False, indent=2), encoding="utf-8"
        )
        logger.info("Saved index snapshot (%d memories) to %s", len(self._entries), path)

    def load_snapshot(self, path: Path) -> int:
        return self.import_index(json.loads(path.read_text(encoding="utf-8")))
