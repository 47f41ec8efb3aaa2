"""Tests for recursive `@path` import resolution."""

from __future__ import annotations

import logging
import time

import pytest
from pathlib import Path

from recollect.memory.imports import (
    ImportDeadlineExceeded,
    ImportResolver,
    find_import_tokens,
)


@pytest.fixture
def resolver() -> ImportResolver:
    return ImportResolver()


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def names(results) -> list[str]:
    return [Path(r.path).name for r in results]


class TestFindImportTokens:
    def test_declaration_order(self):
        assert find_import_tokens("see @a.md then @docs/b.txt") == ["a.md", "docs/b.txt"]

    def test_skips_http(self):
        text = "@https://example.com/x.md and @http://insecure.md and @local.md"
        assert find_import_tokens(text) == ["local.md"]
        assert len(find_import_tokens(text, include_http=True)) == 3

    def test_prose_mentions_count(self):
        assert find_import_tokens("ping @alice about it") == ["alice"]


class TestResolveImports:
    def test_single_file(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "CLAUDE.md", "# Project\nNo imports here.\n")
        results = resolver.resolve_imports(root)
        assert len(results) == 1
        assert results[0].path == str(root.resolve())
        assert results[0].depth == 0
        assert "No imports" in results[0].content

    def test_preorder_declaration_order(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "@a.md\n@b.md\n")
        write(tmp_path / "a.md", "A imports @c.md")
        write(tmp_path / "b.md", "B")
        write(tmp_path / "c.md", "C")

        results = resolver.resolve_imports(root)
        assert names(results) == ["root.md", "a.md", "c.md", "b.md"]
        assert [r.depth for r in results] == [0, 1, 2, 1]

    def test_imports_resolve_against_base_path(self, resolver: ImportResolver, tmp_path: Path):
        # Nested tokens are relative to the root document's directory.
        root = write(tmp_path / "root.md", "@docs/a.md")
        write(tmp_path / "docs" / "a.md", "@docs/b.md")
        write(tmp_path / "docs" / "b.md", "leaf")

        assert names(resolver.resolve_imports(root)) == ["root.md", "a.md", "b.md"]

    def test_explicit_base_path(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "notes" / "root.md", "@shared.md")
        write(tmp_path / "lib" / "shared.md", "shared")

        results = resolver.resolve_imports(root, base_path=tmp_path / "lib")
        assert names(results) == ["root.md", "shared.md"]

    def test_absolute_import(self, resolver: ImportResolver, tmp_path: Path):
        target = write(tmp_path / "elsewhere" / "abs.md", "absolute")
        root = write(tmp_path / "root.md", f"@{target}")
        assert names(resolver.resolve_imports(root)) == ["root.md", "abs.md"]

    def test_cycle_terminates(self, resolver: ImportResolver, tmp_path: Path, caplog):
        a = write(tmp_path / "a.md", "A @b.md")
        write(tmp_path / "b.md", "B @a.md")

        with caplog.at_level(logging.WARNING, logger="recollect.memory.imports"):
            results = resolver.resolve_imports(a)

        assert names(results) == ["a.md", "b.md"]
        assert "Circular import" in caplog.text

    def test_self_import(self, resolver: ImportResolver, tmp_path: Path):
        a = write(tmp_path / "a.md", "me again: @a.md")
        assert names(resolver.resolve_imports(a)) == ["a.md"]

    def test_cycle_does_not_drop_siblings(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "@a.md @c.md")
        write(tmp_path / "a.md", "@root.md")
        write(tmp_path / "c.md", "C")
        assert names(resolver.resolve_imports(root)) == ["root.md", "a.md", "c.md"]

    @pytest.mark.parametrize("chain_length,max_depth", [(3, 5), (6, 2), (4, 0), (5, 4)])
    def test_depth_bound(self, tmp_path: Path, chain_length: int, max_depth: int):
        for i in range(chain_length):
            nxt = f"@f{i + 1}.md" if i + 1 < chain_length else "end"
            write(tmp_path / f"f{i}.md", nxt)

        results = ImportResolver().resolve_imports(tmp_path / "f0.md", max_depth=max_depth)
        assert len(results) == min(chain_length, max_depth + 1)

    def test_depth_warning_logged(self, resolver: ImportResolver, tmp_path: Path, caplog):
        write(tmp_path / "f0.md", "@f1.md")
        write(tmp_path / "f1.md", "end")
        with caplog.at_level(logging.WARNING, logger="recollect.memory.imports"):
            resolver.resolve_imports(tmp_path / "f0.md", max_depth=0)
        assert "Max depth 0" in caplog.text

    def test_missing_and_disallowed_are_skipped(
        self, resolver: ImportResolver, tmp_path: Path, caplog
    ):
        root = write(
            tmp_path / "root.md", "@missing.md @script.py @ok.txt and ping @alice"
        )
        write(tmp_path / "script.py", "print('hi')")
        write(tmp_path / "ok.txt", "fine")

        with caplog.at_level(logging.WARNING, logger="recollect.memory.imports"):
            results = resolver.resolve_imports(root)

        assert names(results) == ["root.md", "ok.txt"]
        assert "disallowed extension" in caplog.text
        assert "does not exist" in caplog.text

    def test_custom_extensions(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "@notes.rst @other.md")
        write(tmp_path / "notes.rst", "rst")
        write(tmp_path / "other.md", "md")
        results = resolver.resolve_imports(root, allowed_extensions=[".rst"])
        assert names(results) == ["root.md", "notes.rst"]

    def test_missing_root_raises(self, resolver: ImportResolver, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            resolver.resolve_imports(tmp_path / "nope.md")

    def test_unreadable_nested_import_is_skipped(self, resolver: ImportResolver, tmp_path: Path):
        # A directory named like a markdown file exists but cannot be read.
        (tmp_path / "dir.md").mkdir()
        root = write(tmp_path / "root.md", "@dir.md @ok.md")
        write(tmp_path / "ok.md", "ok")
        assert names(resolver.resolve_imports(root)) == ["root.md", "ok.md"]

    def test_unresolvable_token_keeps_siblings(
        self, resolver: ImportResolver, tmp_path: Path, caplog
    ):
        # A file name over the 255-byte limit makes the existence check itself fail.
        root = write(tmp_path / "root.md", "see @" + "a" * 300 + ".md and @sib.md")
        write(tmp_path / "sib.md", "sibling")

        with caplog.at_level(logging.WARNING, logger="recollect.memory.imports"):
            results = resolver.resolve_imports(root)

        assert names(results) == ["root.md", "sib.md"]
        assert "Failed to resolve import" in caplog.text

    def test_frontmatter_metadata(self, resolver: ImportResolver, tmp_path: Path):
        root = write(
            tmp_path / "root.md",
            "---\ntitle: Build notes\ntags: [ci]\n---\n\nSee @plain.txt\n",
        )
        write(tmp_path / "plain.txt", "---\nnot: parsed\n---\n")

        results = resolver.resolve_imports(root)
        assert results[0].metadata == {"title": "Build notes", "tags": ["ci"]}
        assert results[0].content.startswith("---")
        assert results[1].metadata == {}


class TestCache:
    def test_diamond_expands_shared_file_once(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "@left.md @right.md")
        write(tmp_path / "left.md", "@shared.md")
        write(tmp_path / "right.md", "@shared.md")
        write(tmp_path / "shared.md", "@leaf.md")
        write(tmp_path / "leaf.md", "leaf")

        results = resolver.resolve_imports(root)
        # Second reference to shared.md returns only the cached node.
        assert names(results) == [
            "root.md", "left.md", "shared.md", "leaf.md", "right.md", "shared.md",
        ]

    def test_cache_shared_across_calls(self, resolver: ImportResolver, tmp_path: Path):
        write(tmp_path / "one.md", "@shared.md")
        write(tmp_path / "two.md", "@shared.md")
        write(tmp_path / "shared.md", "@leaf.md")
        write(tmp_path / "leaf.md", "leaf")

        assert names(resolver.resolve_imports(tmp_path / "one.md")) == [
            "one.md", "shared.md", "leaf.md",
        ]
        assert names(resolver.resolve_imports(tmp_path / "two.md")) == ["two.md", "shared.md"]

    def test_cached_content_survives_file_change(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "v1")
        resolver.resolve_imports(root)
        root.write_text("v2", encoding="utf-8")
        assert resolver.resolve_imports(root)[0].content == "v1"

        resolver.clear_cache()
        assert resolver.resolve_imports(root)[0].content == "v2"

    def test_cache_stats(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "@a.md")
        write(tmp_path / "a.md", "A")
        resolver.resolve_imports(root)
        stats = resolver.get_cache_stats()
        assert stats["size"] == 2
        assert str(root.resolve()) in stats["files"]


class TestDependencies:
    def test_raw_tokens_recorded(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "@a.md @missing.md @a.md")
        write(tmp_path / "a.md", "A")
        resolver.resolve_imports(root)

        assert resolver.get_dependencies(root) == ["a.md", "missing.md"]
        assert resolver.get_dependencies(tmp_path / "a.md") == []

    def test_graph_and_clear(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "@a.md")
        write(tmp_path / "a.md", "A")
        resolver.resolve_imports(root)
        assert resolver.generate_dependency_graph() == {str(root.resolve()): ["a.md"]}

        resolver.clear_cache()
        assert resolver.generate_dependency_graph() == {}
        assert resolver.get_cache_stats()["size"] == 0


class TestDeadline:
    def test_expired_deadline_fails_root(self, resolver: ImportResolver, tmp_path: Path):
        root = write(tmp_path / "root.md", "root")
        with pytest.raises(ImportDeadlineExceeded):
            resolver.resolve_imports(root, deadline=time.monotonic() - 1)

    def test_deadline_mid_resolution_returns_partial(
        self, resolver: ImportResolver, tmp_path: Path, monkeypatch
    ):
        root = write(tmp_path / "root.md", "@a.md")
        write(tmp_path / "a.md", "A")

        clock = iter([0.0, 10.0])
        monkeypatch.setattr(
            "recollect.memory.imports.time.monotonic", lambda: next(clock, 10.0)
        )
        results = resolver.resolve_imports(root, deadline=5.0)
        assert names(results) == ["root.md"]


class TestValidateImportSyntax:
    def test_valid(self, resolver: ImportResolver):
        assert resolver.validate_import_syntax("@docs/a.md @https://x.io/b.md") == (True, [])

    def test_errors(self, resolver: ImportResolver):
        valid, errors = resolver.validate_import_syntax(r"@..\win\path.md @http://plain.md")
        assert not valid
        assert len(errors) == 2
