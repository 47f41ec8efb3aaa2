"""Configuration loading from environment variables and recollect.toml."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_CONFIG_FILENAME = "recollect.toml"

DEFAULT_EXTENSIONS = [".md", ".txt", ".yaml", ".yml", ".json"]


@dataclass
class ImportConfig:
    """Import resolution limits."""

    max_depth: int = 5
    allowed_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    timeout: float | None = None


@dataclass
class IndexConfig:
    """Semantic index defaults."""

    dimensions: int = 384
    stemming: bool = True
    max_results: int = 20
    min_relevance_score: float = 0.1


@dataclass
class LinterConfig:
    """Quality linter settings."""

    disabled_rules: list[str] = field(default_factory=list)
    min_score: float | None = None


@dataclass
class RecollectConfig:
    """Top-level engine configuration."""

    imports: ImportConfig = field(default_factory=ImportConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    linter: LinterConfig = field(default_factory=LinterConfig)
    log_level: str = "INFO"


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _optional_float(value) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def load_config(config_path: Path | None = None) -> RecollectConfig:
    """Load configuration from environment variables and optional recollect.toml.

    Priority: environment variables > recollect.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.recollect/
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".recollect" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    imports_data = file_data.get("imports", {})
    index_data = file_data.get("index", {})
    linter_data = file_data.get("linter", {})

    extensions_env = os.getenv("RECOLLECT_ALLOWED_EXTENSIONS")
    disabled_env = os.getenv("RECOLLECT_DISABLED_RULES")

    config = RecollectConfig(
        imports=ImportConfig(
            max_depth=int(os.getenv("RECOLLECT_MAX_DEPTH", imports_data.get("max_depth", 5))),
            allowed_extensions=(
                _split_list(extensions_env)
                if extensions_env
                else list(imports_data.get("allowed_extensions", DEFAULT_EXTENSIONS))
            ),
            timeout=_optional_float(
                os.getenv("RECOLLECT_IMPORT_TIMEOUT", imports_data.get("timeout"))
            ),
        ),
        index=IndexConfig(
            dimensions=int(os.getenv("RECOLLECT_DIMENSIONS", index_data.get("dimensions", 384))),
            stemming=bool(index_data.get("stemming", True)),
            max_results=int(
                os.getenv("RECOLLECT_MAX_RESULTS", index_data.get("max_results", 20))
            ),
            min_relevance_score=float(
                os.getenv("RECOLLECT_MIN_SCORE", index_data.get("min_relevance_score", 0.1))
            ),
        ),
        linter=LinterConfig(
            disabled_rules=(
                _split_list(disabled_env)
                if disabled_env
                else list(linter_data.get("disabled_rules", []))
            ),
            min_score=_optional_float(linter_data.get("min_score")),
        ),
        log_level=os.getenv("RECOLLECT_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
