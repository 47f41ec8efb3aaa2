"""Memory quality linter.

Scores free-form memory text and reports actionable issues before it is
indexed. Rules are plain descriptors (`LintRule`) kept in an ordered registry;
each rule id maps to a check function in a per-instance dispatch table, so
callers can register their own rules without subclassing.

Score = 100 - 10/error - 5/warning - 1/info + 20 * overall quality, where
overall quality is the mean of four sub-scores (specificity, clarity,
completeness, relevance), each in [0, 1]. The result is clamped to [0, 100].
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Literal

from recollect.memory.imports import find_import_tokens

if TYPE_CHECKING:
    from recollect.config import LinterConfig

logger = logging.getLogger(__name__)

Severity = Literal["error", "warning", "info"]
Category = Literal["structure", "content", "style", "performance"]
RuleScope = Literal["memory", "claude_file"]

SEVERITY_PENALTY = {"error": 10, "warning": 5, "info": 1}
METRICS_BONUS = 20

VAGUE_PHRASES = [
    "format code properly",
    "do it right",
    "make it better",
    "fix the issue",
    "handle this",
    "improve performance",
    "optimize this",
]
VAGUE_WORDS = ["thing", "stuff", "something", "etc", "various"]
UNCLEAR_PRONOUNS = ["this", "that", "it", "they"]
TECH_TERMS = ["config", "api", "function", "command", "error", "test", "build", "deploy"]
ACTION_WORDS = ["use", "run", "set", "configure", "install", "update", "create"]
CLAUDE_SECTIONS = ["Build and Development Commands", "Core Architecture"]
CLAUDE_HEADER = "# CLAUDE.md"

_SENTENCE_RE = re.compile(r"[.!?]+")
_COMMAND_RE = re.compile(r"^[a-z]+\s+[a-z]+")
# Plain substrings, so "show" counts as "how" and "different" as "if".
_WHEN_RE = re.compile(r"when|if|while|during|after|before", re.IGNORECASE)
_WHY_RE = re.compile(r"because|since|due to|reason|purpose", re.IGNORECASE)
_HOW_RE = re.compile(r"how|method|way|process|step", re.IGNORECASE)
_EXAMPLE_RE = re.compile(r"example|e\.g\.|for instance|such as|like this|```")
_NEEDS_EXAMPLE_RE = re.compile(r"command|function|api|config|setup|install")


@dataclass
class LintRule:
    id: str
    name: str
    description: str
    severity: Severity
    category: Category
    enabled: bool = True
    scope: RuleScope = "memory"


@dataclass
class LintIssue:
    rule_id: str
    severity: Severity
    message: str
    suggestion: str | None = None
    line: int | None = None
    context: str | None = None


@dataclass
class LintSummary:
    errors: int = 0
    warnings: int = 0
    infos: int = 0


@dataclass
class LintResult:
    content: str
    issues: list[LintIssue]
    score: float
    summary: LintSummary
    file_path: str = "unknown"


@dataclass
class QualityMetrics:
    specificity: float
    clarity: float
    completeness: float
    relevance: float
    overall: float = field(init=False)

    def __post_init__(self) -> None:
        self.overall = (self.specificity + self.clarity + self.completeness + self.relevance) / 4


RuleCheck = Callable[[str, LintRule], list[LintIssue]]


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _summarize(issues: list[LintIssue]) -> LintSummary:
    counts = Counter(issue.severity for issue in issues)
    return LintSummary(errors=counts["error"], warnings=counts["warning"], infos=counts["info"])


# ── Built-in rule checks ──────────────────────────────────────


def check_specificity(content: str, rule: LintRule) -> list[LintIssue]:
    lower = content.lower()
    return [
        LintIssue(
            rule_id=rule.id,
            severity=rule.severity,
            message=f'Vague phrase detected: "{phrase}". Be more specific.',
            suggestion=f'Instead of "{phrase}", specify exact actions, values, or methods.',
        )
        for phrase in VAGUE_PHRASES
        if phrase in lower
    ]


def check_length(content: str, rule: LintRule) -> list[LintIssue]:
    if len(content) < 10:
        return [
            LintIssue(
                rule_id=rule.id,
                severity="warning",
                message="Memory entry is very short and may lack context",
                suggestion="Add more detail to provide sufficient context",
            )
        ]
    if len(content) > 1000:
        return [
            LintIssue(
                rule_id=rule.id,
                severity=rule.severity,
                message="Memory entry is very long and may be hard to process",
                suggestion="Consider breaking this into smaller, focused entries",
            )
        ]
    return []


def check_clarity(content: str, rule: LintRule) -> list[LintIssue]:
    issues = []
    for sentence in _SENTENCE_RE.split(content):
        sentence = sentence.strip()
        if len(sentence) > 150:
            issues.append(
                LintIssue(
                    rule_id=rule.id,
                    severity=rule.severity,
                    message="Long sentence detected that may be hard to understand",
                    context=sentence[:100] + "...",
                    suggestion="Break long sentences into shorter, clearer ones",
                )
            )

    for pronoun in UNCLEAR_PRONOUNS:
        hits = re.findall(rf"\b{pronoun}\b", content, re.IGNORECASE)
        if len(hits) > 3:
            issues.append(
                LintIssue(
                    rule_id=rule.id,
                    severity="info",
                    message=f'Frequent use of pronoun "{pronoun}" may reduce clarity',
                    suggestion="Replace some pronouns with specific nouns for clarity",
                )
            )
    return issues


def check_duplicate_content(content: str, rule: LintRule) -> list[LintIssue]:
    words = content.lower().split()
    phrases = Counter(" ".join(words[i : i + 3]) for i in range(len(words) - 2))
    return [
        LintIssue(
            rule_id=rule.id,
            severity=rule.severity,
            message=f'Repeated phrase detected: "{phrase}"',
            suggestion="Remove or rephrase repeated content",
        )
        for phrase, count in phrases.items()
        if count > 2 and len(phrase) > 10
    ]


def check_command_format(content: str, rule: LintRule) -> list[LintIssue]:
    issues = []
    for number, raw in enumerate(content.split("\n"), start=1):
        line = raw.strip()
        if not _COMMAND_RE.match(line) or "`" in line:
            continue
        if any(tool in line for tool in ("npm", "git", "node")):
            issues.append(
                LintIssue(
                    rule_id=rule.id,
                    severity=rule.severity,
                    message="Command should be formatted with backticks",
                    line=number,
                    context=line,
                    suggestion=(
                        f"Use `{line}` for inline commands or "
                        f"```bash\n{line}\n``` for code blocks"
                    ),
                )
            )
    return issues


def check_context_completeness(content: str, rule: LintRule) -> list[LintIssue]:
    has_context = any(p.search(content) for p in (_WHEN_RE, _WHY_RE, _HOW_RE))
    if has_context or len(content) <= 50:
        return []
    return [
        LintIssue(
            rule_id=rule.id,
            severity=rule.severity,
            message="Entry lacks context about when, why, or how this applies",
            suggestion=(
                "Add context about when to use this information, "
                "why it's important, or how to apply it"
            ),
        )
    ]


def check_import_syntax(content: str, rule: LintRule) -> list[LintIssue]:
    issues = []
    for token in find_import_tokens(content, include_http=True):
        if "\\" in token:
            issues.append(
                LintIssue(
                    rule_id=rule.id,
                    severity=rule.severity,
                    message=f"Import path uses backslashes: {token}",
                    suggestion="Use forward slashes for import paths",
                )
            )
        if token.startswith("http:"):
            issues.append(
                LintIssue(
                    rule_id=rule.id,
                    severity=rule.severity,
                    message=f"Insecure HTTP import: {token}",
                    suggestion="Use HTTPS for external imports",
                )
            )
    return issues


def check_claude_structure(content: str, rule: LintRule) -> list[LintIssue]:
    issues = []
    for section in CLAUDE_SECTIONS:
        if f"## {section}" in content or f"# {section}" in content:
            continue
        issues.append(
            LintIssue(
                rule_id=rule.id,
                severity=rule.severity,
                message=f"Missing recommended section: {section}",
                suggestion=f'Add a "## {section}" section to improve guidance',
            )
        )
    return issues


def check_claude_header(content: str, rule: LintRule) -> list[LintIssue]:
    if content.startswith(CLAUDE_HEADER):
        return []
    return [
        LintIssue(
            rule_id=rule.id,
            severity=rule.severity,
            message=f'CLAUDE.md file should start with "{CLAUDE_HEADER}" header',
            suggestion=f'Add "{CLAUDE_HEADER}" as the first line',
        )
    ]


DEFAULT_RULES: list[tuple[LintRule, RuleCheck]] = [
    (
        LintRule("specificity-check", "Specificity Check",
                 "Ensures memory entries are specific rather than general",
                 "warning", "content"),
        check_specificity,
    ),
    (
        LintRule("length-check", "Length Check",
                 "Checks if memory entry length is appropriate", "info", "content"),
        check_length,
    ),
    (
        LintRule("clarity-check", "Clarity Check",
                 "Ensures memory entries are clear and understandable", "warning", "content"),
        check_clarity,
    ),
    (
        LintRule("duplicate-content", "Duplicate Content Check",
                 "Identifies repeated phrases within an entry", "warning", "content"),
        check_duplicate_content,
    ),
    (
        LintRule("command-format", "Command Format Check",
                 "Validates command and code formatting", "info", "style"),
        check_command_format,
    ),
    (
        LintRule("context-completeness", "Context Completeness",
                 "Ensures entries have sufficient context", "warning", "content"),
        check_context_completeness,
    ),
    (
        LintRule("import-syntax", "Import Syntax Check",
                 "Validates @import syntax in CLAUDE.md files", "error", "structure",
                 scope="claude_file"),
        check_import_syntax,
    ),
    (
        LintRule("claude-structure", "CLAUDE.md Structure",
                 "Checks for recommended CLAUDE.md sections", "warning", "structure",
                 scope="claude_file"),
        check_claude_structure,
    ),
    (
        LintRule("claude-header", "CLAUDE.md Header",
                 'Requires the "# CLAUDE.md" title line', "error", "structure",
                 scope="claude_file"),
        check_claude_header,
    ),
]


# ── Quality metrics ───────────────────────────────────────────


def measure_specificity(content: str) -> float:
    score = 0.5
    if re.search(r"\d+", content):
        score += 0.1
    if re.search(r"`[^`]+`", content):
        score += 0.1
    if re.search(r"https?://", content):
        score += 0.1
    if re.search(r"\.[a-z]{2,4}\b", content, re.IGNORECASE):
        score += 0.1
    if re.search(r'"[^"]+"', content):
        score += 0.1

    lower = content.lower()
    for word in VAGUE_WORDS:
        if word in lower:
            score -= 0.05
    return _clamp(score)


def measure_clarity(content: str) -> float:
    score = 0.7
    sentences = _SENTENCE_RE.split(content)
    avg_sentence = sum(len(s) for s in sentences) / len(sentences)
    if avg_sentence < 50:
        score += 0.2
    elif avg_sentence > 100:
        score -= 0.2

    complex_words = re.findall(r"\b\w{10,}\b", content)
    if len(complex_words) > len(re.split(r"\s+", content)) * 0.1:
        score -= 0.1
    return _clamp(score)


def measure_completeness(content: str) -> float:
    lower = content.lower()
    score = 0.5
    if "example" in lower or "e.g." in lower:
        score += 0.2
    if "because" in lower or "why" in lower:
        score += 0.1
    if "when" in lower or "if" in lower:
        score += 0.1
    if "how" in lower or "step" in lower:
        score += 0.1
    score += min(0.1, len(content) / 2000)
    return _clamp(score)


def measure_relevance(content: str) -> float:
    lower = content.lower()
    score = 0.6
    score += sum(1 for term in TECH_TERMS if term in lower) * 0.05
    score += sum(1 for word in ACTION_WORDS if word in lower) * 0.03
    return _clamp(score)


def has_examples(content: str) -> bool:
    return bool(_EXAMPLE_RE.search(content.lower()))


def should_have_examples(content: str) -> bool:
    return bool(_NEEDS_EXAMPLE_RE.search(content.lower())) and len(content) > 100


class MemoryLinter:
    """Rule-based quality gate for memory entries."""

    def __init__(self) -> None:
        self._rules: dict[str, LintRule] = {}
        self._checks: dict[str, RuleCheck] = {}
        # Default acceptance threshold for gated callers such as quick capture.
        self.min_score: float | None = None
        for rule, check in DEFAULT_RULES:
            # Copies so toggling a rule never leaks into other instances.
            self.add_rule(LintRule(**vars(rule)), check)

    @classmethod
    def from_config(cls, config: LinterConfig) -> MemoryLinter:
        linter = cls()
        linter.min_score = config.min_score
        for rule_id in config.disabled_rules:
            if not linter.set_rule_enabled(rule_id, False):
                logger.warning("Unknown lint rule in config: %s", rule_id)
        return linter

    # ── Registry ──────────────────────────────────────────────

    def add_rule(self, rule: LintRule, check: RuleCheck | None = None) -> None:
        """Register (or replace) a rule. A rule without a check never fires."""
        self._rules[rule.id] = rule
        if check is not None:
            self._checks[rule.id] = check
        logger.debug("Added rule: %s", rule.id)

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> bool:
        rule = self._rules.get(rule_id)
        if rule is None:
            return False
        rule.enabled = enabled
        logger.debug("Rule %s %s", rule_id, "enabled" if enabled else "disabled")
        return True

    def get_rule(self, rule_id: str) -> LintRule | None:
        return self._rules.get(rule_id)

    def get_rules(self) -> list[LintRule]:
        return list(self._rules.values())

    # ── Linting ───────────────────────────────────────────────

    def _run_rules(self, content: str, scope: RuleScope) -> list[LintIssue]:
        issues: list[LintIssue] = []
        for rule in self._rules.values():
            if not rule.enabled or rule.scope != scope:
                continue
            check = self._checks.get(rule.id)
            if check is None:
                logger.debug("No check registered for rule %s", rule.id)
                continue
            try:
                issues.extend(check(content, rule))
            except Exception as e:
                logger.error("Lint rule %s failed: %s", rule.id, e)
        return issues

    def lint_memory(self, content: str, file_path: str | None = None) -> LintResult:
        issues = self._run_rules(content, "memory")
        result = LintResult(
            content=content,
            issues=issues,
            score=self.calculate_quality_score(content, issues),
            summary=_summarize(issues),
            file_path=file_path or "unknown",
        )
        logger.debug(
            "Linted memory content (%s): score=%.1f, %d issues",
            result.file_path, result.score, len(issues),
        )
        return result

    def lint_claude_file(self, path: str | Path) -> LintResult:
        """Lint a CLAUDE.md file: memory rules plus import and structure rules."""
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error("Failed to lint CLAUDE.md file %s: %s", path, e)
            raise
        result = self.lint_memory(content, str(path))
        result.issues.extend(self._run_rules(content, "claude_file"))
        result.summary = _summarize(result.issues)
        result.score = self.calculate_quality_score(content, result.issues)
        return result

    def lint_batch(self, entries: list[tuple[str, str]]) -> dict[str, LintResult]:
        """Lint `(id, content)` pairs. Entries that fail are logged and left out."""
        results: dict[str, LintResult] = {}
        for entry_id, content in entries:
            try:
                results[entry_id] = self.lint_memory(content)
            except Exception as e:
                logger.warning("Failed to lint memory entry %s: %s", entry_id, e)
        logger.info("Batch linted %d memory entries", len(results))
        return results

    # ── Scoring ───────────────────────────────────────────────

    def calculate_quality_metrics(self, content: str) -> QualityMetrics:
        return QualityMetrics(
            specificity=measure_specificity(content),
            clarity=measure_clarity(content),
            completeness=measure_completeness(content),
            relevance=measure_relevance(content),
        )

    def calculate_quality_score(self, content: str, issues: list[LintIssue]) -> float:
        score = 100.0 - sum(SEVERITY_PENALTY.get(issue.severity, 0) for issue in issues)
        score += self.calculate_quality_metrics(content).overall * METRICS_BONUS
        return _clamp(score, 0.0, 100.0)

    def get_suggestions(self, content: str) -> list[str]:
        suggestions = []
        metrics = self.calculate_quality_metrics(content)

        if metrics.specificity < 0.6:
            suggestions.append(
                "Be more specific: Include exact values, commands, or paths "
                "instead of general descriptions"
            )
        if metrics.clarity < 0.6:
            suggestions.append("Improve clarity: Use simpler language and shorter sentences")
        if metrics.completeness < 0.6:
            suggestions.append(
                "Add more context: Include why this information is important or when it applies"
            )
        if metrics.relevance < 0.6:
            suggestions.append(
                "Make it actionable: Name the tool, command, or setting this applies to"
            )
        if len(content) < 20:
            suggestions.append("Add more detail: Very short entries may lack important context")
        if len(content) > 500:
            suggestions.append("Consider breaking this into smaller, focused entries")
        if not has_examples(content) and should_have_examples(content):
            suggestions.append("Add examples: Include code snippets or concrete examples")
        return suggestions
