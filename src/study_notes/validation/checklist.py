import logging
import re
from dataclasses import dataclass, field

from study_notes.notes.document import (
    CONTENT_BODY_TITLE,
    KEY_TERMS_TITLE,
    MANDATORY_SECTIONS,
    QUESTION_CATEGORIES,
    REVIEW_QUESTIONS_TITLE,
    SUMMARY_TITLE,
)

logger = logging.getLogger(__name__)

SUMMARY_MIN_PARAGRAPHS = 3
SUMMARY_MAX_PARAGRAPHS = 5
REVIEW_MIN_QUESTIONS = 5
REVIEW_MAX_QUESTIONS = 10

_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_H2_RE = re.compile(r"^##\s+(.+?)\s*#*\s*$")
_H3_RE = re.compile(r"^###\s+(.+?)\s*#*\s*$")
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+\S")
_KEY_TERM_RE = re.compile(r"^\s*[-*+]\s+(?:\*\*[^*\s][^*]*\*\*|__[^_\s][^_]*__)")
_KEY_TERM_DEFINED_RE = re.compile(r"^\s*[-*+]\s+(?:\*\*[^*]+\*\*|__[^_]+__)\s*(?:[:\-]\s*)?[^\s:]")
_EMOJI_RE = re.compile(
    "["
    "\U0001f300-\U0001faff"
    "\U0000231a-\U0000231b"
    "\U00002328\U000023cf"
    "\U000023e9-\U000023f3"
    "\U000023f8-\U000023fa"
    "\U00002600-\U000027bf"
    "\U00002b05-\U00002b07"
    "\U00002b1b-\U00002b1c"
    "\U00002b50\U00002b55"
    "\U00003030\U0000303d\U00003297\U00003299"
    "\U0001f000-\U0001f2ff"
    "\U0000fe0f"
    "]"
)
_FORMAL_NOTATION_RE = re.compile(r"\$\$|\\\[|\\begin\{|\\frac|\\sum|\\forall|\\exists|[∀∃∑∫∈⊆⇒⟹]")


@dataclass(frozen=True)
class ValidationReport:
    passed: bool
    violations: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def as_meta(self) -> dict:
        return {
            "validation_passed": self.passed,
            "validation_violations": self.violations,
            "validation_warnings": self.warnings,
        }


class FormattingValidator:
    """Checks an assembled study-note document against the fixed checklist."""

    def validate(self, markdown: str, allow_formal_notation: bool = True) -> ValidationReport:
        sections = self._split_sections(markdown)
        violations: list[str] = []
        violations.extend(self._check_section_order([title for title, _ in sections]))

        bodies = {title: body for title, body in sections}
        if SUMMARY_TITLE in bodies:
            violations.extend(self._check_summary(bodies[SUMMARY_TITLE]))
        if KEY_TERMS_TITLE in bodies:
            violations.extend(self._check_key_terms(bodies[KEY_TERMS_TITLE]))
        if CONTENT_BODY_TITLE in bodies and not self._strip_code(bodies[CONTENT_BODY_TITLE]).strip():
            violations.append("content_body_empty")
        if REVIEW_QUESTIONS_TITLE in bodies:
            violations.extend(self._check_review_questions(bodies[REVIEW_QUESTIONS_TITLE]))
        if _EMOJI_RE.search(markdown):
            violations.append("tone_emoji_present")

        warnings: list[str] = []
        if not allow_formal_notation and CONTENT_BODY_TITLE in bodies:
            if _FORMAL_NOTATION_RE.search(bodies[CONTENT_BODY_TITLE]):
                warnings.append("content_body_formal_notation")

        report = ValidationReport(passed=not violations, violations=violations, warnings=warnings)
        logger.info(
            "validation.result passed=%s violations=%s warnings=%s",
            report.passed,
            ",".join(violations) or "none",
            ",".join(warnings) or "none",
        )
        return report

    @staticmethod
    def _split_sections(markdown: str) -> list[tuple[str, str]]:
        sections: list[tuple[str, list[str]]] = []
        in_fence = False
        for line in markdown.splitlines():
            if _FENCE_RE.match(line):
                in_fence = not in_fence
            match = _H2_RE.match(line) if not in_fence else None
            if match:
                sections.append((match.group(1).strip(), []))
                continue
            if sections:
                sections[-1][1].append(line)
        return [(title, "\n".join(lines)) for title, lines in sections]

    @staticmethod
    def _check_section_order(titles: list[str]) -> list[str]:
        violations: list[str] = []
        for title in MANDATORY_SECTIONS:
            count = titles.count(title)
            if count == 0:
                violations.append(f"missing_section:{title}")
            elif count > 1:
                violations.append(f"duplicate_section:{title}")
        if violations:
            return violations
        if tuple(titles[: len(MANDATORY_SECTIONS)]) != MANDATORY_SECTIONS:
            violations.append("section_order")
        return violations

    def _check_summary(self, body: str) -> list[str]:
        paragraphs = [block for block in re.split(r"\n\s*\n", self._strip_code(body)) if block.strip()]
        if not SUMMARY_MIN_PARAGRAPHS <= len(paragraphs) <= SUMMARY_MAX_PARAGRAPHS:
            return [f"summary_paragraphs:{len(paragraphs)}"]
        return []

    def _check_key_terms(self, body: str) -> list[str]:
        entries = [line for line in self._strip_code(body).splitlines() if _LIST_ITEM_RE.match(line)]
        if not entries:
            return ["key_terms_empty"]
        unformatted = [line for line in entries if not _KEY_TERM_RE.match(line)]
        if unformatted:
            return [f"key_terms_not_emphasized:{len(unformatted)}"]
        undefined = [line for line in entries if not _KEY_TERM_DEFINED_RE.match(line)]
        if undefined:
            return [f"key_terms_undefined:{len(undefined)}"]
        return []

    def _check_review_questions(self, body: str) -> list[str]:
        groups: list[tuple[str, int]] = []
        for line in self._strip_code(body).splitlines():
            match = _H3_RE.match(line)
            if match:
                groups.append((match.group(1).strip().lower(), 0))
                continue
            if groups and _LIST_ITEM_RE.match(line):
                title, count = groups[-1]
                groups[-1] = (title, count + 1)

        violations: list[str] = []
        expected = [category.value for category in QUESTION_CATEGORIES]
        if [title for title, _ in groups] != expected:
            violations.append("question_categories")
        for title, count in groups:
            if title in expected and count == 0:
                violations.append(f"question_category_empty:{title}")
        total = sum(count for _, count in groups)
        if not REVIEW_MIN_QUESTIONS <= total <= REVIEW_MAX_QUESTIONS:
            violations.append(f"question_count:{total}")
        return violations

    @staticmethod
    def _strip_code(text: str) -> str:
        kept: list[str] = []
        in_fence = False
        for line in text.splitlines():
            if _FENCE_RE.match(line):
                in_fence = not in_fence
                continue
            if not in_fence:
                kept.append(line)
        return "\n".join(kept)
