import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum

SUMMARY_TITLE = "Summary"
KEY_TERMS_TITLE = "Key Terms"
CONTENT_BODY_TITLE = "Content Body"
REVIEW_QUESTIONS_TITLE = "Review Questions"
MANDATORY_SECTIONS = (SUMMARY_TITLE, KEY_TERMS_TITLE, CONTENT_BODY_TITLE, REVIEW_QUESTIONS_TITLE)
_MANDATORY_KEYS = frozenset(title.casefold() for title in MANDATORY_SECTIONS)

_HEADING_RE = re.compile(r"^(#{1,6})(\s+.*)$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


class QuestionCategory(str, Enum):
    RECALL = "recall"
    COMPREHENSION = "comprehension"
    APPLICATION = "application"
    ANALYSIS = "analysis"

    @property
    def heading(self) -> str:
        return self.value.capitalize()


QUESTION_CATEGORIES = tuple(QuestionCategory)


@dataclass(frozen=True)
class KeyTerm:
    term: str
    definition: str

    def to_markdown(self) -> str:
        return f"- **{self.term.strip()}**: {self.definition.strip()}"


@dataclass
class StudyNoteDocument:
    topic: str
    summary: list[str]
    key_terms: list[KeyTerm]
    content_body: str
    review_questions: dict[QuestionCategory, list[str]]
    trailing_sections: list[tuple[str, str]] = field(default_factory=list)

    @property
    def question_count(self) -> int:
        return sum(len(items) for items in self.review_questions.values())

    def to_markdown(self) -> str:
        lines: list[str] = [f"# {self.topic.strip()}", "", f"## {SUMMARY_TITLE}", ""]
        paragraphs = [" ".join(p.split()) for p in self.summary if p.strip()]
        lines.append("\n\n".join(paragraphs))
        lines.extend(["", f"## {KEY_TERMS_TITLE}", ""])
        lines.extend(term.to_markdown() for term in self.key_terms)
        lines.extend(["", f"## {CONTENT_BODY_TITLE}", "", demote_headings(self.content_body.strip()), ""])
        lines.extend([f"## {REVIEW_QUESTIONS_TITLE}", ""])
        number = 1
        for category in QUESTION_CATEGORIES:
            lines.extend([f"### {category.heading}", ""])
            for question in self.review_questions.get(category, []):
                lines.append(f"{number}. {' '.join(question.split())}")
                number += 1
            lines.append("")
        for title, body in self.trailing_sections:
            if is_mandatory_title(title) or not body.strip():
                continue
            lines.extend([f"## {title.strip()}", "", demote_headings(body.strip()), ""])
        return "\n".join(lines).rstrip() + "\n"


def is_mandatory_title(title: str) -> bool:
    return " ".join(title.split()).casefold() in _MANDATORY_KEYS


def demote_headings(text: str, min_level: int = 3) -> str:
    """Push markdown headings in free-form text below section level.

    Lines inside fenced code blocks are left alone.
    """
    out: list[str] = []
    in_fence = False
    for line in text.splitlines():
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            out.append(line)
            continue
        match = _HEADING_RE.match(line) if not in_fence else None
        if match and len(match.group(1)) < min_level:
            line = "#" * min_level + match.group(2)
        out.append(line)
    return "\n".join(out)


def slugify(topic: str) -> str:
    folded = unicodedata.normalize("NFKD", topic).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", folded.lower()).strip("-")
    return slug or "study-notes"
