import logging
import re
from collections.abc import Iterable

from study_notes.notes.request import AudienceLevel, MissingFieldError, StudyNoteRequest

logger = logging.getLogger(__name__)

TRIGGER_PATTERNS = (
    re.compile(
        r"\b(?:create|generate|make|write|produce|prepare|draft|build)\s+(?:some\s+|me\s+)?"
        r"(?:study|revision|review|lecture|exam)\s+(?:notes|materials?|guides?|sheets?)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:study|revision)\s+(?:notes|materials?|guides?)\s+(?:for|on|about|covering)\b", re.IGNORECASE),
    re.compile(r"\bhelp\s+me\s+(?:study|revise)\b", re.IGNORECASE),
)

LEVEL_ALIASES: dict[AudienceLevel, tuple[str, ...]] = {
    AudienceLevel.SECONDARY: (
        r"secondary",
        r"high[\s-]school",
        r"secondary[\s-]school",
        r"gcse",
        r"a-levels?",
        r"k-?12",
        r"teen(?:age)?(?:rs)?",
    ),
    AudienceLevel.UNDERGRADUATE: (
        r"undergrad(?:uate)?s?",
        r"college",
        r"university",
        r"bachelor'?s?",
        r"freshman|sophomore",
    ),
    AudienceLevel.GRADUATE: (
        r"(?<!under-)graduate",
        r"grad\s+(?:school|students?)",
        r"post-?graduate",
        r"master'?s",
        r"ph\.?d",
        r"doctoral",
    ),
    AudienceLevel.PROFESSIONAL: (
        r"professionals?",
        r"practitioners?",
        r"industry",
        r"working\s+(?:engineers|developers|analysts)",
    ),
}
_LEVEL_RES = {
    level: re.compile(r"\b(?:" + "|".join(aliases) + r")\b", re.IGNORECASE) for level, aliases in LEVEL_ALIASES.items()
}

# Phrases that end a topic or an emphasis list.
_ANY_LEVEL = "|".join(alias for aliases in LEVEL_ALIASES.values() for alias in aliases)
_LEVEL_PHRASE = (
    r"(?:for|at|aimed\s+at|targeting|targeted\s+at)\s+(?:an?\s+|the\s+|my\s+|our\s+)?"
    r"(?:" + _ANY_LEVEL + r")\b"
)
_EMPHASIS_START = (
    r"(?:emphasi[sz]ing|emphasis\s+on|focus(?:ing|ed)?\s+on|"
    r"with\s+(?:an?\s+)?(?:emphasis|focus)\s+on|concentrating\s+on)"
)
_SOURCE_START = r"(?:based\s+on|using)\s+(?:the\s+)?(?:following|this)\b"
_SENTENCE_END = r"[.,;:!?](?=\s|$)|\n|$"

_TOPIC_PHRASE_RE = re.compile(
    r"\b(?:study|revision|review|lecture|exam)\s+(?:notes|materials?|guides?|sheets?)\s+"
    r"(?:for|on|about|covering|regarding)\s+(?P<topic>.+?)"
    r"(?=\s+(?:" + "|".join([_LEVEL_PHRASE, _EMPHASIS_START, _SOURCE_START]) + r")|" + _SENTENCE_END + r")",
    re.IGNORECASE,
)
_LABEL_RE = re.compile(
    r"^\s*[-*]?\s*(?P<label>topic|subject|level|audience|audience level|emphasis|focus|focus areas|"
    r"source material|source|sources)\s*:\s*(?P<value>.*)$",
    re.IGNORECASE,
)
_EMPHASIS_PHRASE_RE = re.compile(
    r"\b" + _EMPHASIS_START + r"\s+(?P<value>.+?)"
    r"(?=\s+(?:" + _LEVEL_PHRASE + "|" + _SOURCE_START + r")|[.;!?](?=\s|$)|\n|$)",
    re.IGNORECASE,
)
_SOURCE_PHRASE_RE = re.compile(
    r"\b" + _SOURCE_START + r"\s+(?:source\s+)?(?:material|text|notes)\s*:\s*(?P<value>.+)$",
    re.IGNORECASE | re.DOTALL,
)


def matches_trigger(text: str) -> bool:
    return any(pattern.search(text or "") for pattern in TRIGGER_PATTERNS)


class InputCollector:
    """Extracts a StudyNoteRequest from free text or structured fields.

    Never fabricates a topic or guesses a level: anything that cannot be
    determined is reported through MissingFieldError.
    """

    def collect(self, text: str) -> StudyNoteRequest:
        raw = (text or "").strip()
        labelled, remainder = self._split_labels(raw)

        topic = labelled.get("topic") or self._topic_from_phrase(remainder)
        level_text = labelled.get("level")
        emphasis_text = labelled.get("emphasis")
        source_material = labelled.get("source") or self._source_from_phrase(remainder)

        prose = remainder
        for known in (source_material, topic):
            if known and known in prose:
                prose = prose.replace(known, " ")
        # Emphasis areas never count towards the audience level.
        match = _EMPHASIS_PHRASE_RE.search(prose)
        if match:
            emphasis_text = emphasis_text or match.group("value")
            prose = prose[: match.start()] + " " + prose[match.end() :]

        logger.info(
            "collector.extract triggered=%s topic=%s labelled=%s",
            matches_trigger(raw),
            bool(topic),
            ",".join(sorted(labelled)) or "none",
        )
        if level_text is not None:
            return self.from_fields(topic, level_text, self._split_emphasis(emphasis_text), source_material)
        return self._build(topic, self._detect_level(prose), self._split_emphasis(emphasis_text), source_material)

    def from_fields(
        self,
        topic: str | None,
        level: str | AudienceLevel | None,
        emphasis: Iterable[str] | None = None,
        source_material: str | None = None,
    ) -> StudyNoteRequest:
        label = str(getattr(level, "value", level)).strip() if level is not None else ""
        resolved: AudienceLevel | None | tuple[str, str] = None
        if label:
            resolved = (
                AudienceLevel.parse(label)
                or self._detect_level(label)
                or ("invalid", f"'{label}' is not a recognised level")
            )
        return self._build(topic, resolved, emphasis or [], source_material)

    def _build(
        self,
        topic: str | None,
        level: "AudienceLevel | None | tuple[str, str]",
        emphasis: Iterable[str],
        source_material: str | None,
    ) -> StudyNoteRequest:
        normalized_topic = " ".join((topic or "").split()).strip(" \"'`")
        missing: list[str] = []
        details: dict[str, str] = {}
        reason = "missing"
        if not normalized_topic:
            missing.append("topic")
        if not isinstance(level, AudienceLevel):
            missing.append("level")
            if isinstance(level, tuple):
                reason, details["level"] = level
        if missing:
            logger.info("collector.clarification missing=%s reason=%s", ",".join(missing), reason)
            raise MissingFieldError(missing, reason=reason, details=details)

        source = (source_material or "").strip() or None
        return StudyNoteRequest(
            topic=normalized_topic,
            level=level,  # type: ignore[arg-type]
            emphasis=self._dedupe(emphasis),
            source_material=source,
        )

    @staticmethod
    def _split_labels(text: str) -> tuple[dict[str, str], str]:
        labelled: dict[str, str] = {}
        remainder: list[str] = []
        lines = text.splitlines()
        index = 0
        while index < len(lines):
            line = lines[index]
            match = _LABEL_RE.match(line)
            if not match:
                remainder.append(line)
                index += 1
                continue
            label = match.group("label").lower()
            value = match.group("value").strip()
            if label in {"source material", "source", "sources"}:
                # Source material runs to the end of the text.
                tail = "\n".join([value, *lines[index + 1 :]]).strip()
                labelled["source"] = tail
                break
            key = {"subject": "topic", "audience": "level", "audience level": "level"}.get(label, label)
            if key in {"focus", "focus areas"}:
                key = "emphasis"
            labelled[key] = value
            index += 1
        return labelled, "\n".join(remainder).strip()

    @staticmethod
    def _topic_from_phrase(text: str) -> str:
        match = _TOPIC_PHRASE_RE.search(text)
        if not match:
            return ""
        topic = match.group("topic").strip()
        return re.sub(r"^(?:the\s+topic\s+(?:of\s+)?|the\s+)", "", topic, flags=re.IGNORECASE).strip()

    @staticmethod
    def _source_from_phrase(text: str) -> str:
        match = _SOURCE_PHRASE_RE.search(text)
        return match.group("value").strip() if match else ""

    @staticmethod
    def _detect_level(text: str) -> "AudienceLevel | None | tuple[str, str]":
        found = [level for level, pattern in _LEVEL_RES.items() if pattern.search(text or "")]
        if len(found) == 1:
            return found[0]
        if len(found) > 1:
            names = " and ".join(level.value for level in found)
            return ("ambiguous", f"the request mentions {names}")
        return None

    @staticmethod
    def _split_emphasis(text: str | None) -> list[str]:
        if not text:
            return []
        parts = [part.strip(" .\"'`-*") for part in re.split(r",|;|\n", text)]
        parts = [re.sub(r"^and\s+", "", part, flags=re.IGNORECASE) for part in parts if part]
        items: list[str] = []
        for index, part in enumerate(parts):
            pieces = [piece.strip(" .\"'`-*") for piece in re.split(r"\s+and\s+", part, flags=re.IGNORECASE)]
            # "supply and demand" is one concept; "a, b and c" and multi-word pairs are lists.
            last_of_list = len(parts) > 1 and index == len(parts) - 1
            if len(pieces) > 1 and (last_of_list or all(len(piece.split()) > 1 for piece in pieces)):
                items.extend(piece for piece in pieces if piece)
            else:
                items.append(part)
        return [item for item in items if item]

    @staticmethod
    def _dedupe(items: Iterable[str]) -> tuple[str, ...]:
        seen: set[str] = set()
        kept: list[str] = []
        for item in items:
            text = " ".join(str(item).split())
            key = text.lower()
            if not text or key in seen:
                continue
            seen.add(key)
            kept.append(text)
        return tuple(kept)
