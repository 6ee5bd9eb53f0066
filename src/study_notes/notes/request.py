from dataclasses import dataclass
from enum import Enum


class AudienceLevel(str, Enum):
    SECONDARY = "secondary"
    UNDERGRADUATE = "undergraduate"
    GRADUATE = "graduate"
    PROFESSIONAL = "professional"

    @classmethod
    def parse(cls, value: "str | AudienceLevel | None") -> "AudienceLevel | None":
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for level in cls:
            if level.value == normalized:
                return level
        return None


@dataclass(frozen=True)
class StudyNoteRequest:
    """One study-note generation call.

    Only lives for the duration of a single request; nothing about it is
    persisted or shared between calls.
    """

    topic: str
    level: AudienceLevel
    emphasis: tuple[str, ...] = ()
    source_material: str | None = None

    def as_meta(self) -> dict:
        return {
            "topic": self.topic,
            "level": self.level.value,
            "emphasis": list(self.emphasis),
            "has_source_material": bool(self.source_material),
        }


class MissingFieldError(ValueError):
    """Raised when a request lacks a topic or a usable level.

    Callers surface `clarification` back to the requester instead of
    generating anything.
    """

    def __init__(self, fields: list[str], reason: str = "missing", details: dict[str, str] | None = None) -> None:
        self.fields = list(fields)
        self.reason = reason
        self.details = dict(details or {})
        super().__init__(self.clarification)

    @property
    def clarification(self) -> str:
        questions: list[str] = []
        if "topic" in self.fields:
            questions.append("Which topic should the study notes cover?")
        if "level" in self.fields:
            detail = self.details.get("level")
            levels = ", ".join(level.value for level in AudienceLevel)
            if detail:
                questions.append(f"The audience level is unclear ({detail}). Which level applies: {levels}?")
            else:
                questions.append(f"Which audience level should the notes target: {levels}?")
        return " ".join(questions) or "Please provide the missing study-note details."

    def as_payload(self) -> dict:
        return {
            "missing_fields": list(self.fields),
            "reason": self.reason,
            "clarification": self.clarification,
        }
