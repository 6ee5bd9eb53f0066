import json
import logging
import re
from typing import Any

from pydantic import TypeAdapter, ValidationError

from study_notes.assembly import prompts
from study_notes.assembly.schemas import KeyTermPayload, ReviewQuestionsPayload, TrailingSectionPayload
from study_notes.config import LevelProfile, Settings
from study_notes.notes.document import (
    QUESTION_CATEGORIES,
    KeyTerm,
    QuestionCategory,
    StudyNoteDocument,
    is_mandatory_title,
)
from study_notes.notes.request import StudyNoteRequest
from study_notes.providers.llm.openai_compatible import OpenAICompatibleProvider

logger = logging.getLogger(__name__)
ERROR_LOG_LIMIT = 1000
MAX_TRAILING_SECTIONS = 2

_FENCE_BLOCK_RE = re.compile(r"^```[a-zA-Z]*\s*\n(.*?)\n```\s*$", re.DOTALL)
_KEY_TERMS_ADAPTER = TypeAdapter(list[KeyTermPayload])
_TRAILING_ADAPTER = TypeAdapter(list[TrailingSectionPayload])


class AssemblyError(RuntimeError):
    """A stage response could not be turned into a document section."""

    def __init__(self, stage: str, detail: str) -> None:
        self.stage = stage
        self.detail = detail
        super().__init__(f"stage={stage} {detail}")


class SectionAssembler:
    """Builds the ordered study-note sections, one LLM call per stage."""

    def __init__(self, settings: Settings, llm: Any | None = None) -> None:
        self.settings = settings
        self.llm_provider = OpenAICompatibleProvider(settings)
        self.llm_model = self.llm_provider.model
        self._llm = llm

    def level_profile(self, request: StudyNoteRequest) -> LevelProfile:
        return self.settings.level_profiles[request.level.value]

    async def assemble(
        self,
        request: StudyNoteRequest,
        source_text: str = "",
        feedback: list[str] | None = None,
    ) -> StudyNoteDocument:
        notes = feedback or []
        summary = await self.write_summary(request, source_text, notes)
        key_terms = await self.define_terms(request, source_text, notes)
        body = await self.write_body(request, source_text, notes, summary, key_terms)
        questions = await self.write_questions(request, source_text, notes, body)
        trailing = await self.write_trailing(request, source_text, notes)
        return self.build_document(request, summary, key_terms, body, questions, trailing)

    async def write_summary(self, request: StudyNoteRequest, source_text: str, feedback: list[str]) -> list[str]:
        prompt = prompts.summary_prompt(request, self.level_profile(request), source_text, feedback)
        text = await self._ask_llm("summary", prompt)
        paragraphs = self._paragraphs(text)
        if not paragraphs:
            raise AssemblyError("summary", "empty response")
        return paragraphs

    async def define_terms(self, request: StudyNoteRequest, source_text: str, feedback: list[str]) -> list[KeyTerm]:
        prompt = prompts.key_terms_prompt(request, self.level_profile(request), source_text, feedback)
        payload = self._parse_json("key_terms", await self._ask_llm("key_terms", prompt))
        try:
            items = _KEY_TERMS_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            raise AssemblyError("key_terms", self._clip(str(exc), ERROR_LOG_LIMIT)) from exc
        terms: list[KeyTerm] = []
        seen: set[str] = set()
        for item in items:
            if item.term.lower() in seen:
                continue
            seen.add(item.term.lower())
            terms.append(KeyTerm(term=item.term, definition=" ".join(item.definition.split())))
        return terms

    async def write_body(
        self,
        request: StudyNoteRequest,
        source_text: str,
        feedback: list[str],
        summary: list[str],
        key_terms: list[KeyTerm],
    ) -> str:
        prompt = prompts.body_prompt(
            request,
            self.level_profile(request),
            source_text,
            feedback,
            summary,
            [term.term for term in key_terms],
        )
        text = self._unwrap_fence(await self._ask_llm("body", prompt))
        if not text:
            raise AssemblyError("body", "empty response")
        return text

    async def write_questions(
        self,
        request: StudyNoteRequest,
        source_text: str,
        feedback: list[str],
        body: str,
    ) -> dict[QuestionCategory, list[str]]:
        prompt = prompts.questions_prompt(request, self.level_profile(request), source_text, feedback, body)
        payload = self._parse_json("questions", await self._ask_llm("questions", prompt))
        try:
            parsed = ReviewQuestionsPayload.model_validate(payload)
        except ValidationError as exc:
            raise AssemblyError("questions", self._clip(str(exc), ERROR_LOG_LIMIT)) from exc
        return {category: list(getattr(parsed, category.value)) for category in QUESTION_CATEGORIES}

    async def write_trailing(
        self,
        request: StudyNoteRequest,
        source_text: str,
        feedback: list[str],
    ) -> list[tuple[str, str]]:
        prompt = prompts.trailing_prompt(request, self.level_profile(request), source_text, feedback)
        text = await self._ask_llm("trailing", prompt)
        try:
            items = _TRAILING_ADAPTER.validate_python(self._parse_json("trailing", text))
        except (AssemblyError, ValidationError) as exc:
            # Trailing sections are optional; an unusable response just drops them.
            logger.warning("assembly.trailing.skipped type=%s", exc.__class__.__name__)
            return []
        sections: list[tuple[str, str]] = []
        for item in items:
            title = item.title.strip().strip("#").strip()
            if not title or is_mandatory_title(title) or not item.body.strip():
                continue
            sections.append((title, item.body.strip()))
        return sections[:MAX_TRAILING_SECTIONS]

    @staticmethod
    def build_document(
        request: StudyNoteRequest,
        summary: list[str],
        key_terms: list[KeyTerm],
        body: str,
        questions: dict[QuestionCategory, list[str]],
        trailing: list[tuple[str, str]] | None = None,
    ) -> StudyNoteDocument:
        return StudyNoteDocument(
            topic=request.topic,
            summary=list(summary),
            key_terms=list(key_terms),
            content_body=body,
            review_questions={category: list(questions.get(category, [])) for category in QUESTION_CATEGORIES},
            trailing_sections=list(trailing or []),
        )

    async def _ask_llm(self, stage: str, prompt: str) -> str:
        logger.info("llm.request.full stage=%s model=%s\n%s", stage, self.llm_model, prompt)
        try:
            response = await self._get_llm().ainvoke(prompt)
        except Exception as exc:
            logger.error(
                "llm.error stage=%s model=%s type=%s detail=%s",
                stage,
                self.llm_model,
                exc.__class__.__name__,
                self.extract_error_detail(exc),
            )
            raise
        text = self._message_text(getattr(response, "content", response))
        logger.info("llm.response.full stage=%s model=%s\n%s", stage, self.llm_model, text)
        return text

    def _get_llm(self) -> Any:
        if self._llm is None:
            self._llm = self.llm_provider.build()
        return self._llm

    @staticmethod
    def _message_text(content: Any) -> str:
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, list):
            parts: list[str] = []
            for item in content:
                if isinstance(item, dict):
                    parts.append(str(item.get("text", item)))
                else:
                    parts.append(str(item))
            return "\n".join(parts).strip()
        return str(content).strip()

    @classmethod
    def _paragraphs(cls, text: str) -> list[str]:
        lines = [line for line in cls._unwrap_fence(text).splitlines() if not line.lstrip().startswith("#")]
        blocks = re.split(r"\n\s*\n", "\n".join(lines))
        return [" ".join(block.split()) for block in blocks if block.strip()]

    @staticmethod
    def _unwrap_fence(text: str) -> str:
        stripped = text.strip()
        match = _FENCE_BLOCK_RE.match(stripped)
        if match and match.group(0).lower().startswith(("```markdown", "```md", "```json", "```\n")):
            return match.group(1).strip()
        return stripped

    @classmethod
    def _parse_json(cls, stage: str, text: str) -> Any:
        candidate = cls._unwrap_fence(text)
        starts = [index for index in (candidate.find("["), candidate.find("{")) if index >= 0]
        if not starts:
            raise AssemblyError(stage, "no JSON found in response")
        try:
            payload, _ = json.JSONDecoder().raw_decode(candidate[min(starts) :])
        except json.JSONDecodeError as exc:
            raise AssemblyError(stage, f"invalid JSON: {exc.msg}") from exc
        return payload

    def extract_error_detail(self, exc: Exception) -> str:
        status_code = getattr(exc, "status_code", None)
        message = getattr(exc, "message", None) or str(exc)
        body = getattr(exc, "body", None)
        details = [f"status_code={status_code}" if status_code is not None else ""]
        if body is not None:
            details.append(f"body={body}")
        details.append(f"message={message}")
        return self._clip(" ".join([part for part in details if part]).strip(), ERROR_LOG_LIMIT)

    @staticmethod
    def _clip(text: str, limit: int) -> str:
        normalized = " ".join(text.split()).strip()
        if len(normalized) <= limit:
            return normalized
        return f"{normalized[:limit]}...(truncated)"
