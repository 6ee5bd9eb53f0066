import logging
from collections.abc import Iterable
from typing import Any

from study_notes.assembly.assembler import AssemblyError
from study_notes.config import Settings, get_settings
from study_notes.intake.collector import InputCollector, matches_trigger
from study_notes.notes.request import AudienceLevel, MissingFieldError, StudyNoteRequest
from study_notes.storage.writer import NoteWriter
from study_notes.workflow.generation import ChecklistViolationError, GenerationWorkflow

logger = logging.getLogger(__name__)
STAGES = ["summary", "key_terms", "body", "questions", "trailing", "validate"]


class StudyNoteService:
    def __init__(
        self,
        workflow: GenerationWorkflow | None = None,
        collector: InputCollector | None = None,
        writer: NoteWriter | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.collector = collector or InputCollector()
        self.writer = writer or NoteWriter(self.settings.notes_output_dir)
        self._workflow = workflow

    @property
    def workflow(self) -> GenerationWorkflow:
        if self._workflow is None:
            self._workflow = GenerationWorkflow(self.settings)
        return self._workflow

    async def generate(
        self,
        topic: str | None,
        level: str | AudienceLevel | None,
        emphasis: Iterable[str] | None = None,
        source_material: str | None = None,
    ) -> dict:
        try:
            request = self.collector.from_fields(topic, level, emphasis, source_material)
        except MissingFieldError as exc:
            return self._clarification(exc)
        return await self._generate(request)

    async def generate_from_text(self, text: str) -> dict:
        triggered = matches_trigger(text)
        try:
            request = self.collector.collect(text)
        except MissingFieldError as exc:
            result = self._clarification(exc)
            result["meta"]["triggered"] = triggered
            return result
        result = await self._generate(request)
        result["meta"]["triggered"] = triggered
        return result

    async def _generate(self, request: StudyNoteRequest) -> dict:
        try:
            output = await self.workflow.run(request)
            path = self.writer.write(request.topic, output.markdown)
            logger.info(
                "generate.meta topic=%s level=%s attempts=%d warnings=%s path=%s",
                request.topic,
                request.level.value,
                output.attempts,
                ",".join(output.report.warnings) or "none",
                path,
            )
            return {
                "status": "generated",
                "markdown": output.markdown,
                "path": str(path),
                "meta": {
                    "stages": STAGES,
                    **request.as_meta(),
                    "attempts": output.attempts,
                    **output.report.as_meta(),
                    **output.source.as_meta(),
                },
            }
        except Exception as exc:
            logger.exception("generate.failed topic=%s", request.topic)
            return {
                "status": "failed",
                "markdown": "",
                "path": None,
                "meta": {
                    "stages": STAGES,
                    **request.as_meta(),
                    "error": self._error_payload(exc),
                },
            }

    @staticmethod
    def _clarification(exc: MissingFieldError) -> dict:
        logger.info("generate.clarification missing=%s reason=%s", ",".join(exc.fields), exc.reason)
        return {
            "status": "needs_clarification",
            "markdown": "",
            "path": None,
            "clarification": exc.clarification,
            "meta": {"missing_fields": list(exc.fields), "reason": exc.reason},
        }

    @staticmethod
    def _error_payload(exc: Exception) -> dict[str, Any]:
        message = str(exc)
        if isinstance(exc, ChecklistViolationError):
            hint = (
                "The generated document never satisfied the formatting checklist; "
                "retry or raise ASSEMBLY_MAX_ATTEMPTS"
            )
        elif isinstance(exc, AssemblyError):
            hint = "The model returned an unusable stage response; see assembly.stage_failed in the service log"
        elif "Connection error" in message:
            hint = "Check OPENAI_API_KEY/OPENAI_BASE_URL/OPENAI_MODEL and network connectivity"
        else:
            hint = "See llm.error details in the service log"
        payload: dict[str, Any] = {
            "type": exc.__class__.__name__,
            "message": message,
            "hint": hint,
        }
        if isinstance(exc, ChecklistViolationError):
            payload["violations"] = exc.violations
            payload["attempts"] = exc.attempts
        return payload
