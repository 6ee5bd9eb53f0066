import logging
from dataclasses import dataclass
from typing import Any

from study_notes.assembly.assembler import AssemblyError, SectionAssembler
from study_notes.config import Settings, get_settings
from study_notes.notes.document import StudyNoteDocument
from study_notes.notes.request import StudyNoteRequest
from study_notes.retrieval.source_resolver import SourceContext, SourceMaterialResolver
from study_notes.validation.checklist import FormattingValidator, ValidationReport

logger = logging.getLogger(__name__)
NODES_PER_ATTEMPT = 7


class ChecklistViolationError(RuntimeError):
    """No assembly attempt produced a document that passes the checklist."""

    def __init__(self, attempts: int, violations: list[str]) -> None:
        self.attempts = attempts
        self.violations = list(violations)
        super().__init__(f"checklist failed after {attempts} attempts: {', '.join(violations) or 'unknown'}")


@dataclass
class GenerationResult:
    request: StudyNoteRequest
    document: StudyNoteDocument
    markdown: str
    report: ValidationReport
    attempts: int
    source: SourceContext


class GenerationWorkflow:
    """Assemble-then-validate loop implemented with LangGraph nodes.

    summary -> key_terms -> body -> questions -> trailing -> render -> validate,
    looping back to summary while the checklist fails and attempts remain.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        assembler: SectionAssembler | None = None,
        validator: FormattingValidator | None = None,
        source_resolver: SourceMaterialResolver | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.assembler = assembler or SectionAssembler(self.settings)
        self.validator = validator or FormattingValidator()
        self.source_resolver = source_resolver or SourceMaterialResolver(self.settings)
        self.max_attempts = self.settings.assembly_max_attempts

    async def run(self, request: StudyNoteRequest) -> GenerationResult:
        logger.info(
            "generation.start topic=%s level=%s emphasis=%d",
            request.topic,
            request.level.value,
            len(request.emphasis),
        )
        source = await self.source_resolver.resolve(request.source_material)
        final_state = await self._run_with_langgraph_async(request, source.text)

        report: ValidationReport = final_state["report"]
        attempts = int(final_state["attempt"])
        if not report.passed:
            logger.error(
                "generation.checklist_failed topic=%s attempts=%d violations=%s",
                request.topic,
                attempts,
                ",".join(report.violations),
            )
            raise ChecklistViolationError(attempts, report.violations)

        logger.info("generation.done topic=%s attempts=%d", request.topic, attempts)
        return GenerationResult(
            request=request,
            document=final_state["document"],
            markdown=final_state["markdown"],
            report=report,
            attempts=attempts,
            source=source,
        )

    async def _run_with_langgraph_async(self, request: StudyNoteRequest, source_text: str) -> dict[str, Any]:
        from typing import TypedDict

        from langgraph.graph import END, START, StateGraph

        class WorkflowState(TypedDict):
            request: StudyNoteRequest
            source_text: str
            attempt: int
            feedback: list[str]
            assembly_error: str
            summary: list[str]
            key_terms: list
            body: str
            questions: dict
            trailing: list
            document: StudyNoteDocument | None
            markdown: str
            report: ValidationReport | None

        assembler = self.assembler
        allow_formal_notation = assembler.level_profile(request).allow_formal_notation

        async def summary_node(state: WorkflowState) -> dict[str, Any]:
            attempt = state["attempt"] + 1
            feedback = list(state["report"].violations) if state["report"] is not None else []
            logger.info("assembly.attempt attempt=%d max=%d feedback=%s", attempt, self.max_attempts, feedback)
            logger.info("summary")
            update: dict[str, Any] = {"attempt": attempt, "feedback": feedback, "assembly_error": ""}
            try:
                update["summary"] = await assembler.write_summary(state["request"], state["source_text"], feedback)
            except AssemblyError as exc:
                update["assembly_error"] = exc.stage
                logger.warning("assembly.stage_failed stage=%s detail=%s", exc.stage, exc.detail)
            return update

        async def key_terms_node(state: WorkflowState) -> dict[str, Any]:
            if state["assembly_error"]:
                return {}
            logger.info("key_terms")
            try:
                terms = await assembler.define_terms(state["request"], state["source_text"], state["feedback"])
            except AssemblyError as exc:
                logger.warning("assembly.stage_failed stage=%s detail=%s", exc.stage, exc.detail)
                return {"assembly_error": exc.stage}
            return {"key_terms": terms}

        async def body_node(state: WorkflowState) -> dict[str, Any]:
            if state["assembly_error"]:
                return {}
            logger.info("body")
            try:
                body = await assembler.write_body(
                    state["request"],
                    state["source_text"],
                    state["feedback"],
                    state["summary"],
                    state["key_terms"],
                )
            except AssemblyError as exc:
                logger.warning("assembly.stage_failed stage=%s detail=%s", exc.stage, exc.detail)
                return {"assembly_error": exc.stage}
            return {"body": body}

        async def questions_node(state: WorkflowState) -> dict[str, Any]:
            if state["assembly_error"]:
                return {}
            logger.info("questions")
            try:
                questions = await assembler.write_questions(
                    state["request"],
                    state["source_text"],
                    state["feedback"],
                    state["body"],
                )
            except AssemblyError as exc:
                logger.warning("assembly.stage_failed stage=%s detail=%s", exc.stage, exc.detail)
                return {"assembly_error": exc.stage}
            return {"questions": questions}

        async def trailing_node(state: WorkflowState) -> dict[str, Any]:
            if state["assembly_error"]:
                return {}
            logger.info("trailing")
            trailing = await assembler.write_trailing(state["request"], state["source_text"], state["feedback"])
            return {"trailing": trailing}

        def render_node(state: WorkflowState) -> dict[str, Any]:
            if state["assembly_error"]:
                return {"document": None, "markdown": ""}
            document = assembler.build_document(
                state["request"],
                state["summary"],
                state["key_terms"],
                state["body"],
                state["questions"],
                state["trailing"],
            )
            return {"document": document, "markdown": document.to_markdown()}

        def validate_node(state: WorkflowState) -> dict[str, Any]:
            if state["assembly_error"]:
                report = ValidationReport(passed=False, violations=[f"assembly_error:{state['assembly_error']}"])
            else:
                report = self.validator.validate(state["markdown"], allow_formal_notation=allow_formal_notation)
            return {"report": report}

        def route_after_validate(state: WorkflowState) -> str:
            report = state["report"]
            if report is not None and report.passed:
                return "done"
            if state["attempt"] >= self.max_attempts:
                return "done"
            logger.info(
                "assembly.retry attempt=%d violations=%s",
                state["attempt"],
                report.violations if report else [],
            )
            return "retry"

        graph = StateGraph(WorkflowState)
        graph.add_node("summary_step", summary_node)
        graph.add_node("key_terms_step", key_terms_node)
        graph.add_node("body_step", body_node)
        graph.add_node("questions_step", questions_node)
        graph.add_node("trailing_step", trailing_node)
        graph.add_node("render_step", render_node)
        graph.add_node("validate_step", validate_node)
        graph.add_edge(START, "summary_step")
        graph.add_edge("summary_step", "key_terms_step")
        graph.add_edge("key_terms_step", "body_step")
        graph.add_edge("body_step", "questions_step")
        graph.add_edge("questions_step", "trailing_step")
        graph.add_edge("trailing_step", "render_step")
        graph.add_edge("render_step", "validate_step")
        graph.add_conditional_edges("validate_step", route_after_validate, {"retry": "summary_step", "done": END})

        app = graph.compile()
        return await app.ainvoke(
            {
                "request": request,
                "source_text": source_text,
                "attempt": 0,
                "feedback": [],
                "assembly_error": "",
                "summary": [],
                "key_terms": [],
                "body": "",
                "questions": {},
                "trailing": [],
                "document": None,
                "markdown": "",
                "report": None,
            },
            config={"recursion_limit": self.max_attempts * NODES_PER_ATTEMPT + 5},
        )
