import asyncio

import pytest

from study_notes.assembly.assembler import AssemblyError, SectionAssembler
from study_notes.assembly.prompts import feedback_hints
from study_notes.config import Settings
from study_notes.notes.document import QuestionCategory
from study_notes.notes.request import AudienceLevel, StudyNoteRequest
from study_notes.providers.llm.mock import MockStudyNoteLLM
from study_notes.providers.llm.openai_compatible import OpenAICompatibleProvider

REQUEST = StudyNoteRequest(topic="Python Slicing", level=AudienceLevel.GRADUATE)


class _StaticLLM:
    def __init__(self, text) -> None:
        self.text = text

    async def ainvoke(self, prompt: str):
        class _Message:
            content = self.text

        return _Message()


def _assembler(text) -> SectionAssembler:
    return SectionAssembler(Settings(), llm=_StaticLLM(text))


def test_summary_drops_headings_and_splits_paragraphs() -> None:
    text = "## Summary\n\nFirst line\ncontinues here.\n\nSecond.\n\n\nThird."

    summary = asyncio.run(_assembler(text).write_summary(REQUEST, "", []))

    assert summary == ["First line continues here.", "Second.", "Third."]


def test_key_terms_strip_markup_and_duplicates() -> None:
    text = 'Here you go:\n[{"term": "**Slice**", "definition": "A  view."}, {"term": "slice", "definition": "dup"}]'

    terms = asyncio.run(_assembler(text).define_terms(REQUEST, "", []))

    assert [(t.term, t.definition) for t in terms] == [("Slice", "A view.")]


def test_key_terms_invalid_shape_raises() -> None:
    with pytest.raises(AssemblyError) as excinfo:
        asyncio.run(_assembler('[{"term": ""}]').define_terms(REQUEST, "", []))

    assert excinfo.value.stage == "key_terms"


def test_blank_key_term_definition_raises() -> None:
    with pytest.raises(AssemblyError) as excinfo:
        asyncio.run(_assembler('[{"term": "Index", "definition": "   "}]').define_terms(REQUEST, "", []))

    assert excinfo.value.stage == "key_terms"


def test_questions_accept_capitalised_categories() -> None:
    text = '{"Recall": ["a"], "Comprehension": ["b", " "], "Application": ["c"], "Analysis": ["d"]}'

    questions = asyncio.run(_assembler(text).write_questions(REQUEST, "", [], "body"))

    assert questions == {
        QuestionCategory.RECALL: ["a"],
        QuestionCategory.COMPREHENSION: ["b"],
        QuestionCategory.APPLICATION: ["c"],
        QuestionCategory.ANALYSIS: ["d"],
    }


def test_trailing_sections_filter_mandatory_titles() -> None:
    text = (
        '[{"title": "Summary", "body": "x"}, {"title": "review  QUESTIONS", "body": "y"}, '
        '{"title": "## Further Reading", "body": "- Book"}]'
    )

    trailing = asyncio.run(_assembler(text).write_trailing(REQUEST, "", []))

    assert trailing == [("Further Reading", "- Book")]


def test_unusable_trailing_response_is_dropped() -> None:
    trailing = asyncio.run(_assembler("Nothing further.").write_trailing(REQUEST, "", []))

    assert trailing == []


def test_llm_error_is_logged_and_raised(caplog) -> None:
    class _BrokenLLM:
        async def ainvoke(self, prompt: str):
            raise RuntimeError("Connection error.")

    assembler = SectionAssembler(Settings(), llm=_BrokenLLM())

    with pytest.raises(RuntimeError):
        asyncio.run(assembler.write_summary(REQUEST, "", []))

    assert any("llm.error stage=summary" in record.getMessage() for record in caplog.records)


def test_provider_model_names_and_mock_selection() -> None:
    provider = OpenAICompatibleProvider(Settings(OPENAI_MODEL="deepseek-chat", LLM_PROVIDER=" Mock "))

    assert provider.model == "openai/deepseek-chat"
    assert OpenAICompatibleProvider.strip_provider_prefix(provider.model) == "deepseek-chat"
    assert isinstance(provider.build(), MockStudyNoteLLM)


def test_assemble_runs_every_stage_with_mock_model() -> None:
    request = StudyNoteRequest(topic="Recursion", level=AudienceLevel.SECONDARY, emphasis=("base cases",))
    assembler = SectionAssembler(Settings(), llm=MockStudyNoteLLM())

    document = asyncio.run(assembler.assemble(request))

    assert len(document.summary) == 4
    assert [term.term for term in document.key_terms] == ["Recursion", "Base Cases"]
    assert "### Base Cases" in document.content_body
    assert document.question_count == 5
    assert document.trailing_sections[0][0] == "Common Misconceptions"


def test_structural_violations_carry_feedback_hints() -> None:
    hints = feedback_hints(["missing_section:Key Terms", "duplicate_section:Summary", "section_order"])

    assert len(hints) == 3
    assert "Do not repeat the titles Summary, Key Terms, Content Body or Review Questions." in hints
