import asyncio
import json
import logging
import re

import pytest

from study_notes.assembly.assembler import SectionAssembler
from study_notes.config import Settings
from study_notes.notes.request import AudienceLevel, StudyNoteRequest
from study_notes.workflow.generation import ChecklistViolationError, GenerationWorkflow

SLICING_RESPONSES = {
    "summary": "\n\n".join(
        [
            "Slicing is the mechanism Python provides for extracting a subsequence from a sequence.",
            "A slice is written with start, stop and step values separated by colons.",
            "Negative indices count from the end, which makes trailing elements easy to reach.",
            "The step parameter controls the stride and, when negative, reverses traversal.",
        ]
    ),
    "key_terms": json.dumps(
        [
            {"term": "Index", "definition": "The integer position of an element in a sequence."},
            {"term": "Slice", "definition": "A subsequence described by start, stop and step."},
            {"term": "Step Parameter", "definition": "The stride between selected positions."},
            {"term": "Negative Indexing", "definition": "Counting positions backwards from the end."},
        ]
    ),
    "body": "## Syntax\n\nThe expression `seq[start:stop:step]` selects a half-open range.\n\n"
    "### Negative Indexing\n\n`seq[-1]` refers to the final element.",
    "questions": "```json\n"
    + json.dumps(
        {
            "recall": ["What are the three components of a slice?", "What does seq[-1] return?"],
            "comprehension": ["Why is the stop index excluded from the result?"],
            "application": ["Write a slice that returns every second element of a list."],
            "analysis": ["Compare seq[::-1] with reversed(seq) in terms of memory use."],
        }
    )
    + "\n```",
    "trailing": json.dumps([{"title": "Common Misconceptions", "body": "- Slicing never raises IndexError."}]),
}


class _FakeLLM:
    def __init__(self, responses: dict[str, list[str] | str]) -> None:
        self.responses = responses
        self.prompts: list[str] = []

    async def ainvoke(self, prompt: str):
        self.prompts.append(prompt)
        stage = re.search(r"^Stage:\s*(\S+)", prompt, re.MULTILINE).group(1)
        value = self.responses[stage]
        if isinstance(value, list):
            text = value.pop(0) if len(value) > 1 else value[0]
        else:
            text = value

        class _Message:
            content = text

        return _Message()


def _workflow(llm: _FakeLLM, **settings) -> GenerationWorkflow:
    config = Settings(**settings)
    return GenerationWorkflow(config, assembler=SectionAssembler(config, llm=llm))


def _request(level: AudienceLevel = AudienceLevel.UNDERGRADUATE) -> StudyNoteRequest:
    return StudyNoteRequest(
        topic="Python Slicing",
        level=level,
        emphasis=("negative indexing", "step parameter"),
    )


def test_reference_scenario_passes_checklist() -> None:
    llm = _FakeLLM(dict(SLICING_RESPONSES))
    output = asyncio.run(_workflow(llm).run(_request()))

    assert output.report.passed is True
    assert output.attempts == 1
    h2 = [line for line in output.markdown.splitlines() if line.startswith("## ")]
    assert h2[:4] == ["## Summary", "## Key Terms", "## Content Body", "## Review Questions"]
    assert h2[4:] == ["## Common Misconceptions"]
    for term in ("Index", "Slice", "Step Parameter"):
        assert f"- **{term}**:" in output.markdown
    assert "### Syntax" in output.markdown
    assert output.document.question_count == 5


def test_stages_log_in_order(caplog) -> None:
    llm = _FakeLLM(dict(SLICING_RESPONSES))

    with caplog.at_level(logging.INFO):
        asyncio.run(_workflow(llm).run(_request()))

    messages = [record.getMessage() for record in caplog.records]
    order = [messages.index(stage) for stage in ("summary", "key_terms", "body", "questions", "trailing")]
    assert order == sorted(order)


def test_prompts_carry_tone_policy_and_level_guidance() -> None:
    llm = _FakeLLM(dict(SLICING_RESPONSES))
    asyncio.run(_workflow(llm).run(_request(AudienceLevel.SECONDARY)))

    body_prompt = next(prompt for prompt in llm.prompts if "Stage: body" in prompt)
    assert "objective third-person voice" in body_prompt
    assert "Audience level: secondary" in body_prompt
    assert "Do not use LaTeX or formal mathematical notation." in body_prompt
    assert "Emphasis: negative indexing; step parameter" in body_prompt


def test_failed_checklist_retries_with_feedback() -> None:
    responses = dict(SLICING_RESPONSES)
    responses["questions"] = [
        json.dumps({"recall": ["Only one question."]}),
        SLICING_RESPONSES["questions"],
    ]
    llm = _FakeLLM(responses)

    output = asyncio.run(_workflow(llm).run(_request()))

    assert output.report.passed is True
    assert output.attempts == 2
    retry_prompts = [prompt for prompt in llm.prompts if "A previous draft was rejected" in prompt]
    assert retry_prompts
    assert any("at least one question" in prompt for prompt in retry_prompts)


def test_unparseable_stage_counts_as_failed_attempt() -> None:
    responses = dict(SLICING_RESPONSES)
    responses["key_terms"] = ["Sorry, here are the terms: Index, Slice.", SLICING_RESPONSES["key_terms"]]
    llm = _FakeLLM(responses)

    output = asyncio.run(_workflow(llm).run(_request()))

    assert output.report.passed is True
    assert output.attempts == 2


def test_exhausted_attempts_raise_checklist_violation() -> None:
    responses = dict(SLICING_RESPONSES)
    responses["summary"] = "A single paragraph is not enough."
    llm = _FakeLLM(responses)

    with pytest.raises(ChecklistViolationError) as excinfo:
        asyncio.run(_workflow(llm, ASSEMBLY_MAX_ATTEMPTS=2).run(_request()))

    assert excinfo.value.attempts == 2
    assert excinfo.value.violations == ["summary_paragraphs:1"]


def test_secondary_level_formal_notation_is_a_warning() -> None:
    responses = dict(SLICING_RESPONSES)
    responses["body"] = "The selected positions satisfy $$i = a + k s$$ for each step k."
    llm = _FakeLLM(responses)

    output = asyncio.run(_workflow(llm).run(_request(AudienceLevel.SECONDARY)))

    assert output.report.passed is True
    assert output.report.warnings == ["content_body_formal_notation"]


def test_mock_provider_produces_valid_notes() -> None:
    config = Settings(LLM_PROVIDER="mock")
    output = asyncio.run(GenerationWorkflow(config).run(_request()))

    assert output.report.passed is True
    assert "- **Negative Indexing**:" in output.markdown
