from pathlib import Path

from study_notes.notes.document import KeyTerm, QuestionCategory, StudyNoteDocument
from study_notes.validation.checklist import FormattingValidator, ValidationReport


def _document(**overrides) -> StudyNoteDocument:
    fields = {
        "topic": "Python Slicing",
        "summary": [
            "Slicing extracts a contiguous or strided subsequence from a sequence.",
            "It is expressed with the start, stop and step notation inside square brackets.",
            "Negative indices count positions from the end of the sequence.",
        ],
        "key_terms": [
            KeyTerm("Index", "The integer position of an element within a sequence."),
            KeyTerm("Slice", "A subsequence described by start, stop and step values."),
            KeyTerm("Step Parameter", "The stride between successive selected positions."),
        ],
        "content_body": "### Basic Form\n\nThe expression `seq[start:stop]` selects a half-open range.",
        "review_questions": {
            QuestionCategory.RECALL: ["What does a slice return?", "What is the default step?"],
            QuestionCategory.COMPREHENSION: ["Why is the stop index exclusive?"],
            QuestionCategory.APPLICATION: ["Write a slice that reverses a list."],
            QuestionCategory.ANALYSIS: ["Compare slicing with itertools.islice."],
        },
    }
    fields.update(overrides)
    return StudyNoteDocument(**fields)


def test_rendered_document_passes() -> None:
    report = FormattingValidator().validate(_document().to_markdown())

    assert report.passed is True
    assert report.violations == []


def test_report_as_meta_shape() -> None:
    report = ValidationReport(passed=False, violations=["section_order"], warnings=["content_body_formal_notation"])

    meta = report.as_meta()
    assert meta["validation_passed"] is False
    assert meta["validation_violations"] == ["section_order"]
    assert meta["validation_warnings"] == ["content_body_formal_notation"]


def test_missing_section_fails() -> None:
    markdown = _document().to_markdown().replace("## Key Terms", "## Glossary")

    report = FormattingValidator().validate(markdown)

    assert report.passed is False
    assert "missing_section:Key Terms" in report.violations


def test_sections_out_of_order_fail() -> None:
    markdown = "\n".join(
        [
            "# Topic",
            "## Key Terms",
            "- **Index**: position",
            "## Summary",
            "One.",
            "",
            "Two.",
            "",
            "Three.",
            "## Content Body",
            "Body.",
            "## Review Questions",
            "### Recall",
            "1. a",
            "2. b",
            "### Comprehension",
            "3. c",
            "### Application",
            "4. d",
            "### Analysis",
            "5. e",
        ]
    )

    report = FormattingValidator().validate(markdown)

    assert report.passed is False
    assert report.violations == ["section_order"]


def test_trailing_section_after_review_questions_is_allowed() -> None:
    document = _document(trailing_sections=[("Further Reading", "- The Python tutorial, section 3.1.2.")])

    report = FormattingValidator().validate(document.to_markdown())

    assert report.passed is True


def test_optional_section_before_review_questions_fails() -> None:
    markdown = _document().to_markdown().replace("## Review Questions", "## Aside\n\nText.\n\n## Review Questions")

    report = FormattingValidator().validate(markdown)

    assert "section_order" in report.violations


def test_key_term_without_emphasis_fails() -> None:
    markdown = _document().to_markdown().replace("- **Slice**:", "- Slice:")

    report = FormattingValidator().validate(markdown)

    assert report.passed is False
    assert "key_terms_not_emphasized:1" in report.violations


def test_empty_question_category_fails() -> None:
    questions = {
        QuestionCategory.RECALL: ["a", "b", "c"],
        QuestionCategory.COMPREHENSION: ["d"],
        QuestionCategory.APPLICATION: [],
        QuestionCategory.ANALYSIS: ["e"],
    }

    report = FormattingValidator().validate(_document(review_questions=questions).to_markdown())

    assert report.passed is False
    assert "question_category_empty:application" in report.violations


def test_question_count_bounds() -> None:
    too_few = {category: ["q"] for category in QuestionCategory}
    too_many = {category: ["q1", "q2", "q3"] for category in QuestionCategory}

    few_report = FormattingValidator().validate(_document(review_questions=too_few).to_markdown())
    many_report = FormattingValidator().validate(_document(review_questions=too_many).to_markdown())

    assert "question_count:4" in few_report.violations
    assert "question_count:12" in many_report.violations


def test_summary_paragraph_bounds() -> None:
    report = FormattingValidator().validate(_document(summary=["Only one paragraph."]).to_markdown())

    assert report.passed is False
    assert "summary_paragraphs:1" in report.violations


def test_emoji_is_a_tone_violation() -> None:
    for body in ("Slicing is great \U0001f680", "Key idea \u2b50", "Timer \u23f0", "Done \u2b1b"):
        report = FormattingValidator().validate(_document(content_body=body).to_markdown())

        assert "tone_emoji_present" in report.violations, body


def test_math_symbols_are_not_emoji() -> None:
    body = "The floor \u230a x \u230b and the arrow \u2192 are ordinary symbols."

    report = FormattingValidator().validate(_document(content_body=body).to_markdown())

    assert report.passed is True


def test_key_term_without_definition_fails() -> None:
    markdown = _document().to_markdown().replace(
        "- **Slice**: A subsequence described by start, stop and step values.", "- **Slice**: "
    )

    report = FormattingValidator().validate(markdown)

    assert report.passed is False
    assert "key_terms_undefined:1" in report.violations


def test_headings_inside_code_fences_are_ignored() -> None:
    body = "### Example\n\n```python\n## not a heading\nitems[::-1]\n```"

    report = FormattingValidator().validate(_document(content_body=body).to_markdown())

    assert report.passed is True


def test_formal_notation_only_warns_when_not_allowed() -> None:
    body = "The slice selects indices $$\\forall i \\in [a, b)$$."
    markdown = _document(content_body=body).to_markdown()

    strict = FormattingValidator().validate(markdown, allow_formal_notation=False)
    relaxed = FormattingValidator().validate(markdown, allow_formal_notation=True)

    assert strict.passed is True
    assert strict.warnings == ["content_body_formal_notation"]
    assert relaxed.warnings == []


def test_bundled_example_notes_pass() -> None:
    example = Path(__file__).resolve().parents[1] / "docs" / "examples" / "python-slicing.md"

    report = FormattingValidator().validate(example.read_text(encoding="utf-8"), allow_formal_notation=False)

    assert report.passed is True
    assert report.warnings == []
