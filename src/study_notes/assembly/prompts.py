from study_notes.config import TONE_POLICY, LevelProfile
from study_notes.notes.request import StudyNoteRequest
from study_notes.validation.checklist import (
    REVIEW_MAX_QUESTIONS,
    REVIEW_MIN_QUESTIONS,
    SUMMARY_MAX_PARAGRAPHS,
    SUMMARY_MIN_PARAGRAPHS,
)

FEEDBACK_HINTS = {
    "missing_section": "Each stage must return only its own content, without section headings.",
    "duplicate_section": "Do not repeat the titles Summary, Key Terms, Content Body or Review Questions.",
    "section_order": "Do not add level-2 headings; use ### subheadings inside the content body.",
    "summary_paragraphs": (
        f"The summary must contain between {SUMMARY_MIN_PARAGRAPHS} and {SUMMARY_MAX_PARAGRAPHS} paragraphs."
    ),
    "key_terms_empty": "At least one key term is required.",
    "key_terms_not_emphasized": "Every key term needs a non-empty term name.",
    "key_terms_undefined": "Every key term needs a non-empty definition.",
    "question_categories": "Questions must cover recall, comprehension, application and analysis.",
    "question_category_empty": "Every question category needs at least one question.",
    "question_count": f"Provide between {REVIEW_MIN_QUESTIONS} and {REVIEW_MAX_QUESTIONS} questions in total.",
    "content_body_empty": "The content body must not be empty.",
    "tone_emoji_present": "Emojis are not permitted anywhere.",
    "assembly_error": "Return exactly the requested format with no commentary.",
}


def _header(stage: str, request: StudyNoteRequest, profile: LevelProfile) -> str:
    emphasis = "; ".join(request.emphasis) or "none"
    return (
        "You are preparing academic study notes.\n"
        f"Stage: {stage}\n"
        f"Topic: {request.topic}\n"
        f"Audience level: {request.level.value} ({profile.description})\n"
        f"Emphasis: {emphasis}\n"
        f"Level guidance: {profile.guidance}\n"
        f"Tone policy: {TONE_POLICY}\n"
    )


def _context(source_text: str, feedback: list[str]) -> str:
    parts: list[str] = []
    if source_text:
        parts.append(f"Ground the content in this source material where relevant:\n{source_text}\n")
    hints = feedback_hints(feedback)
    if hints:
        parts.append("A previous draft was rejected. Fix these problems:\n" + "\n".join(f"- {h}" for h in hints) + "\n")
    return "".join(parts)


def feedback_hints(violations: list[str]) -> list[str]:
    hints: list[str] = []
    for violation in violations:
        key = violation.split(":", 1)[0]
        hint = FEEDBACK_HINTS.get(key)
        if hint and hint not in hints:
            hints.append(hint)
    return hints


def summary_prompt(request: StudyNoteRequest, profile: LevelProfile, source_text: str, feedback: list[str]) -> str:
    return (
        _header("summary", request, profile)
        + _context(source_text, feedback)
        + f"Write a summary of the topic in {SUMMARY_MIN_PARAGRAPHS} to {SUMMARY_MAX_PARAGRAPHS} paragraphs "
        "separated by blank lines. Plain prose only: no headings, lists or code blocks."
    )


def key_terms_prompt(request: StudyNoteRequest, profile: LevelProfile, source_text: str, feedback: list[str]) -> str:
    return (
        _header("key_terms", request, profile)
        + _context(source_text, feedback)
        + "List the key terms a student must know, including every emphasis area.\n"
        'Output only a JSON array of objects: [{"term": "...", "definition": "..."}]. '
        "Definitions are one or two sentences. Do not add markdown formatting to term names."
    )


def body_prompt(
    request: StudyNoteRequest,
    profile: LevelProfile,
    source_text: str,
    feedback: list[str],
    summary: list[str],
    terms: list[str],
) -> str:
    notation = "" if profile.allow_formal_notation else "Do not use LaTeX or formal mathematical notation.\n"
    return (
        _header("body", request, profile)
        + _context(source_text, feedback)
        + "Summary already written:\n"
        + "\n\n".join(summary)
        + "\n"
        + f"Key terms already defined: {', '.join(terms)}\n"
        + "Write the main explanatory content in markdown. Organise it with ### subheadings, "
        "give the emphasis areas fuller treatment, and include examples suited to the audience.\n"
        + notation
        + "Do not repeat the summary, the key terms list or any review questions."
    )


def questions_prompt(
    request: StudyNoteRequest,
    profile: LevelProfile,
    source_text: str,
    feedback: list[str],
    body: str,
) -> str:
    return (
        _header("questions", request, profile)
        + _context(source_text, feedback)
        + f"Content covered:\n{body}\n"
        + f"Write {REVIEW_MIN_QUESTIONS} to {REVIEW_MAX_QUESTIONS} review questions in total, with at least one "
        "question in each cognitive category.\n"
        'Output only a JSON object: {"recall": [...], "comprehension": [...], "application": [...], '
        '"analysis": [...]}. Each value is a list of question strings without numbering.'
    )


def trailing_prompt(request: StudyNoteRequest, profile: LevelProfile, source_text: str, feedback: list[str]) -> str:
    return (
        _header("trailing", request, profile)
        + _context(source_text, feedback)
        + "Optionally add up to two short closing sections such as 'Common Misconceptions' or "
        "'Further Reading'.\n"
        'Output only a JSON array: [{"title": "...", "body": "markdown"}]. Output [] if nothing useful remains. '
        "Never reuse the titles Summary, Key Terms, Content Body or Review Questions."
    )
