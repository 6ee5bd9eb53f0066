import asyncio

from study_notes.config import Settings
from study_notes.retrieval.source_resolver import SourceMaterialResolver


def _resolver(**settings) -> SourceMaterialResolver:
    return SourceMaterialResolver(Settings(TAVILY_API_KEY="tvly-test", **settings))


def test_no_source_material_resolves_empty() -> None:
    context = asyncio.run(_resolver().resolve(None))

    assert context.text == ""
    assert context.as_meta()["extracted_urls"] == []


def test_plain_text_source_is_passed_through() -> None:
    context = asyncio.run(_resolver().resolve("  Lecture transcript about slicing.  "))

    assert context.text == "Lecture transcript about slicing."
    assert context.truncated is False


def test_extract_success_appends_content(monkeypatch) -> None:
    resolver = _resolver()

    async def fake_extract(urls: list[str]) -> dict:
        assert urls == ["https://docs.python.org/3/tutorial/introduction.html"]
        return {
            "contents": {"https://docs.python.org/3/tutorial/introduction.html": "Strings can be sliced."},
            "failed_urls": [],
        }

    monkeypatch.setattr(resolver.extract_provider, "extract", fake_extract)
    context = asyncio.run(resolver.resolve("See https://docs.python.org/3/tutorial/introduction.html."))

    assert context.extracted_urls == ["https://docs.python.org/3/tutorial/introduction.html"]
    assert context.extract_failed_urls == []
    assert "Strings can be sliced." in context.text
    assert context.text.startswith("See https://docs.python.org/3/tutorial/introduction.html.")


def test_extract_failure_degrades_to_raw_text(monkeypatch) -> None:
    resolver = _resolver()

    async def fake_extract(urls: list[str]) -> dict:
        raise RuntimeError("extract timeout")

    monkeypatch.setattr(resolver.extract_provider, "extract", fake_extract)
    context = asyncio.run(resolver.resolve("https://example.com/slicing"))

    assert context.text == "https://example.com/slicing"
    assert context.extracted_urls == []
    assert context.extract_failed_urls == ["https://example.com/slicing"]


def test_extract_skipped_when_disabled(monkeypatch) -> None:
    resolver = _resolver(TAVILY_EXTRACT_ENABLED=False)

    async def fake_extract(urls: list[str]) -> dict:
        raise AssertionError("extract must not be called")

    monkeypatch.setattr(resolver.extract_provider, "extract", fake_extract)
    context = asyncio.run(resolver.resolve("https://example.com/slicing"))

    assert context.text == "https://example.com/slicing"


def test_long_source_is_clipped() -> None:
    context = asyncio.run(_resolver(SOURCE_MATERIAL_CHARS=10).resolve("abcdefghijklmnopqrstuvwxyz"))

    assert context.truncated is True
    assert context.text == "abcdefghij\n...(truncated)"
