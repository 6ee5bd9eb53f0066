import logging
import re
from dataclasses import dataclass, field

from study_notes.config import Settings
from study_notes.providers.source.tavily import TavilyExtract

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"https?://[^\s<>\"')\]]+")


@dataclass
class SourceContext:
    text: str = ""
    extracted_urls: list[str] = field(default_factory=list)
    extract_failed_urls: list[str] = field(default_factory=list)
    truncated: bool = False

    def as_meta(self) -> dict:
        return {
            "source_chars": len(self.text),
            "source_truncated": self.truncated,
            "extracted_urls": self.extracted_urls,
            "extract_failed_urls": self.extract_failed_urls,
        }


class SourceMaterialResolver:
    """Turns user-supplied source material into prompt context.

    URLs are expanded through Tavily extract when enabled; any extract
    failure degrades to the material exactly as supplied.
    """

    def __init__(self, settings: Settings, extract_provider: TavilyExtract | None = None) -> None:
        self.settings = settings
        self.extract_provider = extract_provider or TavilyExtract(settings)

    async def resolve(self, source_material: str | None) -> SourceContext:
        raw = (source_material or "").strip()
        if not raw:
            return SourceContext()

        context = SourceContext(text=raw)
        urls = self._select_extract_urls(raw)
        if urls and self._extract_enabled():
            await self._enrich_with_extract(context, urls)
        elif urls:
            logger.info("source.extract.skipped urls=%d reason=disabled", len(urls))

        limit = self.settings.source_material_chars
        if limit > 0 and len(context.text) > limit:
            context.text = f"{context.text[:limit].rstrip()}\n...(truncated)"
            context.truncated = True
        logger.info(
            "source.resolved chars=%d truncated=%s extracted=%d extract_failed=%d",
            len(context.text),
            context.truncated,
            len(context.extracted_urls),
            len(context.extract_failed_urls),
        )
        return context

    def _extract_enabled(self) -> bool:
        return self.settings.tavily_extract_enabled and bool(self.settings.tavily_api_key)

    async def _enrich_with_extract(self, context: SourceContext, urls: list[str]) -> None:
        try:
            extract_result = await self.extract_provider.extract(urls)
        except Exception as exc:
            logger.warning("source.extract.failed type=%s detail=%s", exc.__class__.__name__, str(exc))
            context.extract_failed_urls = list(urls)
            return

        contents: dict[str, str] = extract_result.get("contents", {})
        context.extracted_urls = list(contents.keys())
        context.extract_failed_urls = list(extract_result.get("failed_urls", []))
        if contents:
            blocks = [context.text]
            for url, content in contents.items():
                blocks.append(f"Source: {url}\n{content.strip()}")
            context.text = "\n\n".join(blocks)

    def _select_extract_urls(self, text: str) -> list[str]:
        urls: list[str] = []
        for match in _URL_RE.finditer(text):
            url = match.group(0).rstrip(".,;:")
            if url in urls:
                continue
            urls.append(url)
            if len(urls) >= self.settings.tavily_extract_max_urls:
                break
        return urls
