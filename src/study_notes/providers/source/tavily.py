import json
import logging
from typing import Any

import httpx

from study_notes.config import Settings

logger = logging.getLogger(__name__)
PAYLOAD_LOG_LIMIT = 4000


class TavilyExtract:
    """Fetches readable page content for source-material URLs via Tavily."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.extract_url = "https://api.tavily.com/extract"

    async def extract(self, urls: list[str]) -> dict[str, Any]:
        logger.info("tavily.extract.request count=%d", len(urls))
        logger.info(
            "tavily.extract.request.payload=%s",
            self._clip(self._to_json({"urls": urls}), PAYLOAD_LOG_LIMIT),
        )

        request_body = {
            "api_key": self.settings.tavily_api_key,
            "urls": urls,
        }
        async with httpx.AsyncClient(timeout=30.0) as client:
            http_response = await client.post(self.extract_url, json=request_body)
            http_response.raise_for_status()
            response = http_response.json()

        contents: dict[str, str] = {}
        failed_urls: list[str] = []
        for item in response.get("results", []):
            url = str(item.get("url", "")).strip()
            raw = str(item.get("raw_content", "") or item.get("content", "")).strip()
            if url and raw:
                contents[url] = raw
            elif url:
                failed_urls.append(url)
        failed_urls.extend(url for url in urls if url not in contents and url not in failed_urls)
        logger.info(
            "tavily.extract.response success=%d failed=%d",
            len(contents),
            len(failed_urls),
        )
        return {"contents": contents, "failed_urls": failed_urls}

    @staticmethod
    def _clip(text: str, limit: int) -> str:
        normalized = " ".join(text.split()).strip()
        if len(normalized) <= limit:
            return normalized
        return f"{normalized[:limit]}...(truncated)"

    @staticmethod
    def _to_json(payload: Any) -> str:
        try:
            return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError):
            return str(payload)
