import logging
from typing import Any

from study_notes.config import Settings
from study_notes.providers.llm.mock import MockStudyNoteLLM

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider:
    """Builds the chat model used by the assembly stages.

    `LLM_PROVIDER=mock` swaps in the deterministic offline model.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.model = self.normalize_model(settings.openai_model)

    def build(self) -> Any:
        if self.settings.llm_provider == "mock":
            logger.info("llm.provider name=mock")
            return MockStudyNoteLLM()

        from langchain_openai import ChatOpenAI

        logger.info(
            "llm.provider name=openai model=%s timeout=%.1fs retries=%d",
            self.model,
            self.settings.llm_timeout_seconds,
            self.settings.llm_num_retries,
        )
        return ChatOpenAI(
            model=self.strip_provider_prefix(self.model),
            api_key=self.settings.openai_api_key or None,
            base_url=self.settings.openai_base_url,
            timeout=self.settings.llm_timeout_seconds,
            max_retries=self.settings.llm_num_retries,
            temperature=self.settings.llm_temperature,
        )

    @staticmethod
    def normalize_model(model: str) -> str:
        stripped = model.strip()
        if "/" in stripped:
            return stripped
        return f"openai/{stripped}"

    @staticmethod
    def strip_provider_prefix(model: str) -> str:
        if "/" not in model:
            return model
        return model.split("/", 1)[1]
