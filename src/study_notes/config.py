from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

TONE_POLICY = (
    "Write in a formal academic register using an objective third-person voice. "
    "Do not use emojis, colloquialisms, slang or exclamation-driven enthusiasm. "
    "Do not address the reader as 'you' and do not refer to yourself."
)


class LevelProfile(BaseModel):
    description: str = ""
    guidance: str = ""
    allow_formal_notation: bool = False


def _default_level_profiles() -> dict[str, LevelProfile]:
    return {
        "secondary": LevelProfile(
            description="secondary-school students",
            guidance=(
                "Use plain language and concrete everyday examples. Define every technical word on first use. "
                "Avoid formal mathematical notation, proofs and graduate-level formalism."
            ),
            allow_formal_notation=False,
        ),
        "undergraduate": LevelProfile(
            description="undergraduate university students",
            guidance=(
                "Assume introductory background in the discipline. Combine precise definitions with worked "
                "examples and mention common pitfalls. Use notation only where it clarifies."
            ),
            allow_formal_notation=False,
        ),
        "graduate": LevelProfile(
            description="graduate students",
            guidance=(
                "Assume solid disciplinary foundations. Use precise terminology and formal notation where "
                "appropriate, discuss edge cases, trade-offs and connections to the research literature."
            ),
            allow_formal_notation=True,
        ),
        "professional": LevelProfile(
            description="working professionals and practitioners",
            guidance=(
                "Focus on applied understanding, real-world usage, conventions and failure modes. "
                "Prefer concise explanations over derivations."
            ),
            allow_formal_notation=True,
        ),
    }


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    llm_provider: str = Field(default="openai", alias="LLM_PROVIDER")
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="https://api.deepseek.com", alias="OPENAI_BASE_URL")
    openai_model: str = Field(default="deepseek-chat", alias="OPENAI_MODEL")
    llm_timeout_seconds: float = Field(default=60.0, alias="LLM_TIMEOUT_SECONDS")
    llm_num_retries: int = Field(default=1, alias="LLM_NUM_RETRIES")
    llm_temperature: float = Field(default=0.4, alias="LLM_TEMPERATURE")

    notes_output_dir: str = Field(default="notes", alias="NOTES_OUTPUT_DIR")
    assembly_max_attempts: int = Field(default=3, alias="ASSEMBLY_MAX_ATTEMPTS")
    source_material_chars: int = Field(default=6000, alias="SOURCE_MATERIAL_CHARS")

    tavily_api_key: str = Field(default="", alias="TAVILY_API_KEY")
    tavily_extract_enabled: bool = Field(default=True, alias="TAVILY_EXTRACT_ENABLED")
    tavily_extract_max_urls: int = Field(default=3, alias="TAVILY_EXTRACT_MAX_URLS")

    level_profiles: dict[str, LevelProfile] = Field(
        default_factory=_default_level_profiles,
        alias="LEVEL_PROFILES",
    )

    def model_post_init(self, __context: Any) -> None:  # type: ignore[override]
        defaults = _default_level_profiles()
        normalized: dict[str, LevelProfile] = {}
        for key, profile in self.level_profiles.items():
            level_id = str(key).strip().lower()
            if level_id not in defaults:
                continue
            if isinstance(profile, LevelProfile):
                normalized[level_id] = profile
                continue
            if isinstance(profile, Mapping):
                normalized[level_id] = LevelProfile.model_validate(profile)
        for level_id, profile in defaults.items():
            normalized.setdefault(level_id, profile)
        self.level_profiles = normalized
        self.llm_provider = self.llm_provider.strip().lower() or "openai"
        self.assembly_max_attempts = max(1, self.assembly_max_attempts)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
