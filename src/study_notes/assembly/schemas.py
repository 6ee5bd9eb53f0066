from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class KeyTermPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    term: str = Field(..., min_length=1)
    definition: str = Field(..., min_length=1)

    @field_validator("term")
    @classmethod
    def strip_markup(cls, value: str) -> str:
        cleaned = value.strip().strip("*_`").strip()
        if not cleaned:
            raise ValueError("term must not be empty")
        return cleaned


class ReviewQuestionsPayload(BaseModel):
    recall: list[str] = []
    comprehension: list[str] = []
    application: list[str] = []
    analysis: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def lowercase_categories(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {str(key).strip().lower(): value for key, value in data.items()}
        return data

    @field_validator("recall", "comprehension", "application", "analysis")
    @classmethod
    def drop_blank(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item and item.strip()]


class TrailingSectionPayload(BaseModel):
    title: str = Field(..., min_length=1)
    body: str = ""
