from typing import Literal

from pydantic import BaseModel, Field


class NotesRequest(BaseModel):
    topic: str = Field(..., min_length=1, description="Topic the study notes should cover.")
    level: str | None = Field(
        default=None,
        description="Audience level: secondary, undergraduate, graduate or professional.",
    )
    emphasis: list[str] = Field(default_factory=list, description="Areas to give fuller treatment.")
    source_material: str | None = Field(default=None, description="Optional text or URLs to ground the notes.")


class TextNotesRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Free-text request, e.g. 'create study notes for X'.")


class NotesResponse(BaseModel):
    status: Literal["generated", "needs_clarification", "failed"]
    markdown: str = ""
    path: str | None = None
    clarification: str | None = None
    meta: dict = Field(default_factory=dict)
