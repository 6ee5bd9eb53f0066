import logging

from fastapi import FastAPI

from study_notes.api.schemas import NotesRequest, NotesResponse, TextNotesRequest
from study_notes.service.generator import StudyNoteService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="study-notes", version="0.1.0")
service = StudyNoteService()


@app.get("/healthz")
async def healthz() -> dict:
    return {"status": "ok"}


@app.post("/notes", response_model=NotesResponse)
async def create_notes(req: NotesRequest) -> NotesResponse:
    result = await service.generate(
        req.topic,
        req.level,
        emphasis=req.emphasis,
        source_material=req.source_material,
    )
    return NotesResponse(**result)


@app.post("/notes/from-text", response_model=NotesResponse)
async def create_notes_from_text(req: TextNotesRequest) -> NotesResponse:
    result = await service.generate_from_text(req.text)
    return NotesResponse(**result)
