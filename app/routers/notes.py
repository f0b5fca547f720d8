"""
Structured study notes generated from a topic or an uploaded document.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_user_id, get_or_create_user
from app.models.database_models import StudyNote, User
from app.models.schemas import (
    NotesGenerateRequest,
    StudyNoteContent,
    StudyNoteResponse,
    StudyNoteSummary,
)
from app.routers.documents import get_user_document
from app.services.llm_service import LLMService, LLMServiceError, get_llm_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _note_response(note: StudyNote) -> StudyNoteResponse:
    return StudyNoteResponse(
        id=note.id,
        title=note.title,
        topic=note.topic,
        document_id=note.document_id,
        created_at=note.created_at,
        content=StudyNoteContent(**(note.content or {"title": note.title})),
    )


async def _get_user_note(db: AsyncSession, note_id: int, user_id: str) -> StudyNote:
    result = await db.execute(
        select(StudyNote).where(StudyNote.id == note_id, StudyNote.user_id == user_id)
    )
    note = result.scalar_one_or_none()
    if note is None:
        raise HTTPException(status_code=404, detail=f"Note {note_id} not found.")
    return note


@router.post("", response_model=StudyNoteResponse, status_code=status.HTTP_201_CREATED)
async def generate_notes(
    body: NotesGenerateRequest,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
    llm: LLMService = Depends(get_llm_service),
) -> StudyNoteResponse:
    """Generate and save study notes for a topic and/or document."""
    topic = (body.topic or "").strip()
    if not topic and body.document_id is None:
        raise HTTPException(status_code=400, detail="Provide a topic or a document_id.")

    source_text = ""
    if body.document_id is not None:
        document = await get_user_document(db, body.document_id, user.id)
        source_text = document.content_text or ""
        topic = topic or document.filename

    try:
        content = await llm.generate_notes(
            topic=topic,
            source_text=source_text,
            instructions=body.instructions or "",
        )
    except LLMServiceError as exc:
        logger.error("Notes generation failed for user=%s topic=%r: %s", user.id, topic, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))

    validated = StudyNoteContent(**content)
    note = StudyNote(
        user_id=user.id,
        document_id=body.document_id,
        title=validated.title[:255],
        topic=topic,
        content=validated.model_dump(),
    )
    db.add(note)
    await db.flush()

    logger.info("Saved study note id=%d for user=%s (%r)", note.id, user.id, note.title)
    return _note_response(note)


@router.get("", response_model=List[StudyNoteSummary])
async def list_notes(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[StudyNoteSummary]:
    """The caller's notes, newest first."""
    result = await db.execute(
        select(StudyNote)
        .where(StudyNote.user_id == user_id)
        .order_by(StudyNote.created_at.desc(), StudyNote.id.desc())
    )
    return [StudyNoteSummary.model_validate(n) for n in result.scalars().all()]


@router.get("/{note_id}", response_model=StudyNoteResponse)
async def get_note(
    note_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> StudyNoteResponse:
    return _note_response(await _get_user_note(db, note_id, user_id))


@router.delete("/{note_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def delete_note(
    note_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> None:
    note = await _get_user_note(db, note_id, user_id)
    await db.delete(note)
    await db.flush()
    logger.info("Deleted study note id=%d", note_id)
