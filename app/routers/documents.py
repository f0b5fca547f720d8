"""
Study document upload and management endpoints.

POST   /upload  parse a PDF, DOCX, TXT or MD file and store its text.
GET    /        list the caller's documents.
GET    /{id}    document metadata + full text.
DELETE /{id}    delete document and file from disk.
"""
from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path
from typing import List

import aiofiles
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.dependencies.auth import get_current_user_id, get_or_create_user
from app.models.database_models import Document, User
from app.models.schemas import DocumentDetailResponse, DocumentResponse, DocumentUploadResponse
from app.services.document_parser import DocumentParser
from app.services.subscription import count_documents_this_month, get_feature_limits, pro_required
from app.utils.helpers import truncate_text

logger = logging.getLogger(__name__)

router = APIRouter()

PREVIEW_CHARS = 300


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _safe_remove(path: str) -> None:
    try:
        if path and os.path.exists(path):
            os.remove(path)
    except OSError as exc:
        logger.warning("Could not remove file %r: %s", path, exc)


def _document_response(doc: Document) -> DocumentResponse:
    return DocumentResponse(
        id=doc.id,
        filename=doc.filename,
        file_type=doc.file_type,
        file_size=doc.file_size,
        metadata_json=doc.metadata_json,
        content_preview=truncate_text(doc.content_text or "", PREVIEW_CHARS) or None,
        created_at=doc.created_at,
    )


async def get_user_document(db: AsyncSession, document_id: int, user_id: str) -> Document:
    """The caller's document or 404."""
    result = await db.execute(
        select(Document).where(Document.id == document_id, Document.user_id == user_id)
    )
    document = result.scalar_one_or_none()
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {document_id} not found.",
        )
    return document


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    file: UploadFile = File(...),
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentUploadResponse:
    """
    Upload a study document and extract its text.

    - Max file size: MAX_FILE_SIZE (20 MB by default)
    - File is stored with a UUID filename to avoid collisions
    - Free accounts are limited to a few uploads per calendar month
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload must include a filename.",
        )

    file_ext = Path(file.filename).suffix.lower()
    if file_ext not in settings.SUPPORTED_FILE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Unsupported file type '{file_ext}'. "
                f"Accepted: {', '.join(settings.SUPPORTED_FILE_TYPES)}"
            ),
        )

    limits = get_feature_limits(user)
    if limits.documents_per_month is not None:
        uploaded = await count_documents_this_month(db, user.id)
        if uploaded >= limits.documents_per_month:
            raise pro_required(
                f"Free accounts can upload {limits.documents_per_month} documents per month. "
                "Upgrade to Pro for unlimited uploads."
            )

    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    stored_name = f"{uuid.uuid4().hex}{file_ext}"
    file_path = os.path.join(settings.UPLOAD_DIR, stored_name)
    file_size = 0

    try:
        # Stream to disk while enforcing the size limit
        async with aiofiles.open(file_path, "wb") as out:
            while True:
                chunk = await file.read(1024 * 1024)   # 1 MB slices
                if not chunk:
                    break
                file_size += len(chunk)
                if file_size > settings.MAX_FILE_SIZE:
                    await out.close()
                    _safe_remove(file_path)
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=(
                            f"File exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)} MB "
                            "size limit."
                        ),
                    )
                await out.write(chunk)

        logger.info("Saved %r -> %s (%d bytes)", file.filename, file_path, file_size)

        parser = DocumentParser()
        try:
            parsed_doc = await parser.parse_document(file_path, file_ext)
        except (RuntimeError, ValueError) as exc:
            _safe_remove(file_path)
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=str(exc),
            )

        if not parsed_doc.full_text.strip():
            _safe_remove(file_path)
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Document contains no extractable text.",
            )

        document = Document(
            user_id=user.id,
            filename=file.filename,          # human-readable display name
            file_path=file_path,             # UUID-based path on disk
            file_type=file_ext.lstrip("."),
            file_size=file_size,
            content_text=parsed_doc.full_text,
            metadata_json=parsed_doc.metadata,
        )
        db.add(document)
        await db.flush()

        word_count = parsed_doc.metadata.get("word_count", 0)
        logger.info("Document %r stored as id=%d (%d words)", file.filename, document.id, word_count)

        return DocumentUploadResponse(
            id=document.id,
            filename=document.filename,
            file_type=document.file_type,
            file_size=file_size,
            word_count=word_count,
            status="processed",
            message=f"Document uploaded and parsed successfully. {word_count} words extracted.",
        )

    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Unexpected error processing %r", file.filename)
        _safe_remove(file_path)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error processing document: {exc}",
        )


# ---------------------------------------------------------------------------
# Read / delete
# ---------------------------------------------------------------------------

@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> List[DocumentResponse]:
    """The caller's documents, newest first."""
    result = await db.execute(
        select(Document)
        .where(Document.user_id == user_id)
        .order_by(Document.created_at.desc(), Document.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return [_document_response(doc) for doc in result.scalars().all()]


@router.get("/{document_id}", response_model=DocumentDetailResponse)
async def get_document(
    document_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> DocumentDetailResponse:
    document = await get_user_document(db, document_id, user_id)
    return DocumentDetailResponse(
        **_document_response(document).model_dump(),
        content_text=document.content_text,
    )


@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
async def delete_document(
    document_id: int,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Delete a document row and its file on disk."""
    document = await get_user_document(db, document_id, user_id)
    _safe_remove(document.file_path)
    await db.delete(document)
    await db.flush()
    logger.info("Deleted document id=%d (%r)", document_id, document.filename)
