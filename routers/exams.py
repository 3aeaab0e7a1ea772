"""
PYQ (previous-year question paper) endpoints - /pyq

  POST   /pyq/upload          - ingest one exam paper (PDF)
  GET    /pyq/exams           - list exams for a subject
  GET    /pyq/exams/{id}      - exam with its questions
  DELETE /pyq/exams/{id}      - delete exam + questions
"""

import logging
import os
from pathlib import Path
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from database import crud, schemas
from database.database import get_db
from ingestion.exam_writer import DuplicateExamError, ExamPersistenceError, delete_exam
from ingestion.extractor import extract_paper
from ingestion.pipeline import ExtractionError, PaperExtractor, ingest_exam

router = APIRouter(prefix="/pyq", tags=["pyq"])

log = logging.getLogger("ingestion.pipeline")

MAX_UPLOAD_SIZE = int(os.getenv("MAX_UPLOAD_SIZE", 52428800))  # 50MB default
ALLOWED_CONTENT_TYPES = {"application/pdf", "application/octet-stream"}


def get_paper_extractor() -> PaperExtractor:
    """Document-understanding collaborator used by /pyq/upload."""
    return extract_paper


async def read_pdf_upload(file: UploadFile) -> bytes:
    """
    Validate and read an uploaded paper

    Raises:
        HTTPException: missing name, not a PDF, empty, or larger than MAX_UPLOAD_SIZE
    """
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required"
        )
    if Path(file.filename.strip()).suffix.lower() != ".pdf":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only PDF question papers are supported"
        )
    if file.content_type and file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"MIME type mismatch: expected application/pdf, got {file.content_type}"
        )

    chunks = []
    size = 0
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > MAX_UPLOAD_SIZE:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File too large: {size} bytes. Max: {MAX_UPLOAD_SIZE} bytes ({MAX_UPLOAD_SIZE // 1048576}MB)"
            )
        chunks.append(chunk)

    if size == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is empty"
        )
    return b"".join(chunks)


@router.post("/upload", response_model=schemas.IngestResponse)
async def upload_pyq(
    file: UploadFile = File(..., description="Exam paper PDF"),
    subject_id: int = Form(...),
    semester_id: int = Form(...),
    academic_year: str = Form(..., description="e.g. 2024-2025"),
    exam_type: str = Form(..., description="midterm_1 | midterm_2 | end_term (synonyms accepted)"),
    force_replace: bool = Form(False, description="Replace an existing copy of this paper"),
    extractor: PaperExtractor = Depends(get_paper_extractor),
    db: Session = Depends(get_db),
):
    """
    **Ingest one previous-year paper.**

    A paper that is already stored (same file, or same subject + exam type +
    semester + academic year) is rejected with 409 and the existing exam id,
    unless `force_replace` is set.
    """
    data = await read_pdf_upload(file)

    try:
        result = await ingest_exam(
            db,
            data,
            subject_id=subject_id,
            semester_id=semester_id,
            academic_year=academic_year,
            exam_type=exam_type,
            force_replace=force_replace,
            extractor=extractor,
        )
    except DuplicateExamError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "This exam paper already exists",
                "kind": e.kind.value,
                "existing_exam_id": e.existing_exam_id,
            },
        )
    except crud.NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ExtractionError as e:
        log.error("[INGEST] Extraction failed for %s: %s", file.filename, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Paper extraction failed: {e}")
    except ExamPersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store exam; nothing was saved"
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    message = f"Stored {result.question_count} questions"
    if result.replaced_exam_id:
        message += f" (replaced exam {result.replaced_exam_id})"

    return schemas.IngestResponse(
        exam_id=result.exam_id,
        questions_count=result.question_count,
        primary_count=result.primary_count,
        alternative_count=result.alternative_count,
        orphaned_alternatives=result.orphaned_alternatives,
        replaced_exam_id=result.replaced_exam_id,
        fingerprint=result.fingerprint,
        message=message,
    )


@router.get("/exams", response_model=List[schemas.ExamResponse])
def list_exams(subject_id: int, db: Session = Depends(get_db)):
    if not crud.get_subject(db, subject_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Subject with ID {subject_id} not found"
        )
    return crud.get_exams_by_subject(db, subject_id)


@router.get("/exams/{exam_id}", response_model=schemas.ExamWithQuestions)
def get_exam(exam_id: int, db: Session = Depends(get_db)):
    exam = crud.get_exam_with_questions(db, exam_id)
    if not exam:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Exam with ID {exam_id} not found"
        )
    return exam


@router.delete("/exams/{exam_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_exam(exam_id: int, db: Session = Depends(get_db)):
    """
    Delete an exam and all of its questions
    """
    try:
        deleted = delete_exam(db, exam_id)
    except ExamPersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete exam {exam_id}"
        )
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Exam with ID {exam_id} not found"
        )
