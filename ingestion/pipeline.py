"""
PYQ ingestion pipeline: uploaded paper bytes → stored exam + questions.

  1. fingerprint the bytes
  2. early duplicate check (before paying for extraction)
  3. extract the question list (document-understanding collaborator)
  4. normalize into primary / alternative records
  5. atomic write (re-checks duplicates inside the transaction)
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union

from sqlalchemy.orm import Session

from database import crud
from database.models import ExamType
from .duplicate_resolver import resolve_duplicate
from .exam_writer import DuplicateExamError, write_exam
from .extractor import extract_paper
from .fingerprint import compute_fingerprint
from .normalizer import normalize_exam_type, normalize_questions, parse_exam_type
from .schemas import ExamInfo, ExtractedPaper

log = logging.getLogger("ingestion.pipeline")

EXTRACTION_TIMEOUT_SECONDS = float(os.getenv("EXTRACTION_TIMEOUT_SECONDS", "180"))

PaperExtractor = Callable[[bytes], Awaitable[ExtractedPaper]]


class ExtractionError(RuntimeError):
    """The extractor failed, timed out, or found no questions; nothing was stored."""


@dataclass
class IngestResult:
    exam_id: int
    question_count: int
    primary_count: int
    alternative_count: int
    fingerprint: str
    orphaned_alternatives: List[str] = field(default_factory=list)
    replaced_exam_id: Optional[int] = None
    exam_info: ExamInfo = field(default_factory=ExamInfo)


async def ingest_exam(
    db: Session,
    file_bytes: bytes,
    subject_id: int,
    semester_id: int,
    academic_year: str,
    exam_type: Union[ExamType, str],
    force_replace: bool = False,
    extractor: Optional[PaperExtractor] = None,
    timeout: Optional[float] = None,
) -> IngestResult:
    """
    Ingest one exam paper.

    Raises:
        crud.NotFoundError: unknown subject or semester
        ValueError: empty academic year or unknown exam type
        DuplicateExamError: paper already stored and force_replace is off
        ExtractionError: extractor failure / timeout / empty extraction
        ExamPersistenceError: write transaction rolled back
    """
    crud.require_subject(db, subject_id)
    crud.require_semester(db, semester_id)
    academic_year = (academic_year or "").strip()
    if not academic_year:
        raise ValueError("academic_year is required")
    exam_type = parse_exam_type(exam_type)

    fingerprint = compute_fingerprint(file_bytes)
    log.info(
        "[INGEST] subject=%s semester=%s year=%s type=%s bytes=%s hash=%s",
        subject_id, semester_id, academic_year, exam_type.value, len(file_bytes or b""), fingerprint[:12],
    )

    check = resolve_duplicate(db, subject_id, exam_type, semester_id, academic_year, fingerprint)
    if check.is_duplicate and not force_replace:
        log.info("[INGEST] Duplicate (%s) of exam %s", check.kind.value, check.existing_exam_id)
        raise DuplicateExamError(check)

    extractor = extractor or extract_paper
    try:
        paper = await asyncio.wait_for(
            extractor(file_bytes),
            timeout if timeout is not None else EXTRACTION_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError as e:
        log.error("[EXTRACT] Extractor timed out")
        raise ExtractionError("Paper extraction timed out") from e
    except Exception as e:
        log.error("[EXTRACT] Extractor failed: %s", e)
        raise ExtractionError(str(e)) from e

    if paper.exam_info.exam_type and normalize_exam_type(paper.exam_info.exam_type) != exam_type:
        log.info(
            "[INGEST] Paper header says %r; keeping caller's exam type %s",
            paper.exam_info.exam_type, exam_type.value,
        )

    normalized = normalize_questions(paper.all_questions)
    if normalized.total == 0:
        raise ExtractionError("No questions found in the uploaded paper")

    result = write_exam(
        db,
        normalized,
        subject_id=subject_id,
        semester_id=semester_id,
        academic_year=academic_year,
        exam_type=exam_type,
        fingerprint=fingerprint,
        force_replace=force_replace,
        exam_info=paper.exam_info,
    )

    return IngestResult(
        exam_id=result.exam_id,
        question_count=result.question_count,
        primary_count=result.primary_count,
        alternative_count=result.alternative_count,
        fingerprint=fingerprint,
        orphaned_alternatives=result.orphaned_alternatives,
        replaced_exam_id=result.replaced_exam_id,
        exam_info=paper.exam_info,
    )
