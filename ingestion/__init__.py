"""
PYQ Ingestion Package

Previous-year question paper → question bank:
1. Fingerprint (SHA-256 of the uploaded bytes) → dedup key
2. Duplicate check (fingerprint, then subject/type/semester/year) → fail fast
3. Extract (pypdf + GPT, injectable) → flat question list with OR linkage
4. Normalize (type / difficulty / marks / text) → primary + alternative records
5. Write (one transaction, two-phase insert) → exam + questions
"""

from .fingerprint import compute_fingerprint
from .duplicate_resolver import DuplicateCheck, DuplicateKind, resolve_duplicate
from .extractor import extract_paper, extract_pdf_text
from .normalizer import (
    normalize_difficulty,
    normalize_exam_type,
    parse_exam_type,
    normalize_question_type,
    normalize_questions,
)
from .exam_writer import (
    DuplicateExamError,
    ExamPersistenceError,
    ExamWriteResult,
    delete_exam,
    write_exam,
)
from .pipeline import ExtractionError, IngestResult, ingest_exam
from .schemas import ExtractedPaper, ExtractedQuestion, NormalizedPaper, NormalizedQuestion

__all__ = [
    # Step 1: Fingerprint
    "compute_fingerprint",

    # Step 2: Duplicate check
    "DuplicateCheck",
    "DuplicateKind",
    "resolve_duplicate",

    # Step 3: Extract
    "extract_paper",
    "extract_pdf_text",

    # Step 4: Normalize
    "normalize_difficulty",
    "normalize_exam_type",
    "parse_exam_type",
    "normalize_question_type",
    "normalize_questions",

    # Step 5: Write
    "DuplicateExamError",
    "ExamPersistenceError",
    "ExamWriteResult",
    "delete_exam",
    "write_exam",

    # Pipeline
    "ExtractionError",
    "IngestResult",
    "ingest_exam",

    # Schemas
    "ExtractedPaper",
    "ExtractedQuestion",
    "NormalizedPaper",
    "NormalizedQuestion",
]
