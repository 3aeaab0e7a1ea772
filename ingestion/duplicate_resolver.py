"""
Duplicate classification for uploaded papers.

Order of checks:
  1. fingerprint  - byte-identical file uploaded before (any subject)
  2. metadata     - same subject + exam type + semester + academic year

The resolver only reads. Replacing the existing exam is the exam writer's job,
and the unique constraints on the exams table settle races between uploads.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from database.models import Exam, ExamType


class DuplicateKind(str, enum.Enum):
    NEW = "new"
    FINGERPRINT = "duplicate_by_fingerprint"
    METADATA = "duplicate_by_metadata"


@dataclass(frozen=True)
class DuplicateCheck:
    kind: DuplicateKind
    existing_exam_id: Optional[int] = None

    @property
    def is_duplicate(self) -> bool:
        return self.kind != DuplicateKind.NEW


def resolve_duplicate(
    db: Session,
    subject_id: int,
    exam_type: ExamType,
    semester_id: int,
    academic_year: str,
    fingerprint: Optional[str],
) -> DuplicateCheck:
    """Classify an incoming paper as new, a fingerprint duplicate or a metadata duplicate."""
    if fingerprint:
        by_hash = db.query(Exam.id).filter(Exam.file_hash == fingerprint).first()
        if by_hash:
            return DuplicateCheck(DuplicateKind.FINGERPRINT, by_hash.id)

    by_metadata = db.query(Exam.id).filter(
        Exam.subject_id == subject_id,
        Exam.exam_type == exam_type,
        Exam.semester_id == semester_id,
        Exam.academic_year == academic_year,
    ).first()
    if by_metadata:
        return DuplicateCheck(DuplicateKind.METADATA, by_metadata.id)

    return DuplicateCheck(DuplicateKind.NEW)
