"""
Atomic Exam Writer

Persists one exam and its full question set in a single transaction:

  1. duplicate check (force_replace deletes the conflicting exam + questions)
  2. exam row
  3. primary questions, bulk
  4. question-number → id map from the flushed primary rows
  5. alternative ("OR") questions, linked through that map, bulk
  6. has_alternative = true on every original that got an alternative

Either all of it commits or none of it does. A half-written exam would skew the
topic frequencies of every later pattern analysis.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database.models import Exam, ExamType, Module, Question, Syllabus, Topic
from .duplicate_resolver import DuplicateCheck, resolve_duplicate
from .normalizer import strip_or_marker
from .schemas import ExamInfo, NormalizedPaper, NormalizedQuestion

log = logging.getLogger("ingestion.pipeline")

# Large papers insert a few hundred rows; give the transaction room (PostgreSQL only)
EXAM_WRITE_TIMEOUT_MS = int(os.getenv("EXAM_WRITE_TIMEOUT_MS", "60000"))
DEFAULT_TOTAL_MARKS = 60
DEFAULT_DURATION_MINUTES = 180


class DuplicateExamError(Exception):
    """The paper is already in the bank; carries the conflicting exam for a 'replace' prompt."""

    def __init__(self, check: DuplicateCheck):
        self.kind = check.kind
        self.existing_exam_id = check.existing_exam_id
        super().__init__(
            f"Exam already exists ({self.kind.value}, existing_exam_id={self.existing_exam_id}). "
            "Set force_replace to replace it."
        )


class ExamPersistenceError(RuntimeError):
    """The write transaction failed and was rolled back; nothing was stored."""


@dataclass
class ExamWriteResult:
    exam_id: int
    question_count: int
    primary_count: int
    alternative_count: int
    orphaned_alternatives: List[str] = field(default_factory=list)
    replaced_exam_id: Optional[int] = None


def _label_key(label: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (label or "").strip()).casefold()


def _alternative_label(q: NormalizedQuestion) -> str:
    base = strip_or_marker(q.question_number) or (q.alternative_of or "").strip()
    return f"{base} (OR)".strip()


def _parse_exam_date(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.strip())
    except ValueError:
        log.warning("[WRITE] Ignoring unparseable exam date %r", raw)
        return None


class _SyllabusIndex:
    """Module-number and topic-name lookups for linking questions to the syllabus."""

    def __init__(self, modules: List[Module]):
        self.module_by_number: Dict[int, Module] = {m.number: m for m in modules}
        self.topic_in_module: Dict[Tuple[int, str], Topic] = {}
        self.topic_by_name: Dict[str, Topic] = {}
        for module in modules:
            for topic in module.topics:
                key = topic.name.strip().casefold()
                self.topic_in_module.setdefault((module.id, key), topic)
                self.topic_by_name.setdefault(key, topic)

    @classmethod
    def load(cls, db: Session, subject_id: int) -> "_SyllabusIndex":
        syllabus = db.query(Syllabus).filter(Syllabus.subject_id == subject_id).first()
        return cls(list(syllabus.modules) if syllabus else [])

    def resolve(self, module_number: Optional[int], topic_name: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
        module = self.module_by_number.get(module_number) if module_number is not None else None
        topic = None
        if topic_name:
            key = topic_name.strip().casefold()
            if module is not None:
                topic = self.topic_in_module.get((module.id, key))
            if topic is None:
                topic = self.topic_by_name.get(key)
        if topic is not None and module is None:
            module = next((m for m in self.module_by_number.values() if m.id == topic.module_id), None)
        return (module.id if module else None, topic.id if topic else None)


def _question_row(
    exam_id: int,
    q: NormalizedQuestion,
    index: _SyllabusIndex,
    question_number: Optional[str] = None,
    alternative_of_id: Optional[int] = None,
) -> Question:
    module_id, topic_id = index.resolve(q.module_number, q.topic_name)
    return Question(
        exam_id=exam_id,
        question_number=question_number if question_number is not None else q.question_number,
        text=q.text,
        marks=q.marks,
        section=q.section,
        question_type=q.question_type,
        difficulty=q.difficulty,
        options=list(q.options),
        module_id=module_id,
        topic_id=topic_id,
        has_alternative=False,
        alternative_of_id=alternative_of_id,
    )


def _extend_statement_timeout(db: Session) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL statement_timeout = {int(EXAM_WRITE_TIMEOUT_MS)}"))


def delete_exam_rows(db: Session, exam_id: int) -> None:
    """Delete an exam and its questions inside the caller's transaction (no commit)."""
    db.query(Question).filter(Question.exam_id == exam_id).delete(synchronize_session="fetch")
    db.query(Exam).filter(Exam.id == exam_id).delete(synchronize_session="fetch")


def delete_exam(db: Session, exam_id: int) -> bool:
    """Delete an exam together with all of its questions."""
    if not db.query(Exam.id).filter(Exam.id == exam_id).first():
        return False
    try:
        delete_exam_rows(db, exam_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExamPersistenceError(f"Failed to delete exam {exam_id}: {e}") from e
    db.expire_all()
    return True


def write_exam(
    db: Session,
    paper: NormalizedPaper,
    subject_id: int,
    semester_id: int,
    academic_year: str,
    exam_type: ExamType,
    fingerprint: Optional[str] = None,
    force_replace: bool = False,
    exam_info: Optional[ExamInfo] = None,
) -> ExamWriteResult:
    """
    Store an exam with its primary and alternative questions, all or nothing.

    Raises:
        DuplicateExamError: the paper (by fingerprint or metadata) already exists and
            force_replace is off, or a concurrent upload won the unique constraint.
        ExamPersistenceError: any other storage failure; the transaction is rolled back.
    """
    exam_info = exam_info or ExamInfo()
    replaced_exam_id: Optional[int] = None

    try:
        _extend_statement_timeout(db)

        # Step 1: duplicates. A fingerprint match and a metadata match can be two
        # different exams, so keep replacing until the slot is free.
        check = resolve_duplicate(db, subject_id, exam_type, semester_id, academic_year, fingerprint)
        while check.is_duplicate:
            if not force_replace:
                raise DuplicateExamError(check)
            log.info("[WRITE] Replacing exam %s (%s)", check.existing_exam_id, check.kind.value)
            delete_exam_rows(db, check.existing_exam_id)
            replaced_exam_id = replaced_exam_id or check.existing_exam_id
            check = resolve_duplicate(db, subject_id, exam_type, semester_id, academic_year, fingerprint)

        # Step 2: exam row
        exam = Exam(
            subject_id=subject_id,
            semester_id=semester_id,
            exam_type=exam_type,
            academic_year=academic_year,
            exam_date=_parse_exam_date(exam_info.date),
            total_marks=exam_info.total_marks or DEFAULT_TOTAL_MARKS,
            duration=exam_info.duration or DEFAULT_DURATION_MINUTES,
            file_hash=fingerprint,
            is_processed=True,
        )
        db.add(exam)
        db.flush()

        index = _SyllabusIndex.load(db, subject_id)

        # Step 3: primary questions
        primary_rows = [_question_row(exam.id, q, index) for q in paper.primary]
        db.add_all(primary_rows)
        db.flush()

        # Step 4: number → id
        id_by_number: Dict[str, int] = {}
        for row in primary_rows:
            id_by_number.setdefault(_label_key(row.question_number), row.id)

        # Step 5: alternatives
        alternative_rows: List[Question] = []
        orphaned: List[str] = []
        linked_ids = set()
        for q in paper.alternatives:
            original_id = id_by_number.get(_label_key(q.alternative_of)) if q.alternative_of else None
            if original_id is None:
                orphaned.append(q.question_number)
                log.warning(
                    "[WRITE] Alternative %r has no matching original (alternative_of=%r); storing unlinked",
                    q.question_number, q.alternative_of,
                )
            else:
                linked_ids.add(original_id)
            alternative_rows.append(_question_row(
                exam.id, q, index,
                question_number=_alternative_label(q),
                alternative_of_id=original_id,
            ))
        db.add_all(alternative_rows)
        db.flush()

        # Step 6: flag originals
        if linked_ids:
            db.query(Question).filter(Question.id.in_(linked_ids)).update(
                {Question.has_alternative: True}, synchronize_session=False
            )

        db.commit()

    except DuplicateExamError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        # Lost a race on the unique constraints: report it the same way as a detected duplicate
        check = resolve_duplicate(db, subject_id, exam_type, semester_id, academic_year, fingerprint)
        if check.is_duplicate:
            log.info("[WRITE] Unique constraint rejected exam: %s", check.kind.value)
            raise DuplicateExamError(check) from e
        log.error("[WRITE] Integrity error while storing exam: %s", e)
        raise ExamPersistenceError(f"Failed to store exam: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        log.error("[WRITE] Exam transaction rolled back: %s", e)
        raise ExamPersistenceError(f"Failed to store exam: {e}") from e
    except Exception:
        db.rollback()
        raise

    result = ExamWriteResult(
        exam_id=exam.id,
        question_count=len(primary_rows) + len(alternative_rows),
        primary_count=len(primary_rows),
        alternative_count=len(alternative_rows),
        orphaned_alternatives=orphaned,
        replaced_exam_id=replaced_exam_id,
    )
    log.info(
        "[WRITE] exam=%s questions=%s (primary=%s, alternatives=%s, orphaned=%s)",
        result.exam_id, result.question_count, result.primary_count,
        result.alternative_count, len(orphaned),
    )
    return result
