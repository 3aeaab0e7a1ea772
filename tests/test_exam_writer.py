"""
Tests for the atomic exam writer: two-phase insert, OR linkage, duplicates,
forced replacement and rollback on failure.
"""
import pytest
from sqlalchemy.exc import OperationalError

from database.models import Exam, ExamType, Question
from ingestion import exam_writer
from ingestion.duplicate_resolver import DuplicateCheck, DuplicateKind, resolve_duplicate
from ingestion.exam_writer import (
    DuplicateExamError,
    ExamPersistenceError,
    delete_exam,
    write_exam,
)
from ingestion.normalizer import normalize_questions
from ingestion.schemas import ExtractedQuestion


def _write(db, subject, semester, paper, fingerprint="hash-1", year="2024-2025", **kwargs):
    return write_exam(
        db,
        paper,
        subject_id=subject.id,
        semester_id=semester.id,
        academic_year=year,
        exam_type=kwargs.pop("exam_type", ExamType.MIDTERM_1),
        fingerprint=fingerprint,
        **kwargs,
    )


@pytest.fixture
def paper(sample_paper):
    return normalize_questions(sample_paper.all_questions)


def _questions(db, exam_id):
    return {q.question_number: q for q in db.query(Question).filter(Question.exam_id == exam_id)}


class TestTwoPhaseInsert:

    def test_counts(self, db, subject, semester, syllabus, paper):
        result = _write(db, subject, semester, paper)
        assert result.primary_count == 3
        assert result.alternative_count == 1
        assert result.question_count == 4
        assert result.orphaned_alternatives == []
        assert db.query(Question).count() == 4

    def test_alternative_linked_and_original_flagged(self, db, subject, semester, syllabus, paper):
        result = _write(db, subject, semester, paper)
        questions = _questions(db, result.exam_id)

        original = questions["1"]
        alternative = questions["1 (OR)"]
        assert alternative.alternative_of_id == original.id
        assert original.has_alternative is True
        assert alternative.has_alternative is False

    def test_has_alternative_only_on_referenced_originals(self, db, subject, semester, syllabus, paper):
        result = _write(db, subject, semester, paper)
        referenced = {
            q.alternative_of_id
            for q in db.query(Question).filter(Question.alternative_of_id.isnot(None))
        }
        for q in _questions(db, result.exam_id).values():
            assert q.has_alternative == (q.id in referenced)

    def test_syllabus_hints_resolved(self, db, subject, semester, syllabus, paper):
        result = _write(db, subject, semester, paper)
        questions = _questions(db, result.exam_id)
        modules = {m.number: m for m in syllabus.modules}

        assert questions["1"].module_id == modules[1].id
        assert questions["1"].topic.name == "CSS Selectors"
        # topic only: module inferred from the topic
        assert questions["2"].topic.name == "Event Handling"
        assert questions["2"].module_id == modules[2].id
        # "Module 2" label
        assert questions["3"].module_id == modules[2].id
        assert questions["3"].options == ["getElementById", "querySelectorAll"]

    def test_unknown_topic_left_unlinked(self, db, subject, semester, syllabus):
        paper = normalize_questions([
            ExtractedQuestion(question_number="1", text="Q", marks=2, module=9, topic="Quantum Web"),
        ])
        result = _write(db, subject, semester, paper)
        q = _questions(db, result.exam_id)["1"]
        assert q.module_id is None
        assert q.topic_id is None

    def test_orphaned_alternative_kept_unlinked(self, db, subject, semester, syllabus):
        paper = normalize_questions([
            ExtractedQuestion(question_number="1", text="Q one", marks=5),
            ExtractedQuestion(question_number="5 OR", text="Lost", marks=5,
                              is_alternative=True, alternative_of="5"),
        ])
        result = _write(db, subject, semester, paper)
        assert result.orphaned_alternatives == ["5 OR"]
        questions = _questions(db, result.exam_id)
        assert questions["5 (OR)"].alternative_of_id is None
        assert questions["1"].has_alternative is False

    def test_label_matching_ignores_case_and_whitespace(self, db, subject, semester, syllabus):
        paper = normalize_questions([
            ExtractedQuestion(question_number="Q1a", text="Q one", marks=5),
            ExtractedQuestion(question_number="Q1a OR", text="Alt", marks=5, alternative_of=" q1A "),
        ])
        result = _write(db, subject, semester, paper)
        questions = _questions(db, result.exam_id)
        assert questions["Q1a (OR)"].alternative_of_id == questions["Q1a"].id

    def test_exam_info_applied(self, db, subject, semester, syllabus, sample_paper, paper):
        result = _write(db, subject, semester, paper, exam_info=sample_paper.exam_info)
        exam = db.get(Exam, result.exam_id)
        assert exam.total_marks == 30
        assert exam.duration == 90
        assert exam.file_hash == "hash-1"
        assert exam.is_processed is True


class TestDuplicates:

    def test_same_bytes_twice_is_duplicate(self, db, subject, semester, syllabus, paper):
        first = _write(db, subject, semester, paper)
        with pytest.raises(DuplicateExamError) as exc:
            _write(db, subject, semester, paper, year="2025-2026")
        assert exc.value.kind == DuplicateKind.FINGERPRINT
        assert exc.value.existing_exam_id == first.exam_id
        assert db.query(Question).count() == 4

    def test_same_metadata_is_duplicate(self, db, subject, semester, syllabus, paper):
        first = _write(db, subject, semester, paper)
        with pytest.raises(DuplicateExamError) as exc:
            _write(db, subject, semester, paper, fingerprint="hash-2")
        assert exc.value.kind == DuplicateKind.METADATA
        assert exc.value.existing_exam_id == first.exam_id

    def test_force_replace_keeps_one_exam_per_sitting(self, db, subject, semester, syllabus, paper):
        first = _write(db, subject, semester, paper)
        old_texts = {q.text for q in db.query(Question)}
        smaller = normalize_questions([ExtractedQuestion(question_number="1", text="New", marks=10)])

        second = _write(db, subject, semester, smaller, fingerprint="hash-2", force_replace=True)

        assert second.replaced_exam_id == first.exam_id
        exams = db.query(Exam).filter(
            Exam.subject_id == subject.id,
            Exam.exam_type == ExamType.MIDTERM_1,
            Exam.semester_id == semester.id,
            Exam.academic_year == "2024-2025",
        ).all()
        assert [e.id for e in exams] == [second.exam_id]
        assert db.query(Question).count() == 1
        remaining = db.query(Question).all()
        assert [q.text for q in remaining] == ["New"]
        assert remaining[0].exam_id == second.exam_id
        assert "New" not in old_texts

    def test_force_replace_clears_fingerprint_and_metadata_conflicts(self, db, subject, semester, syllabus, paper):
        by_meta = _write(db, subject, semester, paper, fingerprint="hash-a")
        by_hash = _write(db, subject, semester, paper, fingerprint="hash-b", year="2023-2024")

        result = _write(db, subject, semester, paper, fingerprint="hash-b", force_replace=True)

        remaining = {e.id for e in db.query(Exam)}
        assert remaining == {result.exam_id}
        assert result.replaced_exam_id in (by_meta.exam_id, by_hash.exam_id)

    def test_unique_constraint_race_reported_as_duplicate(self, db, subject, semester, syllabus, paper, monkeypatch):
        existing = _write(db, subject, semester, paper)
        calls = []

        def racing_resolver(*args, **kwargs):
            # first check misses the concurrent commit; later checks see it
            calls.append(args)
            if len(calls) == 1:
                return DuplicateCheck(DuplicateKind.NEW)
            return resolve_duplicate(*args, **kwargs)

        monkeypatch.setattr(exam_writer, "resolve_duplicate", racing_resolver)
        with pytest.raises(DuplicateExamError) as exc:
            _write(db, subject, semester, paper)
        assert exc.value.existing_exam_id == existing.exam_id
        assert db.query(Exam).count() == 1
        assert db.query(Question).count() == 4


class TestAtomicity:

    def test_failure_after_primary_insert_rolls_back_everything(self, db, subject, semester, syllabus, paper, monkeypatch):
        def broken_label(q):
            raise OperationalError("INSERT INTO questions", {}, Exception("disk I/O error"))

        monkeypatch.setattr(exam_writer, "_alternative_label", broken_label)
        with pytest.raises(ExamPersistenceError):
            _write(db, subject, semester, paper)

        assert db.query(Exam).count() == 0
        assert db.query(Question).count() == 0

    def test_commit_failure_rolls_back(self, db, subject, semester, syllabus, paper, monkeypatch):
        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("connection lost"))

        monkeypatch.setattr(db, "commit", failing_commit)
        with pytest.raises(ExamPersistenceError):
            _write(db, subject, semester, paper)
        monkeypatch.undo()

        assert db.query(Exam).count() == 0
        assert db.query(Question).count() == 0

    def test_unexpected_error_rolls_back_and_propagates(self, db, subject, semester, syllabus, paper, monkeypatch):
        def broken_label(q):
            raise KeyError("label")

        monkeypatch.setattr(exam_writer, "_alternative_label", broken_label)
        with pytest.raises(KeyError):
            _write(db, subject, semester, paper)
        assert db.query(Exam).count() == 0


class TestDeleteExam:

    def test_delete_removes_exam_and_questions(self, db, subject, semester, syllabus, paper):
        result = _write(db, subject, semester, paper)
        assert delete_exam(db, result.exam_id) is True
        assert db.query(Exam).count() == 0
        assert db.query(Question).count() == 0

    def test_delete_unknown_exam(self, db, syllabus):
        assert delete_exam(db, 999) is False
