"""
Question Normalization
Maps the loosely-typed extractor output into canonical question records.

Every mapping here is total: unknown enum spellings fall back to a documented
default instead of rejecting the paper, because one mislabeled question should
not cost the rest of the exam.

  question type  → mcq | short | long        (fallback: short; "descriptive" → long)
  difficulty     → easy | medium | hard      (fallback: medium)
  exam type      → midterm_1 | midterm_2 | end_term   (fallback: midterm_1, logged)
"""

import logging
import math
import re
from typing import Iterable, Optional, Union

from database.models import ExamType, QuestionType, Difficulty
from .schemas import ExtractedQuestion, NormalizedQuestion, NormalizedPaper

log = logging.getLogger("ingestion.pipeline")


QUESTION_TYPE_ALIASES: dict = {
    "mcq":              QuestionType.MCQ,
    "multiple choice":  QuestionType.MCQ,
    "multiple-choice":  QuestionType.MCQ,
    "multiple_choice":  QuestionType.MCQ,
    "objective":        QuestionType.MCQ,
    "short":            QuestionType.SHORT,
    "short answer":     QuestionType.SHORT,
    "short-answer":     QuestionType.SHORT,
    "short_answer":     QuestionType.SHORT,
    "long":             QuestionType.LONG,
    "long answer":      QuestionType.LONG,
    "long-answer":      QuestionType.LONG,
    "long_answer":      QuestionType.LONG,
    "descriptive":      QuestionType.LONG,
    "essay":            QuestionType.LONG,
}
DEFAULT_QUESTION_TYPE = QuestionType.SHORT

DIFFICULTY_ALIASES: dict = {
    "easy":     Difficulty.EASY,
    "medium":   Difficulty.MEDIUM,
    "moderate": Difficulty.MEDIUM,
    "hard":     Difficulty.HARD,
    "difficult": Difficulty.HARD,
}
DEFAULT_DIFFICULTY = Difficulty.MEDIUM

EXAM_TYPE_ALIASES: dict = {
    "midterm_1":      ExamType.MIDTERM_1,
    "midterm1":       ExamType.MIDTERM_1,
    "mid_term_1":     ExamType.MIDTERM_1,
    "mid1":           ExamType.MIDTERM_1,
    "mst1":           ExamType.MIDTERM_1,
    "first_midterm":  ExamType.MIDTERM_1,
    "midterm_2":      ExamType.MIDTERM_2,
    "midterm2":       ExamType.MIDTERM_2,
    "mid_term_2":     ExamType.MIDTERM_2,
    "mid2":           ExamType.MIDTERM_2,
    "mst2":           ExamType.MIDTERM_2,
    "second_midterm": ExamType.MIDTERM_2,
    "end_term":       ExamType.END_TERM,
    "endterm":        ExamType.END_TERM,
    "end_sem":        ExamType.END_TERM,
    "endsem":         ExamType.END_TERM,
    "end_semester":   ExamType.END_TERM,
    "final":          ExamType.END_TERM,
    "finals":         ExamType.END_TERM,
    "final_exam":     ExamType.END_TERM,
}
DEFAULT_EXAM_TYPE = ExamType.MIDTERM_1

# "1 OR", "1(OR)", "OR 1" → "1"
_OR_MARKER = re.compile(r"\(?\bOR\b\)?", re.IGNORECASE)


def _key(raw: str) -> str:
    return raw.strip().lower()


def _exam_type_key(raw: str) -> str:
    return re.sub(r"[\s\-]+", "_", raw.strip().lower())


def normalize_question_type(raw: Optional[str]) -> QuestionType:
    if not raw:
        return DEFAULT_QUESTION_TYPE
    return QUESTION_TYPE_ALIASES.get(_key(raw), DEFAULT_QUESTION_TYPE)


def normalize_difficulty(raw: Optional[str]) -> Difficulty:
    if not raw:
        return DEFAULT_DIFFICULTY
    return DIFFICULTY_ALIASES.get(_key(raw), DEFAULT_DIFFICULTY)


def parse_exam_type(raw: Union[str, ExamType, None]) -> ExamType:
    """
    Strict exam-type lookup for operator input. Same aliases as
    normalize_exam_type, but an unknown label raises ValueError.
    """
    if isinstance(raw, ExamType):
        return raw
    mapped = EXAM_TYPE_ALIASES.get(_exam_type_key(raw or ""))
    if mapped is None:
        valid = ", ".join(t.value for t in ExamType)
        raise ValueError(f"Invalid exam type {raw!r}. Expected one of: {valid}")
    return mapped


def normalize_exam_type(raw: Union[str, ExamType, None]) -> ExamType:
    """
    Map an exam-type label to ExamType.

    Unrecognized labels become MIDTERM_1. That fallback is policy, so it is logged;
    callers that know better pass an ExamType directly.
    """
    if isinstance(raw, ExamType):
        return raw
    if not raw:
        log.warning("[NORMALIZE] Missing exam type, defaulting to %s", DEFAULT_EXAM_TYPE.value)
        return DEFAULT_EXAM_TYPE
    mapped = EXAM_TYPE_ALIASES.get(_exam_type_key(raw))
    if mapped is None:
        log.warning("[NORMALIZE] Unrecognized exam type %r, defaulting to %s", raw, DEFAULT_EXAM_TYPE.value)
        return DEFAULT_EXAM_TYPE
    return mapped


def normalize_marks(raw) -> int:
    """Non-negative integer marks; '5 marks' → 5, garbage → 0."""
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, float) and not math.isfinite(raw):
        return 0
    if isinstance(raw, (int, float)):
        return max(0, int(raw))
    match = re.search(r"\d+(?:\.\d+)?", str(raw))
    return max(0, int(float(match.group()))) if match else 0


def strip_or_marker(label: str) -> str:
    """'3 OR' / '3 (OR)' / 'OR 3' → '3'"""
    return re.sub(r"\s+", " ", _OR_MARKER.sub(" ", label)).strip()


def normalize_text(text: str) -> str:
    """
    Clean PDF extraction artifacts from question text.

    Removes CID artifacts, private-use glyphs, control and zero-width characters;
    normalizes spaces, dashes and smart quotes. Line breaks inside a question are
    collapsed to single spaces.
    """
    if not text or not text.strip():
        return (text or "").strip()

    text = re.sub(r'\(cid:\d+\)', '', text)
    text = re.sub(r'[\uE000-\uF8FF]', '', text)
    text = re.sub(r'[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F-\u009F\u200B-\u200D\uFEFF]', '', text)
    text = re.sub(r'[\u00A0\u2000-\u200A\u202F\u205F]', ' ', text)
    text = re.sub(r'[\u2010-\u2015]', '-', text)
    text = re.sub(r'[\u201C\u201D]', '"', text)
    text = re.sub(r'[\u2018\u2019]', "'", text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def normalize_question(q: ExtractedQuestion) -> NormalizedQuestion:
    return NormalizedQuestion(
        question_number=q.question_number.strip(),
        text=normalize_text(q.text),
        marks=normalize_marks(q.marks),
        question_type=normalize_question_type(q.question_type),
        difficulty=normalize_difficulty(q.difficulty),
        section=q.section,
        options=[normalize_text(o) for o in q.options],
        module_number=q.module,
        topic_name=normalize_text(q.topic) if q.topic else None,
        alternative_of=q.alternative_of,
    )


def normalize_questions(questions: Iterable[ExtractedQuestion]) -> NormalizedPaper:
    """
    Partition extracted questions into primary and alternative ("OR") records.

    A question is an alternative when it says so or names the question it replaces.
    Nothing is dropped: an alternative without a target is still kept and the
    exam writer stores it unlinked.
    """
    paper = NormalizedPaper()
    for q in questions:
        record = normalize_question(q)
        if q.is_alternative or q.alternative_of:
            paper.alternatives.append(record)
        else:
            paper.primary.append(record)
    log.info(
        "[NORMALIZE] primary=%s alternatives=%s",
        len(paper.primary), len(paper.alternatives),
    )
    return paper
