"""
Pattern Analyzer

Scans a subject's full historical question corpus (every exam type) and derives
frequency tables plus a per-topic importance score for one target exam type.

load_corpus() is the only database access: one joined SELECT, so a single run
never sees half of a concurrently committing exam. analyze_patterns() is pure.

Scoring (each rule that fires appends a reason; rules are additive):
  base                = frequency × FREQUENCY_WEIGHT
  + TARGET_REPEAT_BONUS  asked ≥ 2 times in the target exam type
  + CROSS_TYPE_BONUS     asked in ≥ 2 distinct exam types
  - RECENCY_PENALTY      most recent occurrence was in the target exam type
  + DUE_TOPIC_BONUS      never asked in the target exam type, asked elsewhere
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from database import crud
from database.models import Difficulty, Exam, ExamType, Module, Question, QuestionType, Topic
from .schemas import LastAsked, PatternReport, RankedTopic, SampleQuestion, TopicScore

log = logging.getLogger("generation.pipeline")

# ── Scoring weights ────────────────────────────────────────────────────────────
FREQUENCY_WEIGHT = 10
TARGET_REPEAT_BONUS = 20
TARGET_REPEAT_MIN = 2
CROSS_TYPE_BONUS = 15
CROSS_TYPE_MIN = 2
RECENCY_PENALTY = 10
DUE_TOPIC_BONUS = 25

REPEATED_TOPIC_MIN = 2
TOP_TOPICS_LIMIT = 20
SAMPLE_QUESTION_LIMIT = 15
OTHER_EXAM_SAMPLE_LIMIT = 10

# Order of sittings within one academic year
EXAM_TYPE_ORDER = {
    ExamType.MIDTERM_1: 0,
    ExamType.MIDTERM_2: 1,
    ExamType.END_TERM: 2,
}


@dataclass
class CorpusQuestion:
    """One historical question, flattened with its exam and syllabus context."""
    text: str
    marks: int
    question_type: QuestionType
    difficulty: Difficulty
    exam_type: ExamType
    academic_year: Optional[str] = None
    module_name: Optional[str] = None
    module_number: Optional[int] = None
    topic_name: Optional[str] = None


def load_corpus(db: Session, subject_id: int) -> List[CorpusQuestion]:
    """Every question of every exam of the subject, most recent academic year first."""
    rows = (
        db.query(
            Question.text,
            Question.marks,
            Question.question_type,
            Question.difficulty,
            Exam.exam_type,
            Exam.academic_year,
            Module.name.label("module_name"),
            Module.number.label("module_number"),
            Topic.name.label("topic_name"),
        )
        .join(Exam, Question.exam_id == Exam.id)
        .outerjoin(Module, Question.module_id == Module.id)
        .outerjoin(Topic, Question.topic_id == Topic.id)
        .filter(Exam.subject_id == subject_id)
        .order_by(Exam.academic_year.desc(), Question.id.desc())
        .all()
    )
    return [
        CorpusQuestion(
            text=row.text,
            marks=row.marks or 0,
            question_type=row.question_type,
            difficulty=row.difficulty,
            exam_type=row.exam_type,
            academic_year=row.academic_year,
            module_name=row.module_name,
            module_number=row.module_number,
            topic_name=row.topic_name,
        )
        for row in rows
    ]


def score_topic(
    frequency: int,
    by_exam_type: Dict[str, int],
    last_asked: Optional[LastAsked],
    target_exam_type: ExamType,
) -> TopicScore:
    """Importance score for one topic, with the reason for every rule that fired."""
    label = target_exam_type.label
    score = frequency * FREQUENCY_WEIGHT
    reasons = [f"Asked {frequency} time(s) across all exams"]

    target_freq = by_exam_type.get(target_exam_type.value, 0)
    if target_freq >= TARGET_REPEAT_MIN:
        score += TARGET_REPEAT_BONUS
        reasons.append(f"Asked {target_freq} times in {label}")

    types_asked = sum(1 for count in by_exam_type.values() if count > 0)
    if types_asked >= CROSS_TYPE_MIN:
        score += CROSS_TYPE_BONUS
        reasons.append(f"Asked in {types_asked} different exam types")

    if last_asked is not None and last_asked.exam_type == target_exam_type:
        score -= RECENCY_PENALTY
        reasons.append(f"Recently asked in {last_asked.academic_year} {label}")

    if target_freq == 0 and frequency > 0:
        score += DUE_TOPIC_BONUS
        reasons.append(f"Never asked in {label} but covered in other exams")

    return TopicScore(score=score, reasons=reasons)


def _sample(q: CorpusQuestion) -> SampleQuestion:
    return SampleQuestion(
        text=q.text,
        marks=q.marks,
        module=q.module_name,
        topic=q.topic_name,
        type=q.question_type,
        exam_type=q.exam_type,
        year=q.academic_year,
    )


def analyze_patterns(
    questions: Iterable[CorpusQuestion],
    target_exam_type: Union[ExamType, str],
) -> PatternReport:
    """
    Derive the full pattern report from a question corpus.

    Args:
        questions:        The subject's historical questions (any order; sample
                          lists keep the given order)
        target_exam_type: Exam type the prediction is for

    Returns:
        PatternReport. An empty corpus gives empty tables and an empty ranking.
    """
    target = ExamType(target_exam_type)
    questions = list(questions)
    type_keys = [t.value for t in ExamType]

    by_type: Dict[str, List[CorpusQuestion]] = {t: [] for t in type_keys}
    module_frequency: Counter = Counter()
    topic_frequency: Counter = Counter()
    topic_by_exam_type: Dict[str, Dict[str, int]] = {}
    topic_last_asked: Dict[str, LastAsked] = {}
    last_key: Dict[str, Tuple[str, int]] = {}
    marks_distribution: Counter = Counter()
    question_types: Counter = Counter()

    for q in questions:
        exam_type = ExamType(q.exam_type)
        by_type[exam_type.value].append(q)

        if q.module_name:
            module_frequency[q.module_name] += 1

        if q.topic_name:
            topic = q.topic_name
            topic_frequency[topic] += 1
            topic_by_exam_type.setdefault(topic, {t: 0 for t in type_keys})[exam_type.value] += 1

            # Latest sitting: year label first, then sitting order inside the year
            if q.academic_year:
                key = (q.academic_year, EXAM_TYPE_ORDER[exam_type])
                if topic not in last_key or key > last_key[topic]:
                    last_key[topic] = key
                    topic_last_asked[topic] = LastAsked(
                        academic_year=q.academic_year, exam_type=exam_type
                    )

        marks_distribution[q.marks] += 1
        question_types[QuestionType(q.question_type).value] += 1

    topic_importance = {
        topic: score_topic(freq, topic_by_exam_type[topic], topic_last_asked.get(topic), target)
        for topic, freq in topic_frequency.items()
    }
    ranked = sorted(topic_importance.items(), key=lambda item: (-item[1].score, item[0]))
    ranking = [
        RankedTopic(topic=topic, score=s.score, reasons=s.reasons)
        for topic, s in ranked[:TOP_TOPICS_LIMIT]
    ]

    report = PatternReport(
        target_exam_type=target,
        total_questions=len(questions),
        questions_by_exam_type={t: len(qs) for t, qs in by_type.items()},
        module_frequency=dict(module_frequency),
        topic_frequency=dict(topic_frequency),
        topic_by_exam_type=topic_by_exam_type,
        topic_last_asked=topic_last_asked,
        repeated_topics={t: f for t, f in topic_frequency.items() if f >= REPEATED_TOPIC_MIN},
        topic_importance=topic_importance,
        ranking=ranking,
        marks_distribution=dict(marks_distribution),
        question_types=dict(question_types),
        sample_questions=[_sample(q) for q in by_type[target.value][:SAMPLE_QUESTION_LIMIT]],
        other_exam_questions=[
            _sample(q) for q in questions if ExamType(q.exam_type) != target
        ][:OTHER_EXAM_SAMPLE_LIMIT],
    )
    log.info(
        "[ANALYZE] %s questions, %s topics, %s repeated (target=%s)",
        report.total_questions, len(topic_frequency), len(report.repeated_topics), target.value,
    )
    return report


def analyze_subject(db: Session, subject_id: int, target_exam_type: Union[ExamType, str]) -> PatternReport:
    """Load the subject's corpus and analyze it. Raises SubjectNotFoundError."""
    crud.require_subject(db, subject_id)
    return analyze_patterns(load_corpus(db, subject_id), target_exam_type)
