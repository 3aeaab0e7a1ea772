"""
Prediction Orchestrator

  1. Load subject + syllabus (404s)
  2. Scope filter → empty result is rejected before any external call
  3. Pattern analysis over the full question corpus
  4. Prompt: subject, scope, pattern tables, style samples, output contract
  5. Text-generation collaborator, bounded by GENERATION_TIMEOUT_SECONDS
  6. Validate → clamp probabilities, coerce type/difficulty, mean confidence
  7. Persist Prediction + PredictedQuestion rows in one transaction

Nothing is stored unless step 6 accepted the whole response.
"""

import asyncio
import json
import logging
import math
import os
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import crud
from database.crud import NotFoundError, SubjectNotFoundError, SyllabusNotFoundError
from database.models import ExamType, Prediction, PredictedQuestion
from ingestion.normalizer import normalize_difficulty, normalize_marks, normalize_question_type
from .gpt_client import GPT_MODEL, call_gpt, extract_json
from .pattern_analyzer import analyze_patterns, load_corpus
from .schemas import (
    CandidatePrediction,
    FilteredModule,
    GenerationResponse,
    ModuleScope,
    PatternReport,
    PredictedQuestionOut,
    PredictionMetadata,
    PredictionResult,
)
from .scope_filter import default_scope, filter_syllabus

log = logging.getLogger("generation.pipeline")

GENERATION_TIMEOUT_SECONDS = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "120"))
DEFAULT_PREDICTION_COUNT = int(os.getenv("DEFAULT_PREDICTION_COUNT", "10"))
DEFAULT_SOURCE = "ai_reasoning"

# (prompt, target exam type, desired count) → raw JSON text or parsed dict
PredictionGenerator = Callable[[str, ExamType, int], Awaitable[Union[str, dict]]]


class ScopeEmptyError(ValueError):
    """The selected scope leaves no module with any topic."""


class GenerationError(RuntimeError):
    """The generator failed or timed out; nothing was stored."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class MalformedPredictionError(RuntimeError):
    """The generator answered, but not with a usable predictions list."""


class PredictionPersistenceError(RuntimeError):
    """The prediction transaction failed and was rolled back."""


class PredictionNotFoundError(NotFoundError):
    pass


# ─── Prompt ────────────────────────────────────────────────────────────────────

PREDICTION_SYSTEM_PROMPT = (
    "You are an expert exam question predictor for university examinations. "
    "Output only valid JSON."
)


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def build_prediction_prompt(
    subject_name: str,
    subject_code: str,
    target_exam_type: ExamType,
    filtered: Sequence[FilteredModule],
    report: PatternReport,
    count: int,
) -> str:
    label = target_exam_type.label
    total_marks = 60 if target_exam_type == ExamType.END_TERM else 30
    by_type = report.questions_by_exam_type

    sections = [
        f"Predict likely questions for an upcoming {label} exam.",
        "",
        "## SUBJECT",
        f"- Subject: {subject_name}",
        f"- Code: {subject_code}",
        f"- Target Exam: {label}",
        f"- Total Marks: {total_marks}",
        "",
        "## SYLLABUS SCOPE (only these topics may be used)",
        _dump([m.model_dump() for m in filtered]),
        "",
        "## QUESTION HISTORY",
        f"- Midterm 1: {by_type.get(ExamType.MIDTERM_1.value, 0)} questions",
        f"- Midterm 2: {by_type.get(ExamType.MIDTERM_2.value, 0)} questions",
        f"- End Term: {by_type.get(ExamType.END_TERM.value, 0)} questions",
        f"- TOTAL: {report.total_questions} questions analyzed",
        "",
        "### Topic importance ranking (higher = more likely):",
        _dump([r.model_dump() for r in report.ranking]),
        "",
        "### Topics by exam type:",
        _dump(report.topic_by_exam_type),
        "",
        "### Repeated topics:",
        _dump(report.repeated_topics),
        "",
        "### Module frequency:",
        _dump(report.module_frequency),
        "",
        "### Marks distribution:",
        _dump(report.marks_distribution),
        "",
        "### Question types:",
        _dump(report.question_types),
    ]
    if report.sample_questions:
        sections += [
            "",
            f"### Sample {label} questions (match this style):",
            _dump([q.model_dump(mode="json") for q in report.sample_questions]),
        ]
    if report.other_exam_questions:
        sections += [
            "",
            "### Questions from other exam types:",
            _dump([q.model_dump(mode="json") for q in report.other_exam_questions]),
        ]
    if report.total_questions == 0:
        sections += ["", "No previous papers exist yet; rely on the syllabus scope alone."]

    sections += [
        "",
        "## INSTRUCTIONS",
        f"Generate exactly {count} predicted questions for {label}.",
        "1. Prefer high-importance and repeated topics",
        f"2. Prefer topics covered in other exams but not recently in {label}",
        f"3. Match the marks and question types of previous {label} papers",
        "4. Give the reasons behind every prediction",
        "",
        "## OUTPUT FORMAT",
        "Return ONLY a JSON object:",
        """{
  "predictions": [
    {
      "id": "pred_1",
      "text": "<full question text as it would appear on the paper>",
      "probability": <0.0 to 1.0>,
      "module": "<module name>",
      "topic": "<topic name>",
      "difficulty": "EASY" | "MEDIUM" | "HARD",
      "questionType": "MCQ" | "SHORT" | "LONG",
      "marks": <number>,
      "reasoning": ["<reason>", ...],
      "source": "pattern_analysis" | "topic_freshness" | "ai_reasoning"
    }
  ]
}""",
        "",
        "RULES:",
        "- Use ONLY topics listed in SYLLABUS SCOPE",
        "- No markdown, no extra text",
    ]
    return "\n".join(sections)


async def gpt_generate(prompt: str, exam_type: ExamType, count: int) -> str:
    """Default text-generation collaborator (OpenAI chat completion)."""
    return await call_gpt(
        prompt,
        system=PREDICTION_SYSTEM_PROMPT,
        temperature=0.4,
        max_tokens=8192,
        json_mode=True,
    )


# ─── Response validation ───────────────────────────────────────────────────────

def parse_generation_response(raw: Union[str, dict]) -> List[CandidatePrediction]:
    """
    Validate the collaborator's answer.

    Raises:
        MalformedPredictionError: non-JSON, no "predictions" list, wrong field
            shapes, a NaN probability, or zero candidates
    """
    if isinstance(raw, str):
        try:
            raw = extract_json(raw)
        except ValueError as e:
            raise MalformedPredictionError(f"Generator returned invalid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedPredictionError(f"Expected a JSON object, got {type(raw).__name__}")

    try:
        response = GenerationResponse.model_validate(raw)
    except ValidationError as e:
        raise MalformedPredictionError(f"Generator response failed validation: {e}") from e

    if not response.predictions:
        raise MalformedPredictionError("Generator returned zero predictions")
    for i, c in enumerate(response.predictions, start=1):
        if math.isnan(c.probability):
            raise MalformedPredictionError(f"Prediction {i} has no usable probability")
    return response.predictions


def _finalize(index: int, c: CandidatePrediction) -> PredictedQuestionOut:
    return PredictedQuestionOut(
        id=c.id or f"pred_{index + 1}",
        text=c.text.strip(),
        probability=min(1.0, max(0.0, c.probability)),
        module=c.module,
        topic=c.topic,
        difficulty=normalize_difficulty(c.difficulty),
        question_type=normalize_question_type(c.question_type),
        marks=normalize_marks(c.marks),
        reasoning=list(c.reasoning),
        source=c.source or DEFAULT_SOURCE,
    )


# ─── Orchestration ─────────────────────────────────────────────────────────────

async def generate_predictions(
    db: Session,
    subject_id: int,
    target_exam_type: Union[ExamType, str],
    scope: Optional[Sequence[ModuleScope]] = None,
    count: Optional[int] = None,
    generator: Optional[PredictionGenerator] = None,
    timeout: Optional[float] = None,
    model_version: Optional[str] = None,
) -> PredictionResult:
    """
    Run one prediction and store it.

    Args:
        scope:     Operator scope; None means the whole syllabus
        count:     Number of questions to ask for (DEFAULT_PREDICTION_COUNT)
        generator: Text-generation collaborator (default: GPT)
        timeout:   Seconds to wait for the generator (GENERATION_TIMEOUT_SECONDS)

    Raises:
        SubjectNotFoundError / SyllabusNotFoundError, ScopeEmptyError,
        GenerationError, MalformedPredictionError, PredictionPersistenceError
    """
    target = ExamType(target_exam_type)
    subject = crud.require_subject(db, subject_id)
    syllabus = crud.require_syllabus(db, subject_id)
    subject_name, subject_code = subject.name, subject.code

    if scope is None:
        scope = default_scope(syllabus.modules)
    filtered = filter_syllabus(syllabus.modules, scope)
    if not filtered:
        raise ScopeEmptyError("Select at least one module with at least one topic")

    count = count or DEFAULT_PREDICTION_COUNT
    report = analyze_patterns(load_corpus(db, subject_id), target)
    prompt = build_prediction_prompt(subject_name, subject_code, target, filtered, report, count)

    model_used = model_version or (GPT_MODEL if generator is None else "custom")
    generator = generator or gpt_generate
    timeout = GENERATION_TIMEOUT_SECONDS if timeout is None else timeout

    log.info(
        "[PREDICT] subject=%s target=%s modules=%s corpus=%s count=%s model=%s",
        subject_id, target.value, len(filtered), report.total_questions, count, model_used,
    )
    try:
        raw = await asyncio.wait_for(generator(prompt, target, count), timeout)
    except asyncio.TimeoutError as e:
        log.error("[PREDICT] Generator timed out after %ss", timeout)
        raise GenerationError(f"Prediction generation timed out after {timeout}s", timed_out=True) from e
    except Exception as e:
        log.error("[PREDICT] Generator failed: %s", e)
        raise GenerationError(f"Prediction generation failed: {e}") from e

    candidates = parse_generation_response(raw)
    predictions = [_finalize(i, c) for i, c in enumerate(candidates)]
    confidence = sum(p.probability for p in predictions) / len(predictions)

    try:
        prediction = Prediction(
            subject_id=subject_id,
            target_exam_type=target,
            confidence=confidence,
            model_version=model_used,
        )
        prediction.questions = [
            PredictedQuestion(
                position=i,
                generated_text=p.text,
                probability=p.probability,
                target_module=p.module,
                target_topic=p.topic,
                suggested_marks=p.marks,
                question_type=p.question_type,
                difficulty=p.difficulty,
                reasoning=p.reasoning,
                source=p.source,
            )
            for i, p in enumerate(predictions)
        ]
        db.add(prediction)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error("[PREDICT] Prediction transaction rolled back: %s", e)
        raise PredictionPersistenceError(f"Failed to store prediction: {e}") from e

    log.info("[PREDICT] Stored prediction %s (%s questions, confidence=%.2f)",
             prediction.id, len(predictions), confidence)

    return PredictionResult(
        prediction_id=prediction.id,
        predictions=predictions,
        metadata=PredictionMetadata(
            subject_name=subject_name,
            subject_code=subject_code,
            exam_type=target,
            total_pyqs_analyzed=report.total_questions,
            questions_by_exam_type=report.questions_by_exam_type,
            modules_included=[f"Module {m.module}: {m.name}" for m in filtered],
            generated_at=datetime.now(timezone.utc),
            model_used=model_used,
            confidence=confidence,
        ),
    )


def list_predictions(db: Session, subject_id: int, limit: int = 20) -> List[Prediction]:
    """Prediction history for a subject, newest first."""
    crud.require_subject(db, subject_id)
    return crud.get_predictions_by_subject(db, subject_id, limit=limit)


def mark_validated(db: Session, prediction_id: int, validated: bool = True) -> Prediction:
    """Set the reviewer flag on a stored prediction."""
    prediction = crud.set_prediction_validated(db, prediction_id, validated)
    if prediction is None:
        raise PredictionNotFoundError(f"Prediction {prediction_id} not found")
    return prediction
