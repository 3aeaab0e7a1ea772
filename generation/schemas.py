"""
Pydantic schemas for the pattern analysis + prediction pipeline.

Layer 1 (input):     ModuleScope / TopicScope → operator-chosen syllabus scope
Layer 2 (analysis):  PatternReport → frequency tables + topic importance
Layer 3 (output):    CandidatePrediction (collaborator JSON) → PredictionResult
"""

from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models import Difficulty, ExamType, QuestionType


# ─── Layer 1: Scope ────────────────────────────────────────────────────────────

class TopicScope(BaseModel):
    name: str
    included: bool = True


class ModuleScope(BaseModel):
    """One module's entry in the operator's scope list."""
    model_config = ConfigDict(populate_by_name=True)

    module_number: int = Field(..., alias="moduleNumber")
    module_name: Optional[str] = Field(None, alias="moduleName")
    included: bool = True
    excluded_topics: List[str] = Field(default_factory=list, alias="excludedTopics")
    topics: List[TopicScope] = Field(default_factory=list)


class FilteredModule(BaseModel):
    """A module that survived scope filtering, reduced to its kept topic names."""
    module: int
    name: str
    topics: List[str]


# ─── Layer 2: Pattern analysis ─────────────────────────────────────────────────

class TopicScore(BaseModel):
    score: int
    reasons: List[str] = Field(default_factory=list)


class RankedTopic(BaseModel):
    topic: str
    score: int
    reasons: List[str] = Field(default_factory=list)


class LastAsked(BaseModel):
    academic_year: str
    exam_type: ExamType


class SampleQuestion(BaseModel):
    """Past question passed to the generator as a style reference."""
    text: str
    marks: int
    module: Optional[str] = None
    topic: Optional[str] = None
    type: QuestionType
    exam_type: ExamType
    year: Optional[str] = None


class PatternReport(BaseModel):
    """
    Everything the analyzer derives from a subject's question corpus.
    Exam-type keyed tables use the enum values ("midterm_1", ...) as keys.
    """
    target_exam_type: ExamType
    total_questions: int = 0
    questions_by_exam_type: Dict[str, int] = Field(default_factory=dict)
    module_frequency: Dict[str, int] = Field(default_factory=dict)
    topic_frequency: Dict[str, int] = Field(default_factory=dict)
    topic_by_exam_type: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    topic_last_asked: Dict[str, LastAsked] = Field(default_factory=dict)
    repeated_topics: Dict[str, int] = Field(default_factory=dict)
    topic_importance: Dict[str, TopicScore] = Field(default_factory=dict)
    ranking: List[RankedTopic] = Field(default_factory=list)
    marks_distribution: Dict[int, int] = Field(default_factory=dict)
    question_types: Dict[str, int] = Field(default_factory=dict)
    sample_questions: List[SampleQuestion] = Field(default_factory=list)
    other_exam_questions: List[SampleQuestion] = Field(default_factory=list)


# ─── Layer 3: Prediction ───────────────────────────────────────────────────────

class PredictRequest(BaseModel):
    """User-facing request to generate predictions."""
    subject_id: int = Field(..., description="Subject ID")
    target_exam_type: ExamType = Field(..., description="midterm_1 | midterm_2 | end_term")
    syllabus_scope: Optional[List[ModuleScope]] = Field(
        None, description="Omit to include the whole syllabus"
    )
    question_count: Optional[int] = Field(None, ge=1, le=50)


class CandidatePrediction(BaseModel):
    """One predicted question as returned by the text-generation collaborator."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    text: str = Field(..., min_length=1)
    probability: float
    module: Optional[str] = None
    topic: Optional[str] = None
    difficulty: Optional[str] = None
    question_type: Optional[str] = Field(None, alias="questionType")
    marks: Optional[Union[int, float, str]] = None
    reasoning: List[str] = Field(default_factory=list)
    source: Optional[str] = None

    @field_validator("id", "module", "topic", mode="before")
    @classmethod
    def _stringify(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, v):
        return v if v is None else str(v).strip()

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class GenerationResponse(BaseModel):
    predictions: List[CandidatePrediction]


class PredictedQuestionOut(BaseModel):
    id: str
    text: str
    probability: float
    module: Optional[str] = None
    topic: Optional[str] = None
    difficulty: Difficulty
    question_type: QuestionType
    marks: int
    reasoning: List[str] = Field(default_factory=list)
    source: str


class PredictionMetadata(BaseModel):
    subject_name: str
    subject_code: str
    exam_type: ExamType
    total_pyqs_analyzed: int
    questions_by_exam_type: Dict[str, int]
    modules_included: List[str]
    generated_at: datetime
    model_used: str
    confidence: float


class PredictionResult(BaseModel):
    success: bool = True
    prediction_id: int
    predictions: List[PredictedQuestionOut]
    metadata: PredictionMetadata
