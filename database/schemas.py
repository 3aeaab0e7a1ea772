"""
Pydantic schemas for request/response validation
Separate from SQLAlchemy models for clean API contracts
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime

from database.models import ExamType, QuestionType, Difficulty


# ==========================================
# SUBJECT / SEMESTER SCHEMAS
# ==========================================

class SubjectBase(BaseModel):
    """Base schema for Subject - shared fields"""
    name: str = Field(..., min_length=1, max_length=255, description="Subject name")
    code: str = Field(..., min_length=1, max_length=50, description="Subject code, e.g. BCA301")
    description: Optional[str] = Field(None, description="Subject description")


class SubjectCreate(SubjectBase):
    """Schema for creating a new Subject"""
    pass


class SubjectResponse(SubjectBase):
    """Schema for Subject response"""
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SemesterCreate(BaseModel):
    number: int = Field(..., ge=1, le=12)
    name: Optional[str] = Field(None, max_length=100)


class SemesterResponse(BaseModel):
    id: int
    number: int
    name: str

    model_config = ConfigDict(from_attributes=True)


# ==========================================
# SYLLABUS SCHEMAS
# ==========================================

class SubTopicIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TopicIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    sub_topics: List[SubTopicIn] = Field(default_factory=list)


class ModuleIn(BaseModel):
    number: int = Field(..., ge=1, description="Module number, unique within the syllabus")
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    topics: List[TopicIn] = Field(default_factory=list)


class SyllabusUpsert(BaseModel):
    """Full syllabus tree; replaces the subject's current syllabus"""
    version: str = Field(default="1.0", max_length=50)
    modules: List[ModuleIn] = Field(default_factory=list)


class SubTopicResponse(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class TopicResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    order: int
    sub_topics: List[SubTopicResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ModuleResponse(BaseModel):
    id: int
    number: int
    name: str
    description: Optional[str] = None
    topics: List[TopicResponse] = []

    model_config = ConfigDict(from_attributes=True)


class SyllabusResponse(BaseModel):
    id: int
    subject_id: int
    version: str
    file_hash: Optional[str] = None
    created_at: datetime
    modules: List[ModuleResponse] = []

    model_config = ConfigDict(from_attributes=True)


# ==========================================
# EXAM / QUESTION SCHEMAS
# ==========================================

class QuestionResponse(BaseModel):
    id: int
    exam_id: int
    question_number: str
    text: str
    marks: int
    section: Optional[str] = None
    question_type: QuestionType
    difficulty: Difficulty
    options: List[str] = []
    module_id: Optional[int] = None
    topic_id: Optional[int] = None
    has_alternative: bool
    alternative_of_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ExamResponse(BaseModel):
    id: int
    subject_id: int
    semester_id: int
    exam_type: ExamType
    academic_year: str
    exam_date: Optional[datetime] = None
    total_marks: int
    duration: int
    file_hash: Optional[str] = None
    is_processed: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExamWithQuestions(ExamResponse):
    questions: List[QuestionResponse] = []

    model_config = ConfigDict(from_attributes=True)


class IngestResponse(BaseModel):
    """Result of a successful paper upload"""
    success: bool = True
    exam_id: int
    questions_count: int
    primary_count: int
    alternative_count: int
    orphaned_alternatives: List[str] = []
    replaced_exam_id: Optional[int] = None
    fingerprint: str
    message: str


# ==========================================
# PREDICTION SCHEMAS
# ==========================================

class PredictedQuestionResponse(BaseModel):
    id: int
    position: int
    generated_text: str
    probability: float
    target_module: Optional[str] = None
    target_topic: Optional[str] = None
    suggested_marks: Optional[int] = None
    question_type: QuestionType
    difficulty: Difficulty
    reasoning: List[str] = []
    source: str

    model_config = ConfigDict(from_attributes=True)


class PredictionResponse(BaseModel):
    id: int
    subject_id: int
    target_exam_type: ExamType
    confidence: float
    model_version: Optional[str] = None
    is_validated: bool
    created_at: datetime
    questions: List[PredictedQuestionResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PredictionValidate(BaseModel):
    is_validated: bool = True
