"""
Pydantic schemas for the paper ingestion pipeline.

ExtractedPaper is what the document-understanding step hands over: loosely typed,
camelCase or snake_case keys, enum values in whatever spelling the extractor chose.
NormalizedQuestion is the canonical record the exam writer persists.
"""

import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Union, Any

from pydantic import BaseModel, Field, ConfigDict, field_validator

from database.models import QuestionType, Difficulty


def _to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_optional_int(value: Any) -> Optional[int]:
    """'60 marks' → 60, 'Sem 5' → 5, garbage → None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = re.search(r"\d+(?:\.\d+)?", str(value))
    return int(float(match.group())) if match else None


# ─── Extractor output (loose) ──────────────────────────────────────────────────

class ExtractedQuestion(BaseModel):
    """One candidate question as extracted from the paper."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    question_number: str = Field("", alias="questionNumber")
    text: str = ""
    marks: Union[int, float, str, None] = 0
    section: Optional[str] = None
    question_type: Optional[str] = Field(None, alias="questionType")
    difficulty: Optional[str] = None
    options: List[str] = Field(default_factory=list)
    is_alternative: bool = Field(False, alias="isAlternative")
    alternative_of: Optional[str] = Field(None, alias="alternativeOf")
    # Syllabus hints: module number and topic name, when the extractor can tell
    module: Optional[int] = None
    topic: Optional[str] = None

    @field_validator("question_number", "text", mode="before")
    @classmethod
    def _stringify(cls, v):
        return "" if v is None else str(v)

    @field_validator("section", "question_type", "difficulty", "alternative_of", "topic", mode="before")
    @classmethod
    def _optional_str(cls, v):
        return _to_optional_str(v)

    @field_validator("options", mode="before")
    @classmethod
    def _options(cls, v):
        if not v:
            return []
        return [str(o) for o in v]

    @field_validator("is_alternative", mode="before")
    @classmethod
    def _bool(cls, v):
        if isinstance(v, str):
            return v.strip().lower() in ("true", "yes", "1", "or")
        return bool(v)

    @field_validator("module", mode="before")
    @classmethod
    def _module_number(cls, v):
        if v is None or v == "":
            return None
        try:
            return int(str(v).strip().lower().removeprefix("module").strip())
        except ValueError:
            return None


class ExamInfo(BaseModel):
    """Header information printed on the paper."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subject_code: Optional[str] = Field(None, alias="subjectCode")
    subject_name: Optional[str] = Field(None, alias="subjectName")
    exam_type: Optional[str] = Field(None, alias="examType")
    date: Optional[str] = None
    total_marks: Optional[int] = Field(None, alias="totalMarks")
    duration: Optional[int] = None
    semester: Optional[int] = None
    academic_year: Optional[str] = Field(None, alias="academicYear")

    @field_validator("total_marks", "semester", mode="before")
    @classmethod
    def _optional_int(cls, v):
        return _to_optional_int(v)

    @field_validator("duration", mode="before")
    @classmethod
    def _duration_minutes(cls, v):
        if isinstance(v, str) and re.search(r"\b(hours?|hrs?)\b", v, re.IGNORECASE):
            match = re.search(r"\d+(?:\.\d+)?", v)
            return int(float(match.group()) * 60) if match else None
        return _to_optional_int(v)


class ExtractedPaper(BaseModel):
    """Full extraction of one paper; all_questions is the flat question list."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    exam_info: ExamInfo = Field(default_factory=ExamInfo, alias="examInfo")
    instructions: List[str] = Field(default_factory=list)
    all_questions: List[ExtractedQuestion] = Field(default_factory=list, alias="allQuestions")


# ─── Canonical records (internal) ──────────────────────────────────────────────

@dataclass
class NormalizedQuestion:
    question_number: str
    text: str
    marks: int
    question_type: QuestionType
    difficulty: Difficulty
    section: Optional[str] = None
    options: List[str] = field(default_factory=list)
    module_number: Optional[int] = None
    topic_name: Optional[str] = None
    alternative_of: Optional[str] = None


@dataclass
class NormalizedPaper:
    primary: List[NormalizedQuestion] = field(default_factory=list)
    alternatives: List[NormalizedQuestion] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.primary) + len(self.alternatives)
