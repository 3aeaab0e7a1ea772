"""
SQLAlchemy models for the question bank
Subject → Syllabus → Module → Topic → SubTopic (structure)
Exam → Question (historical papers, with OR-alternative linkage)
Prediction → PredictedQuestion (append-only prediction history)

Uniqueness on Exam (file_hash, and the subject/type/semester/year tuple) is the
final arbiter for duplicate uploads; application checks only classify.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Text, Float, JSON,
    UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from database.database import Base


class ExamType(str, enum.Enum):
    """The three exam sittings a paper can belong to"""
    MIDTERM_1 = "midterm_1"
    MIDTERM_2 = "midterm_2"
    END_TERM = "end_term"

    @property
    def label(self) -> str:
        return {
            ExamType.MIDTERM_1: "Midterm 1",
            ExamType.MIDTERM_2: "Midterm 2",
            ExamType.END_TERM: "End Term",
        }[self]


class QuestionType(str, enum.Enum):
    MCQ = "mcq"
    SHORT = "short"
    LONG = "long"


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ==========================================
# STRUCTURE: SUBJECT → SYLLABUS → MODULE → TOPIC
# ==========================================

class Subject(Base):
    """
    Academic subject (e.g., 'Web Development', code 'BCA301').
    Owns at most one current Syllabus.
    """
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    syllabus = relationship("Syllabus", back_populates="subject", uselist=False, cascade="all, delete-orphan")
    exams = relationship("Exam", back_populates="subject", cascade="all, delete-orphan", passive_deletes=True)
    predictions = relationship("Prediction", back_populates="subject", cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Subject(id={self.id}, code='{self.code}', name='{self.name}')>"


class Semester(Base):
    """Semester an exam sitting belongs to (e.g. number=3, name='Semester 3')."""
    __tablename__ = "semesters"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Semester(id={self.id}, number={self.number})>"


class Syllabus(Base):
    """
    Current syllabus of a subject: ordered modules, each with ordered topics.
    file_hash is the fingerprint of the uploaded syllabus document, if any.
    """
    __tablename__ = "syllabi"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), unique=True, nullable=False)
    version = Column(String(50), nullable=False, default="1.0")
    file_hash = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    subject = relationship("Subject", back_populates="syllabus")
    modules = relationship(
        "Module", back_populates="syllabus", cascade="all, delete-orphan",
        order_by="Module.number",
    )

    def __repr__(self):
        return f"<Syllabus(id={self.id}, subject_id={self.subject_id}, version='{self.version}')>"


class Module(Base):
    """Numbered syllabus module; the number is unique within a syllabus."""
    __tablename__ = "modules"
    __table_args__ = (UniqueConstraint("syllabus_id", "number", name="uq_module_number"),)

    id = Column(Integer, primary_key=True, index=True)
    syllabus_id = Column(Integer, ForeignKey("syllabi.id", ondelete="CASCADE"), nullable=False)
    number = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    syllabus = relationship("Syllabus", back_populates="modules")
    topics = relationship(
        "Topic", back_populates="module", cascade="all, delete-orphan",
        order_by="Topic.order",
    )

    def __repr__(self):
        return f"<Module(id={self.id}, number={self.number}, name='{self.name}')>"


class Topic(Base):
    """Scored unit of the syllabus; questions are counted per topic."""
    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, index=True)
    module_id = Column(Integer, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    order = Column(Integer, default=0, nullable=False)

    module = relationship("Module", back_populates="topics")
    sub_topics = relationship("SubTopic", back_populates="topic", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Topic(id={self.id}, name='{self.name}', module_id={self.module_id})>"


class SubTopic(Base):
    """Display-only nested topic; never scored."""
    __tablename__ = "sub_topics"

    id = Column(Integer, primary_key=True, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)

    topic = relationship("Topic", back_populates="sub_topics")


# ==========================================
# HISTORICAL PAPERS: EXAM → QUESTION
# ==========================================

class Exam(Base):
    """
    One historical sitting of a subject's exam.
    At most one exam per (subject, exam_type, semester, academic_year) and per file_hash.
    """
    __tablename__ = "exams"
    __table_args__ = (
        UniqueConstraint(
            "subject_id", "exam_type", "semester_id", "academic_year",
            name="uq_exam_sitting",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    semester_id = Column(Integer, ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_type = Column(
        SQLEnum(ExamType, name="exam_type", values_callable=_enum_values),
        nullable=False,
    )
    academic_year = Column(String(20), nullable=False)  # e.g. "2024-2025"
    exam_date = Column(DateTime(timezone=True), nullable=True)
    total_marks = Column(Integer, nullable=False, default=60)
    duration = Column(Integer, nullable=False, default=180)  # minutes
    file_hash = Column(String(64), unique=True, nullable=True)
    is_processed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    subject = relationship("Subject", back_populates="exams")
    semester = relationship("Semester")
    questions = relationship(
        "Question", back_populates="exam", cascade="all, delete-orphan",
        passive_deletes=True, order_by="Question.id",
    )

    def __repr__(self):
        return (
            f"<Exam(id={self.id}, subject_id={self.subject_id}, "
            f"type={self.exam_type}, year='{self.academic_year}')>"
        )


class Question(Base):
    """
    One question of a historical exam.

    alternative_of_id: set on an "OR" question, pointing at the question it replaces
    (same exam). has_alternative: True on an original once any alternative points at it.
    """
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    question_number = Column(String(50), nullable=False)
    text = Column(Text, nullable=False)
    marks = Column(Integer, nullable=False, default=0)
    section = Column(String(50), nullable=True)
    question_type = Column(
        SQLEnum(QuestionType, name="question_type", values_callable=_enum_values),
        nullable=False, default=QuestionType.SHORT,
    )
    difficulty = Column(
        SQLEnum(Difficulty, name="difficulty", values_callable=_enum_values),
        nullable=False, default=Difficulty.MEDIUM,
    )
    options = Column(JSON, nullable=False, default=list)
    module_id = Column(Integer, ForeignKey("modules.id", ondelete="SET NULL"), nullable=True, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id", ondelete="SET NULL"), nullable=True, index=True)
    has_alternative = Column(Boolean, default=False, nullable=False)
    alternative_of_id = Column(Integer, ForeignKey("questions.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    exam = relationship("Exam", back_populates="questions")
    module = relationship("Module")
    topic = relationship("Topic")
    alternative_of = relationship("Question", remote_side=[id], foreign_keys=[alternative_of_id])

    def __repr__(self):
        return f"<Question(id={self.id}, exam_id={self.exam_id}, number='{self.question_number}')>"


# ==========================================
# PREDICTIONS
# ==========================================

class Prediction(Base):
    """
    One prediction run for a subject and target exam type.
    Append-only: only is_validated is changed later, by a human reviewer.
    """
    __tablename__ = "predictions"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    target_exam_type = Column(
        SQLEnum(ExamType, name="exam_type", values_callable=_enum_values),
        nullable=False,
    )
    confidence = Column(Float, nullable=False, default=0.0)
    model_version = Column(String(100), nullable=True)
    is_validated = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    subject = relationship("Subject", back_populates="predictions")
    questions = relationship(
        "PredictedQuestion", back_populates="prediction", cascade="all, delete-orphan",
        order_by="PredictedQuestion.position",
    )

    def __repr__(self):
        return f"<Prediction(id={self.id}, subject_id={self.subject_id}, confidence={self.confidence:.2f})>"


class PredictedQuestion(Base):
    """Snapshot of one predicted question inside a Prediction."""
    __tablename__ = "predicted_questions"

    id = Column(Integer, primary_key=True, index=True)
    prediction_id = Column(Integer, ForeignKey("predictions.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    generated_text = Column(Text, nullable=False)
    probability = Column(Float, nullable=False)
    target_module = Column(String(255), nullable=True)
    target_topic = Column(String(255), nullable=True)
    suggested_marks = Column(Integer, nullable=True)
    question_type = Column(
        SQLEnum(QuestionType, name="question_type", values_callable=_enum_values),
        nullable=False, default=QuestionType.SHORT,
    )
    difficulty = Column(
        SQLEnum(Difficulty, name="difficulty", values_callable=_enum_values),
        nullable=False, default=Difficulty.MEDIUM,
    )
    reasoning = Column(JSON, nullable=False, default=list)
    source = Column(String(50), nullable=False, default="ai_reasoning")

    prediction = relationship("Prediction", back_populates="questions")
