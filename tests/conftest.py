"""
Shared fixtures: an in-memory SQLite database per test, seeded with one subject,
one semester and a three-module syllabus.
"""
import os

# Keep the application engine off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import crud, models, schemas
from database.database import Base
from database.models import Difficulty
from ingestion.schemas import ExtractedPaper


SYLLABUS = schemas.SyllabusUpsert(
    version="2024",
    modules=[
        schemas.ModuleIn(number=1, name="HTML and CSS", topics=[
            schemas.TopicIn(name="HTML Basics"),
            schemas.TopicIn(name="CSS Selectors"),
            schemas.TopicIn(name="Bootstrap Grid"),
        ]),
        schemas.ModuleIn(number=2, name="JavaScript", topics=[
            schemas.TopicIn(name="DOM Manipulation"),
            schemas.TopicIn(name="Event Handling"),
            schemas.TopicIn(name="Closures"),
        ]),
        schemas.ModuleIn(number=3, name="Server Side", topics=[
            schemas.TopicIn(name="Node.js"),
            schemas.TopicIn(name="REST APIs"),
        ]),
    ],
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def subject(db):
    return crud.create_subject(db, schemas.SubjectCreate(name="Web Technologies", code="BCA301"))


@pytest.fixture
def semester(db):
    return crud.create_semester(db, schemas.SemesterCreate(number=3))


@pytest.fixture
def syllabus(db, subject):
    return crud.replace_syllabus(db, subject.id, SYLLABUS)


@pytest.fixture
def add_exam(db, subject, semester, syllabus):
    """
    Insert an exam directly through the ORM.
    questions: list of (topic_name or None, marks, QuestionType)
    """
    topics = {
        t.name: t
        for m in syllabus.modules
        for t in m.topics
    }

    def _add(exam_type, academic_year, questions, file_hash=None):
        exam = models.Exam(
            subject_id=subject.id,
            semester_id=semester.id,
            exam_type=exam_type,
            academic_year=academic_year,
            file_hash=file_hash,
            is_processed=True,
        )
        db.add(exam)
        db.flush()
        for i, (topic_name, marks, qtype) in enumerate(questions, start=1):
            topic = topics.get(topic_name) if topic_name else None
            db.add(models.Question(
                exam_id=exam.id,
                question_number=str(i),
                text=f"Question {i} about {topic_name or 'anything'}",
                marks=marks,
                question_type=qtype,
                difficulty=Difficulty.MEDIUM,
                module_id=topic.module_id if topic else None,
                topic_id=topic.id if topic else None,
            ))
        db.commit()
        return exam

    return _add


@pytest.fixture
def sample_paper():
    """Extractor output with one OR pair: Q1 and "1 OR"."""
    return ExtractedPaper.model_validate({
        "examInfo": {"examType": "MID1", "totalMarks": 30, "duration": 90},
        "allQuestions": [
            {"questionNumber": "1", "text": "Explain the box model.", "marks": 5,
             "questionType": "LONG", "module": 1, "topic": "CSS Selectors"},
            {"questionNumber": "1 OR", "text": "Explain CSS specificity.", "marks": 5,
             "questionType": "DESCRIPTIVE", "isAlternative": True, "alternativeOf": "1",
             "module": 1, "topic": "CSS Selectors"},
            {"questionNumber": "2", "text": "What is event bubbling?", "marks": "2 marks",
             "questionType": "short", "difficulty": "EASY", "topic": "Event Handling"},
            {"questionNumber": "3", "text": "Which method selects by id?", "marks": 1,
             "questionType": "MCQ", "options": ["getElementById", "querySelectorAll"],
             "module": "Module 2", "topic": "DOM Manipulation"},
        ],
    })


@pytest.fixture
def fake_extractor(sample_paper):
    """Async document-understanding stand-in that records its calls."""
    calls = []

    async def _extract(data: bytes) -> ExtractedPaper:
        calls.append(data)
        return sample_paper

    _extract.calls = calls
    return _extract

