"""
CRUD operations for the question bank structure and history
Ingestion and prediction writes live in ingestion/exam_writer.py and generation/predictor.py
"""

from sqlalchemy.orm import Session, joinedload, selectinload
from typing import List, Optional
from database import models, schemas


# ==========================================
# SUBJECT CRUD
# ==========================================

def create_subject(db: Session, subject: schemas.SubjectCreate) -> models.Subject:
    """Create a new subject"""
    db_subject = models.Subject(
        name=subject.name,
        code=subject.code,
        description=subject.description
    )
    db.add(db_subject)
    db.commit()
    db.refresh(db_subject)
    return db_subject


def get_subject(db: Session, subject_id: int) -> Optional[models.Subject]:
    """Get subject by ID"""
    return db.query(models.Subject).filter(models.Subject.id == subject_id).first()


def get_subject_by_name_or_code(db: Session, name: str, code: str) -> Optional[models.Subject]:
    return db.query(models.Subject).filter(
        (models.Subject.name == name) | (models.Subject.code == code)
    ).first()


def get_subjects(db: Session, skip: int = 0, limit: int = 100) -> List[models.Subject]:
    """Get all subjects with pagination"""
    return db.query(models.Subject).order_by(models.Subject.id).offset(skip).limit(limit).all()


# ==========================================
# SEMESTER CRUD
# ==========================================

def create_semester(db: Session, semester: schemas.SemesterCreate) -> models.Semester:
    db_semester = models.Semester(
        number=semester.number,
        name=semester.name or f"Semester {semester.number}",
    )
    db.add(db_semester)
    db.commit()
    db.refresh(db_semester)
    return db_semester


def get_semester(db: Session, semester_id: int) -> Optional[models.Semester]:
    return db.query(models.Semester).filter(models.Semester.id == semester_id).first()


def get_semesters(db: Session) -> List[models.Semester]:
    return db.query(models.Semester).order_by(models.Semester.number).all()


# ==========================================
# SYLLABUS
# ==========================================

def get_syllabus(db: Session, subject_id: int) -> Optional[models.Syllabus]:
    """Get a subject's syllabus with the full module → topic → sub-topic tree loaded"""
    return db.query(models.Syllabus).options(
        selectinload(models.Syllabus.modules)
        .selectinload(models.Module.topics)
        .selectinload(models.Topic.sub_topics)
    ).filter(models.Syllabus.subject_id == subject_id).first()


def replace_syllabus(
    db: Session,
    subject_id: int,
    payload: schemas.SyllabusUpsert,
    file_hash: Optional[str] = None,
) -> models.Syllabus:
    """
    Replace the subject's syllabus with the given tree.
    Questions keep their rows; their module/topic references are nulled by the FK.
    """
    existing = db.query(models.Syllabus).filter(models.Syllabus.subject_id == subject_id).first()
    if existing:
        db.delete(existing)
        db.flush()

    syllabus = models.Syllabus(subject_id=subject_id, version=payload.version, file_hash=file_hash)
    for module_in in payload.modules:
        module = models.Module(
            number=module_in.number,
            name=module_in.name,
            description=module_in.description,
        )
        for order, topic_in in enumerate(module_in.topics):
            topic = models.Topic(name=topic_in.name, description=topic_in.description, order=order)
            topic.sub_topics = [models.SubTopic(name=s.name) for s in topic_in.sub_topics]
            module.topics.append(topic)
        syllabus.modules.append(module)

    db.add(syllabus)
    db.commit()
    return get_syllabus(db, subject_id)


# ==========================================
# EXAMS
# ==========================================

def get_exams_by_subject(db: Session, subject_id: int) -> List[models.Exam]:
    return db.query(models.Exam).filter(
        models.Exam.subject_id == subject_id
    ).order_by(models.Exam.academic_year.desc(), models.Exam.id.desc()).all()


def get_exam_with_questions(db: Session, exam_id: int) -> Optional[models.Exam]:
    return db.query(models.Exam).options(
        joinedload(models.Exam.questions)
    ).filter(models.Exam.id == exam_id).first()


# ==========================================
# PREDICTIONS
# ==========================================

def get_prediction(db: Session, prediction_id: int) -> Optional[models.Prediction]:
    return db.query(models.Prediction).options(
        selectinload(models.Prediction.questions)
    ).filter(models.Prediction.id == prediction_id).first()


def get_predictions_by_subject(db: Session, subject_id: int, limit: int = 20) -> List[models.Prediction]:
    """Most recent prediction runs first"""
    return db.query(models.Prediction).options(
        selectinload(models.Prediction.questions)
    ).filter(
        models.Prediction.subject_id == subject_id
    ).order_by(models.Prediction.created_at.desc(), models.Prediction.id.desc()).limit(limit).all()


def set_prediction_validated(db: Session, prediction_id: int, validated: bool) -> Optional[models.Prediction]:
    """Reviewer flag; the only mutation a stored prediction accepts"""
    prediction = get_prediction(db, prediction_id)
    if not prediction:
        return None
    prediction.is_validated = validated
    db.commit()
    db.refresh(prediction)
    return prediction


# ==========================================
# LOOKUP HELPERS (raise instead of returning None)
# ==========================================

class NotFoundError(LookupError):
    """A referenced subject, semester or syllabus does not exist."""


class SubjectNotFoundError(NotFoundError):
    pass


class SemesterNotFoundError(NotFoundError):
    pass


class SyllabusNotFoundError(NotFoundError):
    pass


def require_subject(db: Session, subject_id: int) -> models.Subject:
    subject = get_subject(db, subject_id)
    if not subject:
        raise SubjectNotFoundError(f"Subject {subject_id} not found")
    return subject


def require_semester(db: Session, semester_id: int) -> models.Semester:
    semester = get_semester(db, semester_id)
    if not semester:
        raise SemesterNotFoundError(f"Semester {semester_id} not found")
    return semester


def require_syllabus(db: Session, subject_id: int) -> models.Syllabus:
    syllabus = get_syllabus(db, subject_id)
    if not syllabus:
        raise SyllabusNotFoundError(f"Syllabus not found for subject {subject_id}")
    return syllabus
