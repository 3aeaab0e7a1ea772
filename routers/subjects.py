"""
Subject API endpoints
Subjects, their syllabus tree, and the default prediction scope
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List

from database import schemas, crud
from database.database import get_db
from generation.schemas import ModuleScope
from generation.scope_filter import default_scope

router = APIRouter(prefix="/subjects", tags=["subjects"])


@router.post("/", response_model=schemas.SubjectResponse, status_code=status.HTTP_201_CREATED)
def create_subject(subject: schemas.SubjectCreate, db: Session = Depends(get_db)):
    """
    Create a new subject
    Subject names and codes must be unique
    """
    existing = crud.get_subject_by_name_or_code(db, subject.name, subject.code)
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Subject '{subject.name}' ({subject.code}) already exists"
        )

    return crud.create_subject(db, subject)


@router.get("/", response_model=List[schemas.SubjectResponse])
def list_subjects(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    """
    List all subjects with pagination
    """
    return crud.get_subjects(db, skip=skip, limit=limit)


@router.get("/{subject_id}", response_model=schemas.SubjectResponse)
def get_subject(subject_id: int, db: Session = Depends(get_db)):
    subject = crud.get_subject(db, subject_id)
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Subject with ID {subject_id} not found"
        )
    return subject


@router.put("/{subject_id}/syllabus", response_model=schemas.SyllabusResponse)
def put_syllabus(subject_id: int, payload: schemas.SyllabusUpsert, db: Session = Depends(get_db)):
    """
    Replace the subject's syllabus (modules → topics → sub-topics)
    Module numbers must be unique within the syllabus
    """
    if not crud.get_subject(db, subject_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Subject with ID {subject_id} not found"
        )

    numbers = [m.number for m in payload.modules]
    if len(numbers) != len(set(numbers)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Module numbers must be unique"
        )

    try:
        return crud.replace_syllabus(db, subject_id, payload)
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Syllabus violates a uniqueness constraint"
        )


@router.get("/{subject_id}/syllabus", response_model=schemas.SyllabusResponse)
def get_syllabus(subject_id: int, db: Session = Depends(get_db)):
    syllabus = crud.get_syllabus(db, subject_id)
    if not syllabus:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No syllabus found for subject {subject_id}. Upload a syllabus first."
        )
    return syllabus


@router.get("/{subject_id}/syllabus-scope", response_model=List[ModuleScope])
def get_syllabus_scope(subject_id: int, db: Session = Depends(get_db)):
    """
    All-included prediction scope for the subject's syllabus
    Edit it and send it back as syllabus_scope to /predictions/generate
    """
    syllabus = crud.get_syllabus(db, subject_id)
    if not syllabus:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No syllabus found for subject {subject_id}. Upload a syllabus first."
        )
    return default_scope(syllabus.modules)
