"""
Semester API endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from database import schemas, crud
from database.database import get_db

router = APIRouter(prefix="/semesters", tags=["semesters"])


@router.post("/", response_model=schemas.SemesterResponse, status_code=status.HTTP_201_CREATED)
def create_semester(semester: schemas.SemesterCreate, db: Session = Depends(get_db)):
    return crud.create_semester(db, semester)


@router.get("/", response_model=List[schemas.SemesterResponse])
def list_semesters(db: Session = Depends(get_db)):
    return crud.get_semesters(db)
