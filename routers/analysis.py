"""
Pattern analysis endpoint - /analysis
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from database import crud
from database.database import get_db
from database.models import ExamType
from generation.pattern_analyzer import analyze_subject
from generation.schemas import PatternReport

router = APIRouter(prefix="/analysis", tags=["analysis"])


@router.get("/{subject_id}", response_model=PatternReport)
def get_pattern_report(
    subject_id: int,
    target_exam_type: ExamType = Query(..., description="midterm_1 | midterm_2 | end_term"),
    db: Session = Depends(get_db),
):
    """
    Frequency tables and topic importance ranking over every stored paper of
    the subject, scored for `target_exam_type`. A subject with no papers gets
    an empty report.
    """
    try:
        return analyze_subject(db, subject_id, target_exam_type)
    except crud.NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
