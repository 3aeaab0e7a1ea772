"""
Prediction Router - /predictions

  POST  /predictions/generate          - run one prediction and store it
  GET   /predictions?subject_id=       - prediction history, newest first
  PATCH /predictions/{id}/validate     - reviewer flag
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import crud, schemas
from database.database import get_db
from generation.predictor import (
    GenerationError,
    MalformedPredictionError,
    PredictionGenerator,
    PredictionPersistenceError,
    ScopeEmptyError,
    generate_predictions,
    list_predictions,
    mark_validated,
)
from generation.schemas import PredictionResult, PredictRequest

router = APIRouter(prefix="/predictions", tags=["predictions"])

log = logging.getLogger("generation.pipeline")


def get_prediction_generator() -> Optional[PredictionGenerator]:
    """Text-generation collaborator; None selects the default GPT generator."""
    return None


@router.post("/generate", response_model=PredictionResult)
async def generate(
    request: PredictRequest,
    generator: Optional[PredictionGenerator] = Depends(get_prediction_generator),
    db: Session = Depends(get_db),
):
    """
    **Predict likely questions for the next sitting of an exam type.**

    Omit `syllabus_scope` to use the whole syllabus (see
    `GET /subjects/{id}/syllabus-scope` for the editable default).
    """
    try:
        return await generate_predictions(
            db,
            subject_id=request.subject_id,
            target_exam_type=request.target_exam_type,
            scope=request.syllabus_scope,
            count=request.question_count,
            generator=generator,
        )
    except crud.NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ScopeEmptyError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except MalformedPredictionError as e:
        log.error("[PREDICT] Malformed generator response: %s", e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except GenerationError as e:
        code = status.HTTP_504_GATEWAY_TIMEOUT if e.timed_out else status.HTTP_502_BAD_GATEWAY
        raise HTTPException(status_code=code, detail=str(e))
    except PredictionPersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store prediction"
        )


@router.get("", response_model=List[schemas.PredictionResponse])
def get_predictions(subject_id: int, limit: int = 20, db: Session = Depends(get_db)):
    try:
        return list_predictions(db, subject_id, limit=limit)
    except crud.NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("/{prediction_id}/validate", response_model=schemas.PredictionResponse)
def validate_prediction(
    prediction_id: int,
    payload: schemas.PredictionValidate,
    db: Session = Depends(get_db),
):
    """
    Mark a stored prediction as reviewed (or clear the flag)
    """
    try:
        return mark_validated(db, prediction_id, payload.is_validated)
    except crud.NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
