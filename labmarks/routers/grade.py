"""Stateless grading endpoint."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from labmarks.db import get_session
from labmarks.grading.evaluator import SubmissionEvaluator
from labmarks.grading.policy import MAX_SCORE
from labmarks.models import Problem
from labmarks.pipeline.grade import get_submission_evaluator, to_grading_problem
from labmarks.schemas import GradeRequest, GradeResponse

router = APIRouter(prefix="/grade", tags=["grade"])


@router.post("", response_model=GradeResponse)
async def run_ai_grade(
    payload: GradeRequest,
    session: Session = Depends(get_session),
    evaluator: SubmissionEvaluator = Depends(get_submission_evaluator),
) -> GradeResponse:
    problem = session.get(Problem, payload.experiment_id)
    if not problem:
        raise HTTPException(status_code=404, detail="Experiment not found")

    outcome = await evaluator.evaluate(
        to_grading_problem(problem),
        payload.files,
        payload.execution_result,
        payload.submitted_at or datetime.now(timezone.utc),
    )
    return GradeResponse(
        score=outcome.score,
        max_score=MAX_SCORE,
        feedback=outcome.feedback,
        ai_evaluation=outcome.ai_evaluation,
    )
