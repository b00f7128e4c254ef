"""Submission lifecycle endpoints: save, finalize (auto-grade) and teacher validation."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select

from labmarks.db import get_session
from labmarks.grading.evaluator import SubmissionEvaluator, apply_teacher_override
from labmarks.models import Problem, Submission, SubmissionStatus, utcnow
from labmarks.pipeline.grade import (
    get_submission_evaluator,
    grade_submission,
    load_ai_evaluation,
    load_files,
    store_ai_evaluation,
)
from labmarks.schemas import SubmissionFileIn, SubmissionRead, SubmissionUpsert, ValidateRequest

router = APIRouter(prefix="/submissions", tags=["submissions"])
logger = logging.getLogger(__name__)


def to_submission_read(submission: Submission, include_files: bool = True) -> SubmissionRead:
    files = [SubmissionFileIn.model_validate(entry) for entry in load_files(submission)] if include_files else []
    return SubmissionRead(
        id=submission.id,
        experiment_id=submission.problem_id,
        student_id=submission.student_id,
        status=submission.status,
        score=submission.score,
        feedback=submission.feedback,
        evaluated_by=submission.evaluated_by,
        last_saved=submission.last_saved,
        submitted_at=submission.submitted_at,
        files=files,
        ai_evaluation=load_ai_evaluation(submission),
    )


@router.post("", response_model=SubmissionRead)
async def upsert_submission(
    payload: SubmissionUpsert,
    session: Session = Depends(get_session),
    evaluator: SubmissionEvaluator = Depends(get_submission_evaluator),
) -> SubmissionRead:
    if payload.status == SubmissionStatus.VALIDATED:
        raise HTTPException(status_code=400, detail="Only teachers can validate submissions")

    problem = session.get(Problem, payload.experiment_id)
    if not problem:
        raise HTTPException(status_code=404, detail="Experiment not found")

    submission = session.exec(
        select(Submission).where(
            Submission.problem_id == payload.experiment_id,
            Submission.student_id == payload.student_id,
        )
    ).first()
    if submission is None:
        submission = Submission(problem_id=payload.experiment_id, student_id=payload.student_id)
    elif submission.status != SubmissionStatus.DRAFT:
        raise HTTPException(status_code=400, detail=f"Submission is already {submission.status.value}")

    submission.files_json = json.dumps([entry.model_dump() for entry in payload.files])
    submission.last_saved = utcnow()

    if payload.status == SubmissionStatus.SUBMITTED:
        if not any(entry.type == "file" for entry in payload.files):
            raise HTTPException(status_code=400, detail="Cannot submit without files")
        submission.status = SubmissionStatus.SUBMITTED
        submission.submitted_at = submission.last_saved
        session.add(submission)
        session.flush()
        await grade_submission(submission, problem, evaluator, payload.execution_result)

    session.add(submission)
    session.commit()
    session.refresh(submission)
    return to_submission_read(submission)


@router.get("", response_model=SubmissionRead | None)
def get_my_submission(
    experiment_id: int = Query(alias="experimentId"),
    student_id: str = Query(alias="studentId"),
    session: Session = Depends(get_session),
) -> SubmissionRead | None:
    submission = session.exec(
        select(Submission).where(Submission.problem_id == experiment_id, Submission.student_id == student_id)
    ).first()
    if submission is None:
        return None
    return to_submission_read(submission)


@router.get("/{submission_id}", response_model=SubmissionRead)
def get_submission(submission_id: int, session: Session = Depends(get_session)) -> SubmissionRead:
    submission = session.get(Submission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    return to_submission_read(submission)


@router.post("/{submission_id}/validate", response_model=SubmissionRead)
def validate_submission(
    submission_id: int,
    payload: ValidateRequest,
    session: Session = Depends(get_session),
) -> SubmissionRead:
    submission = session.get(Submission, submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    if submission.status == SubmissionStatus.DRAFT:
        raise HTTPException(status_code=400, detail="Draft submissions cannot be validated")

    problem = session.get(Problem, submission.problem_id)
    if problem and payload.score > problem.max_marks:
        raise HTTPException(status_code=400, detail=f"Score must be between 0 and {problem.max_marks:g}")

    evaluation = load_ai_evaluation(submission)
    if evaluation is not None and payload.score != evaluation.final_score:
        store_ai_evaluation(submission, apply_teacher_override(evaluation, payload.score, payload.teacher_id))

    submission.status = SubmissionStatus.VALIDATED
    submission.score = payload.score
    submission.feedback = payload.feedback
    submission.evaluated_by = payload.teacher_id
    submission.last_saved = utcnow()
    session.add(submission)
    session.commit()
    session.refresh(submission)
    logger.info(
        "submission validated",
        extra={"stage": "teacher_override", "submission_id": submission_id, "teacher_id": payload.teacher_id},
    )
    return to_submission_read(submission)
