"""Problem (experiment) management endpoints."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select

from labmarks.db import get_session
from labmarks.models import Problem, Submission
from labmarks.pipeline.grade import load_hints
from labmarks.routers.submissions import to_submission_read
from labmarks.schemas import ProblemCreate, ProblemRead, SubmissionRead

router = APIRouter(prefix="/problems", tags=["problems"])


def to_problem_read(problem: Problem) -> ProblemRead:
    return ProblemRead(
        id=problem.id,
        title=problem.title,
        description=problem.description,
        expected_output=problem.expected_output,
        hints=load_hints(problem),
        due_at=problem.due_at,
        late_penalty_per_day=problem.late_penalty_per_day,
        max_marks=problem.max_marks,
        created_at=problem.created_at,
    )


@router.post("", response_model=ProblemRead, status_code=status.HTTP_201_CREATED)
def create_problem(payload: ProblemCreate, session: Session = Depends(get_session)) -> ProblemRead:
    problem = Problem(
        title=payload.title,
        description=payload.description,
        expected_output=payload.expected_output,
        hints_json=json.dumps(payload.hints),
        due_at=payload.due_at,
        late_penalty_per_day=payload.late_penalty_per_day,
        max_marks=payload.max_marks,
    )
    session.add(problem)
    session.commit()
    session.refresh(problem)
    return to_problem_read(problem)


@router.get("", response_model=list[ProblemRead])
def list_problems(session: Session = Depends(get_session)) -> list[ProblemRead]:
    problems = session.exec(select(Problem).order_by(Problem.id)).all()
    return [to_problem_read(problem) for problem in problems]


@router.get("/{problem_id}", response_model=ProblemRead)
def get_problem(problem_id: int, session: Session = Depends(get_session)) -> ProblemRead:
    problem = session.get(Problem, problem_id)
    if not problem:
        raise HTTPException(status_code=404, detail="Experiment not found")
    return to_problem_read(problem)


@router.get("/{problem_id}/submissions", response_model=list[SubmissionRead])
def list_problem_submissions(problem_id: int, session: Session = Depends(get_session)) -> list[SubmissionRead]:
    if not session.get(Problem, problem_id):
        raise HTTPException(status_code=404, detail="Experiment not found")
    submissions = session.exec(
        select(Submission).where(Submission.problem_id == problem_id).order_by(Submission.last_saved.desc())
    ).all()
    return [to_submission_read(submission, include_files=False) for submission in submissions]
