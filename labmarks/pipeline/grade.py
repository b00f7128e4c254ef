"""Bridges stored problems and submissions to the grading engine."""

from __future__ import annotations

import json
import logging
from typing import Any

from labmarks.grading.base import AiEvaluation, GradingOutcome, GradingProblem
from labmarks.grading.evaluator import SubmissionEvaluator
from labmarks.grading.gemini import get_remote_grader
from labmarks.models import Problem, Submission
from labmarks.settings import Settings

logger = logging.getLogger(__name__)


def get_submission_evaluator() -> SubmissionEvaluator:
    current = Settings()
    config = current.grader_config()
    return SubmissionEvaluator(config, remote=get_remote_grader(config, mock=current.gemini_mock))


def load_hints(problem: Problem) -> list[str]:
    try:
        hints = json.loads(problem.hints_json or "[]")
    except json.JSONDecodeError:
        return []
    return [str(hint) for hint in hints] if isinstance(hints, list) else []


def to_grading_problem(problem: Problem) -> GradingProblem:
    return GradingProblem(
        title=problem.title,
        description=problem.description,
        expected_output=problem.expected_output or "",
        hints=load_hints(problem),
        due_at=problem.due_at,
        late_penalty_per_day=problem.late_penalty_per_day,
    )


def load_files(submission: Submission) -> list[dict[str, Any]]:
    try:
        files = json.loads(submission.files_json or "[]")
    except json.JSONDecodeError:
        return []
    return [entry for entry in files if isinstance(entry, dict)] if isinstance(files, list) else []


def load_ai_evaluation(submission: Submission) -> AiEvaluation | None:
    if not submission.ai_evaluation_json:
        return None
    return AiEvaluation.model_validate_json(submission.ai_evaluation_json)


def store_ai_evaluation(submission: Submission, evaluation: AiEvaluation) -> None:
    submission.ai_evaluation_json = evaluation.model_dump_json(by_alias=True)


async def grade_submission(
    submission: Submission,
    problem: Problem,
    evaluator: SubmissionEvaluator,
    execution_result: Any = None,
) -> GradingOutcome:
    """Run the engine for a finalized submission and record score, feedback and evaluation on it."""
    outcome = await evaluator.evaluate(
        to_grading_problem(problem),
        load_files(submission),
        execution_result,
        submission.submitted_at,
    )
    submission.score = outcome.score
    submission.feedback = outcome.feedback
    store_ai_evaluation(submission, outcome.ai_evaluation)
    logger.info(
        "submission graded",
        extra={
            "stage": "score_reconcile",
            "submission_id": submission.id,
            "provider": outcome.ai_evaluation.provider,
            "final_score": outcome.score,
        },
    )
    return outcome
