"""Submission evaluation pipeline.

Combines local output verification, cheating detection, the remote code
review and the lateness penalty into one ``AiEvaluation``. Rule precedence
when reconciling is: cheating gate, then output-match gate, then lateness,
then the perfect-score override for verified on-time work.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from labmarks.grading.base import (
    AiEvaluation,
    ExecutionResult,
    GraderConfig,
    GradingOutcome,
    GradingProblem,
    clamp,
    normalize_files,
    round1,
)
from labmarks.grading.cheating import detect_cheating
from labmarks.grading.gemini import GeminiGrader, RemoteGradeOk, RemoteGrader
from labmarks.grading.heuristic import evaluate_output_verification, heuristic_code_score
from labmarks.grading.lateness import as_utc, compute_late_penalty
from labmarks.grading.policy import (
    CHEATING_CODE_CAP,
    CHEATING_OUTPUT_CAP,
    CHEATING_RAW_CAP,
    CODE_WEIGHT,
    FEEDBACK_TOP_ISSUES,
    GEMINI_PROVIDER,
    HEURISTIC_MODEL,
    HEURISTIC_PROVIDER,
    MAX_FLAGS,
    MAX_SCORE,
    OUTPUT_WEIGHT,
    UNMATCHED_RAW_CAP,
)

logger = logging.getLogger(__name__)

CHEATING_ISSUE = "Possible cheating: output appears hardcoded instead of computed."


def _finite_score(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return score if math.isfinite(score) else None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return value is True


def dedupe(items: Iterable[str], limit: int = MAX_FLAGS) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in items:
        text = item.strip()
        if text:
            seen.setdefault(text, None)
    return tuple(seen)[:limit]


def _fmt(value: float) -> str:
    return f"{value:g}"


def build_feedback(evaluation: AiEvaluation) -> str:
    lines = [
        f"AI score: {_fmt(evaluation.final_score)}/{_fmt(MAX_SCORE)}",
        f"Output verification: {_fmt(evaluation.output_match_score)}/{_fmt(MAX_SCORE)}",
        f"Code quality: {_fmt(evaluation.code_quality_score)}/{_fmt(MAX_SCORE)}",
    ]

    if evaluation.days_late > 0:
        lines.append(f"Late penalty: -{_fmt(evaluation.late_penalty)} ({evaluation.days_late} day(s) late)")
    else:
        lines.append("Submission timing: on time")

    if evaluation.reasoning:
        lines.append(f"Review: {evaluation.reasoning}")
    if evaluation.mistake_flags:
        lines.append(f"Mistakes: {'; '.join(evaluation.mistake_flags)}")
    if evaluation.suspected_cheating:
        lines.append(f"Cheating flag: {evaluation.cheating_reason or 'suspected'}")
    if evaluation.issues:
        lines.append(f"Key issues: {'; '.join(evaluation.issues[:FEEDBACK_TOP_ISSUES])}")

    return "\n".join(lines)


class SubmissionEvaluator:
    """Grades one submission per ``evaluate`` call; holds no per-run state."""

    def __init__(self, config: GraderConfig, remote: RemoteGrader | None = None) -> None:
        self._config = config
        self._remote = remote if remote is not None else GeminiGrader(config)

    async def evaluate(
        self,
        problem: GradingProblem,
        files: Iterable[Any] | None,
        execution_result: Any = None,
        submitted_at: datetime | str | None = None,
    ) -> GradingOutcome:
        started = time.perf_counter()
        normalized_files = normalize_files(files)
        execution = ExecutionResult.coerce(execution_result)
        submitted = as_utc(submitted_at) or datetime.now(timezone.utc)

        verification = evaluate_output_verification(problem, normalized_files, execution)
        output_score = verification.score
        output_matched = verification.matched
        mistake_flags = list(verification.flags)

        signals = detect_cheating(problem, normalized_files)
        suspected_cheating = signals.suspected
        cheating_reason = signals.reason
        mistake_flags.extend(signals.flags)

        issues: list[str] = []
        remote_result = await self._remote.grade(problem, normalized_files, execution)
        if isinstance(remote_result, RemoteGradeOk):
            data = remote_result.data
            provider = GEMINI_PROVIDER
            model = remote_result.model
            reasoning = str(data.get("reasoning") or "").strip()
            issues.extend(_string_list(data.get("issues")))
            mistake_flags.extend(_string_list(data.get("mistakeFlags")))
            suspected_cheating = suspected_cheating or _flag(data.get("suspectedCheating"))
            remote_reason = str(data.get("cheatingReason") or "").strip()
            if remote_reason:
                cheating_reason = remote_reason

            remote_score = _finite_score(data.get("codeQualityScore"))
            if remote_score is None:
                code_score = heuristic_code_score(normalized_files)
                note = "Remote code-quality score was invalid; heuristic estimate used."
                reasoning = f"{reasoning} ({note})" if reasoning else note
            else:
                code_score = clamp(remote_score)
        else:
            provider = HEURISTIC_PROVIDER
            model = HEURISTIC_MODEL
            code_score = heuristic_code_score(normalized_files)
            reasoning = f"Fallback grading used because AI call failed: {remote_result.message}"
            logger.warning(
                "grade remote fallback",
                extra={"stage": "remote_fallback", "problem_title": problem.title, "reason": remote_result.message},
            )

        if suspected_cheating:
            output_score = min(output_score, CHEATING_OUTPUT_CAP)
            code_score = min(code_score, CHEATING_CODE_CAP)
            issues.append(CHEATING_ISSUE)
            if not cheating_reason:
                cheating_reason = CHEATING_ISSUE

        output_score = round1(clamp(output_score))
        code_score = round1(clamp(code_score))

        raw_score = round1(output_score * OUTPUT_WEIGHT + code_score * CODE_WEIGHT)
        if not output_matched:
            raw_score = min(raw_score, UNMATCHED_RAW_CAP)
        if suspected_cheating:
            raw_score = min(raw_score, CHEATING_RAW_CAP)

        lateness = compute_late_penalty(problem.due_at, submitted, problem.late_penalty_per_day)
        final_score = round1(clamp(raw_score - lateness.late_penalty))

        if output_matched and lateness.days_late == 0 and not suspected_cheating:
            raw_score = final_score = MAX_SCORE

        evaluation = AiEvaluation(
            provider=provider,
            model=model,
            code_quality_score=code_score,
            output_match_score=output_score,
            raw_score=raw_score,
            late_penalty=lateness.late_penalty,
            final_score=final_score,
            days_late=lateness.days_late,
            due_at=lateness.due_at,
            submitted_at=submitted,
            reasoning=reasoning,
            output_verification=verification.summary,
            output_matched=output_matched,
            mistake_flags=dedupe(mistake_flags),
            suspected_cheating=suspected_cheating,
            cheating_reason=cheating_reason if suspected_cheating else "",
            issues=dedupe(issues),
        )

        logger.info(
            "grade complete",
            extra={
                "stage": "score_reconcile",
                "provider": provider,
                "model": model,
                "final_score": final_score,
                "suspected_cheating": suspected_cheating,
                "grade_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return GradingOutcome(score=final_score, feedback=build_feedback(evaluation), ai_evaluation=evaluation)


async def evaluate_submission(
    problem: GradingProblem,
    files: Iterable[Any] | None,
    execution_result: Any = None,
    submitted_at: datetime | str | None = None,
    config: GraderConfig | None = None,
    remote: RemoteGrader | None = None,
) -> GradingOutcome:
    evaluator = SubmissionEvaluator(config or GraderConfig(), remote=remote)
    return await evaluator.evaluate(problem, files, execution_result, submitted_at)


def apply_teacher_override(
    evaluation: AiEvaluation,
    score: float,
    teacher_id: str,
    at: datetime | None = None,
) -> AiEvaluation:
    """Layer a teacher's score over an AI evaluation, keeping every AI field intact."""
    override_score = _finite_score(score)
    if override_score is None:
        raise ValueError(f"Override score must be a finite number, got {score!r}")

    overridden = evaluation.model_copy(
        update={
            "teacher_override": True,
            "teacher_override_by": str(teacher_id),
            "teacher_override_at": as_utc(at) or datetime.now(timezone.utc),
            "teacher_override_score": round1(clamp(override_score)),
        }
    )
    logger.info(
        "grade teacher override",
        extra={"stage": "teacher_override", "teacher_id": str(teacher_id), "score": overridden.teacher_override_score},
    )
    return overridden
