"""Local, network-free score estimators used alongside or instead of the remote grader."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from labmarks.grading.base import ExecutionResult, GradingProblem, SubmissionFile, as_text, clamp, round1
from labmarks.grading.policy import (
    CODE_LENGTH_CAP,
    CODE_LENGTH_DIVISOR,
    COMMENT_POINTS,
    CONTROL_FLOW_POINTS,
    COVERAGE_BASE_SCORE,
    COVERAGE_WEIGHT,
    DESCRIPTION_COVERAGE_WEIGHT,
    ERROR_ONLY_PENALTY,
    FUNCTION_POINTS,
    HEURISTIC_ERROR_ONLY_PENALTY,
    HEURISTIC_MIXED_STREAMS_PENALTY,
    LOW_COVERAGE_THRESHOLD,
    NEUTRAL_OUTPUT_SCORE,
    OUTPUT_MATCH_THRESHOLD,
    OUTPUT_MISSING_PENALTY,
    STDERR_WARNING_PENALTY,
)
from labmarks.grading.text import coverage, extract_keywords

FLAG_RUNTIME_ERROR = "Runtime/compile error output detected"
FLAG_STDERR_WARNINGS = "stderr warnings"
FLAG_OUTPUT_MISSING = "Expected output not observed"

_CONTROL_FLOW_RE = re.compile(r"\b(?:for|while|if|switch)\s*\(|^\s*(?:for|while|if|elif)\b[^\n]*:\s*$", re.MULTILINE)
_FUNCTION_RE = re.compile(
    r"\bfunction\s+\w+|\w+\s*=>|\bdef\s+\w+\s*\(|\blambda\b|\b\w+\s+\w+\s*\([^;{}()]*\)\s*\{"
)
_COMMENT_RE = re.compile(r"//|/\*|(?:^|\s)#(?!include\b|define\b|pragma\b|ifn?def\b|endif\b|if\b|else\b)", re.MULTILINE)


@dataclass
class OutputVerification:
    score: float
    matched: bool
    summary: str
    coverage: float = 0.0
    flags: list[str] = field(default_factory=list)


def code_text(files: list[SubmissionFile]) -> str:
    return "\n".join(f.content for f in files)


def heuristic_output_score(problem: GradingProblem, files: list[SubmissionFile], execution_result: ExecutionResult) -> float:
    """Keyword-coverage estimate of how well the output matches the expected rubric."""
    expected = as_text(problem.expected_output).strip()
    if not expected or not extract_keywords(expected):
        return NEUTRAL_OUTPUT_SCORE

    stdout = execution_result.stdout.strip()
    stderr = execution_result.stderr.strip()
    best = max(coverage(expected, stdout), coverage(expected, code_text(files)))
    score = clamp(COVERAGE_BASE_SCORE + best * COVERAGE_WEIGHT)

    if stdout and stderr:
        score -= HEURISTIC_MIXED_STREAMS_PENALTY
    if stderr and not stdout:
        score -= HEURISTIC_ERROR_ONLY_PENALTY

    return round1(clamp(score))


def heuristic_code_score(files: list[SubmissionFile]) -> float:
    if not files:
        return 0.0

    full_text = code_text(files)
    length_score = clamp(len(full_text) / CODE_LENGTH_DIVISOR, 0.0, CODE_LENGTH_CAP)
    control_flow = CONTROL_FLOW_POINTS[0] if _CONTROL_FLOW_RE.search(full_text) else CONTROL_FLOW_POINTS[1]
    functions = FUNCTION_POINTS[0] if _FUNCTION_RE.search(full_text) else FUNCTION_POINTS[1]
    comments = COMMENT_POINTS[0] if _COMMENT_RE.search(full_text) else COMMENT_POINTS[1]
    return round1(clamp(length_score + control_flow + functions + comments))


def evaluate_output_verification(
    problem: GradingProblem,
    files: list[SubmissionFile],
    execution_result: ExecutionResult,
) -> OutputVerification:
    """Score the observed output against expectedOutput, falling back to the description as rubric."""
    expected = as_text(problem.expected_output).strip()
    description = as_text(problem.description).strip()
    rubric = expected or description
    if not rubric:
        return OutputVerification(
            score=NEUTRAL_OUTPUT_SCORE,
            matched=True,
            summary="No expected output or description provided; output verification defaulted to neutral.",
        )

    stdout = execution_result.stdout.strip()
    stderr = execution_result.stderr.strip()
    source = code_text(files)

    best = max(
        coverage(rubric, stdout),
        coverage(rubric, source),
        DESCRIPTION_COVERAGE_WEIGHT * coverage(description, f"{stdout}\n{source}"),
    )

    score = clamp(COVERAGE_BASE_SCORE + best * COVERAGE_WEIGHT)
    flags: list[str] = []
    if stderr and not stdout:
        score -= ERROR_ONLY_PENALTY
        flags.append(FLAG_RUNTIME_ERROR)
    elif stderr:
        score -= STDERR_WARNING_PENALTY
        flags.append(FLAG_STDERR_WARNINGS)
    if not stdout and best < LOW_COVERAGE_THRESHOLD:
        score -= OUTPUT_MISSING_PENALTY
        flags.append(FLAG_OUTPUT_MISSING)

    score = round1(clamp(score))
    matched = score >= OUTPUT_MATCH_THRESHOLD
    percent = round(best * 100)
    if matched:
        summary = f"Output matches the expected result ({percent}% rubric coverage, score {score}/10)."
    else:
        summary = f"Output does not match the expected result ({percent}% rubric coverage, score {score}/10)."
    return OutputVerification(score=score, matched=matched, summary=summary, coverage=best, flags=flags)
