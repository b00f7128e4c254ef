"""Grading engine value types."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from labmarks.grading.policy import (
    CODE_BUNDLE_CHAR_LIMIT,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_LATE_PENALTY_PER_DAY,
    MAX_SCORE,
    REMOTE_TIMEOUT_SECONDS,
)


def clamp(value: float, low: float = 0.0, high: float = MAX_SCORE) -> float:
    return min(high, max(low, value))


def round1(value: float) -> float:
    """Round half-up to one decimal place."""
    return math.floor(value * 10 + 0.5) / 10


def as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _read(entry: Any, key: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(key)
    return getattr(entry, key, None)


@dataclass(frozen=True)
class GraderConfig:
    """Remote-grader configuration injected into the engine."""

    api_key: str = ""
    model: str = DEFAULT_GEMINI_MODEL
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_seconds: float = REMOTE_TIMEOUT_SECONDS
    max_bundle_chars: int = CODE_BUNDLE_CHAR_LIMIT


@dataclass
class GradingProblem:
    title: str = ""
    description: str = ""
    expected_output: str = ""
    hints: list[str] = field(default_factory=list)
    due_at: datetime | str | None = None
    late_penalty_per_day: Any = DEFAULT_LATE_PENALTY_PER_DAY


@dataclass(frozen=True)
class SubmissionFile:
    name: str
    content: str
    path: str


@dataclass(frozen=True)
class ExecutionResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None

    @classmethod
    def coerce(cls, value: Any) -> ExecutionResult:
        """Build from None, a mapping, a model, or an existing instance."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        exit_code = _read(value, "exit_code")
        if exit_code is None:
            exit_code = _read(value, "exitCode")
        try:
            exit_code = int(exit_code) if exit_code is not None else None
        except (TypeError, ValueError):
            exit_code = None
        return cls(
            stdout=as_text(_read(value, "stdout")),
            stderr=as_text(_read(value, "stderr")),
            exit_code=exit_code,
        )


def normalize_files(files: Iterable[Any] | None) -> list[SubmissionFile]:
    """Keep only file entries and coerce their fields to strings."""
    if files is None or isinstance(files, (str, bytes, Mapping)):
        return []

    normalized: list[SubmissionFile] = []
    for entry in files:
        if entry is None or _read(entry, "type") != "file":
            continue
        name = as_text(_read(entry, "name")) or "main.txt"
        normalized.append(
            SubmissionFile(
                name=name,
                content=as_text(_read(entry, "content")),
                path=as_text(_read(entry, "path")) or name,
            )
        )
    return normalized


class AiEvaluation(BaseModel):
    """Structured grading record attached to a submission.

    Frozen: a teacher override produces a new record via ``model_copy``.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    provider: str
    model: str
    code_quality_score: float = Field(ge=0, le=MAX_SCORE)
    output_match_score: float = Field(ge=0, le=MAX_SCORE)
    raw_score: float = Field(ge=0, le=MAX_SCORE)
    late_penalty: float = Field(ge=0, le=MAX_SCORE)
    final_score: float = Field(ge=0, le=MAX_SCORE)
    days_late: int = Field(ge=0)
    due_at: datetime | None = None
    submitted_at: datetime
    reasoning: str = ""
    output_verification: str = ""
    output_matched: bool = False
    mistake_flags: tuple[str, ...] = ()
    suspected_cheating: bool = False
    cheating_reason: str = ""
    issues: tuple[str, ...] = ()
    teacher_override: bool = False
    teacher_override_by: str | None = None
    teacher_override_at: datetime | None = None
    teacher_override_score: float | None = None


@dataclass
class GradingOutcome:
    score: float
    feedback: str
    ai_evaluation: AiEvaluation
