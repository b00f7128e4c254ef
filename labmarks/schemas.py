"""Request and response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from labmarks.grading.base import AiEvaluation
from labmarks.models import SubmissionStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProblemCreate(CamelModel):
    title: str
    description: str
    expected_output: str = ""
    hints: list[str] = Field(default_factory=list)
    due_at: datetime | None = None
    late_penalty_per_day: float = Field(default=0.5, ge=0)
    max_marks: float = Field(default=10, gt=0)


class ProblemRead(ProblemCreate):
    id: int
    created_at: datetime


class SubmissionFileIn(CamelModel):
    name: str
    content: str = ""
    type: Literal["file", "folder"] = "file"
    path: str = ""


class ExecutionResultIn(CamelModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None


class SubmissionUpsert(CamelModel):
    experiment_id: int
    student_id: str
    status: SubmissionStatus = SubmissionStatus.DRAFT
    files: list[SubmissionFileIn]
    execution_result: ExecutionResultIn | None = None


class SubmissionRead(CamelModel):
    id: int
    experiment_id: int
    student_id: str
    status: SubmissionStatus
    score: float | None
    feedback: str | None
    evaluated_by: str | None
    last_saved: datetime
    submitted_at: datetime | None
    files: list[SubmissionFileIn] = Field(default_factory=list)
    ai_evaluation: AiEvaluation | None = None


class ValidateRequest(CamelModel):
    score: float = Field(ge=0)
    feedback: str = ""
    teacher_id: str


class GradeRequest(CamelModel):
    experiment_id: int
    files: list[SubmissionFileIn]
    execution_result: ExecutionResultIn | None = None
    submitted_at: datetime | None = None


class GradeResponse(CamelModel):
    score: float
    max_score: float
    feedback: str
    ai_evaluation: AiEvaluation
