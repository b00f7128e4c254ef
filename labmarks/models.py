"""SQLModel ORM models for LabMarks."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Return timezone-aware UTC now timestamp."""
    return datetime.now(timezone.utc)


class SubmissionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VALIDATED = "validated"


class Problem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: str
    expected_output: str = ""
    hints_json: str = "[]"
    due_at: Optional[datetime] = None
    late_penalty_per_day: float = 0.5
    max_marks: float = 10
    created_at: datetime = Field(default_factory=utcnow)


class Submission(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("problem_id", "student_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    problem_id: int = Field(foreign_key="problem.id", index=True)
    student_id: str = Field(index=True)
    status: SubmissionStatus = Field(default=SubmissionStatus.DRAFT)
    files_json: str = "[]"
    score: Optional[float] = None
    feedback: Optional[str] = None
    evaluated_by: Optional[str] = None
    last_saved: datetime = Field(default_factory=utcnow)
    submitted_at: Optional[datetime] = None
    ai_evaluation_json: Optional[str] = None
