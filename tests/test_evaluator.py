from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from labmarks.grading.base import ExecutionResult, GraderConfig, GradingProblem, SubmissionFile, normalize_files
from labmarks.grading.cheating import FLAG_HARDCODED_OUTPUT, FLAG_PRINT_ONLY
from labmarks.grading.evaluator import CHEATING_ISSUE, apply_teacher_override, evaluate_submission
from labmarks.grading.gemini import RemoteGradeError, RemoteGradeOk
from labmarks.grading.heuristic import heuristic_code_score

DUE = datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)
EXPECTED = "Average waiting time and turnaround time"
STDOUT = "average waiting time turnaround time: 4.2"
PRINT_ONLY_CODE = "print average waiting time turnaround time"
LOOP_CODE = "n = int(input())\nfor i in range(n):\n    print('average waiting time turnaround time')\n"


class StubRemote:
    def __init__(self, result) -> None:
        self.result = result
        self.calls = 0

    async def grade(self, problem, files, execution_result):
        self.calls += 1
        return self.result


def _file(content: str, **extra) -> dict:
    return {"name": "main.py", "content": content, "type": "file", "path": "main.py", **extra}


def _run(problem, files, stdout=STDOUT, submitted_at=DUE, remote=None, stderr=""):
    return asyncio.run(
        evaluate_submission(
            problem,
            files,
            {"stdout": stdout, "stderr": stderr, "exitCode": 0},
            submitted_at,
            config=GraderConfig(api_key=""),
            remote=remote,
        )
    )


def _is_one_decimal(value: float) -> bool:
    return abs(value * 10 - round(value * 10)) < 1e-9


def test_normalize_files_keeps_only_file_entries_and_defaults_names() -> None:
    files = normalize_files(
        [
            {"type": "folder", "name": "src", "path": "src"},
            {"type": "file", "content": 42},
            {"type": "file", "name": "a.c", "content": None, "path": "src/a.c"},
            None,
        ]
    )

    assert files == [
        SubmissionFile(name="main.txt", content="42", path="main.txt"),
        SubmissionFile(name="a.c", content="", path="src/a.c"),
    ]


def test_print_only_hardcoded_submission_is_capped_despite_match() -> None:
    outcome = _run(GradingProblem(expected_output=EXPECTED, due_at=DUE), [_file(PRINT_ONLY_CODE)])
    evaluation = outcome.ai_evaluation

    assert evaluation.provider == "heuristic"
    assert evaluation.model == "local"
    assert evaluation.output_matched is True
    assert evaluation.days_late == 0
    assert evaluation.suspected_cheating is True
    assert evaluation.output_match_score <= 3
    assert evaluation.code_quality_score <= 2.5
    assert evaluation.raw_score <= 3
    assert evaluation.final_score == outcome.score == 2.6
    assert FLAG_PRINT_ONLY in evaluation.mistake_flags
    assert FLAG_HARDCODED_OUTPUT in evaluation.mistake_flags
    assert CHEATING_ISSUE in evaluation.issues
    assert "Cheating flag:" in outcome.feedback


def test_on_time_matched_honest_submission_gets_full_marks() -> None:
    outcome = _run(GradingProblem(expected_output=EXPECTED, due_at=DUE), [_file(LOOP_CODE)])
    evaluation = outcome.ai_evaluation

    assert evaluation.suspected_cheating is False
    assert evaluation.output_matched is True
    assert evaluation.raw_score == 10.0
    assert evaluation.final_score == 10.0
    assert outcome.feedback.splitlines()[0] == "AI score: 10/10"
    assert "Submission timing: on time" in outcome.feedback


def test_late_submission_uses_ordinary_arithmetic() -> None:
    problem = GradingProblem(expected_output=EXPECTED, due_at=DUE, late_penalty_per_day=0.5)

    outcome = _run(problem, [_file(LOOP_CODE)], submitted_at=DUE + timedelta(hours=50))
    evaluation = outcome.ai_evaluation

    code_score = heuristic_code_score(normalize_files([_file(LOOP_CODE)]))
    expected_raw = round((10 * 0.8 + code_score * 0.2) * 10) / 10
    assert evaluation.days_late == 3
    assert evaluation.late_penalty == 1.5
    assert evaluation.raw_score == pytest.approx(expected_raw)
    assert evaluation.final_score == pytest.approx(round((expected_raw - 1.5) * 10) / 10)
    assert evaluation.final_score < 10
    assert "Late penalty: -1.5 (3 day(s) late)" in outcome.feedback


def test_unmatched_output_caps_raw_score() -> None:
    problem = GradingProblem(expected_output="matrix determinant value", due_at=DUE)
    remote = StubRemote(RemoteGradeOk(data={"codeQualityScore": 10}, model="gemini-test"))

    evaluation = _run(problem, [_file("for x in y:\n    pass\n")], stdout="", stderr="NameError", remote=remote).ai_evaluation

    assert evaluation.output_matched is False
    assert evaluation.raw_score <= 4.5
    assert "Runtime/compile error output detected" in evaluation.mistake_flags


def test_neutral_rubric_without_expected_output_or_description() -> None:
    outcome = _run(GradingProblem(), [_file("print('hi')")], stdout="hi")
    evaluation = outcome.ai_evaluation

    assert evaluation.output_match_score == 6.5
    assert evaluation.output_matched is True
    assert evaluation.final_score == 10.0


def test_missing_credential_falls_back_without_raising() -> None:
    outcome = asyncio.run(
        evaluate_submission(GradingProblem(expected_output=EXPECTED), [_file(LOOP_CODE)], None, DUE, config=GraderConfig())
    )

    assert outcome.ai_evaluation.provider == "heuristic"
    assert outcome.ai_evaluation.reasoning.startswith("Fallback grading used because AI call failed: GEMINI_API_KEY")


def test_remote_review_is_merged() -> None:
    remote = StubRemote(
        RemoteGradeOk(
            data={
                "codeQualityScore": 14,
                "reasoning": "Solid loop structure.",
                "issues": ["No input validation", "No input validation", ""],
                "mistakeFlags": ["Magic numbers"],
                "suspectedCheating": False,
            },
            model="gemini-test",
        )
    )

    evaluation = _run(GradingProblem(expected_output=EXPECTED, due_at=DUE), [_file(LOOP_CODE)], remote=remote).ai_evaluation

    assert remote.calls == 1
    assert evaluation.provider == "gemini"
    assert evaluation.model == "gemini-test"
    assert evaluation.code_quality_score == 10.0
    assert evaluation.reasoning == "Solid loop structure."
    assert evaluation.issues == ("No input validation",)
    assert evaluation.mistake_flags == (FLAG_HARDCODED_OUTPUT, "Magic numbers")


@pytest.mark.parametrize("bad_score", [None, "NaN", float("inf"), "excellent", True])
def test_non_finite_remote_score_falls_back_to_heuristic(bad_score) -> None:
    remote = StubRemote(RemoteGradeOk(data={"codeQualityScore": bad_score, "reasoning": "ok"}, model="gemini-test"))
    files = [_file(LOOP_CODE)]

    evaluation = _run(GradingProblem(expected_output=EXPECTED, due_at=DUE), files, remote=remote).ai_evaluation

    assert evaluation.provider == "gemini"
    assert evaluation.code_quality_score == heuristic_code_score(normalize_files(files))
    assert "heuristic estimate used" in evaluation.reasoning


def test_remote_cheating_verdict_is_ored_and_blocks_override() -> None:
    remote = StubRemote(
        RemoteGradeOk(
            data={"codeQualityScore": 9, "suspectedCheating": True, "cheatingReason": "Copied from reference solution"},
            model="gemini-test",
        )
    )

    outcome = _run(GradingProblem(expected_output=EXPECTED, due_at=DUE), [_file(LOOP_CODE)], remote=remote)
    evaluation = outcome.ai_evaluation

    assert evaluation.suspected_cheating is True
    assert evaluation.cheating_reason == "Copied from reference solution"
    assert evaluation.output_match_score == 3.0
    assert evaluation.code_quality_score == 2.5
    assert evaluation.raw_score == 2.9
    assert evaluation.final_score == 2.9
    assert "Cheating flag: Copied from reference solution" in outcome.feedback


def test_remote_failure_message_is_recorded_in_reasoning() -> None:
    remote = StubRemote(RemoteGradeError("Gemini request timed out after 20s"))

    evaluation = _run(GradingProblem(expected_output=EXPECTED), [_file(LOOP_CODE)], remote=remote).ai_evaluation

    assert evaluation.provider == "heuristic"
    assert evaluation.reasoning == "Fallback grading used because AI call failed: Gemini request timed out after 20s"


def test_flags_and_issues_are_capped_at_ten() -> None:
    remote = StubRemote(
        RemoteGradeOk(
            data={
                "codeQualityScore": 5,
                "issues": [f"issue {idx}" for idx in range(15)],
                "mistakeFlags": [f"flag {idx}" for idx in range(15)],
            },
            model="gemini-test",
        )
    )

    outcome = _run(GradingProblem(expected_output=EXPECTED), [_file(LOOP_CODE)], remote=remote)

    assert len(outcome.ai_evaluation.issues) == 10
    assert len(outcome.ai_evaluation.mistake_flags) == 10
    assert "Key issues: issue 0; issue 1; issue 2" in outcome.feedback


@pytest.mark.parametrize(
    ("content", "stdout", "stderr", "hours_late"),
    [
        (PRINT_ONLY_CODE, STDOUT, "", 0),
        (LOOP_CODE, "", "Traceback", 0),
        (LOOP_CODE, STDOUT, "warning", 30),
        ("", "", "", 500),
    ],
)
def test_all_scores_are_bounded_one_decimal_values(content, stdout, stderr, hours_late) -> None:
    problem = GradingProblem(expected_output=EXPECTED, due_at=DUE, late_penalty_per_day=0.75)

    evaluation = _run(problem, [_file(content)], stdout=stdout, stderr=stderr, submitted_at=DUE + timedelta(hours=hours_late)).ai_evaluation

    for value in (
        evaluation.code_quality_score,
        evaluation.output_match_score,
        evaluation.raw_score,
        evaluation.late_penalty,
        evaluation.final_score,
    ):
        assert 0 <= value <= 10
        assert _is_one_decimal(value)


def test_evaluation_is_immutable_and_override_is_layered() -> None:
    evaluation = _run(GradingProblem(expected_output=EXPECTED, due_at=DUE), [_file(LOOP_CODE)]).ai_evaluation
    at = DUE + timedelta(days=2)

    with pytest.raises(ValidationError):
        evaluation.final_score = 1.0

    overridden = apply_teacher_override(evaluation, 7.25, "teacher-7", at)

    assert overridden.teacher_override is True
    assert overridden.teacher_override_by == "teacher-7"
    assert overridden.teacher_override_at == at
    assert overridden.teacher_override_score == 7.3
    assert overridden.final_score == evaluation.final_score == 10.0
    assert evaluation.teacher_override is False


def test_override_rejects_non_numeric_score() -> None:
    evaluation = _run(GradingProblem(), [_file("print(1)")], stdout="1").ai_evaluation

    with pytest.raises(ValueError):
        apply_teacher_override(evaluation, float("nan"), "teacher-1")


def test_evaluation_serializes_with_camel_case_keys() -> None:
    evaluation = _run(GradingProblem(expected_output=EXPECTED, due_at=DUE), [_file(LOOP_CODE)]).ai_evaluation

    payload = evaluation.model_dump(mode="json", by_alias=True)

    assert payload["codeQualityScore"] == evaluation.code_quality_score
    assert payload["suspectedCheating"] is False
    assert payload["teacherOverrideScore"] is None
    assert isinstance(payload["mistakeFlags"], list)


def test_short_output_without_rubric_keywords_is_capped_as_unmatched() -> None:
    outcome = _run(GradingProblem(expected_output="Sum: 15", due_at=DUE), [_file("print('Sum: 15')")], stdout="Sum: 15")
    evaluation = outcome.ai_evaluation

    assert evaluation.output_matched is False
    assert evaluation.output_match_score == 2.0
    assert evaluation.final_score == outcome.score == 1.8


def test_hardcoded_sentence_containing_keywords_in_prose_is_not_full_marks() -> None:
    expected = "Average waiting time for all processes is 4"
    outcome = _run(
        GradingProblem(expected_output=expected, due_at=DUE),
        [_file(f'print("{expected}")')],
        stdout=expected,
    )
    evaluation = outcome.ai_evaluation

    assert evaluation.suspected_cheating is True
    assert FLAG_PRINT_ONLY in evaluation.mistake_flags
    assert evaluation.final_score <= 3
