"""Gemini grading client.

One ``generateContent`` call per grading run, bounded by a hard deadline.
Every failure is returned as a ``RemoteGradeError`` value so the caller can
fall back to local heuristics; nothing is retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from labmarks.grading.base import ExecutionResult, GraderConfig, GradingProblem, SubmissionFile, as_text
from labmarks.grading.policy import CODE_BUNDLE_CHAR_LIMIT, REMOTE_TEMPERATURE, TRUNCATION_MARKER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteGradeOk:
    data: dict[str, Any]
    model: str


@dataclass(frozen=True)
class RemoteGradeError:
    message: str


RemoteGradeResult = RemoteGradeOk | RemoteGradeError


@dataclass
class GeminiRequestError(Exception):
    status_code: int | None
    body: str
    message: str

    def __str__(self) -> str:
        return self.message


class RemoteGrader(Protocol):
    async def grade(
        self,
        problem: GradingProblem,
        files: list[SubmissionFile],
        execution_result: ExecutionResult,
    ) -> RemoteGradeResult:
        """Score code quality and flag issues for one submission."""


def build_code_bundle(files: list[SubmissionFile], limit: int = CODE_BUNDLE_CHAR_LIMIT) -> str:
    bundle = "\n\n".join(f"// File: {f.path}\n{f.content}" for f in files)
    if len(bundle) <= limit:
        return bundle
    return bundle[:limit] + TRUNCATION_MARKER


def build_grading_prompt(
    problem: GradingProblem,
    files: list[SubmissionFile],
    execution_result: ExecutionResult,
    bundle_limit: int = CODE_BUNDLE_CHAR_LIMIT,
) -> str:
    hints = problem.hints if isinstance(problem.hints, list) else []
    exit_code = "unknown" if execution_result.exit_code is None else str(execution_result.exit_code)
    lines = [
        "You are evaluating a student lab submission.",
        "Return ONLY JSON with keys:",
        "{",
        '  "codeQualityScore": number(0-10),',
        '  "reasoning": string,',
        '  "issues": string[],',
        '  "suspectedCheating": boolean,',
        '  "cheatingReason": string,',
        '  "mistakeFlags": string[]',
        "}",
        "",
        "Scoring rules:",
        "- Output matching is verified separately; score only the implementation quality.",
        "- Check that the code actually implements the logic the problem asks for.",
        "- Penalize obvious runtime issues, missing logic, or incomplete implementation.",
        "- Set suspectedCheating when the code prints the expected output without computing it.",
        "",
        f"Problem title: {as_text(problem.title)}",
        f"Problem description: {as_text(problem.description)}",
        f"Expected output: {as_text(problem.expected_output)}",
        f"Hints: {' | '.join(as_text(hint) for hint in hints)}",
        "",
        "Execution result (if present):",
        f"stdout: {execution_result.stdout}",
        f"stderr: {execution_result.stderr}",
        f"exitCode: {exit_code}",
        "",
        "Student files:",
        build_code_bundle(files, bundle_limit),
    ]
    return "\n".join(lines)


def build_generate_content_request(prompt: str) -> dict[str, Any]:
    return {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": REMOTE_TEMPERATURE,
            "responseMimeType": "application/json",
        },
    }


def parse_json_from_text(text: Any) -> Any:
    """Parse a JSON document, or the outermost ``{...}`` span embedded in prose."""
    trimmed = as_text(text).strip()
    if not trimmed:
        return None
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        start = trimmed.find("{")
        end = trimmed.rfind("}")
        if start < 0 or end <= start:
            return None
        try:
            return json.loads(trimmed[start : end + 1])
        except json.JSONDecodeError:
            return None


def extract_error_message(payload: Any, status_code: int) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if payload.get("message"):
            return str(payload["message"])
    return f"Gemini request failed ({status_code})"


def extract_response_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return ""
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "\n".join(as_text(part.get("text")) for part in parts if isinstance(part, dict)).strip()


class GeminiGrader:
    def __init__(self, config: GraderConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._transport = transport

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def endpoint_url(self) -> str:
        return f"{self._config.base_url}/models/{self._config.model}:generateContent"

    async def _post(self, request_payload: dict[str, Any]) -> dict[str, Any]:
        timeout = self._config.timeout_seconds
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            try:
                response = await asyncio.wait_for(
                    client.post(self.endpoint_url, params={"key": self._config.api_key}, json=request_payload),
                    timeout=timeout,
                )
            except (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError) as exc:
                raise GeminiRequestError(
                    status_code=504, body="", message=f"Gemini request timed out after {timeout:g}s"
                ) from exc
            except httpx.HTTPError as exc:
                raise GeminiRequestError(status_code=None, body="", message=f"Gemini request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if not response.is_success:
            raise GeminiRequestError(
                status_code=response.status_code,
                body=response.text,
                message=extract_error_message(payload, response.status_code),
            )
        return payload if isinstance(payload, dict) else {}

    async def grade(
        self,
        problem: GradingProblem,
        files: list[SubmissionFile],
        execution_result: ExecutionResult,
    ) -> RemoteGradeResult:
        if not self._config.api_key:
            return RemoteGradeError("GEMINI_API_KEY is not set")

        bundle_limit = self._config.max_bundle_chars
        prompt = build_grading_prompt(problem, files, execution_result, bundle_limit)
        logger.debug(
            "grade gemini prompt built",
            extra={
                "stage": "remote_call",
                "model": self.model,
                "prompt_chars": len(prompt),
                "truncated": len(build_code_bundle(files, bundle_limit)) > bundle_limit,
            },
        )

        started = time.perf_counter()
        try:
            payload = await self._post(build_generate_content_request(prompt))
        except GeminiRequestError as exc:
            logger.warning(
                "grade gemini request failed",
                extra={"stage": "remote_call", "model": self.model, "status_code": exc.status_code},
            )
            return RemoteGradeError(exc.message)

        parsed = parse_json_from_text(extract_response_text(payload))
        if not isinstance(parsed, dict):
            return RemoteGradeError("Gemini returned non-JSON content")

        logger.info(
            "grade gemini response parsed",
            extra={
                "stage": "remote_call",
                "model": self.model,
                "gemini_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return RemoteGradeOk(data=parsed, model=self.model)


class MockRemoteGrader:
    """Offline stand-in returning a fixed, well-formed review."""

    model = "gemini-mock"

    async def grade(
        self,
        problem: GradingProblem,
        files: list[SubmissionFile],
        execution_result: ExecutionResult,
    ) -> RemoteGradeResult:
        _ = (problem, execution_result)
        if not files:
            return RemoteGradeError("No files submitted")
        return RemoteGradeOk(
            data={
                "codeQualityScore": 7.5,
                "reasoning": "Mock review: implementation structure looks reasonable.",
                "issues": ["Mock issue: add input validation"],
                "suspectedCheating": False,
                "cheatingReason": "",
                "mistakeFlags": [],
            },
            model=self.model,
        )


def get_remote_grader(config: GraderConfig, mock: bool = False) -> RemoteGrader:
    if mock:
        return MockRemoteGrader()
    return GeminiGrader(config)
