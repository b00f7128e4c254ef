"""Pattern-based detection of print-only and hardcoded-output submissions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from labmarks.grading.base import GradingProblem, SubmissionFile
from labmarks.grading.policy import (
    HARDCODED_MIN_CHARS,
    HARDCODED_MIN_WORDS,
    HARDCODED_TOKEN_SAMPLE,
    MIN_KEYWORD_LENGTH,
    SHORT_CODE_MAX_LINES,
)
from labmarks.grading.text import normalize, tokenize

CHEATING_REASON = "Submission appears to print the expected output directly instead of computing it."
FLAG_PRINT_ONLY = "Print-only implementation without core logic"
FLAG_HARDCODED_OUTPUT = "Expected output appears hardcoded in source"

_PRINT_RE = re.compile(
    r"\b(?:print|printf|println|puts|cout|echo)\b|console\.log|System\.out\.print|Console\.Write",
    re.IGNORECASE,
)
_LOGIC_RE = re.compile(
    r"\b(?:for|while|if|else|elif|switch|case|def|function|lambda|class|struct)\b|=>",
)
_INPUT_RE = re.compile(
    r"\b(?:input|raw_input|scanf|fscanf|gets|fgets|getline|getchar|cin|readline|readLine|nextInt|nextLine|Scanner|prompt)\b"
    r"|sys\.stdin|process\.stdin|System\.in",
)
_STRING_LITERAL_RE = re.compile(
    r"'''.*?'''"
    r'|""".*?"""'
    r'|"(?:\\.|[^"\\\n])*"'
    r"|'(?:\\.|[^'\\\n])*'"
    r"|`(?:\\.|[^`\\])*`",
    re.DOTALL,
)


def strip_string_literals(source: str) -> str:
    """Blank out string literals so prose inside them is not read as syntax."""
    return _STRING_LITERAL_RE.sub('""', source)


@dataclass
class CheatingSignals:
    has_print: bool = False
    has_logic: bool = False
    has_input: bool = False
    hardcoded_expected: bool = False
    short_code: bool = False
    suspected: bool = False
    reason: str = ""
    flags: list[str] = field(default_factory=list)

    @property
    def print_only(self) -> bool:
        return self.has_print and not self.has_logic and not self.has_input


def _is_hardcoded(expected: str, code: str) -> bool:
    if len(expected) >= HARDCODED_MIN_CHARS and expected in code:
        return True
    if len(expected.split()) < HARDCODED_MIN_WORDS:
        return False
    significant = [token for token in tokenize(expected) if len(token) >= MIN_KEYWORD_LENGTH][:HARDCODED_TOKEN_SAMPLE]
    return bool(significant) and all(token in code for token in significant)


def detect_cheating(problem: GradingProblem, files: list[SubmissionFile]) -> CheatingSignals:
    source = "\n".join(f.content for f in files)
    code = source.lower()
    syntax = strip_string_literals(source)
    expected = normalize(problem.expected_output)

    signals = CheatingSignals(
        has_print=bool(_PRINT_RE.search(source)),
        has_logic=bool(_LOGIC_RE.search(syntax)),
        has_input=bool(_INPUT_RE.search(syntax)),
        hardcoded_expected=bool(expected) and _is_hardcoded(expected, code),
        short_code=sum(1 for line in source.splitlines() if line.strip()) <= SHORT_CODE_MAX_LINES,
    )

    if signals.print_only:
        signals.flags.append(FLAG_PRINT_ONLY)
    if signals.hardcoded_expected:
        signals.flags.append(FLAG_HARDCODED_OUTPUT)

    signals.suspected = (
        signals.hardcoded_expected and not signals.has_logic and (signals.print_only or signals.short_code)
    )
    if signals.suspected:
        signals.reason = CHEATING_REASON
    return signals
