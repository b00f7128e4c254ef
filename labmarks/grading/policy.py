"""Scoring policy constants for the grading engine."""

MAX_SCORE = 10.0

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
HEURISTIC_PROVIDER = "heuristic"
HEURISTIC_MODEL = "local"
GEMINI_PROVIDER = "gemini"

# Remote call
REMOTE_TIMEOUT_SECONDS = 20.0
REMOTE_TEMPERATURE = 0.1
CODE_BUNDLE_CHAR_LIMIT = 26_000
TRUNCATION_MARKER = "\n\n// [truncated]"

# Keyword analysis
STOP_WORDS = frozenset(
    {
        "the",
        "and",
        "for",
        "with",
        "from",
        "this",
        "that",
        "into",
        "your",
        "have",
        "will",
        "per",
        "using",
        "output",
        "algorithm",
    }
)
MIN_KEYWORD_LENGTH = 4
MAX_KEYWORDS = 12

# Output verification
NEUTRAL_OUTPUT_SCORE = 6.5
COVERAGE_BASE_SCORE = 2.0
COVERAGE_WEIGHT = 8.0
DESCRIPTION_COVERAGE_WEIGHT = 0.8
OUTPUT_MATCH_THRESHOLD = 6.0
LOW_COVERAGE_THRESHOLD = 0.3
ERROR_ONLY_PENALTY = 3.0
STDERR_WARNING_PENALTY = 1.0
OUTPUT_MISSING_PENALTY = 1.5
HEURISTIC_MIXED_STREAMS_PENALTY = 0.8
HEURISTIC_ERROR_ONLY_PENALTY = 1.5

# Code quality heuristic
CODE_LENGTH_DIVISOR = 1200.0
CODE_LENGTH_CAP = 4.0
CONTROL_FLOW_POINTS = (2.0, 0.5)
FUNCTION_POINTS = (2.0, 0.5)
COMMENT_POINTS = (1.0, 0.2)

# Cheating detection
HARDCODED_MIN_CHARS = 12
HARDCODED_MIN_WORDS = 4
HARDCODED_TOKEN_SAMPLE = 6
SHORT_CODE_MAX_LINES = 10
CHEATING_OUTPUT_CAP = 3.0
CHEATING_CODE_CAP = 2.5
CHEATING_RAW_CAP = 3.0

# Reconciliation
OUTPUT_WEIGHT = 0.8
CODE_WEIGHT = 0.2
UNMATCHED_RAW_CAP = 4.5
MAX_FLAGS = 10
FEEDBACK_TOP_ISSUES = 3

# Lateness
DEFAULT_LATE_PENALTY_PER_DAY = 0.5
SECONDS_PER_DAY = 24 * 60 * 60
