"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from labmarks.grading.base import GraderConfig
from labmarks.grading.policy import CODE_BUNDLE_CHAR_LIMIT, DEFAULT_GEMINI_MODEL, REMOTE_TIMEOUT_SECONDS

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_LOCAL_DATA_DIR = BASE_DIR / "data"
DEFAULT_VERCEL_DATA_DIR = Path("/tmp/labmarks")


TRUTHY_VALUES = {"1", "true", "yes", "on"}


def _is_truthy(value: str | None) -> bool:
    return bool(value and value.strip().lower() in TRUTHY_VALUES)


def _running_on_vercel() -> bool:
    return bool(os.getenv("VERCEL") or os.getenv("VERCEL_ENV") or _is_truthy(os.getenv("LABMARKS_VERCEL_ENVIRONMENT")))


def _default_data_dir() -> str:
    if _running_on_vercel():
        return str(DEFAULT_VERCEL_DATA_DIR)
    return str(DEFAULT_LOCAL_DATA_DIR)


class Settings(BaseSettings):
    """Runtime configuration for the LabMarks backend."""

    model_config = SettingsConfigDict(env_prefix="LABMARKS_", extra="ignore")

    app_name: str = "LabMarks API"
    data_dir: str = Field(
        default_factory=_default_data_dir,
        validation_alias=AliasChoices("LABMARKS_DATA_DIR", "DATA_DIR"),
    )
    sqlite_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LABMARKS_SQLITE_PATH", "SQLITE_PATH"),
    )

    # CORS configuration
    cors_allow_origins: str = Field(
        default="*",
        validation_alias=AliasChoices("LABMARKS_CORS_ALLOW_ORIGINS", "CORS_ALLOW_ORIGINS"),
    )

    backend_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("LABMARKS_BACKEND_API_KEY", "BACKEND_API_KEY"),
    )

    # Remote grader
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("LABMARKS_GEMINI_API_KEY", "GEMINI_API_KEY"),
    )
    gemini_model: str = Field(
        default=DEFAULT_GEMINI_MODEL,
        validation_alias=AliasChoices("LABMARKS_GEMINI_MODEL", "GEMINI_MODEL"),
    )
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_mock: bool = Field(
        default=False,
        validation_alias=AliasChoices("LABMARKS_GEMINI_MOCK", "GEMINI_MOCK"),
    )
    grading_timeout_seconds: float = REMOTE_TIMEOUT_SECONDS

    @model_validator(mode="after")
    def _set_sqlite_path(self) -> "Settings":
        if not self.sqlite_path:
            self.sqlite_path = str(Path(self.data_dir) / "labmarks.db")
        return self

    @property
    def sqlite_url(self) -> str:
        return f"sqlite:///{self.sqlite_path}"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir)

    @property
    def cors_origin_list(self) -> list[str]:
        if self.cors_allow_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    @property
    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key.strip())

    def grader_config(self) -> GraderConfig:
        """Snapshot the remote-grader settings for injection into the engine."""
        return GraderConfig(
            api_key=self.gemini_api_key.strip(),
            model=self.gemini_model.strip() or DEFAULT_GEMINI_MODEL,
            base_url=self.gemini_base_url.rstrip("/"),
            timeout_seconds=self.grading_timeout_seconds,
            max_bundle_chars=CODE_BUNDLE_CHAR_LIMIT,
        )


settings = Settings()
