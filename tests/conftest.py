from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _clear_grader_env(monkeypatch) -> None:
    for name in (
        "GEMINI_API_KEY",
        "LABMARKS_GEMINI_API_KEY",
        "GEMINI_MODEL",
        "LABMARKS_GEMINI_MODEL",
        "GEMINI_MOCK",
        "LABMARKS_GEMINI_MOCK",
        "BACKEND_API_KEY",
        "LABMARKS_BACKEND_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def isolated_db(tmp_path, monkeypatch):
    from sqlmodel import SQLModel, create_engine

    from labmarks import db
    from labmarks.settings import settings

    monkeypatch.setattr(settings, "data_dir", str(tmp_path / "data"))
    monkeypatch.setattr(settings, "sqlite_path", str(tmp_path / "test.db"))

    engine = create_engine(settings.sqlite_url, connect_args={"check_same_thread": False})
    monkeypatch.setattr(db, "engine", engine)
    SQLModel.metadata.create_all(engine)
    return engine
