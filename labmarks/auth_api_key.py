"""Shared-key gate for the problem, submission and grading routers."""

from __future__ import annotations

import secrets

from fastapi import Header, HTTPException, Request

from labmarks.settings import Settings


def require_api_key(request: Request, x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if request.method == "OPTIONS":
        return

    expected = Settings().backend_api_key.strip()
    if not expected:
        return

    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
