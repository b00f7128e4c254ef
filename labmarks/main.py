"""FastAPI application entrypoint."""

from uuid import uuid4

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlalchemy import text

from labmarks import db
from labmarks.auth_api_key import require_api_key
from labmarks.routers.grade import router as grade_router
from labmarks.routers.problems import router as problems_router
from labmarks.routers.submissions import router as submissions_router
from labmarks.settings import Settings, settings


app = FastAPI(title=settings.app_name, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(problems_router, dependencies=[Depends(require_api_key)])
app.include_router(submissions_router, dependencies=[Depends(require_api_key)])
app.include_router(grade_router, dependencies=[Depends(require_api_key)])


@app.on_event("startup")
def on_startup() -> None:
    settings.data_path.mkdir(parents=True, exist_ok=True)
    db.create_db_and_tables()


@app.get("/health", tags=["meta"])
def health() -> dict[str, bool]:
    return {"ok": True, "gemini_configured": Settings().gemini_configured}


@app.get("/health/deep", tags=["meta"])
def deep_health() -> dict[str, bool | str]:
    data_dir = settings.data_path

    storage_writable = False
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        probe_path = data_dir / f".health_probe_{uuid4().hex}"
        probe_path.write_text("ok", encoding="utf-8")
        probe_path.unlink(missing_ok=True)
        storage_writable = True
    except OSError:
        storage_writable = False

    db_ok = False
    try:
        with db.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        db_ok = False

    return {
        "ok": True,
        "gemini_configured": Settings().gemini_configured,
        "storage_writable": storage_writable,
        "data_dir": str(data_dir),
        "db_ok": db_ok,
    }


@app.options("/{path:path}", include_in_schema=False)
async def preflight(path: str) -> Response:
    del path
    return Response(status_code=204)
