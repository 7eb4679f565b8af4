from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from logging.handlers import RotatingFileHandler

from sqlalchemy.engine import Engine
from sqlmodel import Session

from lions_minutes.config import Settings, get_settings
from lions_minutes.errors import MinutesError
from lions_minutes.models.base import create_db_engine, init_db
from lions_minutes.api.diagnostics import router as diagnostics_router
from lions_minutes.api.folders import router as folders_router
from lions_minutes.api.meetings import router as meetings_router
from lions_minutes.api.members import router as members_router
from lions_minutes.api.storage import router as storage_router
from lions_minutes.services.events import EventBus
from lions_minutes.services.minutes_service import ChatClient
from lions_minutes.services.pipeline import Pipeline
from lions_minutes.services.transcription_service import SpeechToTextClient


def _configure_logging(settings: Settings) -> None:
    # Minimal structured logging to local file
    try:
        log_file = settings.logs_dir / "backend.log"
        handler = RotatingFileHandler(str(log_file), maxBytes=5_000_000, backupCount=2)
    except OSError:
        logging.getLogger("lions_minutes").warning("File logging unavailable", exc_info=True)
        return
    formatter = logging.Formatter(
        fmt='%(asctime)s %(levelname)s %(name)s %(message)s'
    )
    handler.setFormatter(formatter)
    root = logging.getLogger()
    if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        root.addHandler(handler)
    root.setLevel(logging.INFO)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    bus: Optional[EventBus] = None,
    stt_client_factory: Optional[Callable[[Settings], SpeechToTextClient]] = None,
    llm_client_factory: Optional[Callable[[Settings], ChatClient]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    engine = engine or create_db_engine(settings.database_path)
    bus = bus or EventBus(
        ThreadPoolExecutor(max_workers=settings.worker_threads, thread_name_prefix="pipeline")
    )
    pipeline = Pipeline(settings=settings, session_factory=lambda: Session(engine), bus=bus)
    if stt_client_factory is not None:
        pipeline.stt_client_factory = stt_client_factory
    if llm_client_factory is not None:
        pipeline.llm_client_factory = llm_client_factory
    pipeline.register()

    app = FastAPI(title="Lions Minutes Backend", version="0.1.0")
    app.state.settings = settings
    app.state.engine = engine
    app.state.pipeline = pipeline

    # CORS for the local Next.js frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        settings.ensure_dirs()
        _configure_logging(settings)
        init_db(engine)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        bus.shutdown(wait=False)

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(meetings_router)
    app.include_router(members_router)
    app.include_router(folders_router)
    app.include_router(storage_router)
    app.include_router(diagnostics_router)

    @app.exception_handler(MinutesError)
    async def _domain_error_handler(request: Request, exc: MinutesError):  # type: ignore[override]
        if exc.http_status >= 500:
            logging.getLogger("lions_minutes.api").error("Request failed: %s", exc)
        return JSONResponse(status_code=exc.http_status, content={"error": str(exc)})

    @app.exception_handler(ValueError)
    async def _value_error_handler(request: Request, exc: ValueError):  # type: ignore[override]
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[override]
        logging.getLogger("lions_minutes").exception("Unhandled exception")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    return app


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Lions Minutes Backend Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload (dev only)")

    args = parser.parse_args()

    uvicorn.run(
        "lions_minutes.main:create_app" if args.reload else create_app(),
        host=args.host,
        port=args.port,
        reload=args.reload,
        factory=args.reload,
    )
