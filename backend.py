"""DeepRemember: spaced-repetition language learning API."""
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
import db
import llm
from auth import cleanup_expired_sessions
from cache import cache_stats
from label_routes import ensure_system_labels
from log import get_logger
from routes import router

logger = get_logger("deepremember.backend")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    backend = db.init_db()
    ensure_system_labels()
    cleanup_expired_sessions()
    logger.info("DeepRemember started", extra={"component": "startup", "backend": backend})
    yield
    db.close_db()


def create_app() -> FastAPI:
    app = FastAPI(title="DeepRemember", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            logger.info("Request handled", extra={
                "component": "http",
                "endpoint": f"{request.method} {request.url.path}",
                "status_code": response.status_code,
                "duration_ms": round((time.time() - start) * 1000),
            })
        return response

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception("Unhandled error", exc_info=exc, extra={
            "component": "http", "endpoint": f"{request.method} {request.url.path}",
        })
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.get("/api/health", tags=["Health"], summary="Service health")
    async def health():
        return {
            "status": "ok",
            "database": db.active_backend(),
            "fallback": db.is_fallback(),
            "llm": await llm.check_ollama_connectivity(),
            "translation_cache": cache_stats(),
        }

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
