"""FastAPI main application: scene and turn orchestration API (v2)."""
import logging
import os
import sqlite3
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from backend.app.api import (
    campaigns as campaigns_api,
    clocks as clocks_api,
    rolls as rolls_api,
    scenes as scenes_api,
    turn_order as turn_order_api,
)
from backend.app.config import DEFAULT_DB_PATH, NARRATOR_CONFIG, log_resolved_config
from backend.app.core.error_handling import create_error_response, log_error_with_context
from backend.app.core.errors import SceneEngineError
from backend.app.core.llm_provider import create_provider
from backend.app.db.connection import get_connection
from backend.app.db.migrate import apply_schema
from shared.config import DEV_MODE

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _parse_cors_allowlist(raw: str) -> list[str]:
    origins = [o.strip() for o in raw.split(",") if o and o.strip()]
    if origins:
        return origins
    return [
        "http://localhost",
        "http://127.0.0.1",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


API_TOKEN = os.environ.get("SCENEKEEPER_API_TOKEN", "").strip()
CORS_ALLOW_ORIGINS = _parse_cors_allowlist(os.environ.get("SCENEKEEPER_CORS_ALLOW_ORIGINS", ""))


def _check_database() -> dict:
    try:
        conn = get_connection(DEFAULT_DB_PATH)
        try:
            # Taking the write lock fails on a read-only file
            conn.execute("BEGIN IMMEDIATE")
            conn.rollback()
            scenes = conn.execute("SELECT COUNT(*) FROM scenes").fetchone()[0]
        finally:
            conn.close()
        return {"ok": True, "path": DEFAULT_DB_PATH, "scenes": scenes}
    except sqlite3.Error as e:
        return {"ok": False, "path": DEFAULT_DB_PATH, "error": str(e)}


def _check_narrator() -> dict:
    """Reachability only; the narrator is never asked to generate here."""
    try:
        client = create_provider(
            NARRATOR_CONFIG.get("provider", "ollama"),
            NARRATOR_CONFIG.get("model", ""),
            base_url=NARRATOR_CONFIG.get("base_url", ""),
            api_key=NARRATOR_CONFIG.get("api_key", ""),
        )
    except ValueError as e:
        return {"ok": False, "provider": NARRATOR_CONFIG.get("provider"), "error": str(e)}
    with client:
        return client.probe()


def _collect_environment_diagnostics() -> dict:
    """Collect structured environment diagnostics for /health/detail."""
    checks = {
        "database": _check_database(),
        "narrator": _check_narrator(),
    }
    overall_ok = all(v.get("ok", False) for v in checks.values())
    return {"ok": overall_ok, "checks": checks}


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not DEV_MODE:
        if "*" in CORS_ALLOW_ORIGINS:
            raise RuntimeError(
                "Unsafe CORS config: '*' is only allowed in dev mode. "
                "Set SCENEKEEPER_CORS_ALLOW_ORIGINS to explicit origins."
            )
        if not API_TOKEN:
            raise RuntimeError(
                "SCENEKEEPER_API_TOKEN is required when SCENEKEEPER_DEV_MODE=0."
            )
    apply_schema(DEFAULT_DB_PATH)
    log_resolved_config()
    logger.info(
        "API startup complete (dev_mode=%s, auth=%s, db=%s)",
        DEV_MODE,
        "enabled" if bool(API_TOKEN) else "disabled",
        DEFAULT_DB_PATH,
    )
    yield


app = FastAPI(title="Scenekeeper API", version="2.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _extract_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "").strip()
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return request.headers.get("X-API-Key", "").strip()


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    if request.method.upper() == "OPTIONS":
        return await call_next(request)
    if not API_TOKEN:
        return await call_next(request)
    path = request.url.path or ""
    if path in ("/", "/health"):
        return await call_next(request)
    if DEV_MODE and (path.startswith("/docs") or path.startswith("/redoc") or path.startswith("/openapi")):
        return await call_next(request)

    provided = _extract_token(request)
    if provided != API_TOKEN:
        error_response = create_error_response(
            error_code="AUTH_HTTP_401",
            message="Unauthorized",
            node="api",
            details={"path": path},
        )
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=error_response)
    return await call_next(request)


def _node_for_path(path: str) -> str:
    if "/turn-order" in path:
        return "turn_order"
    if "/resolve" in path:
        return "resolution"
    if "/scenes" in path:
        return "scene"
    if "/rolls" in path:
        return "dice"
    return "api"


@app.exception_handler(SceneEngineError)
async def scene_engine_error_handler(request: Request, exc: SceneEngineError):
    """Domain errors map to their own status and stable error_code."""
    node = _node_for_path(request.url.path)
    if exc.http_status >= 500:
        logger.warning("%s error_code=%s path=%s: %s", node, exc.error_code, request.url.path, exc.message)
    error_response = create_error_response(
        error_code=exc.error_code,
        message=exc.message,
        node=node,
        details=exc.details,
        retryable=exc.retryable,
    )
    return JSONResponse(status_code=exc.http_status, content=error_response)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTPExceptions with structured error responses."""
    node = _node_for_path(request.url.path)
    error_response = create_error_response(
        error_code=f"{node.upper()}_HTTP_{exc.status_code}",
        message=exc.detail,
        node=node,
        details={
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=error_response)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler: return structured error responses with logging."""
    campaign_id = request.path_params.get("campaign_id") if request.path_params else None
    scene_id = request.path_params.get("scene_id") if request.path_params else None
    node = _node_for_path(request.url.path)

    log_error_with_context(
        error=exc,
        node_name=node,
        campaign_id=campaign_id,
        scene_id=scene_id,
        operation=request.url.path,
        extra_context={
            "method": request.method,
            "query_params": dict(request.query_params),
        },
    )

    message = str(exc) or f"An error occurred: {type(exc).__name__}"
    error_response = create_error_response(
        error_code=f"{node.upper()}_ERROR",
        message=message,
        node=node,
        details={
            "exception_type": type(exc).__name__,
            "path": request.url.path,
        },
    )
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=error_response)


app.include_router(campaigns_api.router)
app.include_router(scenes_api.router)
app.include_router(turn_order_api.router)
app.include_router(rolls_api.router)
app.include_router(clocks_api.router)


@app.get("/")
async def root():
    return {"message": "Scenekeeper API", "version": "2.0.0"}


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/health/detail")
def health_detail():
    """Structured readiness diagnostics for deployment checks."""
    diag = _collect_environment_diagnostics()
    return {"status": "healthy" if diag.get("ok") else "degraded", **diag}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
