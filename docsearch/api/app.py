from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..errors import NotFoundError, SearchQueryError, UpstreamDependencyError, ValidationError
from .dependencies import close_clients
from .routers.documents import router as documents_router
from .routers.search import router as search_router


# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "Internal Server Error."

# Reachable without an API key.
OPEN_PATHS = ("/health", "/openapi.json", "/docs")


"""
FastAPI application

Note on OpenAPI/Swagger docs:
Some recent combinations of FastAPI/Starlette serve the OpenAPI schema with
the vendor media type "application/vnd.oai.openapi+json". In certain client
environments (or with strict Accept headers), this can cause a 406 Not
Acceptable when the Swagger UI tries to fetch /openapi.json.

To avoid that, the auto-registered OpenAPI/docs routes are disabled and
explicit JSONResponse-based endpoints serve the schema and Swagger UI.
"""


def _normalize_base_path(raw: str) -> str:
    """Turn API_BASE_PATH into "" or "/prefix" (leading slash, no trailing slash)."""
    base = (raw or "").strip()
    if base and not base.startswith("/"):
        base = "/" + base
    if base.endswith("/") and base != "/":
        base = base.rstrip("/")
    return "" if base == "/" else base


def _error(status_code: int, message: str, issues: Optional[list] = None) -> JSONResponse:
    content = {"error": message}
    if issues:
        content["issues"] = issues
    return JSONResponse(status_code=status_code, content=content)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return _error(400, exc.message, exc.issues())

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        issues = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body",
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        return _error(400, "Invalid request", issues)

    @app.exception_handler(SearchQueryError)
    async def _search_query_error(request: Request, exc: SearchQueryError):
        return _error(400, exc.message)

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, exc.message)

    @app.exception_handler(UpstreamDependencyError)
    async def _upstream_error(request: Request, exc: UpstreamDependencyError):
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc.__cause__
        )
        return _error(500, GENERIC_SERVER_ERROR)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, GENERIC_SERVER_ERROR)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    base_path = _normalize_base_path(settings.api_base_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.api_key:
            logger.warning(
                "DOCSEARCH_API_KEY is not set; only %s will accept requests", ", ".join(OPEN_PATHS)
            )
        yield
        await close_clients()

    # Disable built-in docs/openapi routes; explicit JSON-based ones follow
    app = FastAPI(
        title="docsearch",
        description="Store images and descriptions as embeddings and search them by image, text, or both.",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        root_path=base_path,
    )
    app.state.api_key = settings.api_key

    @app.middleware("http")
    async def require_api_key(request: Request, call_next):
        path = request.url.path
        root = request.scope.get("root_path", "")
        if root and path.startswith(root):
            path = path[len(root):] or "/"
        if path in OPEN_PATHS:
            return await call_next(request)

        expected = request.app.state.api_key
        supplied = request.headers.get("x-api-key", "")
        # No configured key means no key matches.
        if not expected or not secrets.compare_digest(supplied.encode(), expected.encode()):
            logger.warning("Rejected %s %s: missing or invalid API key", request.method, path)
            return _error(403, "Forbidden")
        return await call_next(request)

    # CORS: added last so it wraps the key check and answers preflights itself.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    # Mount routers
    app.include_router(documents_router)
    app.include_router(search_router)

    @app.get("/health", tags=["ops"], summary="Health check")
    async def health():
        return {"status": "ok"}

    def _with_servers():
        """Return the OpenAPI schema annotated with servers -> [{url: base_path}].

        This keeps Swagger UI "Try it out" inside a deployment subpath.
        """
        schema = app.openapi()
        if base_path:
            # FastAPI caches app.openapi(); copy instead of mutating it
            schema = {**schema, "servers": [{"url": base_path}]}
        return schema

    # Explicit OpenAPI JSON (forces application/json, avoids 406 with strict Accept)
    @app.get("/openapi.json", include_in_schema=False)
    def openapi_json():
        return JSONResponse(_with_servers())

    # Relative openapi_url so the UI also works behind a reverse-proxy subpath.
    @app.get("/docs", include_in_schema=False)
    def swagger_ui():
        return get_swagger_ui_html(openapi_url="openapi.json", title="docsearch API")

    return app


app = create_app()
