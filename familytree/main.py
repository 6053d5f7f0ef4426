import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from familytree.config import Settings, settings
from familytree.core.tree_store import TreeStore
from familytree.routers import image_router, tree_router
from familytree.schemas.tree_schema import HealthOut
from familytree.storage import ImageStore
from familytree.utils.logging_utils import setup_logging
from familytree.utils.timestamps import iso_timestamp

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


# -----------------------
# ERROR ENVELOPE
# -----------------------
def _envelope(detail) -> dict:
    if isinstance(detail, dict):
        return {"success": False, **detail}
    return {"success": False, "error": detail}


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(_envelope(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({
            "success": False,
            "error": "Invalid request",
            "details": exc.errors(),
        }),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": str(exc),
        },
    )


# -----------------------
# CREATE APP
# -----------------------
def create_app(
    app_settings: Optional[Settings] = None,
    *,
    tree_store: Optional[TreeStore] = None,
    image_store: Optional[ImageStore] = None,
) -> FastAPI:
    app_settings = app_settings or settings

    tree_store = tree_store or TreeStore(
        data_dir=app_settings.DATA_DIR,
        backup_dir=app_settings.BACKUP_DIR,
        retention=app_settings.BACKUP_RETENTION_COUNT,
    )
    image_store = image_store or ImageStore(
        images_dir=app_settings.IMAGES_DIR,
        max_bytes=app_settings.MAX_UPLOAD_BYTES,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        tree_store.ensure_directories()
        image_store.ensure_directories()
        logger.info("Data directory: %s", tree_store.data_dir)
        logger.info("Backup directory: %s", tree_store.backup_dir)
        logger.info("Images directory: %s", image_store.images_dir)
        yield

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        description="File-backed persistence for family trees, backups and avatars.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.tree_store = tree_store
    app.state.image_store = image_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # -----------------------
    # HEALTH CHECK
    # -----------------------
    @app.get("/api/health", response_model=HealthOut, tags=["Health"])
    def health():
        return HealthOut(
            status="ok",
            message="Family Tree API is running",
            timestamp=iso_timestamp(),
        )

    # -----------------------
    # ROUTES
    # -----------------------
    app.include_router(tree_router.router)
    app.include_router(image_router.router)

    # -----------------------
    # STATIC IMAGES
    # -----------------------
    # folder is created in lifespan, so don't check it at import time
    app.mount(
        "/images",
        StaticFiles(directory=str(image_store.images_dir), check_dir=False),
        name="images",
    )

    # -----------------------
    # 404 FOR EVERYTHING ELSE (must stay last)
    # -----------------------
    @app.api_route("/{full_path:path}", methods=ALL_METHODS, include_in_schema=False)
    def endpoint_not_found(full_path: str, request: Request):
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "Endpoint not found", "path": path},
        )

    return app


setup_logging(settings.LOG_LEVEL)
app = create_app()
