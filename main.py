import logging
import os
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings
from database import Database
from errors import AppError
from ratelimit import RateLimiter
from routers import ROUTERS
from schemas import fail, ok
from security import Security
from services import users as user_service

logger = logging.getLogger(__name__)

HTTP_ERROR_KINDS = {
    400: "Validation failed",
    401: "Access denied",
    403: "Access forbidden",
    404: "Not found",
    405: "Method not allowed",
    429: "Too many requests",
}


def _validation_details(exc: RequestValidationError) -> list:
    details = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(location), "message": error.get("msg", "")})
    return details


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.warning("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=fail(exc.kind, exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = _validation_details(exc)
        logger.warning("%s %s -> 400 %s", request.method, request.url.path, details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=fail("Validation failed", "Please check your input data", details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = f"Can't find {request.url.path} on this server"
        else:
            message = str(exc.detail)
        kind = HTTP_ERROR_KINDS.get(exc.status_code, "Server error")
        return JSONResponse(status_code=exc.status_code, content=fail(kind, message), headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        settings: Settings = request.app.state.settings
        if settings.is_development:
            body = fail("Server error", str(exc) or exc.__class__.__name__,
                        traceback.format_exception(type(exc), exc, exc.__traceback__))
        else:
            body = fail("Server error", "Internal server error")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db: Database = app.state.db
        await db.create_all()
        await db.seed_default_tags()
        if settings.admin_email and settings.admin_password:
            async with db.sessionmaker() as session:
                await user_service.ensure_admin(session, app.state.security, settings.admin_email,
                                                settings.admin_password)
        logger.info("SynergySphere API ready (%s)", settings.app_env)
        yield
        await db.dispose()

    app = FastAPI(title="SynergySphere API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = Database(settings.database_url)
    app.state.security = Security(settings)
    app.state.rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.is_development:
        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            started = time.perf_counter()
            response = await call_next(request)
            logger.info("%s %s %d %.1fms", request.method, request.url.path, response.status_code,
                        (time.perf_counter() - started) * 1000)
            return response

    # serve uploads
    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

    register_exception_handlers(app)

    # Healthcheck
    @app.get("/health")
    async def health(request: Request):
        database_ok = await request.app.state.db.ping()
        return ok({
            "status": "ok" if database_ok else "degraded",
            "database": "connected" if database_ok else "unavailable",
            "time": datetime.now(timezone.utc).isoformat(),
        })

    for router in ROUTERS:
        app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
