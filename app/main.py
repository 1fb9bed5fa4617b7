# app/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import health, requests
from app.core.config import settings
from app.core.logging import RequestIdMiddleware, log_extra, setup_logging
from app.services.errors import LifecycleError

logger = logging.getLogger("app.api")


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    # очікувані відмови рушія: 4xx + машинний code для фронту
    logger.info(
        "lifecycle_rejected",
        extra=log_extra(request, code=exc.code, path=request.url.path),
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_payload())


def create_app() -> FastAPI:
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Maintenance Requests",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
    )

    # ==== Middlewares ====
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(LifecycleError, lifecycle_error_handler)

    # ==== API під /api ====
    app.include_router(health.router,   prefix="/api",          tags=["health"])
    app.include_router(requests.router, prefix="/api/requests", tags=["requests"])

    return app


app = create_app()
