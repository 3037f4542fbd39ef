import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import sentry_sdk

from app.api.v1.admin import router as admin_router
from app.api.v1.analyze import router as analyze_router
from app.api.v1.health import router as health_router
from app.api.v1.jobs import router as jobs_router
from app.api.v1.keys import router as keys_router
from app.api.v1.usage import router as usage_router
from app.core.config import Settings, settings as default_settings
from app.core.cors import cors_allowed_origins
from app.core.errors import ServiceError
from app.core.lifespan import lifespan
from app.core.rate_limit import limiter
from app.core.security_headers import add_security_headers
from app.services.container import build_services

logger = logging.getLogger(__name__)

logging.basicConfig(level=default_settings.log_level, format="%(message)s")
if default_settings.sentry_dsn:
    sentry_sdk.init(dsn=default_settings.sentry_dsn)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed path=%s code=%s: %s", request.url.path, exc.code, exc)
    body = {"error": exc.title or str(exc), "message": str(exc), "code": exc.code}
    body.update(exc.details)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {
                "error": "Invalid request",
                "message": "Request payload failed validation",
                "code": "validation_error",
                "details": exc.errors(),
            }
        ),
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Resume Screener API", version="1.0.0", lifespan=lifespan)
    app.state.services = build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allowed_origins(settings),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    add_security_headers(app)

    app.include_router(health_router, prefix="/api", tags=["Health"])
    app.include_router(analyze_router, prefix="/api", tags=["Analysis"])
    app.include_router(jobs_router, prefix="/api", tags=["Jobs"])
    app.include_router(keys_router, prefix="/api", tags=["Keys"])
    app.include_router(usage_router, prefix="/api", tags=["Usage"])
    app.include_router(admin_router, prefix="/api", tags=["Admin"])
    return app


app = create_app()
