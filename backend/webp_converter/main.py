"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from webp_converter import config as app_config
from webp_converter.api.routes import router
from webp_converter.conversion.service import shutdown_conversion_service
from webp_converter.errors import ConverterError, NotFoundError
from webp_converter.middleware import (
    SECURITY_HEADERS,
    RateLimiter,
    access_log_middleware,
    body_size_limit_middleware,
    rate_limit_middleware,
    security_headers_middleware,
)

logging.getLogger("uvicorn").setLevel(logging.INFO)
logger = logging.getLogger("converter.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    app_config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    app_config.logger.info("Converter API started")
    yield
    shutdown_conversion_service()
    app_config.logger.info("Converter API shutting down")


async def converter_error_handler(request: Request, exc: ConverterError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind.value, request.method, request.url.path, exc, exc_info=exc)
    else:
        logger.info("Rejected %s %s (%s): %s", request.method, request.url.path, exc.kind.value, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed form data is a client error like any other field problem."""
    errors = [
        {
            "type": "field",
            "msg": err.get("msg", "Invalid value"),
            "path": ".".join(str(p) for p in err.get("loc", ())[1:]),
            "location": str(err.get("loc", ("body",))[0]),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"errors": errors})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (404, 405):
        err = NotFoundError()
        return JSONResponse(status_code=err.status_code, content=err.to_content())
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def unhandled_error_handler(request: Request, exc: Exception):
    # Served by the outermost error layer, past the security header middleware.
    logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"}, headers=SECURITY_HEADERS)


def create_app() -> FastAPI:
    """Build the app. Middleware is listed innermost first: the last one added wraps the rest."""
    app = FastAPI(
        title="WebP Converter API",
        description="Convert an uploaded image to WebP and download the result.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.rate_limiter = RateLimiter(app_config.RATE_LIMIT_MAX, app_config.RATE_LIMIT_WINDOW_SECONDS)

    app.middleware("http")(body_size_limit_middleware)
    app.middleware("http")(rate_limit_middleware(app.state.rate_limiter, app_config.RATE_LIMIT_MESSAGE))
    app.middleware("http")(access_log_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.ALLOWED_ORIGINS if app_config.ALLOWED_ORIGINS else ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )
    app.middleware("http")(security_headers_middleware)

    app.add_exception_handler(ConverterError, converter_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run("webp_converter.main:app", host=app_config.HOST, port=app_config.PORT)


if __name__ == "__main__":
    run()
