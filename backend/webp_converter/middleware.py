"""HTTP middleware: security headers, access log, request size guard and per-client rate limiting."""
import logging
import math
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from webp_converter import config as app_config
from webp_converter.errors import FileTooLargeError, RateLimitExceededError

access_logger = logging.getLogger("converter.access")

CallNext = Callable[[Request], Awaitable[Response]]

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;form-action 'self';"
        "frame-ancestors 'self';img-src 'self' data:;object-src 'none';script-src 'self';"
        "script-src-attr 'none';style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def security_headers_middleware(request: Request, call_next: CallNext) -> Response:
    """Add conservative security headers to every response."""
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if "x-powered-by" in response.headers:
        del response.headers["x-powered-by"]
    return response


async def access_log_middleware(request: Request, call_next: CallNext) -> Response:
    """Log each request in Apache combined log format."""
    response = await call_next(request)
    now = datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S %z")
    path = request.url.path + (f"?{request.url.query}" if request.url.query else "")
    access_logger.info(
        '%s - - [%s] "%s %s HTTP/%s" %s %s "%s" "%s"',
        client_address(request),
        now,
        request.method,
        path,
        request.scope.get("http_version", "1.1"),
        response.status_code,
        response.headers.get("content-length", "-"),
        request.headers.get("referer", "-"),
        request.headers.get("user-agent", "-"),
    )
    return response


class RateLimiter:
    """Fixed window request counter keyed by client address."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._next_sweep = clock() + window_seconds

    def hit(self, key: str) -> tuple[int, float]:
        """Count one request for key. Returns (requests in window, seconds until reset)."""
        now = self._clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0
        count += 1
        self._windows[key] = (started, count)
        if now >= self._next_sweep:
            self._evict(now)
        return count, self.window_seconds - (now - started)

    def _evict(self, now: float) -> None:
        """Drop expired windows. Runs at most once per window length."""
        expired = [k for k, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for k in expired:
            del self._windows[k]
        self._next_sweep = now + self.window_seconds

    def __len__(self) -> int:
        return len(self._windows)

    def reset(self) -> None:
        self._windows.clear()


def rate_limit_middleware(limiter: RateLimiter, message: str, prefix: str = "/api"):
    """Build a middleware that rejects clients over quota on paths under prefix."""

    async def middleware(request: Request, call_next: CallNext) -> Response:
        path = request.url.path
        if path != prefix and not path.startswith(prefix + "/"):
            return await call_next(request)
        count, reset_in = limiter.hit(client_address(request))
        reset_seconds = max(0, math.ceil(reset_in))
        headers = {
            "RateLimit-Limit": str(limiter.max_requests),
            "RateLimit-Remaining": str(max(0, limiter.max_requests - count)),
            "RateLimit-Reset": str(reset_seconds),
        }
        if count > limiter.max_requests:
            err = RateLimitExceededError(message, retry_after=reset_seconds)
            access_logger.warning("Rate limit exceeded for %s on %s", client_address(request), request.url.path)
            headers["Retry-After"] = str(err.retry_after)
            return PlainTextResponse(err.public_message, status_code=err.status_code, headers=headers)
        response = await call_next(request)
        response.headers.update(headers)
        return response

    return middleware


async def body_size_limit_middleware(request: Request, call_next: CallNext) -> Response:
    """Reject uploads whose declared Content-Length is over the cap before the body is read.

    Bodies without a Content-Length are still capped while the image is saved.
    """
    declared = request.headers.get("content-length", "")
    cap = app_config.MAX_IMAGE_SIZE_BYTES
    if declared.isdigit() and int(declared) > cap + app_config.MULTIPART_OVERHEAD_BYTES:
        err = FileTooLargeError(cap, detail=f"Content-Length {declared}")
        access_logger.info("Rejected %s %s: %s", request.method, request.url.path, err)
        return JSONResponse(status_code=err.status_code, content=err.to_content())
    return await call_next(request)
