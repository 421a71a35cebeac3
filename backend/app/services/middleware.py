"""Request tracing, rate limiting and security headers for the cost dashboard API."""
import collections
import time
import uuid
import logging
from typing import Deque, Dict, Optional, Tuple
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("locoman-api.middleware")

SKIP_LOG_PATHS = {"/health"}

# Path suffixes served by the LLM
LLM_PATH_SUFFIXES = ("/report", "/report/stream", "/assistant")


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Assigns an X-Request-ID to every request, adds an X-Process-Time header
    (milliseconds) and emits one structured log line per request except
    health probes.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.perf_counter()
        request.state.request_id = request_id

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path not in SKIP_LOG_PATHS:
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                extra={
                    "http_method": request.method,
                    "http_path": request.url.path,
                    "http_status": response.status_code,
                    "request_id": request_id,
                    "duration_ms": duration_ms,
                },
            )

        return response


class SlidingWindowLimiter:
    """Per-key request counter over the last ``window_s`` seconds."""

    def __init__(self, window_s: float = 60.0):
        self.window_s = window_s
        self._hits: Dict[str, Deque[float]] = collections.defaultdict(collections.deque)
        self._last_sweep = 0.0

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, cutoff: float) -> None:
        """Forget keys whose newest hit has left the window."""
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]

    def allow(self, key: str, limit: int, now: Optional[float] = None) -> bool:
        now = time.monotonic() if now is None else now
        cutoff = now - self.window_s
        if now - self._last_sweep >= self.window_s:
            self._sweep(cutoff)
            self._last_sweep = now
        hits = self._hits[key]
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if len(hits) >= limit:
            return False
        hits.append(now)
        return True


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP limits: LLM-backed report / assistant endpoints get
    ``per_minute // 10`` (at least 1), everything else ``per_minute``.
    ``per_minute=0`` turns limiting off.
    """

    def __init__(self, app, per_minute: int = 120):
        super().__init__(app)
        self.per_minute = per_minute
        self.limiter = SlidingWindowLimiter()

    def limit_for(self, path: str) -> Tuple[str, int]:
        if path.endswith(LLM_PATH_SUFFIXES):
            return "llm", max(1, self.per_minute // 10)
        return "general", self.per_minute

    async def dispatch(self, request: Request, call_next):
        if self.per_minute <= 0:
            return await call_next(request)
        client_ip = request.client.host if request.client else "unknown"
        bucket, limit = self.limit_for(request.url.path)
        if not self.limiter.allow(f"{client_ip}:{bucket}", limit):
            logger.warning(f"Rate limit exceeded: {client_ip} on {bucket} endpoints")
            return JSONResponse(
                status_code=429,
                content={"detail": f"Rate limit of {limit} requests per minute exceeded"},
                headers={"Retry-After": str(int(self.limiter.window_s))},
            )
        return await call_next(request)

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response
