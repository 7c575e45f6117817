"""
Request hardening for the proxy: fixed-window rate limiting per client
address and the response header policy.
"""

import threading
import time
from typing import Dict, Tuple

from fastapi import HTTPException, Request, Response

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline'",
    "style-src 'self' 'unsafe-inline'",
    "img-src 'self' data: https:",
    "connect-src 'self' https://headless.tebex.io https://plugin.tebex.io https://discord.com",
    "font-src 'self' data:",
    "base-uri 'self'",
    "form-action 'self'",
    "frame-ancestors 'self'",
    "object-src 'none'",
    "script-src-attr 'none'",
    "upgrade-insecure-requests",
])

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
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

MAX_BODY_BYTES = 10 * 1024 * 1024


def apply_security_headers(response: Response) -> Response:
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    # don't advertise the stack
    if "server" in response.headers:
        del response.headers["server"]
    return response


class BodySizeLimit:
    """
    ASGI middleware capping request bodies at max_bytes. Declared lengths are
    checked by the harden middleware; this counts what actually arrives, so
    chunked uploads are capped too.
    """

    def __init__(self, app, max_bytes: int = MAX_BODY_BYTES):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        received = 0

        async def limited_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise HTTPException(status_code=413, detail="Request entity too large")
            return message

        await self.app(scope, limited_receive, send)


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """
    Fixed-window counter keyed by client address. Used as a FastAPI
    dependency; raises 429 once a client exceeds max_requests per window.
    """

    def __init__(self, max_requests: int, window_seconds: float, message: str,
                 standard_headers: bool = False):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self.standard_headers = standard_headers
        self._hits: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, now: float = None) -> Tuple[bool, int, float]:
        """Count one request; returns (allowed, remaining, seconds until reset)."""
        now = time.monotonic() if now is None else now
        with self._lock:
            start, count = self._hits.get(key, (now, 0))
            if now - start >= self.window_seconds:
                start, count = now, 0
            count += 1
            self._hits[key] = (start, count)
        remaining = max(0, self.max_requests - count)
        reset = max(0.0, self.window_seconds - (now - start))
        return count <= self.max_requests, remaining, reset

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __call__(self, request: Request, response: Response) -> None:
        allowed, remaining, reset = self.hit(client_key(request))
        headers = {}
        if self.standard_headers:
            headers = {
                "RateLimit-Limit": str(self.max_requests),
                "RateLimit-Remaining": str(remaining),
                "RateLimit-Reset": str(int(reset + 0.999)),
            }
            response.headers.update(headers)
        if not allowed:
            headers["Retry-After"] = str(int(reset + 0.999))
            raise HTTPException(status_code=429, detail={"error": self.message}, headers=headers)


WINDOW = 15 * 60

global_limiter = RateLimiter(
    100, WINDOW, "Too many requests from this IP, please try again later.", standard_headers=True,
)
strict_limiter = RateLimiter(20, WINDOW, "Too many requests, please slow down.")
