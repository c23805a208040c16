"""Admission control for the HTTP surface."""

from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from loguru import logger

from statsgate.ratelimit.admission import AdmissionController
from statsgate.ratelimit.limiter import RateLimitResult


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": datetime.fromtimestamp(
            result.reset_at, tz=timezone.utc
        ).isoformat(),
    }
    if result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers


class RateLimitMiddleware:
    """HTTP middleware running every request through an AdmissionController.

    The client host is the identifier. Denied requests get a JSON 429 with
    ``retry_after``; admitted ones carry the X-RateLimit-* headers.
    """

    def __init__(
        self,
        admission: AdmissionController,
        exempt_paths: set[str] | None = None,
    ):
        self.admission = admission
        self.exempt_paths = exempt_paths or set()

    @staticmethod
    def identifier_for(request: Request) -> str:
        return request.client.host if request.client else "unknown"

    async def __call__(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        identifier = self.identifier_for(request)
        result = await self.admission.check(identifier)
        headers = rate_limit_headers(result)

        if not result.allowed:
            logger.info(
                f"Rejected {request.method} {request.url.path} from {identifier} "
                f"(blocked={result.blocked})"
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too Many Requests",
                    "message": (
                        "Temporarily blocked" if result.blocked else "Rate limit exceeded"
                    ),
                    "retry_after": result.retry_after,
                },
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
