"""Middleware for error handling and request logging."""
import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from crashgame.errors import ErrorCode, GameError

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Convert GameError exceptions to protocol-compliant responses."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        route = f"{request.method} {request.url.path}"
        try:
            response = await call_next(request)
        except GameError as e:
            logger.info("%s rejected: %s %s", route, e.code.value, e.message)
            response = e.to_response()
        except Exception as e:
            logger.exception("Unhandled error on %s", route)
            response = GameError(ErrorCode.INTERNAL_ERROR, str(e)).to_response()

        logger.debug(
            "%s -> %d (%.1f ms)", route, response.status_code, (time.perf_counter() - started) * 1000
        )
        return response
