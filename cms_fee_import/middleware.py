"""Request logging middleware"""

import time
import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

RUN_ID_HEADER = "X-Run-ID"


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with a ``run_id`` and log its start and outcome.

    Uploads can be large, so the declared body size is logged up front; the
    run id is echoed back in the ``X-Run-ID`` header so a client can match an
    import response to the server log lines of that run.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        run_id = uuid.uuid4().hex
        request.state.run_id = run_id
        log = logger.bind(run_id=run_id, method=request.method, path=request.url.path)

        started = time.perf_counter()
        log.info(
            "request_started",
            content_type=request.headers.get("content-type"),
            content_length=request.headers.get("content-length"),
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            log.error("request_failed", error=str(exc), duration_ms=_elapsed_ms(started), exc_info=True)
            raise

        log.info("request_completed", status_code=response.status_code, duration_ms=_elapsed_ms(started))
        response.headers[RUN_ID_HEADER] = run_id
        return response
