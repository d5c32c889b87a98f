"""Request timeout configuration and middleware."""

import asyncio
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# A chat round holds two model calls plus a batch of tool calls
REQUEST_TIMEOUT = 180
LLM_CALL_TIMEOUT = 60
TOOL_EXECUTION_TIMEOUT = 30


class TimeoutMiddleware(BaseHTTPMiddleware):
    """
    Cap the time until a response starts.

    For /api/chat/stream this bounds the propose stage only; once the
    event stream has begun, each model and tool call has its own timeout.
    """

    def __init__(self, app, timeout: int = REQUEST_TIMEOUT):
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(self, request: Request, call_next):
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Request to {request.url.path} exceeded {self.timeout}s")
            return JSONResponse(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                content={"success": False, "error": f"Request timeout after {self.timeout} seconds"},
            )
