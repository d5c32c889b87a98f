"""Chat API router."""

import json
import uuid
import logging
from fastapi import APIRouter
from fastapi.responses import JSONResponse, StreamingResponse

from crm_gateway.api.models import ChatRequest, ChatResponse, ErrorResponse
from crm_gateway.infra.config import config
from crm_gateway.infra.validation import validate_chat_request
from crm_gateway.models.context import CRMContext
from crm_gateway.services.chat_orchestrator import (
    classify_round_failure,
    run_chat_round,
    stream_chat_round,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MISSING_CREDENTIALS_MESSAGE = "Server configuration error: Missing API credentials in environment variables"


def _error(status_code: int, message: str, error_id: str = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, error_id=error_id).model_dump(exclude_none=True),
    )


def _precheck(request: ChatRequest):
    """Validate the request and credentials; return (message, None) or (None, error response)."""
    try:
        message = validate_chat_request(request.message, request.conversation_history)
    except ValueError as e:
        return None, _error(400, str(e))

    missing = config.missing_credentials()
    if missing:
        logger.error(f"Missing credentials: {', '.join(missing)}")
        return None, _error(500, MISSING_CREDENTIALS_MESSAGE)

    return message, None


@router.post(
    "/api/chat",
    tags=["Chat"],
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(request: ChatRequest):
    """
    Run one chat round.

    The model may call CRM tools; each call is validated and executed
    independently and the results are summarized in `toolCalls`. Send the
    returned `conversationHistory` back with the next message.
    """
    message, error_response = _precheck(request)
    if error_response is not None:
        return error_response

    try:
        result = await run_chat_round(message, request.conversation_history, CRMContext.from_config())
    except Exception as e:
        error_id = str(uuid.uuid4())
        status_code, user_message = classify_round_failure(e)
        logger.error(
            f"Chat round failed [{error_id}]: {type(e).__name__}: {str(e)}",
            exc_info=True,
            extra={"error_id": error_id},
        )
        return _error(status_code, user_message, error_id)

    return ChatResponse(
        success=True,
        message=result.reply,
        toolCalls=result.tool_summaries(),
        conversationHistory=result.transcript,
    )


@router.post("/api/chat/stream", tags=["Chat"])
async def chat_stream(request: ChatRequest):
    """
    Streaming chat round as Server-Sent Events.

    Each event is a `data: {json}` frame whose `type` is one of tool_start,
    tool_call, tool_result, stream_start, stream_chunk, stream_end or error.
    """
    message, error_response = _precheck(request)
    if error_response is not None:
        return error_response

    async def event_source():
        async for event in stream_chat_round(message, request.conversation_history, CRMContext.from_config()):
            yield f"data: {json.dumps(event, default=str)}\n\n"

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
