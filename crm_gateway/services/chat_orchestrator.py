"""
Conversation orchestration: propose, execute, synthesize, emit.

One round takes the caller's transcript plus a new user message, lets the
model propose tool calls, executes them (each failure isolated to its own
call), gives every outcome back to the model for a final answer and
returns the updated, truncated transcript.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from crm_gateway.adapters.vendor_adapter_openai import (
    PROVIDER_NAME,
    call_chat_completion,
    stream_chat_completion,
)
from crm_gateway.infra.config import config
from crm_gateway.infra.error_handler import RateLimitError, retry_with_backoff
from crm_gateway.infra.metrics import chat_rounds_total
from crm_gateway.infra.timeout import LLM_CALL_TIMEOUT
from crm_gateway.logging.event_logger import log_event
from crm_gateway.models.context import CRMContext
from crm_gateway.models.outcome import (
    ToolCallRecord,
    ToolExecutionFailure,
    ToolInvocation,
    ToolSuccess,
    ToolValidationFailure,
)
from crm_gateway.services.prompt_builder import build_messages, sanitize_transcript
from crm_gateway.services.tool_catalog import get_tool_catalog
from crm_gateway.services.tool_execution_engine import (
    GENERIC_FAILURE_MESSAGE,
    execute_tool_call,
    resolve_arguments,
)

logger = logging.getLogger(__name__)


@dataclass
class ChatRoundResult:
    reply: str
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    transcript: List[Dict[str, Any]] = field(default_factory=list)

    def tool_summaries(self) -> List[Dict[str, Any]]:
        return [record.to_summary() for record in self.tool_calls]


def truncate_history(transcript: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    """Keep the most recent `limit` entries."""
    if limit <= 0:
        return list(transcript)
    return list(transcript[-limit:])


def classify_round_failure(error: Exception) -> Tuple[int, str]:
    """Map a failure that aborted a round to (HTTP status, user-facing message)."""
    if isinstance(error, RateLimitError):
        return 429, "The assistant is receiving too many requests right now. Please try again in a moment."
    if isinstance(error, asyncio.TimeoutError):
        return 504, "The assistant took too long to respond. Please try again."
    return 500, "Something went wrong while processing your request. Please try again."


async def _call_model(
    messages: List[Dict[str, Any]],
    tools: Optional[List[Any]],
    phase: str,
    location_id: str,
) -> Dict[str, Any]:
    """Call the model with timeout and retries for retryable errors."""

    async def call_llm():
        return await asyncio.wait_for(
            call_chat_completion(messages, tools, phase=phase),
            timeout=LLM_CALL_TIMEOUT,
        )

    async def on_retry_callback(e, attempt):
        """Callback for retry attempts."""
        await log_event(
            location_id=location_id,
            event_type="llm_call_retry",
            provider=PROVIDER_NAME,
            status="retry",
            payload={"phase": phase, "attempt": attempt, "error": type(e).__name__},
        )

    start_time = time.time()
    response = await retry_with_backoff(
        call_llm,
        max_retries=config.LLM_MAX_RETRIES,
        initial_delay=1.0,
        max_delay=30.0,
        on_retry=on_retry_callback,
    )
    await log_event(
        location_id=location_id,
        event_type="llm_call_completed",
        provider=PROVIDER_NAME,
        latency_ms=int((time.time() - start_time) * 1000),
        payload={"phase": phase, "usage": response.get("usage")},
    )
    return response


def _first_message(response: Dict[str, Any]) -> Dict[str, Any]:
    choices = response.get("choices") or []
    if not choices:
        return {"role": "assistant", "content": ""}
    return choices[0].get("message") or {"role": "assistant", "content": ""}


def _assistant_entry(message: Dict[str, Any]) -> Dict[str, Any]:
    """Transcript entry for an assistant message that proposes tool calls."""
    return {
        "role": "assistant",
        "content": message.get("content"),
        "tool_calls": [
            {
                "id": tc["id"],
                "type": tc.get("type", "function"),
                "function": {
                    "name": tc["function"]["name"],
                    "arguments": tc["function"].get("arguments") or "{}",
                },
            }
            for tc in message.get("tool_calls") or []
        ],
    }


def _invocations(message: Dict[str, Any]) -> List[ToolInvocation]:
    return [
        ToolInvocation(
            call_id=tc["id"],
            tool_name=tc["function"]["name"],
            raw_arguments=tc["function"].get("arguments") or "{}",
        )
        for tc in message.get("tool_calls") or []
    ]


async def execute_batch(ctx: CRMContext, invocations: List[ToolInvocation]) -> List[ToolCallRecord]:
    """
    Execute a batch of proposed calls.

    Calls run concurrently when PARALLEL_TOOL_EXECUTION is on. Records are
    returned in proposal order, one per invocation.
    """
    if config.PARALLEL_TOOL_EXECUTION and len(invocations) > 1:
        results = await asyncio.gather(
            *(execute_tool_call(ctx, invocation) for invocation in invocations),
            return_exceptions=True,
        )
    else:
        results = []
        for invocation in invocations:
            try:
                results.append(await execute_tool_call(ctx, invocation))
            except Exception as e:
                results.append(e)

    records: List[ToolCallRecord] = []
    for invocation, result in zip(invocations, results):
        if isinstance(result, ToolCallRecord):
            records.append(result)
            continue
        if not isinstance(result, Exception):
            raise result
        logger.error(
            f"Tool call {invocation.tool_name} raised outside the dispatcher: {type(result).__name__}: {str(result)}"
        )
        records.append(
            ToolCallRecord(
                invocation,
                ToolExecutionFailure(GENERIC_FAILURE_MESSAGE, f"{type(result).__name__}: {str(result)}", "unknown"),
            )
        )
    return records


def _start_transcript(message: str, history: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [*sanitize_transcript(history or []), {"role": "user", "content": message}]


async def run_chat_round(
    message: str,
    history: Optional[List[Dict[str, Any]]] = None,
    ctx: Optional[CRMContext] = None,
) -> ChatRoundResult:
    """
    Run one complete chat round.

    Args:
        message: New user message
        history: Caller-owned transcript (not mutated)
        ctx: CRMContext; built from config when omitted

    Returns:
        ChatRoundResult with the reply, one record per proposed call and the
        transcript truncated to HISTORY_LIMIT entries

    Raises:
        RetryableError: Model failure after retries
    """
    ctx = ctx or CRMContext.from_config()
    transcript = _start_transcript(message, history)
    catalog = get_tool_catalog()

    try:
        response = await _call_model(build_messages(ctx, transcript), list(catalog), "propose", ctx.location_id)
        assistant_message = _first_message(response)

        records: List[ToolCallRecord] = []
        if assistant_message.get("tool_calls"):
            transcript.append(_assistant_entry(assistant_message))
            records = await execute_batch(ctx, _invocations(assistant_message))
            transcript.extend(record.to_transcript_entry() for record in records)

            final_response = await _call_model(build_messages(ctx, transcript), None, "synthesize", ctx.location_id)
            reply = _first_message(final_response).get("content") or ""
        else:
            reply = assistant_message.get("content") or ""
    except Exception:
        chat_rounds_total.labels(mode="sync", status="failure").inc()
        raise

    transcript.append({"role": "assistant", "content": reply})
    chat_rounds_total.labels(mode="sync", status="success").inc()
    logger.info(
        f"Chat round completed with {len(records)} tool call(s)",
        extra={"tool_names": [r.invocation.tool_name for r in records]},
    )
    return ChatRoundResult(
        reply=reply,
        tool_calls=records,
        transcript=truncate_history(transcript, config.HISTORY_LIMIT),
    )


def _tool_result_event(record: ToolCallRecord) -> Dict[str, Any]:
    event: Dict[str, Any] = {
        "type": "tool_result",
        "tool": record.invocation.tool_name,
        "success": isinstance(record.outcome, ToolSuccess),
    }
    if isinstance(record.outcome, ToolValidationFailure):
        event["error"] = record.outcome.message
    elif isinstance(record.outcome, ToolExecutionFailure):
        event["error"] = record.outcome.user_message
    return event


async def stream_chat_round(
    message: str,
    history: Optional[List[Dict[str, Any]]] = None,
    ctx: Optional[CRMContext] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Streaming variant of run_chat_round.

    Yields event dicts: tool_start, tool_call, tool_result, stream_start,
    stream_chunk, stream_end (with conversationHistory and toolCalls) or a
    single error event if the round fails. tool_call events carry the
    arguments with defaults applied, as in the toolCalls summaries.
    """
    ctx = ctx or CRMContext.from_config()
    transcript = _start_transcript(message, history)
    catalog = get_tool_catalog()

    try:
        response = await _call_model(build_messages(ctx, transcript), list(catalog), "propose", ctx.location_id)
        assistant_message = _first_message(response)

        records: List[ToolCallRecord] = []
        if assistant_message.get("tool_calls"):
            transcript.append(_assistant_entry(assistant_message))
            invocations = _invocations(assistant_message)

            yield {"type": "tool_start", "tools": len(invocations)}
            for invocation in invocations:
                yield {
                    "type": "tool_call",
                    "tool": invocation.tool_name,
                    "arguments": resolve_arguments(ctx, invocation.tool_name, invocation.raw_arguments),
                }

            records = await execute_batch(ctx, invocations)
            for record in records:
                yield _tool_result_event(record)
            transcript.extend(record.to_transcript_entry() for record in records)

            yield {"type": "stream_start"}
            fragments: List[str] = []
            async for fragment in stream_chat_completion(build_messages(ctx, transcript)):
                fragments.append(fragment)
                yield {"type": "stream_chunk", "content": fragment}
            reply = "".join(fragments)
        else:
            # The proposal already holds the answer; emit it as one chunk
            reply = assistant_message.get("content") or ""
            yield {"type": "stream_start"}
            if reply:
                yield {"type": "stream_chunk", "content": reply}

        transcript.append({"role": "assistant", "content": reply})
        chat_rounds_total.labels(mode="stream", status="success").inc()
        yield {
            "type": "stream_end",
            "conversationHistory": truncate_history(transcript, config.HISTORY_LIMIT),
            "toolCalls": [record.to_summary() for record in records],
        }

    except Exception as e:
        error_id = str(uuid.uuid4())
        _, user_message = classify_round_failure(e)
        chat_rounds_total.labels(mode="stream", status="failure").inc()
        logger.error(
            f"Streaming chat round failed [{error_id}]: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        yield {"type": "error", "error": user_message, "error_id": error_id}
