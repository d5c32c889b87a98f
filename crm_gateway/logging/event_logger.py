"""Event logging service."""

import logging
from typing import Optional, Dict, Any

events_logger = logging.getLogger("crm_gateway.events")

# Argument values can carry personal data; only keys are logged
MAX_LOGGED_ARGUMENT_KEYS = 20


async def log_event(
    location_id: Optional[str],
    event_type: str,
    provider: Optional[str] = None,
    status: str = "success",
    latency_ms: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Emit a structured audit event.

    Args:
        location_id: CRM location the event belongs to
        event_type: Event type (e.g., 'llm_call_completed', 'mcp_tool_call', 'chat_round_completed')
        provider: Provider name (e.g., 'groq', 'mcp', 'crm_rest')
        status: 'success' | 'failure'
        latency_ms: Latency in milliseconds
        payload: Additional structured fields
    """
    level = logging.INFO if status == "success" else logging.WARNING
    events_logger.log(
        level,
        event_type,
        extra={
            "event_type": event_type,
            "location_id": location_id,
            "provider": provider,
            "status": status,
            "latency_ms": latency_ms,
            "payload": payload or {},
        },
    )


async def log_tool_call(
    location_id: Optional[str],
    tool_name: str,
    provider: str,
    arguments: Dict[str, Any],
    status: str = "success",
    error_kind: Optional[str] = None,
    error_message: Optional[str] = None,
    latency_ms: Optional[int] = None,
    call_id: Optional[str] = None,
) -> None:
    """
    Emit an audit record for one tool call.

    Args:
        location_id: CRM location
        tool_name: Catalog tool name
        provider: 'mcp' | 'crm_rest' | 'validation'
        arguments: Resolved arguments (only the keys are logged)
        status: 'success' | 'validation_failed' | 'failure'
        error_kind: Error category for failures
        error_message: Technical error text, truncated
        latency_ms: Latency in milliseconds
        call_id: Model-assigned tool call id
    """
    argument_keys = sorted(arguments.keys())[:MAX_LOGGED_ARGUMENT_KEYS] if arguments else []
    level = logging.INFO if status == "success" else logging.WARNING
    events_logger.log(
        level,
        f"tool_call {tool_name} {status}",
        extra={
            "event_type": "tool_call",
            "location_id": location_id,
            "tool_name": tool_name,
            "provider": provider,
            "status": status,
            "error_kind": error_kind,
            "error_message": error_message[:500] if error_message else None,
            "latency_ms": latency_ms,
            "argument_keys": argument_keys,
            "call_id": call_id,
        },
    )
