"""Tool execution engine: default injection, validation and provider routing."""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from crm_gateway.adapters.crm_rest_client import crm_rest_client
from crm_gateway.adapters.mcp_client import mcp_client
from crm_gateway.infra.error_handler import (
    AuthenticationFailure,
    ConflictError,
    InvalidRequest,
    NotFound,
    PermissionDenied,
    ToolExecutionError,
    TransportError,
)
from crm_gateway.infra.metrics import tool_calls_total, tool_call_duration, tool_validation_failures_total
from crm_gateway.infra.timeout import TOOL_EXECUTION_TIMEOUT
from crm_gateway.logging.event_logger import log_tool_call
from crm_gateway.models.context import CRMContext
from crm_gateway.models.outcome import (
    ToolCallRecord,
    ToolExecutionFailure,
    ToolInvocation,
    ToolOutcome,
    ToolSuccess,
    ToolValidationFailure,
)
from crm_gateway.models.tool import ToolDescriptor
from crm_gateway.services.tool_catalog import get_tool_catalog
from crm_gateway.services.tool_defaults import apply_default_parameters
from crm_gateway.services.validation_rules import validate_tool_parameters

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = (
    "I encountered an issue while trying to complete that action. "
    "Let me try again or suggest an alternative approach."
)
CONTACT_NOT_FOUND_MESSAGE = "I couldn't find that contact. Let me search for them first and try again."
EMPTY_MESSAGE_MESSAGE = (
    "The message couldn't be sent. Please make sure you've provided the message content "
    "and all required information."
)
UNKNOWN_TOOL_MESSAGE = "I tried to use an action that isn't available. Let me try a different approach."


def parse_tool_arguments(raw_arguments: Any) -> Dict[str, Any]:
    """Parse model-supplied arguments; anything but a JSON object becomes {}."""
    if isinstance(raw_arguments, dict):
        return dict(raw_arguments)
    if not raw_arguments:
        return {}
    try:
        parsed = json.loads(raw_arguments)
    except (TypeError, ValueError):
        logger.warning(f"Invalid JSON in tool arguments: {str(raw_arguments)[:200]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_user_message(error: Exception) -> str:
    """Translate a classified failure into a short, non-technical sentence."""
    text = str(error)

    if "Contact with id" in text and "not found" in text:
        return CONTACT_NOT_FOUND_MESSAGE
    if "There is no message or attachments" in text:
        return EMPTY_MESSAGE_MESSAGE

    if isinstance(error, NotFound):
        return CONTACT_NOT_FOUND_MESSAGE if error.entity == "contact" else error.message
    if isinstance(error, ConflictError):
        return "That time slot is already booked. Please choose another available slot."
    if isinstance(error, AuthenticationFailure):
        return "I couldn't sign in to the CRM. Please check the CRM access token configuration."
    if isinstance(error, PermissionDenied):
        return "I don't have permission to do that in this CRM location."
    if isinstance(error, InvalidRequest):
        # Locally raised checks carry no status and are already readable
        if error.status_code is None:
            return error.message
        return "The CRM couldn't accept that request. Please check the details and try again."
    if isinstance(error, TransportError):
        return "I couldn't reach the CRM just now. Please try again in a moment."

    return GENERIC_FAILURE_MESSAGE


# ============================================================================
# REST handlers (calendar tools)
# ============================================================================

async def _get_calendars(ctx: CRMContext, args: Dict[str, Any]) -> Any:
    return await crm_rest_client.get_calendars(
        ctx,
        location_id=args.get("query_locationId"),
        group_id=args.get("query_groupId"),
        show_drafted=args.get("query_showDrafted") is True,
    )


async def _get_calendar_details(ctx: CRMContext, args: Dict[str, Any]) -> Any:
    return await crm_rest_client.get_calendar(ctx, args["path_calendarId"])


async def _get_available_slots(ctx: CRMContext, args: Dict[str, Any]) -> Any:
    return await crm_rest_client.get_free_slots(
        ctx,
        calendar_id=args["query_calendarId"],
        start_date=args["query_startDate"],
        end_date=args["query_endDate"],
        timezone=args.get("query_timezone") or "UTC",
        user_id=args.get("query_userId"),
    )


async def _create_appointment(ctx: CRMContext, args: Dict[str, Any]) -> Any:
    appointment = {
        key[len("body_"):]: value
        for key, value in args.items()
        if key.startswith("body_")
    }
    return await crm_rest_client.create_appointment(ctx, appointment)


REST_HANDLERS: Dict[str, Callable[[CRMContext, Dict[str, Any]], Awaitable[Any]]] = {
    "calendars_get-calendars": _get_calendars,
    "calendars_get-calendar-details": _get_calendar_details,
    "calendars_get-available-slots": _get_available_slots,
    "calendars_create-appointment": _create_appointment,
}


async def _route(ctx: CRMContext, descriptor: ToolDescriptor, args: Dict[str, Any]) -> Any:
    if descriptor.provider == "crm_rest":
        handler = REST_HANDLERS.get(descriptor.name)
        if handler is None:
            raise ValueError(f"No REST handler registered for tool: {descriptor.name}")
        return await handler(ctx, args)
    if descriptor.provider == "mcp":
        return await mcp_client.execute(ctx, descriptor.name, args)
    raise ValueError(f"Unknown provider: {descriptor.provider}")


def _unknown_tool(tool_name: str) -> ToolExecutionFailure:
    return ToolExecutionFailure(
        user_message=UNKNOWN_TOOL_MESSAGE,
        technical_detail=f"Tool not found in catalog: {tool_name}",
        error_kind="unknown_tool",
    )


async def dispatch(
    ctx: CRMContext,
    tool: Union[ToolDescriptor, str],
    args: Dict[str, Any],
    call_id: Optional[str] = None,
) -> ToolOutcome:
    """
    Execute one validated tool call against its provider.

    Never raises: every failure is returned as a ToolExecutionFailure whose
    user_message is safe to show and whose technical_detail goes to logs.

    Args:
        ctx: CRMContext for this round
        tool: ToolDescriptor or catalog tool name
        args: Resolved, validated arguments
        call_id: Model-assigned call id, for logging

    Returns:
        ToolSuccess or ToolExecutionFailure
    """
    descriptor = get_tool_catalog().get(tool) if isinstance(tool, str) else tool
    if descriptor is None:
        return _unknown_tool(str(tool))

    start_time = time.time()
    outcome: ToolOutcome
    try:
        result = await asyncio.wait_for(_route(ctx, descriptor, args), timeout=TOOL_EXECUTION_TIMEOUT)
        outcome = ToolSuccess(value=result)
    except asyncio.TimeoutError:
        error = TransportError(f"Tool {descriptor.name} timed out after {TOOL_EXECUTION_TIMEOUT} seconds")
        outcome = ToolExecutionFailure(to_user_message(error), error.technical_detail, error.category.value)
    except ToolExecutionError as e:
        outcome = ToolExecutionFailure(to_user_message(e), e.technical_detail, e.category.value)
    except Exception as e:
        logger.error(f"Unexpected error executing tool {descriptor.name}: {type(e).__name__}: {str(e)}", exc_info=True)
        outcome = ToolExecutionFailure(GENERIC_FAILURE_MESSAGE, f"{type(e).__name__}: {str(e)}", "unknown")

    latency_ms = int((time.time() - start_time) * 1000)
    status = "success" if isinstance(outcome, ToolSuccess) else "failure"
    tool_calls_total.labels(tool_name=descriptor.name, provider=descriptor.provider, status=status).inc()
    tool_call_duration.labels(tool_name=descriptor.name, provider=descriptor.provider).observe(latency_ms / 1000.0)

    if isinstance(outcome, ToolExecutionFailure):
        logger.warning(
            f"Tool {descriptor.name} failed: {outcome.technical_detail}",
            extra={"tool_name": descriptor.name, "error_kind": outcome.error_kind, "call_id": call_id},
        )

    await log_tool_call(
        location_id=ctx.location_id,
        tool_name=descriptor.name,
        provider=descriptor.provider,
        arguments=args,
        status=status,
        error_kind=outcome.error_kind if isinstance(outcome, ToolExecutionFailure) else None,
        error_message=outcome.technical_detail if isinstance(outcome, ToolExecutionFailure) else None,
        latency_ms=latency_ms,
        call_id=call_id,
    )
    return outcome


def resolve_arguments(ctx: CRMContext, tool_name: str, raw_arguments: Any) -> Dict[str, Any]:
    """Parsed arguments with the tool's defaults filled in; unknown tools get none."""
    arguments = parse_tool_arguments(raw_arguments)
    if tool_name not in get_tool_catalog():
        return arguments
    return apply_default_parameters(ctx, tool_name, arguments)


async def execute_tool_call(ctx: CRMContext, invocation: ToolInvocation) -> ToolCallRecord:
    """
    Run one proposed call through lookup, defaults, validation and dispatch.

    A validation failure short-circuits before any network activity.
    """
    descriptor = get_tool_catalog().get(invocation.tool_name)
    if descriptor is None:
        invocation.resolved_arguments = resolve_arguments(ctx, invocation.tool_name, invocation.raw_arguments)
        logger.warning(f"Model proposed unknown tool: {invocation.tool_name}")
        return ToolCallRecord(invocation, _unknown_tool(invocation.tool_name))

    resolved = resolve_arguments(ctx, descriptor.name, invocation.raw_arguments)
    invocation.resolved_arguments = resolved

    validation = validate_tool_parameters(descriptor.name, resolved)
    if not validation.valid:
        tool_validation_failures_total.labels(tool_name=descriptor.name).inc()
        await log_tool_call(
            location_id=ctx.location_id,
            tool_name=descriptor.name,
            provider="validation",
            arguments=resolved,
            status="validation_failed",
            error_kind="validation",
            error_message=validation.message,
            call_id=invocation.call_id,
        )
        return ToolCallRecord(
            invocation,
            ToolValidationFailure(
                missing=validation.missing,
                errors=validation.errors,
                message=validation.message,
            ),
        )

    outcome = await dispatch(ctx, descriptor, resolved, call_id=invocation.call_id)
    return ToolCallRecord(invocation, outcome)
