"""System prompt and model message assembly."""

from typing import Any, Dict, List, Set

from crm_gateway.models.context import CRMContext

CRM_ASSISTANT_PROMPT = """You are a helpful CRM assistant. You manage contacts, conversations, opportunities, calendars, locations and payments by calling the available tools.

YOU ARE A CRM ASSISTANT, NOT A PROGRAMMER:
- Use the available tools directly
- Do not write code to calculate dates or timestamps
- Do not show programming examples to users

BEFORE TAKING ACTIONS:
- Creating contacts: ask for first and last name, and a phone OR an email (at least one is required)
- Tagging contacts: ask which contact and which tags to add or remove
- Sending messages: ask for the recipient, message type (SMS/Email) and message content
- Sending emails: also ask for a subject line; the default sender address is used when none is given
- Updating opportunities: ask which opportunity and what changes to make
- Checking availability: you need a calendar and a date range of at most one month
- Booking appointments: you need a calendar, a contact and a start time
- For any destructive action, get explicit confirmation first

DATES:
- Convert natural language dates ("today", "September 9th") to the format each tool expects
- Assume the current year when none is given

RESPONSE STYLE:
- Be conversational and helpful; ask one question at a time when gathering information
- Report results in plain language ("Found 3 appointments on September 9th!"), not raw data
- If something fails, explain what happened in simple terms and suggest an alternative
- Never show code, raw timestamps or technical error details to users

PARAMETER NAMES:
- Path parameters: path_contactId, path_id, path_calendarId, ...
- Body parameters: body_tags, body_message, body_emailFrom, ...
- Query parameters: query_limit, query_query, query_startDate, ...
- The location id is filled in automatically when a tool needs it"""

TRANSCRIPT_ROLES = ("user", "assistant", "tool")
MESSAGE_KEYS = ("role", "content", "tool_calls", "tool_call_id")


def build_system_message(ctx: CRMContext) -> Dict[str, str]:
    return {
        "role": "system",
        "content": f"{CRM_ASSISTANT_PROMPT}\n\nLocation ID: {ctx.location_id}",
    }


def sanitize_transcript(transcript: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Clean a caller-owned transcript before it reaches the model.

    Drops caller-supplied system entries and tool entries whose tool call
    is not in the preceding assistant entries (e.g. cut off by the history
    window). Only message keys the model understands are kept.
    """
    cleaned: List[Dict[str, Any]] = []
    known_call_ids: Set[str] = set()

    for entry in transcript:
        role = entry.get("role")
        if role not in TRANSCRIPT_ROLES:
            continue
        if role == "assistant":
            for tool_call in entry.get("tool_calls") or []:
                if isinstance(tool_call, dict) and tool_call.get("id"):
                    known_call_ids.add(tool_call["id"])
        if role == "tool" and entry.get("tool_call_id") not in known_call_ids:
            continue
        cleaned.append({key: entry.get(key) for key in MESSAGE_KEYS if key == "content" or entry.get(key) is not None})

    return cleaned


def build_messages(ctx: CRMContext, transcript: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Build the message list for the model.

    Order: system prompt (with location id), then the cleaned transcript,
    which already ends with the current user message.
    """
    return [build_system_message(ctx), *sanitize_transcript(transcript)]
