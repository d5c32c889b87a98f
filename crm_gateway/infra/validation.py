"""Input validation and sanitization for chat requests."""

import re
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 10000
MAX_HISTORY_ENTRIES = 200
ALLOWED_HISTORY_ROLES = ("user", "assistant", "tool", "system")


def sanitize_message_content(content: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """
    Strip null bytes and control characters from user-supplied text.

    Args:
        content: Raw message content
        max_length: Maximum allowed length

    Returns:
        Sanitized content

    Raises:
        ValueError: If the content is longer than max_length
    """
    if not content:
        return ""

    if len(content) > max_length:
        raise ValueError(f"Message too long (max {max_length} characters)")

    content = content.replace("\x00", "")

    # Keep newlines and tabs
    content = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]', '', content)

    return content


def validate_history(history: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Check the caller-supplied conversation history.

    Raises:
        ValueError: If an entry is not an object or carries an unknown role
    """
    if history is None:
        return []

    if len(history) > MAX_HISTORY_ENTRIES:
        raise ValueError(f"conversationHistory too long (max {MAX_HISTORY_ENTRIES} entries)")

    for index, entry in enumerate(history):
        if not isinstance(entry, dict):
            raise ValueError(f"conversationHistory[{index}] must be an object")
        role = entry.get("role")
        if role not in ALLOWED_HISTORY_ROLES:
            raise ValueError(
                f"conversationHistory[{index}] has invalid role. "
                f"Must be one of: {', '.join(ALLOWED_HISTORY_ROLES)}"
            )

    return history


def validate_chat_request(message: Optional[str], history: Optional[List[Dict[str, Any]]]) -> str:
    """
    Validate a chat request and return the sanitized message.

    Raises:
        ValueError: If validation fails
    """
    if message is None or not str(message).strip():
        raise ValueError("Missing required field: message")

    cleaned = sanitize_message_content(str(message))
    validate_history(history)
    return cleaned
