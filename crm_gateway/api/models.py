"""API request/response models."""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Chat Models
# ============================================================================

class ChatRequest(BaseModel):
    """Request body for /api/chat and /api/chat/stream."""
    model_config = ConfigDict(populate_by_name=True)

    # Optional so a missing message is reported as 400 rather than 422
    message: Optional[str] = Field(None, example="Add tag vip to contact 123")
    conversation_history: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        alias="conversationHistory",
        description="Transcript returned by the previous round",
    )


class ChatResponse(BaseModel):
    """Response for a completed chat round."""
    success: bool = Field(..., example=True)
    message: str = Field(..., description="Assistant reply")
    toolCalls: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="One entry per tool call: tool, arguments and result, validation_error or error",
    )
    conversationHistory: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Most recent transcript entries, to send back with the next message",
    )


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    error_id: Optional[str] = None


# ============================================================================
# Tools Models
# ============================================================================

class ToolsResponse(BaseModel):
    """Tool catalog in chat-completions tool format."""
    tools: List[Dict[str, Any]]
    count: int


class DiscoveredToolsResponse(BaseModel):
    """Tools reported by the remote MCP server."""
    success: bool = True
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0
