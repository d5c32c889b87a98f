"""OpenAI-compatible chat completions adapter (Groq by default)."""

import time
import logging
from typing import List, Dict, Any, AsyncIterator, Optional
from openai import AsyncOpenAI

from crm_gateway.infra.config import config
from crm_gateway.infra.error_handler import wrap_llm_error
from crm_gateway.infra.metrics import llm_calls_total, llm_call_duration
from crm_gateway.infra.timeout import LLM_CALL_TIMEOUT
from crm_gateway.models.tool import ToolDescriptor

logger = logging.getLogger(__name__)

PROVIDER_NAME = "groq"


class ChatCompletionClient:
    """Holds the lazily created AsyncOpenAI client."""

    def __init__(self):
        self._client = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            if not config.LLM_API_KEY:
                raise ValueError("GROQ_API_KEY not configured")
            self._client = AsyncOpenAI(
                api_key=config.LLM_API_KEY,
                base_url=config.LLM_BASE_URL,
                timeout=LLM_CALL_TIMEOUT,
                max_retries=0,  # retries are handled by retry_with_backoff
            )
        return self._client


chat_client = ChatCompletionClient()


def build_openai_tools(tools: List[ToolDescriptor]) -> List[Dict[str, Any]]:
    """
    Convert ToolDescriptor objects to the chat-completions tool schema.

    Args:
        tools: List of ToolDescriptor objects

    Returns:
        List of OpenAI tool dicts
    """
    return [tool.to_openai_tool() for tool in tools]


def _request_params(messages: List[Dict[str, Any]], openai_tools: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    request_params = {
        "model": config.LLM_MODEL,
        "messages": messages,
        "temperature": config.LLM_TEMPERATURE,
        "max_completion_tokens": config.LLM_MAX_COMPLETION_TOKENS,
        "top_p": 1,
    }
    if openai_tools:
        request_params["tools"] = openai_tools
        request_params["tool_choice"] = "auto"
    return request_params


async def call_chat_completion(
    messages: List[Dict[str, Any]],
    tools: Optional[List[ToolDescriptor]] = None,
    phase: str = "propose",
) -> Dict[str, Any]:
    """
    Call the chat completions endpoint with messages and optional tools.

    Args:
        messages: List of message dicts (system prompt first)
        tools: Tools offered to the model; None withholds tools
        phase: 'propose' or 'synthesize', used for metrics only

    Returns:
        Response in standardized dict format (id, model, choices, usage)

    Raises:
        RetryableError: Wrapped provider error
    """
    openai_tools = build_openai_tools(tools) if tools else None
    start_time = time.time()

    try:
        response_obj = await chat_client.client.chat.completions.create(
            **_request_params(messages, openai_tools)
        )
    except Exception as e:
        llm_calls_total.labels(model=config.LLM_MODEL, phase=phase, status="failure").inc()
        logger.warning(f"Chat completion failed ({phase}): {type(e).__name__}: {str(e)}")
        raise wrap_llm_error(e, PROVIDER_NAME)

    llm_calls_total.labels(model=config.LLM_MODEL, phase=phase, status="success").inc()
    llm_call_duration.labels(model=config.LLM_MODEL, phase=phase).observe(time.time() - start_time)

    return {
        "id": response_obj.id,
        "model": response_obj.model,
        "choices": [
            {
                "index": choice.index,
                "message": {
                    "role": choice.message.role,
                    "content": choice.message.content,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": tc.type,
                            "function": {
                                "name": tc.function.name,
                                "arguments": tc.function.arguments,
                            }
                        }
                        for tc in (choice.message.tool_calls or [])
                    ] if choice.message.tool_calls else None,
                },
                "finish_reason": choice.finish_reason,
            }
            for choice in response_obj.choices
        ],
        "usage": {
            "prompt_tokens": response_obj.usage.prompt_tokens,
            "completion_tokens": response_obj.usage.completion_tokens,
            "total_tokens": response_obj.usage.total_tokens,
        } if response_obj.usage else None,
    }


async def stream_chat_completion(messages: List[Dict[str, Any]]) -> AsyncIterator[str]:
    """
    Stream a tool-less completion, yielding text fragments as they arrive.

    Raises:
        RetryableError: Wrapped provider error
    """
    start_time = time.time()
    try:
        stream = await chat_client.client.chat.completions.create(
            **_request_params(messages, None),
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            content = chunk.choices[0].delta.content or ""
            if content:
                yield content
    except Exception as e:
        llm_calls_total.labels(model=config.LLM_MODEL, phase="synthesize", status="failure").inc()
        logger.warning(f"Streaming completion failed: {type(e).__name__}: {str(e)}")
        raise wrap_llm_error(e, PROVIDER_NAME)

    llm_calls_total.labels(model=config.LLM_MODEL, phase="synthesize", status="success").inc()
    llm_call_duration.labels(model=config.LLM_MODEL, phase="synthesize").observe(time.time() - start_time)
