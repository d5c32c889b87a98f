"""Error taxonomy for tool execution and model calls, plus retry logic."""

import asyncio
import random
import re
from typing import Optional, Tuple, Callable, Any
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors for better handling."""
    PROTOCOL = "protocol_error"  # JSON-RPC level rejection
    PROTOCOL_DECODE = "protocol_decode_error"  # Malformed nested payload
    REMOTE_APPLICATION = "remote_application_error"  # Payload signals a business failure
    AUTHENTICATION = "authentication_failure"
    PERMISSION = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    CONFLICT = "conflict"
    TRANSPORT = "transport_error"  # Network failures, timeouts, unexpected statuses
    NETWORK = "network"  # Model service connection issues
    RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"
    AUTH_ERROR = "auth_error"
    UNKNOWN = "unknown"


# ============================================================================
# Tool execution errors
# ============================================================================

class ToolExecutionError(Exception):
    """Base exception for failures while executing a tool call."""
    category = ErrorCategory.UNKNOWN

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)

    @property
    def technical_detail(self) -> str:
        """Diagnostic description; never shown to the end user."""
        parts = [f"{type(self).__name__}: {self.message}"]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.detail:
            parts.append(f"detail={self.detail}")
        return " | ".join(parts)


class ProtocolError(ToolExecutionError):
    """The remote server rejected the JSON-RPC call before the tool ran."""
    category = ErrorCategory.PROTOCOL

    def __init__(self, code: Any, message: str):
        self.code = code
        super().__init__(f"JSON-RPC Error: {message} (Code: {code})")


class ProtocolDecodeError(ToolExecutionError):
    """A nested payload could not be decoded."""
    category = ErrorCategory.PROTOCOL_DECODE

    def __init__(self, message: str, raw: Optional[str] = None):
        self.raw = raw
        super().__init__(f"Failed to parse MCP response: {message}", detail=raw)


class RemoteApplicationError(ToolExecutionError):
    """The decoded payload reports a business-logic failure."""
    category = ErrorCategory.REMOTE_APPLICATION

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(f"CRM API Error: {message}", status_code=status_code)
        self.remote_message = message


class AuthenticationFailure(ToolExecutionError):
    category = ErrorCategory.AUTHENTICATION


class PermissionDenied(ToolExecutionError):
    category = ErrorCategory.PERMISSION


class NotFound(ToolExecutionError):
    """Entity lookup failed; `entity` names what was missing (contact, calendar, ...)."""
    category = ErrorCategory.NOT_FOUND

    def __init__(self, entity: str, message: str, status_code: Optional[int] = 404, detail: Optional[str] = None):
        self.entity = entity
        super().__init__(message, status_code=status_code, detail=detail)


class InvalidRequest(ToolExecutionError):
    category = ErrorCategory.INVALID_REQUEST


class ConflictError(ToolExecutionError):
    category = ErrorCategory.CONFLICT


class TransportError(ToolExecutionError):
    """Network failure, timeout or an unclassified non-2xx status."""
    category = ErrorCategory.TRANSPORT

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.body = body
        super().__init__(message, status_code=status_code, detail=body)


def extract_remote_message(body: Any) -> Optional[str]:
    """Pull the most useful message out of an error response body."""
    if isinstance(body, dict):
        for key in ("message", "error", "msg"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, list) and value:
                return ", ".join(str(v) for v in value)
            if isinstance(value, dict) and value.get("message"):
                return str(value["message"])
        return None
    if isinstance(body, str) and body.strip():
        return body.strip()[:500]
    return None


def classify_http_error(
    status_code: int,
    body: Any,
    *,
    entity: str = "record",
    not_found_message: Optional[str] = None,
    permission_message: Optional[str] = None,
    invalid_request_message: Optional[str] = None,
    operation: str = "call the CRM",
    allow_conflict: bool = False,
) -> ToolExecutionError:
    """
    Map a non-2xx HTTP status to the tool error taxonomy.

    Args:
        status_code: HTTP status of the response
        body: Parsed JSON body or raw text
        entity: Entity name used for NotFound (e.g. 'calendar', 'contact')
        not_found_message: Message for 404, defaults to "<Entity> not found."
        permission_message: Message for 403
        invalid_request_message: Message for 400, defaults to echoing the remote message
        operation: Short description used in the generic transport message
        allow_conflict: Whether 409 maps to ConflictError (appointment creation only)

    Returns:
        A ToolExecutionError subclass instance (not raised)
    """
    remote_message = extract_remote_message(body)
    raw_body = body if isinstance(body, str) else (str(body) if body is not None else None)

    if status_code == 401:
        return AuthenticationFailure(
            "Authentication failed. Please check your PIT token.",
            status_code=401,
            detail=raw_body,
        )
    if status_code == 403:
        return PermissionDenied(
            permission_message or "Access denied. Please check your permissions for this location.",
            status_code=403,
            detail=raw_body,
        )
    if status_code == 404:
        return NotFound(
            entity,
            not_found_message or f"{entity.capitalize()} not found.",
            detail=raw_body,
        )
    if status_code == 400:
        return InvalidRequest(
            invalid_request_message or f"Bad request: {remote_message or 'Invalid request parameters'}",
            status_code=400,
            detail=raw_body,
        )
    if status_code == 409 and allow_conflict:
        return ConflictError(
            "Time slot conflict. The selected time slot may already be booked.",
            status_code=409,
            detail=raw_body,
        )
    return TransportError(
        f"Failed to {operation}: {remote_message or f'HTTP {status_code}'}",
        status_code=status_code,
        body=raw_body,
    )


# ============================================================================
# Model service errors
# ============================================================================

class RetryableError(Exception):
    """Base exception for model service errors that may be retried."""
    def __init__(self, message: str, category: ErrorCategory, retryable: bool = True, retry_after: Optional[float] = None):
        self.message = message
        self.category = category
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(message)


class NetworkError(RetryableError):
    """Network-related errors (connection, timeout)."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, ErrorCategory.NETWORK, retryable=True, retry_after=retry_after)


class APIError(RetryableError):
    """API returned an error response."""
    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False, retry_after: Optional[float] = None):
        self.status_code = status_code
        super().__init__(message, ErrorCategory.API_ERROR, retryable=retryable, retry_after=retry_after)


class AuthError(RetryableError):
    """Authentication/authorization errors."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.AUTH_ERROR, retryable=False)


class RateLimitError(RetryableError):
    """Rate limit exceeded."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, ErrorCategory.RATE_LIMIT, retryable=True, retry_after=retry_after)


def classify_error(error: Exception) -> Tuple[ErrorCategory, bool, Optional[float]]:
    """
    Classify an error into a category and determine if it's retryable.

    Args:
        error: The exception to classify

    Returns:
        Tuple of (category, retryable, retry_after_seconds)
    """
    if isinstance(error, RetryableError):
        return error.category, error.retryable, error.retry_after

    if isinstance(error, ToolExecutionError):
        return error.category, False, None

    error_str = str(error).lower()

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ErrorCategory.NETWORK, True, None

    if any(keyword in error_str for keyword in ['connection', 'timeout', 'network', 'dns', 'refused']):
        return ErrorCategory.NETWORK, True, None

    if 'rate limit' in error_str or '429' in error_str or 'too many requests' in error_str:
        retry_after = None
        match = re.search(r'retry[_-]after[:\s]+(\d+)', error_str, re.IGNORECASE)
        if match:
            retry_after = float(match.group(1))
        return ErrorCategory.RATE_LIMIT, True, retry_after

    if any(keyword in error_str for keyword in ['unauthorized', 'forbidden', '401', '403', 'authentication']):
        return ErrorCategory.AUTH_ERROR, False, None

    if 'api' in error_str or 'http' in error_str:
        return ErrorCategory.API_ERROR, False, None

    return ErrorCategory.UNKNOWN, False, None


async def retry_with_backoff(
    func: Callable,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Any:
    """
    Retry an async function with exponential backoff.

    Only errors classified as retryable are retried; everything else is
    re-raised immediately.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        on_retry: Optional callback called on each retry (exception, attempt_number)

    Returns:
        Result of the function call
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as e:
            _, retryable, retry_after = classify_error(e)

            if not retryable or attempt >= max_retries:
                raise

            if retry_after:
                delay = min(retry_after, max_delay)
            else:
                delay = min(initial_delay * (exponential_base ** attempt), max_delay)

            # Jitter to avoid thundering herd
            delay += random.uniform(0, delay * 0.1)

            if on_retry:
                result = on_retry(e, attempt + 1)
                if asyncio.iscoroutine(result):
                    await result

            await asyncio.sleep(delay)


def wrap_llm_error(error: Exception, provider: str) -> RetryableError:
    """
    Wrap model API errors into our error types.

    Args:
        error: Original exception
        provider: Model provider name

    Returns:
        RetryableError with appropriate category
    """
    if isinstance(error, RetryableError):
        return error

    error_str = str(error)
    error_lower = error_str.lower()
    status_code = getattr(error, "status_code", None)

    if status_code == 429 or 'rate limit' in error_lower:
        retry_after = None
        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
        if headers is not None:
            retry_after_header = headers.get('retry-after')
            if retry_after_header:
                try:
                    retry_after = float(retry_after_header)
                except ValueError:
                    retry_after = None
        return RateLimitError(f"{provider} rate limit exceeded", retry_after=retry_after)

    if status_code in (401, 403) or 'unauthorized' in error_lower or 'authentication' in error_lower:
        return AuthError(f"{provider} authentication failed: {error_str}")

    if isinstance(status_code, int):
        if status_code >= 500:
            return APIError(f"{provider} server error ({status_code})", status_code=status_code, retryable=True)
        return APIError(f"{provider} API error ({status_code}): {error_str}", status_code=status_code, retryable=False)

    if any(keyword in error_lower for keyword in ['connection', 'timeout', 'network']):
        return NetworkError(f"{provider} network error: {error_str}")

    return APIError(f"{provider} error: {error_str}", retryable=False)
