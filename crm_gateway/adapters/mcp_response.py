"""
Decoding of MCP tool-call replies.

A reply from the CRM's MCP server can arrive wrapped in several layers:

    JSON-RPC envelope  ->  {"jsonrpc": "2.0", "id": ..., "result": ...}
    event stream       ->  "event: message\\ndata: {...}\\n\\n"
    content wrapper    ->  {"content": [{"type": "text", "text": "..."}]}
    JSON-as-string     ->  '{"success": true, "contact": {...}}'

normalize() peels these off in a fixed order and returns a single
CanonicalProtocolResult. It never raises; every failure is returned as a
classified ToolExecutionError inside the result.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, NamedTuple, Optional

from crm_gateway.infra.error_handler import (
    ProtocolDecodeError,
    ProtocolError,
    RemoteApplicationError,
    ToolExecutionError,
)

logger = logging.getLogger(__name__)


class LayerKind(str, Enum):
    RAW = "raw"
    ENVELOPE = "envelope"
    EVENT_STREAM = "event_stream"
    CONTENT = "content"
    PAYLOAD = "payload"


class Layer(NamedTuple):
    """Intermediate decoding state: what was last unwrapped, and its value."""
    kind: LayerKind
    value: Any
    flagged_error: bool = False  # MCP isError marker seen on the content wrapper


@dataclass(frozen=True)
class CanonicalProtocolResult:
    """Decoded outcome of one remote tool call."""
    ok: bool
    value: Any = None
    error: Optional[ToolExecutionError] = None

    @classmethod
    def success(cls, value: Any) -> "CanonicalProtocolResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ToolExecutionError) -> "CanonicalProtocolResult":
        return cls(ok=False, error=error)

    def unwrap(self) -> Any:
        """Return the value or raise the classified error."""
        if self.ok:
            return self.value
        raise self.error


def _looks_like_json(text: str) -> bool:
    stripped = text.lstrip()
    return stripped.startswith("{") or stripped.startswith("[")


def _is_event_stream(text: str) -> bool:
    return any(line.startswith("data:") for line in text.splitlines())


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise ProtocolDecodeError(str(e), raw=text)


def _decode_body(raw: Any) -> Layer:
    """Turn a transport body (bytes, text or parsed JSON) into the first layer."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str) and not _is_event_stream(raw) and _looks_like_json(raw):
        raw = _load_json(raw)
    return Layer(LayerKind.RAW, raw)


def _protocol_error(error: Any) -> ProtocolError:
    if isinstance(error, dict):
        return ProtocolError(error.get("code"), str(error.get("message", "Unknown error")))
    return ProtocolError(None, str(error))


def _check_outer_error(layer: Layer) -> None:
    """An outermost JSON-RPC error wins over anything nested inside the body."""
    body = layer.value
    if not isinstance(body, dict) or body.get("error") is None:
        return
    error = body["error"]
    if "jsonrpc" in body or (isinstance(error, dict) and "code" in error):
        raise _protocol_error(error)


def _unwrap_envelope(layer: Layer) -> Optional[Layer]:
    value = layer.value
    if isinstance(value, dict) and "result" in value:
        return Layer(LayerKind.ENVELOPE, value["result"])
    return None


def _unwrap_event_stream(layer: Layer) -> Optional[Layer]:
    value = layer.value
    if not isinstance(value, str) or not _is_event_stream(value):
        return None

    first_error = None
    for line in value.splitlines():
        if not line.startswith("data:"):
            continue
        payload = line[len("data:"):].strip()
        if not payload:
            continue
        try:
            frame = json.loads(payload)
        except ValueError:
            logger.debug(f"Skipping unparseable event-stream line: {payload[:200]}")
            continue
        if not isinstance(frame, dict):
            continue
        if "result" in frame:
            return Layer(LayerKind.EVENT_STREAM, frame["result"])
        if first_error is None and frame.get("error") is not None:
            first_error = frame["error"]

    if first_error is not None:
        raise _protocol_error(first_error)
    raise ProtocolDecodeError("no event-stream frame carried a result", raw=value[:1000])


def _unwrap_content_parts(layer: Layer) -> Optional[Layer]:
    value = layer.value
    if not isinstance(value, dict) or not isinstance(value.get("content"), list):
        return None

    text_parts = [
        part["text"]
        for part in value["content"]
        if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str)
    ]
    return Layer(LayerKind.CONTENT, "".join(text_parts), flagged_error=value.get("isError") is True)


def _parse_json_payload(layer: Layer) -> Optional[Layer]:
    value = layer.value
    if not isinstance(value, str):
        return None
    if _looks_like_json(value):
        return Layer(LayerKind.PAYLOAD, _load_json(value), layer.flagged_error)
    # Serialized scalars ("null", "false", "42", '"abc"') decode to their value
    try:
        return Layer(LayerKind.PAYLOAD, json.loads(value), layer.flagged_error)
    except ValueError:
        return Layer(LayerKind.PAYLOAD, {"text": value}, layer.flagged_error)


DECODING_STEPS: List[Callable[[Layer], Optional[Layer]]] = [
    _unwrap_envelope,
    _unwrap_event_stream,
    _unwrap_content_parts,
    _parse_json_payload,
]


def _error_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict) and value.get("message"):
        return str(value["message"])
    return None


def _application_error(layer: Layer) -> Optional[RemoteApplicationError]:
    """Detect a business failure reported inside the decoded payload."""
    payload = layer.value
    if not isinstance(payload, dict):
        if not layer.flagged_error:
            return None
        message = _error_text(payload) or (json.dumps(payload, default=str) if payload is not None else None)
        return RemoteApplicationError(message or "API Error (status unknown)")

    status = payload.get("status")
    numeric_status = status if isinstance(status, (int, float)) and not isinstance(status, bool) else None
    nested = payload.get("data")
    nested_error = nested.get("error") if isinstance(nested, dict) else None

    failed = (
        payload.get("success") is False
        or (numeric_status is not None and numeric_status >= 400)
        or bool(nested_error)
        or layer.flagged_error
    )
    if not failed:
        return None

    message = (
        _error_text(nested_error)
        or _error_text(payload.get("error"))
        or _error_text(payload.get("message"))
        or (layer.flagged_error and _error_text(payload.get("text")))
        or f"API Error (status {numeric_status if numeric_status is not None else 'unknown'})"
    )
    return RemoteApplicationError(
        message,
        status_code=int(numeric_status) if numeric_status is not None else None,
    )


def normalize(raw: Any) -> CanonicalProtocolResult:
    """
    Decode a raw MCP reply into a canonical result.

    Args:
        raw: Response body as bytes, text or already-parsed JSON

    Returns:
        CanonicalProtocolResult with either the decoded value or a
        ProtocolError / ProtocolDecodeError / RemoteApplicationError
    """
    try:
        layer = _decode_body(raw)
        _check_outer_error(layer)

        for step in DECODING_STEPS:
            next_layer = step(layer)
            if next_layer is not None:
                layer = next_layer

        error = _application_error(layer)
        if error is not None:
            return CanonicalProtocolResult.failure(error)
        return CanonicalProtocolResult.success(layer.value)
    except ToolExecutionError as e:
        return CanonicalProtocolResult.failure(e)
