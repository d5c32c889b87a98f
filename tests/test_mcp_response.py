"""Unit tests for MCP response decoding."""

import json
import pytest

from crm_gateway.adapters.mcp_response import CanonicalProtocolResult, normalize
from crm_gateway.infra.error_handler import (
    ProtocolDecodeError,
    ProtocolError,
    RemoteApplicationError,
)


def text_content(text, **extra):
    """MCP content wrapper around a text part."""
    return {"content": [{"type": "text", "text": text}], **extra}


def envelope(result, request_id="mcp_1"):
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def event_stream(*frames):
    lines = []
    for frame in frames:
        lines.append("event: message")
        lines.append(f"data: {frame if isinstance(frame, str) else json.dumps(frame)}")
        lines.append("")
    return "\n".join(lines)


class TestNestingShapes:
    """Decoding of the supported nesting shapes."""

    def test_envelope_with_json_text_content(self):
        """Envelope -> content wrapper -> JSON string decodes to the inner object."""
        payload = {"success": True, "contact": {"id": "123", "tags": ["vip"]}}
        result = normalize(envelope(text_content(json.dumps(payload))))

        assert result.ok is True
        assert result.value == payload

    def test_event_stream_body(self):
        """An event-stream body is decoded through its first result frame."""
        payload = {"success": True, "contacts": [{"id": "1"}]}
        body = event_stream(envelope(text_content(json.dumps(payload))))

        result = normalize(body)

        assert result.ok is True
        assert result.value == payload

    def test_plain_text_content_becomes_text_object(self):
        """Non-JSON text content is wrapped as {'text': ...}."""
        result = normalize(envelope(text_content("Tags added successfully")))

        assert result.ok is True
        assert result.value == {"text": "Tags added successfully"}

    def test_unwrapped_object_passes_through(self):
        """A body with no envelope or content wrapper is returned as-is."""
        result = normalize({"calendars": []})

        assert result.ok is True
        assert result.value == {"calendars": []}

    def test_multiple_text_parts_are_concatenated(self):
        """Text parts are joined before JSON parsing; other part types are ignored."""
        raw = envelope({
            "content": [
                {"type": "text", "text": '{"count": '},
                {"type": "image", "data": "..."},
                {"type": "text", "text": "2}"},
            ]
        })

        result = normalize(raw)

        assert result.value == {"count": 2}

    def test_json_text_body_and_bytes(self):
        """Bodies given as JSON text or bytes are parsed first."""
        raw = json.dumps(envelope(text_content('{"ok": 1}')))

        assert normalize(raw).value == {"ok": 1}
        assert normalize(raw.encode("utf-8")).value == {"ok": 1}

    def test_leading_whitespace_before_json(self):
        """JSON detection ignores leading whitespace."""
        result = normalize(envelope(text_content('  \n [1, 2, 3]')))

        assert result.value == [1, 2, 3]


ROUND_TRIP_VALUES = [
    {"id": "c-1", "name": "Jo"},
    [1, "two", None],
    {"contact": {"id": "c-1", "tags": ["vip"], "customFields": [{"key": "score", "value": 3}]}},
    None,
    False,
]

WRAPPERS = {
    "envelope": lambda value: envelope(value),
    "event_stream": lambda value: event_stream(envelope(value)),
    "content": lambda value: text_content(json.dumps(value)),
    "envelope_content_text": lambda value: envelope(text_content(json.dumps(value))),
}


class TestRoundTrip:
    """Every wrapping shape decodes back to the value it carries."""

    @pytest.mark.parametrize("shape", sorted(WRAPPERS))
    @pytest.mark.parametrize("value", ROUND_TRIP_VALUES, ids=["object", "array", "nested", "null", "false"])
    def test_value_survives_wrapping(self, shape, value):
        result = normalize(WRAPPERS[shape](value))

        assert result.ok is True
        assert result.value == value
        assert type(result.value) is type(value)

    def test_null_result_in_envelope(self):
        """A present-but-null result is unwrapped, not returned as the envelope."""
        result = normalize({"jsonrpc": "2.0", "id": 1, "result": None})

        assert result.ok is True
        assert result.value is None

    def test_null_result_in_event_stream(self):
        result = normalize('event: message\ndata: {"jsonrpc":"2.0","id":1,"result":null}\n\n')

        assert result.ok is True
        assert result.value is None

    def test_scalar_text_content(self):
        """Serialized scalars in text content decode to the scalar."""
        assert normalize(text_content("42")).value == 42
        assert normalize(text_content('"done"')).value == "done"


class TestEventStream:
    """Event-stream specific behaviour."""

    def test_unparseable_lines_are_skipped(self):
        """Bad data lines do not abort the decode."""
        body = event_stream("{not json", envelope(text_content('{"id": "abc"}')))

        result = normalize(body)

        assert result.ok is True
        assert result.value == {"id": "abc"}

    def test_first_result_frame_wins(self):
        """Only the first frame with a result is used."""
        body = event_stream(
            envelope(text_content('{"n": 1}')),
            envelope(text_content('{"n": 2}')),
        )

        assert normalize(body).value == {"n": 1}

    def test_error_frame_without_result_is_protocol_error(self):
        """A JSON-RPC error frame with no result frame is a ProtocolError."""
        body = event_stream({"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "Method not found"}})

        result = normalize(body)

        assert result.ok is False
        assert isinstance(result.error, ProtocolError)
        assert result.error.code == -32601
        assert "Method not found" in result.error.message

    def test_no_result_frame_is_decode_error(self):
        """A stream with neither result nor error fails to decode."""
        body = event_stream({"jsonrpc": "2.0", "method": "notifications/progress"})

        result = normalize(body)

        assert result.ok is False
        assert isinstance(result.error, ProtocolDecodeError)


class TestErrorDetection:
    """Protocol, decode and application failures."""

    def test_malformed_embedded_json_is_decode_error(self):
        """Text that looks like JSON but does not parse keeps the raw string."""
        result = normalize(envelope(text_content('{"success": tru')))

        assert result.ok is False
        assert isinstance(result.error, ProtocolDecodeError)
        assert result.error.raw == '{"success": tru'
        assert result.error.message.startswith("Failed to parse MCP response:")

    def test_success_false_uses_error_text(self):
        """success=false reports the top-level error text."""
        result = normalize(envelope(text_content(json.dumps({"success": False, "error": "Invalid tag"}))))

        assert isinstance(result.error, RemoteApplicationError)
        assert result.error.remote_message == "Invalid tag"

    def test_nested_error_takes_precedence(self):
        """data.error wins over top-level error and message."""
        payload = {
            "success": False,
            "error": "top-level",
            "message": "message text",
            "data": {"error": "Contact with id 999 not found"},
        }

        result = normalize(envelope(text_content(json.dumps(payload))))

        assert result.error.remote_message == "Contact with id 999 not found"

    def test_message_used_when_no_error_text(self):
        """Top-level message is used when no error text exists."""
        result = normalize(envelope(text_content(json.dumps({"success": False, "message": "Rate limited"}))))

        assert result.error.remote_message == "Rate limited"

    def test_status_code_synthesizes_message(self):
        """A numeric status >= 400 without text yields a synthesized message."""
        result = normalize(envelope(text_content(json.dumps({"status": 422}))))

        assert isinstance(result.error, RemoteApplicationError)
        assert result.error.remote_message == "API Error (status 422)"
        assert result.error.status_code == 422

    def test_status_below_400_is_success(self):
        """Status 200 and boolean status values are not failures."""
        assert normalize(envelope(text_content(json.dumps({"status": 200, "ok": 1})))).ok is True
        assert normalize(envelope(text_content(json.dumps({"status": True})))).ok is True

    def test_is_error_flag_reports_text(self):
        """The MCP isError marker turns plain text content into a failure."""
        result = normalize(envelope(text_content("There is no message or attachments", isError=True)))

        assert isinstance(result.error, RemoteApplicationError)
        assert result.error.remote_message == "There is no message or attachments"

    def test_is_error_flag_with_array_text(self):
        """isError fails the call even when the text decodes to a non-object."""
        result = normalize(envelope(text_content('["boom"]', isError=True)))

        assert result.ok is False
        assert isinstance(result.error, RemoteApplicationError)
        assert result.error.remote_message == '["boom"]'

    def test_outer_protocol_error_wins(self):
        """An outermost JSON-RPC error beats a content-level error."""
        raw = {
            "jsonrpc": "2.0",
            "id": "mcp_1",
            "error": {"code": -32602, "message": "Invalid params"},
            "result": text_content(json.dumps({"success": False, "error": "content-level"})),
        }

        result = normalize(raw)

        assert isinstance(result.error, ProtocolError)
        assert result.error.code == -32602
        assert result.error.message == "JSON-RPC Error: Invalid params (Code: -32602)"


class TestCanonicalProtocolResult:
    """Result container behaviour."""

    def test_unwrap_returns_value(self):
        assert CanonicalProtocolResult.success({"a": 1}).unwrap() == {"a": 1}

    def test_unwrap_raises_error(self):
        error = ProtocolError(-1, "boom")
        with pytest.raises(ProtocolError):
            CanonicalProtocolResult.failure(error).unwrap()

    def test_normalize_never_raises(self):
        """Unexpected shapes still produce a result."""
        for raw in (None, 42, [], "", "data: \n"):
            result = normalize(raw)
            assert isinstance(result, CanonicalProtocolResult)
