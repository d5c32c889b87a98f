"""Unit tests for the calendar REST client."""

import pytest
import httpx
from unittest.mock import patch

from crm_gateway.adapters.crm_rest_client import (
    APPOINTMENTS_API_VERSION,
    CALENDARS_API_VERSION,
    CRMRestClient,
)
from crm_gateway.infra.error_handler import (
    ConflictError,
    InvalidRequest,
    NotFound,
    PermissionDenied,
    TransportError,
)

DAY_MS = 24 * 60 * 60 * 1000
START_MS = 1_700_000_000_000


@pytest.fixture
def rest_client():
    return CRMRestClient()


class TestCalendars:
    """Calendar listing and lookup."""

    @pytest.mark.asyncio
    async def test_get_calendars_uses_context_location(self, rest_client, crm_ctx, http_response, async_client):
        mock_client = async_client(http_response(200, {"calendars": [{"id": "cal-1"}]}))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await rest_client.get_calendars(crm_ctx)

        assert result == {"calendars": [{"id": "cal-1"}]}
        call_args = mock_client.request.call_args
        assert call_args.args == ("GET", "https://crm.example.com/calendars/")
        assert call_args.kwargs["params"] == {"locationId": "loc-123", "showDrafted": "false"}
        assert call_args.kwargs["headers"]["Version"] == CALENDARS_API_VERSION
        assert call_args.kwargs["headers"]["Authorization"] == "Bearer test-pit-token"

    @pytest.mark.asyncio
    async def test_get_calendar_not_found(self, rest_client, crm_ctx, http_response, async_client):
        """A 404 carries the calendar-specific message."""
        with patch("httpx.AsyncClient", return_value=async_client(http_response(404, {"message": "Not Found"}))):
            with pytest.raises(NotFound) as exc_info:
                await rest_client.get_calendar(crm_ctx, "missing-cal")

        assert exc_info.value.entity == "calendar"
        assert exc_info.value.message == "Calendar not found. Please check the calendar ID."

    @pytest.mark.asyncio
    async def test_get_calendar_forbidden(self, rest_client, crm_ctx, http_response, async_client):
        with patch("httpx.AsyncClient", return_value=async_client(http_response(403, {"message": "Forbidden"}))):
            with pytest.raises(PermissionDenied) as exc_info:
                await rest_client.get_calendar(crm_ctx, "cal-1")

        assert "permission to view this calendar" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_network_failure(self, rest_client, crm_ctx, async_client):
        mock_client = async_client(side_effect=httpx.ConnectError("connection refused"))

        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(TransportError) as exc_info:
                await rest_client.get_calendars(crm_ctx)

        assert exc_info.value.message.startswith("Failed to get calendars")


class TestFreeSlots:
    """Slot search range checks."""

    @pytest.mark.asyncio
    async def test_range_over_31_days_rejected_locally(self, rest_client, crm_ctx, async_client):
        """No request is sent for a range longer than a month."""
        mock_client = async_client()

        with patch("httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(InvalidRequest) as exc_info:
                await rest_client.get_free_slots(crm_ctx, "cal-1", START_MS, START_MS + 32 * DAY_MS)

        assert exc_info.value.message == "Date range cannot exceed 1 month"
        assert exc_info.value.status_code is None
        mock_client.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_inverted_range_rejected(self, rest_client, crm_ctx):
        with pytest.raises(InvalidRequest):
            await rest_client.get_free_slots(crm_ctx, "cal-1", START_MS, START_MS - DAY_MS)

    @pytest.mark.asyncio
    async def test_exactly_31_days_allowed(self, rest_client, crm_ctx, http_response, async_client):
        mock_client = async_client(http_response(200, {"slots": {}}))

        with patch("httpx.AsyncClient", return_value=mock_client):
            await rest_client.get_free_slots(crm_ctx, "cal-1", START_MS, START_MS + 31 * DAY_MS)

        params = mock_client.request.call_args.kwargs["params"]
        assert params["startDate"] == str(START_MS)
        assert params["timezone"] == "UTC"

    @pytest.mark.asyncio
    async def test_remote_400_message(self, rest_client, crm_ctx, http_response, async_client):
        with patch("httpx.AsyncClient", return_value=async_client(http_response(400, {"message": "bad"}))):
            with pytest.raises(InvalidRequest) as exc_info:
                await rest_client.get_free_slots(crm_ctx, "cal-1", START_MS, START_MS + DAY_MS)

        assert exc_info.value.status_code == 400
        assert "check the date range" in exc_info.value.message


class TestCreateAppointment:
    """Appointment booking."""

    @pytest.mark.asyncio
    async def test_defaults_applied(self, rest_client, crm_ctx, http_response, async_client):
        """Missing optional fields are filled and None values dropped."""
        mock_client = async_client(http_response(201, {"id": "appt-1"}))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await rest_client.create_appointment(
                crm_ctx,
                {"calendarId": "cal-1", "contactId": "c-1", "startTime": "2024-05-01T10:00:00Z", "endTime": None},
            )

        assert result == {"id": "appt-1"}
        call_args = mock_client.request.call_args
        assert call_args.args == ("POST", "https://crm.example.com/calendars/events/appointments")
        assert call_args.kwargs["headers"]["Version"] == APPOINTMENTS_API_VERSION

        body = call_args.kwargs["json"]
        assert body["locationId"] == "loc-123"
        assert body["title"] == "New Appointment"
        assert body["appointmentStatus"] == "new"
        assert body["toNotify"] is True
        assert "endTime" not in body

    @pytest.mark.asyncio
    async def test_explicit_values_kept(self, rest_client, crm_ctx, http_response, async_client):
        mock_client = async_client(http_response(200, {"id": "appt-2"}))

        with patch("httpx.AsyncClient", return_value=mock_client):
            await rest_client.create_appointment(
                crm_ctx,
                {"calendarId": "cal-1", "contactId": "c-1", "startTime": "t", "title": "Demo", "toNotify": False},
            )

        body = mock_client.request.call_args.kwargs["json"]
        assert body["title"] == "Demo"
        assert body["toNotify"] is False

    @pytest.mark.asyncio
    async def test_conflict(self, rest_client, crm_ctx, http_response, async_client):
        """409 means the slot is taken."""
        with patch("httpx.AsyncClient", return_value=async_client(http_response(409, {"message": "taken"}))):
            with pytest.raises(ConflictError) as exc_info:
                await rest_client.create_appointment(crm_ctx, {"calendarId": "cal-1", "contactId": "c-1"})

        assert "already be booked" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_calendar_or_contact(self, rest_client, crm_ctx, http_response, async_client):
        with patch("httpx.AsyncClient", return_value=async_client(http_response(404, {}))):
            with pytest.raises(NotFound) as exc_info:
                await rest_client.create_appointment(crm_ctx, {"calendarId": "cal-1", "contactId": "c-1"})

        assert exc_info.value.message.startswith("Calendar or contact not found")
