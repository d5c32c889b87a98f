"""Pytest configuration and fixtures."""

import pytest
import os
from dotenv import load_dotenv

# Load test environment variables
load_dotenv()

# Set test environment before any crm_gateway module reads its config
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("GROQ_API_KEY", "test-groq-key")
os.environ.setdefault("GHL_PIT_TOKEN", "test-pit-token")
os.environ.setdefault("GHL_LOCATION_ID", "loc-123")
os.environ.setdefault("LLM_MAX_RETRIES", "0")


@pytest.fixture
def crm_ctx():
    """CRM context pointing at fake endpoints."""
    from crm_gateway.models.context import CRMContext

    return CRMContext(
        access_token="test-pit-token",
        location_id="loc-123",
        default_email_from="sender@example.com",
        mcp_endpoint="https://mcp.example.com/mcp/",
        api_base_url="https://crm.example.com",
    )


def make_http_response(status_code=200, json_body=None, text=None, content_type="application/json"):
    """Build a mock httpx.Response."""
    from unittest.mock import MagicMock

    response = MagicMock()
    response.status_code = status_code
    response.headers = {"content-type": content_type}
    if json_body is not None:
        response.json.return_value = json_body
        response.text = text if text is not None else ""
    else:
        response.json.side_effect = ValueError("No JSON")
        response.text = text or ""
    return response


def make_async_client(response=None, side_effect=None):
    """Build a mock httpx.AsyncClient usable as an async context manager."""
    from unittest.mock import AsyncMock

    client = AsyncMock()
    client.post = AsyncMock(return_value=response, side_effect=side_effect)
    client.request = AsyncMock(return_value=response, side_effect=side_effect)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


@pytest.fixture
def http_response():
    """Factory for mock httpx responses."""
    return make_http_response


@pytest.fixture
def async_client():
    """Factory for mock httpx.AsyncClient instances."""
    return make_async_client
