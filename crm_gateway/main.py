"""FastAPI gateway main application."""

import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm_gateway.infra.config import config


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    # Startup
    from crm_gateway.infra.logging import app_logger
    from crm_gateway.services.tool_catalog import get_tool_catalog

    catalog = get_tool_catalog()
    app_logger.info(f"Application starting up with {len(catalog)} tools")

    missing = config.missing_credentials()
    if missing:
        app_logger.warning(f"Missing credentials: {', '.join(missing)}. Chat requests will fail until they are set.")

    yield

    # Shutdown
    app_logger.info("Application shutting down")


app = FastAPI(
    title="CRM Tool Gateway API",
    description="""
    Conversational gateway that lets a language model operate a CRM through a fixed
    catalog of tools (contacts, conversations, opportunities, calendars, locations,
    payments).

    ## Features

    - **Chat**: One round per request; the model may call CRM tools, every call is
      validated before execution and failures are explained in plain language
    - **Streaming chat**: The same round as Server-Sent Events
    - **Tools**: Inspect the fixed catalog or discover the remote server's tools
    """,
    version="1.0.0",
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Chat",
            "description": "Send a message and receive the assistant's reply",
        },
        {
            "name": "Tools",
            "description": "Tool catalog and remote tool discovery",
        },
        {
            "name": "Health",
            "description": "Health check and monitoring endpoints",
        },
    ],
)

# Setup middleware
from crm_gateway.infra.middleware import RequestIDMiddleware, RequestLoggingMiddleware, setup_cors
from crm_gateway.infra.timeout import TimeoutMiddleware, REQUEST_TIMEOUT

app.add_middleware(RequestIDMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TimeoutMiddleware, timeout=REQUEST_TIMEOUT)
setup_cors(app)

# Import and register routers
from crm_gateway.api.routers import chat, tools, health

app.include_router(chat.router)
app.include_router(tools.router)
app.include_router(health.router)

MAX_REQUEST_SIZE = 1024 * 1024  # 1MB


@app.middleware("http")
async def request_size_limit_middleware(request: Request, call_next):
    """Enforce request size limits."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE:
        return JSONResponse(
            status_code=413,
            content={"success": False, "error": f"Request too large. Maximum size: {MAX_REQUEST_SIZE} bytes"},
        )
    return await call_next(request)


# Error handlers share the chat error body: {"success": false, "error": ...}
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies (e.g. conversationHistory that is not a list)."""
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Invalid request body",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Last resort: log with an error id, never echo the exception."""
    error_id = str(uuid.uuid4())
    from crm_gateway.infra.logging import app_logger
    app_logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Something went wrong while processing your request. Please try again.",
            "error_id": error_id,
        },
    )


def main():
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=config.PORT,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )


if __name__ == "__main__":
    main()
