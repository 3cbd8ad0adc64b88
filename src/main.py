"""Calendar Assist Gateway — FastAPI application entry point.

A single chat endpoint that forwards messages to the Anthropic Messages
API. Requests on the shared operator key are rate limited per client;
callers who bring their own key are not.
"""

import json
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from src.logging.audit import (
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from src.providers.registry import close_all_providers
from src.proxy.errors import ClientInputError, GatewayError, TransportFailure
from src.proxy.handler import get_gateway_handler

VERSION = "1.0.0"

CHAT_PATH = "/api/chat"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    get_audit_logger().info("Gateway started")
    yield
    await close_all_providers()
    get_audit_logger().info("Gateway stopped")


app = FastAPI(
    title="Calendar Assist Gateway",
    description="Rate-limited proxy for calendar event extraction via Claude",
    version=VERSION,
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


async def chat(request: Request):
    """Chat endpoint.

    OPTIONS -> CORS preflight, POST -> gateway pipeline, anything else -> 405.
    """
    rid = generate_request_id()
    request_id_var.set(rid)
    headers = {**CORS_HEADERS, "X-Request-Id": rid}

    if request.method == "OPTIONS":
        return Response(status_code=200, headers=headers)

    if request.method != "POST":
        return JSONResponse(
            status_code=405,
            content={"error": "Method not allowed"},
            headers=headers,
        )

    try:
        body = await _read_json(request)
        result = await get_gateway_handler().handle(body, request.headers)
    except GatewayError as e:
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_body(),
            headers={**headers, **e.headers},
        )
    except Exception:
        get_audit_logger().exception("Unhandled error in chat pipeline")
        error = TransportFailure("Failed to process request")
        return JSONResponse(
            status_code=error.status_code,
            content=error.to_body(),
            headers=headers,
        )

    return JSONResponse(
        status_code=result.status_code,
        content=result.body,
        headers={**headers, **result.headers},
    )


# No method list: every verb reaches chat(), including ones Starlette does not know
app.add_route(CHAT_PATH, chat, methods=None, include_in_schema=False)


async def _read_json(request: Request) -> object:
    raw = await request.body()
    try:
        return json.loads(raw) if raw else None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ClientInputError("Messages are required") from e
