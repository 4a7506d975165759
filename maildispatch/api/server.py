"""FastAPI application for the email dispatch service.

Endpoints:

- ``POST /send-email``        submit ``{id, to, subject, body}`` and wait for
                              the outcome
- ``GET /status/{email_id}``  recorded outcome of a message
- ``GET /health``             breaker, queue and ledger state
- ``GET /``                   liveness text

The client key used for rate limiting is the ``X-Client-Key`` header when
present, otherwise the peer address.

Example::

    core = DispatchCore.from_settings(get_settings())
    app = create_app(core)
    uvicorn.run(app, host="0.0.0.0", port=2999)
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from maildispatch.core import DispatchCore
from maildispatch.models import REQUIRED_FIELDS, Message
from maildispatch.outcome import OutcomeStatus

logger = logging.getLogger(__name__)

CLIENT_KEY_HEADER = "X-Client-Key"
MISSING_FIELDS_ERROR = f"Missing required email fields: {', '.join(REQUIRED_FIELDS)}"


def client_key_for(request: Request) -> str:
    """Rate-limit key: explicit header, then peer address."""
    key = request.headers.get(CLIENT_KEY_HEADER)
    if key:
        return key
    client = request.client
    return client.host if client else "unknown"


def create_app(core: DispatchCore, manage_lifecycle: bool = True) -> FastAPI:
    """Create the FastAPI application around *core*.

    Parameters
    ----------
    core:
        Dispatch core serving every request.
    manage_lifecycle:
        Start the core on application startup and stop it on shutdown.
        Disable when the caller owns the core's lifecycle.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await core.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await core.stop()

    api = FastAPI(title="Email Dispatch Service", lifespan=lifespan)
    api.state.core = core

    @api.get("/", response_class=PlainTextResponse)
    async def root():
        return "Email service running"

    @api.get("/health")
    async def health():
        return core.health()

    @api.post("/send-email")
    async def send_email(request: Request):
        try:
            payload = await request.json()
            message = Message.model_validate(payload)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as exc:
            logger.info(f"Rejected submission: {exc}")
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": MISSING_FIELDS_ERROR},
            )

        try:
            outcome = await core.send(message, client_key_for(request))
        except Exception as exc:
            logger.error(f"Dispatch failed for email id={message.id}: {exc}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal error while dispatching email"},
            )

        if outcome.status is OutcomeStatus.RATE_LIMITED:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": "Rate limit exceeded"},
            )
        return {"emailId": message.id, "status": outcome.to_dict()}

    @api.get("/status/{email_id}")
    async def email_status(email_id: str):
        outcome = core.status(email_id)
        if outcome is None:
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "Email ID not found"},
            )
        return {"emailId": email_id, "status": outcome.to_dict()}

    return api
