"""Translate delivery domain errors into HTTP responses.

Protean's stock handlers cover plain validation errors. The delivery
taxonomy refines them: lifecycle violations are 422, assignment failures
are conflicts with the restaurant's configuration, and provider failures
are upstream errors.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError
from protean.integrations.fastapi import register_exception_handlers

from delivery.delivery.exceptions import AssignmentError, InvalidStateError, ProviderError

logger = structlog.get_logger(__name__)


async def _invalid_state(request: Request, exc: InvalidStateError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"error": exc.messages})


async def _assignment_failed(request: Request, exc: AssignmentError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": exc.message})


async def _not_found(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


async def _provider_failed(request: Request, exc: ProviderError) -> JSONResponse:
    logger.error("Provider call failed", path=request.url.path, provider=exc.provider, error=exc.message)
    return JSONResponse(status_code=502, content={"error": exc.message, "provider": exc.provider})


def register_delivery_exception_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(InvalidStateError, _invalid_state)
    app.add_exception_handler(AssignmentError, _assignment_failed)
    app.add_exception_handler(ObjectNotFoundError, _not_found)
    app.add_exception_handler(ProviderError, _provider_failed)
