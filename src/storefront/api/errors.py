"""HTTP mapping for pipeline errors.

Protean's own handlers (``register_exception_handlers``) already turn
``ValidationError`` into 400 and ``ObjectNotFoundError`` into 404; the
handlers below add the fulfillment taxonomy on top. ``StateConflict`` is a
``ValidationError`` subclass, and Starlette resolves handlers by the most
specific class, so conflicts answer 409.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from storefront.errors import (
    CarrierRejected,
    InvalidDeliveryMethod,
    InvalidPayload,
    InvalidSignature,
    StateConflict,
    UnresolvableItem,
    UpstreamUnavailable,
)

STATUS_CODES = {
    InvalidSignature: 401,
    InvalidPayload: 400,
    UnresolvableItem: 422,
    InvalidDeliveryMethod: 422,
    CarrierRejected: 502,
    UpstreamUnavailable: 503,
}


def _handler(status_code: int):
    async def handle(request: Request, exc) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    return handle


async def _state_conflict(request: Request, exc: StateConflict) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": exc.message,
            "current_status": exc.current_status,
            "target_status": exc.target_status,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    for exc_class, status_code in STATUS_CODES.items():
        app.add_exception_handler(exc_class, _handler(status_code))
    app.add_exception_handler(StateConflict, _state_conflict)
