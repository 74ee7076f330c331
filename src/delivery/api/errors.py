"""HTTP translation of the delivery error taxonomy.

Protean's own handlers cover plain ValidationError (400) and
ObjectNotFoundError (404); the domain's more specific rejections get
their own status codes on top.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from delivery.errors import (
    AlreadyRated,
    ConcurrentModification,
    DriverUnavailable,
    InvalidItems,
    InvalidTransition,
    NotCancellable,
    NotDelivered,
    OrderNotReady,
    OutOfDeliveryRange,
    PaymentRequired,
    ServiceUnavailable,
    Unauthorized,
    VenueUnavailable,
)

_STATUS_CODES = {
    Unauthorized: 403,
    PaymentRequired: 402,
    InvalidTransition: 409,
    OrderNotReady: 409,
    DriverUnavailable: 409,
    NotCancellable: 409,
    NotDelivered: 409,
    AlreadyRated: 409,
    VenueUnavailable: 409,
    OutOfDeliveryRange: 422,
    InvalidItems: 422,
}


def _rejection_handler(status_code: int):
    async def handler(request: Request, exc) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "messages": exc.messages},
        )

    return handler


async def _concurrent_modification_handler(request: Request, exc: ConcurrentModification) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": "ConcurrentModification", "messages": {"record": [exc.detail]}},
    )


async def _service_unavailable_handler(request: Request, exc: ServiceUnavailable) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": "ServiceUnavailable", "messages": {exc.service: [exc.detail]}},
        headers={"Retry-After": "1"},
    )


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    for error_class, status_code in _STATUS_CODES.items():
        app.add_exception_handler(error_class, _rejection_handler(status_code))
    app.add_exception_handler(ConcurrentModification, _concurrent_modification_handler)
    app.add_exception_handler(ServiceUnavailable, _service_unavailable_handler)
