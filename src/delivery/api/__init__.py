"""Delivery domain API package."""

from delivery.api.errors import register_error_handlers
from delivery.api.routes import driver_router, geocoding_router, order_router, payment_router, venue_router

__all__ = [
    "order_router",
    "payment_router",
    "geocoding_router",
    "venue_router",
    "driver_router",
    "register_error_handlers",
]
