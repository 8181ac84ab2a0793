"""Delivery domain API package."""

from delivery.api.errors import register_delivery_exception_handlers
from delivery.api.routes import delivery_router, settings_router

__all__ = ["delivery_router", "settings_router", "register_delivery_exception_handlers"]
