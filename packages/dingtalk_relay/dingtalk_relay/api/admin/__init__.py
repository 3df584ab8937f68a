"""Admin API endpoints."""

from .relay_api import create_admin_router, create_control_router

__all__ = ["create_admin_router", "create_control_router"]
