"""
Admin and download HTTP API.
"""

from .auth import AdminAuth, get_current_admin, set_auth_instance, get_auth
from .router import create_api_router, bind_services

__all__ = [
    "AdminAuth",
    "get_current_admin",
    "set_auth_instance",
    "get_auth",
    "create_api_router",
    "bind_services",
]
