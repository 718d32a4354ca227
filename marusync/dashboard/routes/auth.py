"""
Admin login route.
"""

import logging

from fastapi import APIRouter

from ..auth import get_auth
from ..models import LoginRequest, LoginResponse, ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Admin login",
    description="Exchange the admin password for a bearer token.",
    responses={401: {"model": ErrorResponse, "description": "Wrong password"}},
)
async def login(body: LoginRequest):
    """Log in as admin."""
    auth = get_auth()
    token = auth.login(body.password)
    logger.info("Admin logged in")
    return LoginResponse(token=token, expires_in=auth.expires_in)
