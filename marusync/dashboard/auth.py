"""
Admin authentication with a shared password and JWT bearer tokens.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt, JWTError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

logger = logging.getLogger(__name__)

ADMIN_SUBJECT = "admin"


class AdminAuth:
    """Issues and verifies admin bearer tokens."""

    def __init__(
        self,
        password: Optional[str],
        jwt_secret: str,
        jwt_expiration_hours: int = 24,
    ):
        """Initialize admin auth.

        Args:
            password: Admin password; login is disabled when empty
            jwt_secret: Secret for JWT signing
            jwt_expiration_hours: JWT token expiration in hours
        """
        self.password = password
        self.jwt_secret = jwt_secret
        self.jwt_expiration_hours = jwt_expiration_hours

    @property
    def expires_in(self) -> int:
        return self.jwt_expiration_hours * 3600

    def login(self, password: str) -> str:
        """Exchange the admin password for a JWT.

        Raises:
            HTTPException: If login is disabled or the password is wrong
        """
        if not self.password:
            raise HTTPException(
                status_code=503,
                detail={"code": "LOGIN_DISABLED", "message": "Admin password is not configured"},
            )

        if not secrets.compare_digest(password.encode(), self.password.encode()):
            logger.warning("Rejected admin login with wrong password")
            raise HTTPException(
                status_code=401,
                detail={"code": "INVALID_CREDENTIALS", "message": "Invalid password"},
            )

        return self.create_jwt()

    def create_jwt(self, subject: str = ADMIN_SUBJECT) -> str:
        now = datetime.utcnow()
        payload = {
            "sub": subject,
            "role": "admin",
            "iat": now,
            "exp": now + timedelta(hours=self.jwt_expiration_hours),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm="HS256")

    def verify_jwt(self, token: str) -> dict:
        """Verify and decode JWT token.

        Args:
            token: JWT token string

        Returns:
            Decoded token payload

        Raises:
            HTTPException: If token is invalid or expired
        """
        try:
            payload = jwt.decode(token, self.jwt_secret, algorithms=["HS256"])
        except JWTError as e:
            if "expired" in str(e).lower():
                raise HTTPException(
                    status_code=401,
                    detail={"code": "TOKEN_EXPIRED", "message": "Token has expired"},
                )
            raise HTTPException(
                status_code=401,
                detail={"code": "INVALID_TOKEN", "message": "Invalid token"},
            )

        if payload.get("role") != "admin":
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN", "message": "Admin access required"},
            )
        return payload


# Security scheme
security = HTTPBearer(auto_error=False)

# Global auth instance (set by router)
_auth_instance: Optional[AdminAuth] = None


def set_auth_instance(auth: Optional[AdminAuth]):
    """Set the global auth instance."""
    global _auth_instance
    _auth_instance = auth


def get_auth() -> AdminAuth:
    """Get the auth instance."""
    if _auth_instance is None:
        raise RuntimeError("Auth not initialized")
    return _auth_instance


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """FastAPI dependency requiring an admin bearer token.

    Returns:
        JWT payload

    Raises:
        HTTPException: If not authenticated
    """
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "Not authenticated"},
        )

    return get_auth().verify_jwt(credentials.credentials)
