"""
Google OAuth 2.0 flow for linking Drive accounts.

Covers the authorization-code handshake, refresh-token exchange, token
validation and revocation against Google's OAuth endpoints.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from ..config.settings import OAuthConfig
from ..exceptions import (
    ConfigurationError, CredentialRefreshFailed, OAuthStateInvalid,
    RemoteOperationFailed, create_error_context
)

logger = logging.getLogger(__name__)


@dataclass
class OAuthTokens:
    """Plaintext tokens returned by Google."""
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None
    scope: str = ""

    @classmethod
    def from_response(cls, data: Dict[str, Any], refresh_token: Optional[str] = None) -> "OAuthTokens":
        expires_at = None
        if "expires_in" in data:
            expires_at = datetime.utcnow() + timedelta(seconds=int(data["expires_in"]))

        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", refresh_token),
            token_type=data.get("token_type", "Bearer"),
            expires_at=expires_at,
            scope=data.get("scope", ""),
        )


@dataclass
class GoogleUserInfo:
    """Identity reported by the userinfo endpoint."""
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


@dataclass
class OAuthState:
    """Pending authorization request, used for CSRF protection."""
    state_token: str
    account_name: str
    created_at: datetime = field(default_factory=datetime.utcnow)

    def is_expired(self) -> bool:
        """State tokens expire after 10 minutes."""
        return datetime.utcnow() > (self.created_at + timedelta(minutes=10))


class GoogleOAuthFlow:
    """
    Handles Google OAuth 2.0 flow for Drive access.
    """

    GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
    GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
    GOOGLE_TOKENINFO_URL = "https://www.googleapis.com/oauth2/v3/tokeninfo"
    GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
    SCOPES = [
        "https://www.googleapis.com/auth/drive.file",  # Files created by this app only
        "https://www.googleapis.com/auth/userinfo.profile",
        "https://www.googleapis.com/auth/userinfo.email",
    ]

    def __init__(self, config: OAuthConfig, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize OAuth flow.

        Args:
            config: OAuth client settings
            http_client: Shared HTTP client; one is created lazily if omitted
        """
        self.config = config
        self._http_client = http_client
        self._owns_client = http_client is None
        self._pending_states: Dict[str, OAuthState] = {}

    def is_configured(self) -> bool:
        """Check if OAuth is configured."""
        return self.config.is_configured()

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this flow created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def generate_auth_url(self, account_name: str) -> Tuple[str, str]:
        """
        Generate the Google consent URL for linking an account.

        Args:
            account_name: Display name to give the account once linked

        Returns:
            Tuple of (auth_url, state_token)

        Raises:
            ConfigurationError: If the OAuth client is not configured
        """
        if not self.is_configured():
            raise ConfigurationError(
                message="Google OAuth client is not configured",
                error_code="OAUTH_NOT_CONFIGURED",
                context=create_error_context(operation="generate_auth_url"),
                user_message="Google OAuth is not configured on this server."
            )

        state_token = secrets.token_urlsafe(32)
        self._pending_states[state_token] = OAuthState(
            state_token=state_token,
            account_name=account_name,
        )
        self._cleanup_expired_states()

        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",  # Always show consent to get refresh token
            "state": state_token,
        }

        return f"{self.GOOGLE_AUTH_URL}?{urlencode(params)}", state_token

    def validate_state(self, state_token: str) -> OAuthState:
        """
        Consume a state token from the callback.

        Raises:
            OAuthStateInvalid: If the state is unknown or expired
        """
        state = self._pending_states.pop(state_token, None)
        if state is None or state.is_expired():
            raise OAuthStateInvalid(context=create_error_context(operation="oauth_callback"))
        return state

    def _cleanup_expired_states(self) -> None:
        expired = [token for token, state in self._pending_states.items() if state.is_expired()]
        for token in expired:
            del self._pending_states[token]

    async def exchange_code(self, code: str) -> OAuthTokens:
        """
        Exchange an authorization code for tokens.

        Raises:
            RemoteOperationFailed: If Google rejects the exchange
        """
        client = await self._get_http_client()
        try:
            response = await client.post(
                self.GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.config.redirect_uri,
                },
            )
        except httpx.HTTPError as e:
            raise RemoteOperationFailed(
                f"Token exchange request failed: {e}",
                context=create_error_context(operation="exchange_code"),
                cause=e
            )

        if response.status_code != 200:
            raise RemoteOperationFailed(
                f"Token exchange failed: {response.status_code} {response.text}",
                http_status=response.status_code,
                context=create_error_context(operation="exchange_code"),
                user_message="Google rejected the authorization code. Please try again."
            )

        return OAuthTokens.from_response(response.json())

    async def refresh_access_token(self, refresh_token: Optional[str]) -> OAuthTokens:
        """
        Exchange a refresh token for a new access token.

        Args:
            refresh_token: Plaintext refresh token

        Returns:
            New tokens; the refresh token is carried over if Google omits it

        Raises:
            CredentialRefreshFailed: If there is no refresh token or Google rejects it
            RemoteOperationFailed: If the token endpoint is unreachable or errors
        """
        if not refresh_token:
            raise CredentialRefreshFailed(
                "No refresh token stored",
                context=create_error_context(operation="refresh_access_token")
            )

        client = await self._get_http_client()
        try:
            response = await client.post(
                self.GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            raise RemoteOperationFailed(
                f"Token refresh request failed: {e}",
                context=create_error_context(operation="refresh_access_token"),
                cause=e
            )

        if response.status_code in (400, 401):
            # invalid_grant: revoked or expired refresh token
            raise CredentialRefreshFailed(
                f"Refresh token rejected: {response.status_code} {response.text}",
                context=create_error_context(operation="refresh_access_token")
            )
        if response.status_code != 200:
            raise RemoteOperationFailed(
                f"Token refresh failed: {response.status_code}",
                http_status=response.status_code,
                context=create_error_context(operation="refresh_access_token")
            )

        return OAuthTokens.from_response(response.json(), refresh_token=refresh_token)

    async def validate_access_token(self, access_token: str) -> bool:
        """Check whether Google currently accepts an access token."""
        if not access_token:
            return False

        client = await self._get_http_client()
        try:
            response = await client.get(
                self.GOOGLE_TOKENINFO_URL,
                params={"access_token": access_token},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token validation request failed: {e}")
            return False

        return response.status_code == 200

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        """
        Fetch the identity behind an access token.

        Raises:
            RemoteOperationFailed: If the userinfo call fails
        """
        client = await self._get_http_client()
        try:
            response = await client.get(
                self.GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise RemoteOperationFailed(
                f"Userinfo request failed: {e}",
                context=create_error_context(operation="get_user_info"),
                cause=e
            )

        if response.status_code != 200:
            raise RemoteOperationFailed(
                f"Userinfo request failed: {response.status_code}",
                http_status=response.status_code,
                context=create_error_context(operation="get_user_info")
            )

        data = response.json()
        if not data.get("email"):
            raise RemoteOperationFailed(
                "Userinfo response carried no email",
                http_status=response.status_code,
                context=create_error_context(operation="get_user_info")
            )
        return GoogleUserInfo(
            email=data["email"],
            name=data.get("name"),
            picture=data.get("picture"),
        )

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke a token at Google. Best effort.

        Returns:
            True if Google confirmed the revocation
        """
        if not token:
            return False

        client = await self._get_http_client()
        try:
            response = await client.post(
                self.GOOGLE_REVOKE_URL,
                params={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token revocation request failed: {e}")
            return False

        if response.status_code != 200:
            logger.warning(f"Token revocation returned {response.status_code}")
            return False
        return True
