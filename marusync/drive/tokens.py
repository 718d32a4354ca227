"""
Token lifecycle management for linked Drive accounts.

``TokenManager`` decides when a credential needs refreshing and performs
the refresh without touching storage. ``AccountCredentials`` pairs it with
the account repository so every refresh is persisted immediately.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from ..data.base import AccountRepository
from ..exceptions import (
    CredentialRefreshFailed, RemoteAuthExpired, TokenDecryptionFailed,
    create_error_context, handle_unexpected_error
)
from ..models.account import Account
from ..models.base import utc_now
from .crypto import TokenCipher
from .oauth import GoogleOAuthFlow

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REFRESH_MARGIN = timedelta(minutes=15)


class TokenRefreshStatus(Enum):
    """Outcome of refreshing one account during a sweep."""
    REFRESHED = "refreshed"
    VALID = "valid"
    SKIPPED = "skipped"
    FAILED = "failed"
    ERROR = "error"


@dataclass
class TokenRefreshOutcome:
    """Per-account result of a refresh sweep."""
    account_id: str
    email: str
    status: TokenRefreshStatus
    message: str = ""
    token_expires_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "email": self.email,
            "status": self.status.value,
            "message": self.message,
            "token_expires_at": self.token_expires_at.isoformat() if self.token_expires_at else None,
        }


class TokenManager:
    """Decides when credentials need refreshing and refreshes them."""

    def __init__(
        self,
        oauth: GoogleOAuthFlow,
        cipher: TokenCipher,
        refresh_margin: timedelta = DEFAULT_REFRESH_MARGIN
    ):
        self.oauth = oauth
        self.cipher = cipher
        self.refresh_margin = refresh_margin

    def needs_refresh(self, account: Account, now: Optional[datetime] = None) -> bool:
        """True if no expiry is known or the token expires within the margin.

        The boundary is inclusive: a token expiring exactly ``refresh_margin``
        from now is refreshed.
        """
        if account.token_expires_at is None:
            return True
        remaining = account.token_expires_at - (now or utc_now())
        return remaining <= self.refresh_margin

    def access_token(self, account: Account) -> str:
        """Plaintext access token of an account."""
        return self.cipher.decrypt(account.access_token)

    async def refresh(self, account: Account) -> Account:
        """
        Exchange the stored refresh token for a new access token.

        Args:
            account: Account whose credential should be renewed

        Returns:
            A copy of the account carrying the new encrypted credential.
            The caller persists it.

        Raises:
            CredentialRefreshFailed: Missing, unreadable or rejected refresh token
            RemoteOperationFailed: Token endpoint unavailable
        """
        context = create_error_context(operation="refresh_token", account_id=account.id)

        if not account.refresh_token:
            raise CredentialRefreshFailed(
                f"Account {account.email} has no refresh token",
                context=context
            )

        try:
            refresh_token = self.cipher.decrypt(account.refresh_token)
        except TokenDecryptionFailed as e:
            raise CredentialRefreshFailed(
                f"Refresh token for {account.email} is unreadable",
                context=context,
                cause=e
            )

        try:
            tokens = await self.oauth.refresh_access_token(refresh_token)
        except CredentialRefreshFailed as e:
            e.context = context
            raise

        new_refresh_token = account.refresh_token
        if tokens.refresh_token and tokens.refresh_token != refresh_token:
            new_refresh_token = self.cipher.encrypt(tokens.refresh_token)

        return dataclasses.replace(
            account,
            access_token=self.cipher.encrypt(tokens.access_token),
            refresh_token=new_refresh_token,
            token_expires_at=tokens.expires_at,
            needs_reauth=False,
        )

    async def validate(self, account: Account) -> bool:
        """Ask Google whether the account's access token is currently accepted."""
        try:
            token = self.access_token(account)
        except TokenDecryptionFailed:
            return False
        return await self.oauth.validate_access_token(token)


class AccountCredentials:
    """Hands out usable access tokens and persists every refresh."""

    def __init__(self, tokens: TokenManager, accounts: AccountRepository):
        self.tokens = tokens
        self.accounts = accounts
        # Latest refreshed copy per account, so stale callers do not refresh again
        self._fresh: Dict[str, Account] = {}

    def _latest(self, account: Account) -> Account:
        cached = self._fresh.get(account.id)
        if cached is None or cached.access_token == account.access_token:
            return account
        if (cached.token_expires_at or datetime.min) > (account.token_expires_at or datetime.min):
            return cached
        return account

    def forget(self, account_id: str) -> None:
        """Drop the cached credential of an account, e.g. after it was re-linked."""
        self._fresh.pop(account_id, None)

    async def refresh_and_persist(self, account: Account) -> Account:
        """Refresh an account's credential and write it back.

        On ``CredentialRefreshFailed`` the account is marked as needing
        re-authorization before the error propagates.
        """
        try:
            refreshed = await self.tokens.refresh(account)
        except CredentialRefreshFailed as e:
            logger.warning(f"Token refresh failed for {account.email}: {e.message}")
            await self.accounts.mark_needs_reauth(account.id, True)
            raise

        self._fresh[account.id] = refreshed
        await self.accounts.update_credentials(
            account.id,
            refreshed.access_token,
            refreshed.token_expires_at,
            refreshed.refresh_token if refreshed.refresh_token != account.refresh_token else None,
        )
        logger.info(f"Refreshed token for {account.email}, expires {refreshed.token_expires_at}")
        return refreshed

    async def usable_token(self, account: Account, force: bool = False) -> Tuple[Account, str]:
        """
        Return a credential usable for at least the refresh margin.

        Args:
            account: The account to use
            force: Refresh even if the current token is still fresh

        Returns:
            Tuple of (possibly refreshed account, plaintext access token)

        Raises:
            CredentialRefreshFailed: The account needs re-authorization
        """
        account = self._latest(account)
        if force or self.tokens.needs_refresh(account):
            account = await self.refresh_and_persist(account)

        try:
            return account, self.tokens.access_token(account)
        except TokenDecryptionFailed as e:
            await self.accounts.mark_needs_reauth(account.id, True)
            raise CredentialRefreshFailed(
                f"Access token for {account.email} is unreadable",
                context=create_error_context(operation="usable_token", account_id=account.id),
                cause=e
            )

    async def call_with_retry(
        self,
        account: Account,
        operation: Callable[[str], Awaitable[T]]
    ) -> T:
        """
        Run a remote operation, refreshing and retrying once on an auth error.

        Args:
            account: Account whose credential the operation uses
            operation: Coroutine function taking a plaintext access token

        Raises:
            CredentialRefreshFailed: If a refresh was needed and failed
            RemoteOperationFailed: If the operation fails, including a second
                auth failure after the retry
        """
        account, token = await self.usable_token(account)
        try:
            return await operation(token)
        except RemoteAuthExpired:
            logger.info(f"Access token for {account.email} was rejected, refreshing and retrying")
            account = await self.refresh_and_persist(account)
            return await operation(self.tokens.access_token(account))

    async def refresh_all(self) -> List[TokenRefreshOutcome]:
        """Refresh every active account whose token is near expiry.

        Accounts are processed concurrently; one failure never affects another.
        """
        accounts = await self.accounts.list_accounts()
        results = await asyncio.gather(
            *[self._refresh_one(account) for account in accounts],
            return_exceptions=True
        )

        outcomes = []
        for account, result in zip(accounts, results):
            if isinstance(result, BaseException):
                error = handle_unexpected_error(result)
                logger.error(f"Token refresh for {account.email} errored: {error.to_log_string()}")
                outcomes.append(TokenRefreshOutcome(
                    account_id=account.id,
                    email=account.email,
                    status=TokenRefreshStatus.ERROR,
                    message=str(result),
                ))
            else:
                outcomes.append(result)

        refreshed = sum(1 for o in outcomes if o.status == TokenRefreshStatus.REFRESHED)
        failed = sum(1 for o in outcomes if o.status in (TokenRefreshStatus.FAILED, TokenRefreshStatus.ERROR))
        logger.info(f"Token refresh sweep: {refreshed} refreshed, {failed} failed, {len(outcomes)} accounts")
        return outcomes

    async def _refresh_one(self, account: Account) -> TokenRefreshOutcome:
        if not account.is_active:
            return TokenRefreshOutcome(
                account_id=account.id,
                email=account.email,
                status=TokenRefreshStatus.SKIPPED,
                message="Account is inactive",
                token_expires_at=account.token_expires_at,
            )

        if not self.tokens.needs_refresh(account):
            return TokenRefreshOutcome(
                account_id=account.id,
                email=account.email,
                status=TokenRefreshStatus.VALID,
                message="Token is valid",
                token_expires_at=account.token_expires_at,
            )

        try:
            refreshed = await self.refresh_and_persist(account)
        except CredentialRefreshFailed as e:
            return TokenRefreshOutcome(
                account_id=account.id,
                email=account.email,
                status=TokenRefreshStatus.FAILED,
                message=f"Re-authorization required: {e.message}",
                token_expires_at=account.token_expires_at,
            )

        return TokenRefreshOutcome(
            account_id=account.id,
            email=account.email,
            status=TokenRefreshStatus.REFRESHED,
            message="Token refreshed",
            token_expires_at=refreshed.token_expires_at,
        )
