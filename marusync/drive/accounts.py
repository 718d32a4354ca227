"""
Administration of linked Drive accounts.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from ..data.base import AccountRepository, FileRecordRepository
from ..exceptions import (
    AccountNotFound, AccountStateError, DefaultChangeRequiresSync,
    TokenDecryptionFailed, create_error_context
)
from ..models.account import Account
from .client import DriveClient
from .crypto import TokenCipher
from .oauth import GoogleOAuthFlow, GoogleUserInfo, OAuthTokens
from .tokens import AccountCredentials

logger = logging.getLogger(__name__)


@dataclass
class LinkResult:
    """Outcome of completing the OAuth handshake."""
    account: Account
    created: bool


class AccountService:
    """Links, re-links, activates and removes Drive accounts."""

    def __init__(
        self,
        accounts: AccountRepository,
        files: FileRecordRepository,
        oauth: GoogleOAuthFlow,
        cipher: TokenCipher,
        credentials: AccountCredentials,
        client: DriveClient
    ):
        self.accounts = accounts
        self.files = files
        self.oauth = oauth
        self.cipher = cipher
        self.credentials = credentials
        self.client = client

    async def _require(self, account_id: str) -> Account:
        account = await self.accounts.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id, context=create_error_context(operation="get_account"))
        return account

    async def list_accounts(self) -> List[Account]:
        return await self.accounts.list_accounts()

    # =========================================================================
    # Linking
    # =========================================================================

    def authorization_url(self, account_name: str) -> str:
        """Consent URL for linking a new account under a display name."""
        url, _ = self.oauth.generate_auth_url(account_name)
        return url

    async def reauthorization_url(self, account_id: str) -> str:
        """Consent URL for renewing an existing account's credentials."""
        account = await self._require(account_id)
        url, _ = self.oauth.generate_auth_url(account.account_name)
        return url

    async def complete_authorization(self, code: str, state_token: str) -> LinkResult:
        """
        Finish the OAuth handshake started by ``authorization_url``.

        Raises:
            OAuthStateInvalid: Unknown or expired state
            RemoteOperationFailed: Code exchange or identity lookup failed
        """
        state = self.oauth.validate_state(state_token)
        tokens = await self.oauth.exchange_code(code)
        user = await self.oauth.get_user_info(tokens.access_token)
        return await self.link_account(state.account_name, user, tokens)

    async def link_account(self, account_name: str, user: GoogleUserInfo, tokens: OAuthTokens) -> LinkResult:
        """
        Store credentials for a Google identity.

        Linking an email that is already known updates that account's
        credentials instead of creating a second row.
        """
        existing = await self.accounts.get_account_by_email(user.email)

        if existing is not None:
            existing.access_token = self.cipher.encrypt(tokens.access_token)
            if tokens.refresh_token:
                existing.refresh_token = self.cipher.encrypt(tokens.refresh_token)
            if tokens.expires_at:
                existing.token_expires_at = tokens.expires_at
            if user.picture:
                existing.profile_picture = user.picture
            existing.needs_reauth = False
            await self.accounts.save_account(existing)
            self.credentials.forget(existing.id)
            logger.info(f"Updated credentials for existing account {existing.email}")
            return LinkResult(existing, created=False)

        account = Account(
            account_name=account_name,
            email=user.email,
            access_token=self.cipher.encrypt(tokens.access_token),
            refresh_token=self.cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None,
            token_expires_at=tokens.expires_at,
            profile_picture=user.picture,
        )
        await self.accounts.save_account(account)
        logger.info(f"Linked new account {account.email} as '{account_name}'")
        return LinkResult(account, created=True)

    # =========================================================================
    # State changes
    # =========================================================================

    async def set_default(self, account_id: str, force: bool = False) -> Account:
        """
        Make an account the default account.

        Raises:
            DefaultChangeRequiresSync: Another default exists and ``force`` is not set
            AccountStateError: The account is inactive
        """
        account = await self._require(account_id)
        if not account.is_active:
            raise AccountStateError(
                f"Account {account.email} is inactive",
                error_code="ACCOUNT_INACTIVE",
                context=create_error_context(operation="set_default", account_id=account_id),
                user_message="Activate the account before making it the default."
            )

        current = await self.accounts.get_default_account()
        if current is not None and current.id != account.id and not force:
            file_count = await self.files.count_by_account(current.id)
            raise DefaultChangeRequiresSync(
                current.email,
                file_count,
                context=create_error_context(operation="set_default", account_id=account_id)
            )

        await self.accounts.set_default_account(account.id)
        account.is_default = True
        logger.info(
            f"Default account is now {account.email}"
            + (f" (forced, previous {current.email})" if force and current and current.id != account.id else "")
        )
        return account

    async def activate(self, account_id: str) -> Account:
        account = await self._require(account_id)
        await self.accounts.set_active(account.id, True)
        account.is_active = True
        logger.info(f"Activated account {account.email}")
        return account

    async def deactivate(self, account_id: str) -> Account:
        """
        Exclude an account from replication, reconciliation and fallback.

        Raises:
            AccountStateError: The account is the default account
        """
        account = await self._require(account_id)
        if account.is_default:
            raise AccountStateError(
                f"Default account {account.email} cannot be deactivated",
                error_code="DEFAULT_ACCOUNT_PROTECTED",
                context=create_error_context(operation="deactivate", account_id=account_id),
                user_message="The default account cannot be deactivated. Choose another default first."
            )
        await self.accounts.set_active(account.id, False)
        account.is_active = False
        logger.info(f"Deactivated account {account.email}")
        return account

    async def delete(self, account_id: str) -> Account:
        """
        Delete a non-default account and revoke its credential (best effort).

        Raises:
            AccountStateError: The account is the default account or still
                owns tracked files
        """
        account = await self._require(account_id)
        context = create_error_context(operation="delete_account", account_id=account_id)

        if account.is_default:
            raise AccountStateError(
                f"Default account {account.email} cannot be deleted",
                error_code="DEFAULT_ACCOUNT_PROTECTED",
                context=context,
                user_message="The default account cannot be deleted. Choose another default first."
            )

        owned = await self.files.count_by_account(account.id)
        if owned:
            raise AccountStateError(
                f"Account {account.email} still owns {owned} file record(s)",
                error_code="ACCOUNT_IN_USE",
                context=context,
                user_message=f"{owned} file(s) are stored through this account. Move or delete them first."
            )

        try:
            revoked = await self.oauth.revoke_token(self.cipher.decrypt(account.access_token))
        except TokenDecryptionFailed:
            revoked = False
        if not revoked:
            logger.warning(f"Could not revoke token for {account.email}; deleting anyway")

        await self.accounts.delete_account(account.id)
        self.credentials.forget(account.id)
        logger.info(f"Deleted account {account.email}")
        return account

    async def verify(self, account_id: str) -> Dict[str, Any]:
        """
        Check that the stored credential still belongs to the stored email.

        The token is validated against Google first, so a revoked credential
        fails fast instead of surfacing as a Drive error.

        Returns:
            Dictionary with the stored and reported emails, whether the token
            is accepted and whether the emails match
        """
        account = await self._require(account_id)
        account, _ = await self.credentials.usable_token(account)

        result = {
            "account_id": account.id,
            "email": account.email,
            "token_valid": await self.credentials.tokens.validate(account),
            "reported_email": None,
            "matches": False,
        }
        if not result["token_valid"]:
            logger.warning(f"Google no longer accepts the access token of {account.email}")
            return result

        user = await self.credentials.call_with_retry(account, self.client.get_about_user)
        reported = user.get("emailAddress")
        result["reported_email"] = reported
        result["matches"] = bool(reported) and reported.lower() == account.email.lower()
        if not result["matches"]:
            logger.warning(f"Account {account.id} stored as {account.email} but Drive reports {reported}")
        return result
