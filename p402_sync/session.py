"""
Session Store: the signed-in identity, synchronized from the login provider.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from p402_sync.errors import MappingError, SyncError
from p402_sync.events import EventBus
from p402_sync.gate import IdentityProvider
from p402_sync.types import IdentityRecord, WalletInfo

logger = logging.getLogger(__name__)

EMBEDDED_WALLET_CLIENT = "privy"


def _parse_chain_id(raw: Any) -> int:
    """Parse a CAIP-2 chain id (``eip155:8453``) or a bare number."""
    if raw is None or raw == "":
        return 1
    if isinstance(raw, int):
        return raw
    parts = str(raw).split(":")
    return int(parts[1]) if len(parts) > 1 else int(parts[0])


def extract_wallet_info(wallets: list[dict[str, Any]]) -> WalletInfo | None:
    """Pick the user's primary wallet: the embedded one if present, else the first."""
    if not wallets:
        return None
    embedded = next((w for w in wallets if w.get("walletClientType") == EMBEDDED_WALLET_CLIENT), None)
    wallet = embedded or wallets[0]
    client_type = wallet.get("walletClientType")
    return WalletInfo(
        address=wallet["address"],
        chain_id=_parse_chain_id(wallet.get("chainId")),
        chain_type=wallet.get("chainType") or "ethereum",
        wallet_client_type=client_type,
        is_embedded=client_type == EMBEDDED_WALLET_CLIENT,
    )


def map_raw_user(raw: dict[str, Any] | None, wallets: list[dict[str, Any]] | None = None) -> IdentityRecord:
    """Build an :class:`IdentityRecord` from the provider's user payload.

    Email comes from the email, Google or Twitter account, in that order.
    The display name prefers the Google/Twitter name, then the email's
    local part, then ``"User"``.

    Raises:
        MappingError: If the payload is missing or malformed.
    """
    if not isinstance(raw, dict):
        raise MappingError("User payload missing", details=f"got {type(raw).__name__}")

    try:
        email_acct = raw.get("email") or {}
        google = raw.get("google") or {}
        twitter = raw.get("twitter") or {}

        email = email_acct.get("address") or google.get("email") or twitter.get("username") or ""
        name = google.get("name") or twitter.get("name") or email.split("@")[0] or "User"
        avatar = google.get("picture") or twitter.get("profilePictureUrl") or None

        if wallets is None:
            linked = raw.get("wallet")
            wallets = [linked] if linked else []

        return IdentityRecord(
            id=raw["id"],
            display_name=name,
            email=email,
            avatar=avatar,
            created_at=raw.get("createdAt"),
            wallet=extract_wallet_info(wallets),
        )
    except (KeyError, AttributeError, TypeError, ValueError) as e:
        # ValidationError is a ValueError
        details = str(e) if isinstance(e, ValidationError) else f"{type(e).__name__}: {e}"
        raise MappingError("Malformed user payload", details=details) from e


class SessionStore:
    """Holds the identity record derived from the login provider.

    ``is_authenticated`` is true exactly when an identity is held.
    """

    def __init__(self, events: EventBus | None = None) -> None:
        self._events = events or EventBus()
        self.identity: IdentityRecord | None = None
        self.last_error: SyncError | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    def sync_identity(
        self,
        provider_ready: bool,
        provider_authenticated: bool,
        provider_user: dict[str, Any] | None,
        wallets: list[dict[str, Any]] | None = None,
    ) -> bool:
        """Bring the store in line with the provider's current state.

        Does nothing until the provider is ready. Repeating a call with the
        same inputs changes nothing and emits nothing.

        Returns:
            ``True`` if the identity or the mapping error changed.
        """
        if not provider_ready:
            return False

        identity: IdentityRecord | None = None
        error: SyncError | None = None
        if provider_authenticated:
            try:
                identity = map_raw_user(provider_user, wallets)
            except MappingError as e:
                logger.warning("Could not map signed-in user: %s", e)
                error = e

        return self._apply(identity, error)

    def sync_from(self, provider: IdentityProvider, wallets: list[dict[str, Any]] | None = None) -> bool:
        """Shortcut for :meth:`sync_identity` reading the provider's flags."""
        return self.sync_identity(provider.ready, provider.authenticated, provider.user, wallets)

    def update_wallet(self, wallet: WalletInfo | None) -> bool:
        """Replace the wallet on the current identity (e.g. after a late wallet connect)."""
        if self.identity is None:
            return False
        return self._apply(self.identity.model_copy(update={"wallet": wallet}), self.last_error)

    def logout(self) -> bool:
        return self._apply(None, None)

    def _apply(self, identity: IdentityRecord | None, error: SyncError | None) -> bool:
        if identity == self.identity and _same_error(error, self.last_error):
            return False

        was_authenticated = self.is_authenticated
        self.identity = identity
        self.last_error = error

        if self.is_authenticated != was_authenticated:
            logger.info(
                "Session %s%s",
                "signed in" if identity else "signed out",
                f" as {identity.id}" if identity else "",
            )
        self._events.emit(
            "session.changed",
            authenticated=self.is_authenticated,
            user_id=identity.id if identity else None,
        )
        return True


def _same_error(a: SyncError | None, b: SyncError | None) -> bool:
    if a is None or b is None:
        return a is b
    return type(a) is type(b) and a.message == b.message and a.details == b.details
