"""
Token Gate: the single place authenticated operations get a bearer token.

Wraps the external identity provider's readiness/auth flags and its async
token getter. Tokens are never cached: every call re-acquires, so a
provider-side refresh is always picked up.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

from p402_sync.errors import AuthRequired, TokenAcquisitionFailed

logger = logging.getLogger(__name__)


@runtime_checkable
class IdentityProvider(Protocol):
    """What the sync runtime needs from the login provider."""

    @property
    def ready(self) -> bool: ...

    @property
    def authenticated(self) -> bool: ...

    @property
    def user(self) -> dict[str, Any] | None: ...

    async def get_access_token(self) -> str | None: ...


class TokenGate:
    """Acquires access tokens from an :class:`IdentityProvider`."""

    def __init__(self, provider: IdentityProvider, timeout: float = 10.0) -> None:
        self._provider = provider
        self._timeout = timeout

    @property
    def provider(self) -> IdentityProvider:
        return self._provider

    async def acquire_token(self) -> str | None:
        """Get a fresh access token.

        Returns ``None`` while the provider is not ready or the user is
        signed out, and when the provider hands back an empty token.

        Raises:
            TokenAcquisitionFailed: If the provider raises or does not
                answer within the configured timeout.
        """
        if not self._provider.ready:
            logger.debug("Identity provider not ready, no token")
            return None
        if not self._provider.authenticated:
            return None

        try:
            token = await asyncio.wait_for(self._provider.get_access_token(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise TokenAcquisitionFailed(
                details=f"provider did not respond within {self._timeout:.1f}s"
            ) from e
        except Exception as e:
            raise TokenAcquisitionFailed(details=str(e)) from e

        return token or None

    async def require_token(self) -> str:
        """Like :meth:`acquire_token`, but a missing token is an error."""
        token = await self.acquire_token()
        if token is None:
            raise AuthRequired("User not authenticated")
        return token
