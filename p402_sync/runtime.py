"""
The dashboard runtime: one gate, one of each store, one chat service.

Usage::

    from p402_sync import DashboardRuntime

    async with DashboardRuntime(provider) as runtime:
        runtime.on("agents.changed", lambda event: redraw())
        await runtime.reconcile()          # call again whenever login state changes
        for channel in runtime.channels:
            print(channel.name, channel.volume)
"""

from __future__ import annotations

import json
import logging
from typing import Any

from p402_sync.agents import AgentTaskStore
from p402_sync.balance import BalanceStore
from p402_sync.channels import derive_channels
from p402_sync.chat import ChatSessionService
from p402_sync.client import AgentApiClient
from p402_sync.config import SyncSettings
from p402_sync.errors import TokenAcquisitionFailed
from p402_sync.events import EventBus, EventHandler
from p402_sync.gate import IdentityProvider, TokenGate
from p402_sync.inflight import InFlight, settle_all
from p402_sync.session import SessionStore
from p402_sync.types import PaymentChannel

logger = logging.getLogger(__name__)


class DashboardRuntime:
    """
    Owns the stores for one signed-in dashboard session.

    Nothing refetches on its own: the owning component calls
    :meth:`reconcile` whenever the provider's ``ready``/``authenticated``
    state or its token may have changed.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        settings: SyncSettings | None = None,
        api: AgentApiClient | None = None,
    ) -> None:
        self._settings = settings or SyncSettings()
        self._api = api or AgentApiClient(
            self._settings.api_base_url, timeout=self._settings.request_timeout
        )
        self._events = EventBus()
        self._reconciling = InFlight()

        self.gate = TokenGate(provider, timeout=self._settings.token_timeout)
        self.session = SessionStore(self._events)
        self.balance = BalanceStore(self.gate, self._api, self._events)
        self.agents = AgentTaskStore(self._api, self._events)
        self.chat = ChatSessionService(self.gate, self._api, page_size=self._settings.chat_page_size)
        logger.info("Dashboard runtime ready (api=%s)", self._settings.api_base_url)

    @property
    def api(self) -> AgentApiClient:
        return self._api

    @property
    def channels(self) -> list[PaymentChannel]:
        """Payment channels for the current roster, derived fresh on every read."""
        return derive_channels(self.agents.agents, self.agents.tasks)

    async def reconcile(self, wallets: list[dict[str, Any]] | None = None) -> None:
        """Sync the session from the provider and, if signed in, refresh every store.

        Overlapping calls with the same ``wallets`` share one pass. A call
        with different wallets runs its own pass, and its fetches join any
        fetch of the same kind the other pass still has in flight.
        """
        key = ("reconcile", json.dumps(wallets, sort_keys=True, default=str))
        await self._reconciling.run(key, lambda: self._reconcile(wallets))

    async def close(self) -> None:
        await self._events.drain()
        await self._api.close()
        logger.info("Dashboard runtime closed")

    async def __aenter__(self) -> DashboardRuntime:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ---- Event shortcuts ----

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to a specific event type (``"*"`` for all)."""
        if event_type == "*":
            self._events.subscribe_all(handler)
        else:
            self._events.subscribe(event_type, handler)

    def off(self, event_type: str, handler: EventHandler | None = None) -> None:
        """Unsubscribe from an event type."""
        if event_type == "*":
            self._events.unsubscribe_all(handler)
        else:
            self._events.unsubscribe(event_type, handler)

    # ---- Internal ----

    async def _reconcile(self, wallets: list[dict[str, Any]] | None) -> None:
        provider = self.gate.provider
        self.session.sync_from(provider, wallets)
        if not provider.ready or not self.session.is_authenticated:
            return
        await settle_all(self.balance.refresh(), self._refresh_agents())

    async def _refresh_agents(self) -> None:
        try:
            token = await self.gate.acquire_token()
        except TokenAcquisitionFailed as e:
            logger.warning("Skipping agent refresh: %s", e)
            return
        if token is None:
            return
        failures = await self.agents.refresh(token)
        if failures:
            logger.info("Task refresh incomplete for %d agent(s)", len(failures))
