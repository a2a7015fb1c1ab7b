"""
Balance Store: current funds, transaction history and the server wallet.

Each fetch kind runs at most once at a time; a caller arriving while a
fetch of the same kind is in flight waits for that fetch instead of
starting another. Failures never blank what is already held.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol

from p402_sync.errors import SyncError
from p402_sync.events import EventBus
from p402_sync.gate import TokenGate
from p402_sync.inflight import InFlight, settle_all
from p402_sync.types import Balance, Transaction, UserWallet

logger = logging.getLogger(__name__)

BALANCE = "balance"
TRANSACTIONS = "transactions"
WALLET = "wallet"


class FundsApi(Protocol):
    async def get_balance(self, token: str) -> Balance: ...

    async def get_transactions(self, token: str) -> list[Transaction]: ...

    async def get_user_wallet(self, token: str) -> UserWallet: ...


class BalanceStore:
    """Holds the user's balance and transactions, fetched once authenticated."""

    def __init__(self, gate: TokenGate, api: FundsApi, events: EventBus | None = None) -> None:
        self._gate = gate
        self._api = api
        self._events = events or EventBus()
        self._inflight = InFlight(on_change=self._update_loading)

        self.balance = Balance()
        self.transactions: list[Transaction] = []
        self.wallet: UserWallet | None = None
        self.is_loading = False
        self.last_error: SyncError | None = None

    def in_flight(self, kind: str) -> bool:
        """Whether a fetch of ``kind`` (``balance``, ``transactions``, ``wallet``) is running."""
        return kind in self._inflight

    async def fetch_balance(self) -> None:
        await self._inflight.run(BALANCE, lambda: self._load(BALANCE, self._api.get_balance, self._set_balance))

    async def fetch_transactions(self) -> None:
        await self._inflight.run(
            TRANSACTIONS,
            lambda: self._load(TRANSACTIONS, self._api.get_transactions, self._set_transactions),
        )

    async def fetch_wallet(self) -> None:
        await self._inflight.run(WALLET, lambda: self._load(WALLET, self._api.get_user_wallet, self._set_wallet))

    async def refresh(self) -> None:
        """Fetch every kind concurrently; one failing does not stop the others."""
        await settle_all(self.fetch_balance(), self.fetch_transactions(), self.fetch_wallet())

    # ---- Internal ----

    async def _load(
        self,
        kind: str,
        fetch: Callable[[str], Awaitable[Any]],
        apply: Callable[[Any], bool],
    ) -> None:
        try:
            token = await self._gate.acquire_token()
            if token is None:
                logger.debug("No access token, skipping %s fetch", kind)
                return
            result = await fetch(token)
        except SyncError as e:
            logger.warning("Fetching %s failed: %s", kind, e)
            self.last_error = e
            self._events.emit("fetch.failed", store="balance", kind=kind, error=e.kind.value)
            return

        changed = apply(result)
        self.last_error = None
        if changed:
            self._events.emit(f"{kind}.changed")

    def _set_balance(self, balance: Balance) -> bool:
        changed = balance != self.balance
        self.balance = balance
        return changed

    def _set_transactions(self, transactions: list[Transaction]) -> bool:
        ordered = sorted(transactions, key=lambda t: t.timestamp, reverse=True)
        changed = ordered != self.transactions
        self.transactions = ordered
        return changed

    def _set_wallet(self, wallet: UserWallet) -> bool:
        changed = wallet != self.wallet
        self.wallet = wallet
        return changed

    def _update_loading(self) -> None:
        self.is_loading = len(self._inflight) > 0
