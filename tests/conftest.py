"""Shared fakes for the store tests: an identity provider and an in-memory agent API."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

import pytest

from p402_sync.events import EventBus
from p402_sync.gate import TokenGate

SIGNED_IN_USER: dict[str, Any] = {
    "id": "did:privy:user1",
    "createdAt": "2025-01-01T00:00:00Z",
    "email": {"address": "ada@example.com"},
    "google": {"name": "Ada Lovelace", "picture": "https://img.example.com/ada.png"},
}


class FakeProvider:
    """Identity provider whose state tests flip directly."""

    def __init__(self) -> None:
        self.ready = True
        self.authenticated = True
        self.user: dict[str, Any] | None = dict(SIGNED_IN_USER)
        self.token: str | None = "tok_1"
        self.error: Exception | None = None
        self.hang = False
        self.token_calls = 0

    async def get_access_token(self) -> str | None:
        self.token_calls += 1
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        return self.token


class FakeApi:
    """Agent API double.

    ``results[key]`` is returned (or raised, if an exception). Setting
    ``gates[key]`` to an :class:`asyncio.Event` holds that call in flight
    until the event is set.
    """

    def __init__(self) -> None:
        self.results: dict[str, Any] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: dict[str, int] = defaultdict(int)
        self.tokens: list[str] = []

    async def _respond(self, key: str, token: str) -> Any:
        self.calls[key] += 1
        self.tokens.append(token)
        gate = self.gates.get(key)
        if gate is not None:
            await gate.wait()
        result = self.results[key]
        if isinstance(result, BaseException):
            raise result
        return result

    async def get_balance(self, token: str) -> Any:
        return await self._respond("balance", token)

    async def get_transactions(self, token: str) -> Any:
        return await self._respond("transactions", token)

    async def get_user_wallet(self, token: str) -> Any:
        return await self._respond("wallet", token)

    async def get_agents(self, token: str) -> Any:
        return await self._respond("agents", token)

    async def get_agent_tasks(self, token: str, agent_id: str) -> Any:
        return await self._respond(f"tasks:{agent_id}", token)

    async def archive_agent(self, token: str, agent_id: str) -> Any:
        return await self._respond(f"archive:{agent_id}", token)

    async def activate_agent(self, token: str, agent_id: str) -> Any:
        return await self._respond(f"activate:{agent_id}", token)

    async def create_agent_task(self, token: str, agent_id: str, payload: dict[str, Any]) -> Any:
        return await self._respond(f"create_task:{agent_id}", token)

    async def update_agent_task(self, token: str, agent_id: str, task_id: str, payload: dict[str, Any]) -> Any:
        return await self._respond(f"update_task:{agent_id}", token)

    async def delete_agent_task(self, token: str, agent_id: str, task_id: str) -> Any:
        return await self._respond(f"delete_task:{agent_id}", token)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def gate(provider: FakeProvider) -> TokenGate:
    return TokenGate(provider, timeout=0.05)


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def events() -> tuple[EventBus, list[str]]:
    """An event bus plus the list of event types it has emitted."""
    bus = EventBus()
    seen: list[str] = []
    bus.subscribe_all(lambda event: seen.append(event.type))
    return bus, seen
