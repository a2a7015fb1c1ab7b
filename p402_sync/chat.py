"""
Chat Session Service: conversations with an agent, keyed by agent and thread.

Unlike the stores, this service raises: every call needs a token
(:class:`~p402_sync.errors.AuthRequired` otherwise) and remote failures
reach the caller unchanged. Nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any

from p402_sync.client import AgentApiClient
from p402_sync.gate import TokenGate
from p402_sync.types import ChatMessage, ChatPage, ChatThread

logger = logging.getLogger(__name__)


class ChatSessionService:
    """Send and read chat messages on behalf of the signed-in user."""

    def __init__(self, gate: TokenGate, api: AgentApiClient, page_size: int = 50) -> None:
        self._gate = gate
        self._api = api
        self._page_size = page_size

    async def send_message(
        self,
        agent_id: str,
        thread_id: str,
        content: str,
        attachments: list[dict[str, Any]] | None = None,
    ) -> list[ChatMessage]:
        """Send ``content`` to the agent; returns the messages it replied with."""
        token = await self._gate.require_token()
        replies = await self._api.send_chat(token, agent_id, thread_id, content, attachments)
        logger.debug("Sent message to %s/%s, got %d replies", agent_id, thread_id, len(replies))
        return replies

    async def get_messages(
        self,
        agent_id: str,
        thread_id: str,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> ChatPage:
        """One page of history, oldest message first."""
        token = await self._gate.require_token()
        page = await self._api.get_chat_messages(
            token, agent_id, thread_id, cursor=cursor, limit=limit or self._page_size
        )
        ordered = sorted(page.messages, key=lambda m: m.created_at)
        return page.model_copy(update={"messages": ordered})

    async def list_threads(self, agent_id: str) -> list[ChatThread]:
        token = await self._gate.require_token()
        return await self._api.get_chat_threads(token, agent_id)

    async def create_thread(self, agent_id: str) -> ChatThread:
        token = await self._gate.require_token()
        return await self._api.create_chat_thread(token, agent_id)

    async def update_thread(self, agent_id: str, thread_id: str, summary: str) -> ChatThread:
        token = await self._gate.require_token()
        return await self._api.update_chat_thread(token, agent_id, thread_id, summary)

    async def delete_thread(self, agent_id: str, thread_id: str) -> None:
        token = await self._gate.require_token()
        await self._api.delete_chat_thread(token, agent_id, thread_id)
