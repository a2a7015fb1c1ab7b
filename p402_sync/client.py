"""
HTTP collaborator for the p402 agent API.

Thin async client over ``httpx``. Every call takes the bearer token
explicitly: tokens are short-lived and re-acquired per operation, so
the client never stores one. Failures surface as the typed errors in
:mod:`p402_sync.errors`; nothing here retries.

Usage::

    api = AgentApiClient("https://p402.crestal.dev/")
    agents = await api.get_agents(token)
    tasks = await api.get_agent_tasks(token, agents[0].id)
    await api.close()
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar
from urllib.parse import quote as url_quote

import httpx
from pydantic import BaseModel, ValidationError

from p402_sync.errors import AuthRequired, MappingError, NetworkError, NotFound, SyncError
from p402_sync.types import (
    Agent,
    Balance,
    ChatMessage,
    ChatPage,
    ChatThread,
    Task,
    TaskLogEntry,
    Transaction,
    UserWallet,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _q(value: str) -> str:
    return url_quote(value, safe="")


def _build(model: type[ModelT], payload: Any) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise MappingError(f"Unexpected {model.__name__} payload", details=str(e)) from e


def _items(data: Any, key: str) -> list[Any]:
    """Unwrap a list response: bare list, ``{"data": [...]}`` or ``{key: [...]}``."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for candidate in ("data", key):
            value = data.get(candidate)
            if isinstance(value, list):
                return value
    raise MappingError(f"Expected a list of {key}", details=f"got {type(data).__name__}")


def _with_defaults(item: Any, **defaults: str) -> Any:
    """Fill in path-scoped ids the server leaves out of nested records."""
    if not isinstance(item, dict):
        return item
    filled = dict(item)
    for name, value in defaults.items():
        camel = name.split("_")[0] + "".join(p.title() for p in name.split("_")[1:])
        if name not in filled and camel not in filled:
            filled[name] = value
    return filled


class _HttpClient:
    """Thin wrapper around httpx for agent API requests."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        token: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated request to the agent API.

        Raises:
            AuthRequired: On 401/403.
            NotFound: On 404.
            NetworkError: On transport failure, timeout, or any other
                non-success status.
            MappingError: If a success response is not valid JSON.
        """
        query = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            response = await self._client.request(
                method=method,
                url=path,
                json=body,
                params=query or None,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request failed: {method} {path}", details=str(e)) from e

        # Only the server's own error field is surfaced, never the raw body.
        if response.status_code >= 400:
            try:
                err_data = response.json()
                err_msg = err_data.get("error") or err_data.get("message") or err_data.get("detail") or "Request failed"
            except Exception:
                err_msg = "Request failed"
            raise _error_for_status(response.status_code, f"{method} {path} failed ({response.status_code}): {err_msg}")

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise MappingError(f"{method} {path} returned a non-JSON body") from e

    async def close(self) -> None:
        await self._client.aclose()


def _error_for_status(status_code: int, message: str) -> SyncError:
    if status_code in (401, 403):
        return AuthRequired(message, status_code=status_code)
    if status_code == 404:
        return NotFound(message, status_code=status_code)
    return NetworkError(message, status_code=status_code)


class AgentApiClient:
    """Typed access to the agent API endpoints the dashboard consumes."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = _HttpClient(base_url, timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._http.close()

    # -- Agents ---------------------------------------------------------------

    async def get_agents(self, token: str, include_archived: bool = False) -> list[Agent]:
        params = {"is_archived": "true"} if include_archived else None
        data = await self._http.request("GET", "/agents", token, params=params)
        return [_build(Agent, a) for a in _items(data, "agents")]

    async def get_agent(self, token: str, agent_id: str) -> Agent:
        data = await self._http.request("GET", f"/agents/{_q(agent_id)}", token)
        return _build(Agent, data)

    async def archive_agent(self, token: str, agent_id: str) -> dict[str, Any]:
        return await self._http.request("PUT", f"/agents/{_q(agent_id)}/archive", token)

    async def activate_agent(self, token: str, agent_id: str) -> dict[str, Any]:
        return await self._http.request("PUT", f"/agents/{_q(agent_id)}/activate", token)

    # -- Tasks ----------------------------------------------------------------

    async def get_agent_tasks(self, token: str, agent_id: str) -> list[Task]:
        data = await self._http.request("GET", f"/agents/{_q(agent_id)}/tasks", token)
        return [_build(Task, _with_defaults(t, agent_id=agent_id)) for t in _items(data, "tasks")]

    async def create_agent_task(self, token: str, agent_id: str, payload: dict[str, Any]) -> Task:
        data = await self._http.request("POST", f"/agents/{_q(agent_id)}/tasks", token, body=payload)
        return _build(Task, _with_defaults(data, agent_id=agent_id))

    async def update_agent_task(
        self, token: str, agent_id: str, task_id: str, payload: dict[str, Any]
    ) -> Task:
        data = await self._http.request(
            "PUT", f"/agents/{_q(agent_id)}/tasks/{_q(task_id)}", token, body=payload
        )
        return _build(Task, _with_defaults(data, agent_id=agent_id))

    async def delete_agent_task(self, token: str, agent_id: str, task_id: str) -> dict[str, Any]:
        return await self._http.request("DELETE", f"/agents/{_q(agent_id)}/tasks/{_q(task_id)}", token)

    async def get_agent_task_log(
        self, token: str, agent_id: str, task_id: str, limit: int | None = None
    ) -> list[TaskLogEntry]:
        data = await self._http.request(
            "GET",
            f"/agents/{_q(agent_id)}/tasks/{_q(task_id)}/logs",
            token,
            params={"limit": limit},
        )
        return [_build(TaskLogEntry, _with_defaults(e, task_id=task_id)) for e in _items(data, "logs")]

    # -- Funds ----------------------------------------------------------------

    async def get_balance(self, token: str) -> Balance:
        data = await self._http.request("GET", "/balance", token)
        return _build(Balance, data)

    async def get_transactions(self, token: str) -> list[Transaction]:
        data = await self._http.request("GET", "/transactions", token)
        return [_build(Transaction, t) for t in _items(data, "transactions")]

    async def get_user_wallet(self, token: str) -> UserWallet:
        data = await self._http.request("GET", "/user/wallet", token)
        return _build(UserWallet, data)

    # -- Chat -----------------------------------------------------------------

    async def get_chat_threads(self, token: str, agent_id: str) -> list[ChatThread]:
        data = await self._http.request("GET", f"/agents/{_q(agent_id)}/chats", token)
        return [_build(ChatThread, _with_defaults(t, agent_id=agent_id)) for t in _items(data, "chats")]

    async def create_chat_thread(self, token: str, agent_id: str) -> ChatThread:
        data = await self._http.request("POST", f"/agents/{_q(agent_id)}/chats", token)
        return _build(ChatThread, _with_defaults(data, agent_id=agent_id))

    async def update_chat_thread(
        self, token: str, agent_id: str, chat_id: str, summary: str
    ) -> ChatThread:
        data = await self._http.request(
            "PATCH",
            f"/agents/{_q(agent_id)}/chats/{_q(chat_id)}",
            token,
            body={"summary": summary},
        )
        return _build(ChatThread, _with_defaults(data, agent_id=agent_id))

    async def delete_chat_thread(self, token: str, agent_id: str, chat_id: str) -> dict[str, Any]:
        return await self._http.request("DELETE", f"/agents/{_q(agent_id)}/chats/{_q(chat_id)}", token)

    async def get_chat_messages(
        self,
        token: str,
        agent_id: str,
        chat_id: str,
        cursor: str | None = None,
        limit: int = 50,
    ) -> ChatPage:
        data = await self._http.request(
            "GET",
            f"/agents/{_q(agent_id)}/chats/{_q(chat_id)}/messages",
            token,
            params={"cursor": cursor, "limit": limit},
        )
        messages = [
            _build(ChatMessage, _with_defaults(m, agent_id=agent_id, chat_id=chat_id))
            for m in _items(data, "messages")
        ]
        meta = data if isinstance(data, dict) else {}
        return ChatPage(
            messages=messages,
            next_cursor=meta.get("next_cursor", meta.get("nextCursor")),
            has_more=bool(meta.get("has_more", meta.get("hasMore", False))),
        )

    async def send_chat(
        self,
        token: str,
        agent_id: str,
        chat_id: str,
        message: str,
        attachments: list[dict[str, Any]] | None = None,
    ) -> list[ChatMessage]:
        payload: dict[str, Any] = {"message": message}
        if attachments:
            payload["attachments"] = attachments
        data = await self._http.request(
            "POST",
            f"/agents/{_q(agent_id)}/chats/{_q(chat_id)}/messages",
            token,
            body=payload,
        )
        return [
            _build(ChatMessage, _with_defaults(m, agent_id=agent_id, chat_id=chat_id))
            for m in _items(data, "messages")
        ]
