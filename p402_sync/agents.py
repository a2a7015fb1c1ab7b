"""
Agent/Task Store: the agent roster and each agent's task list.

The roster and every agent's task list are fetched independently. Task
fetches for different agents may run side by side; one agent's failure
is recorded against that agent alone and never touches another agent's
cached tasks.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from p402_sync.errors import AuthRequired, SyncError
from p402_sync.events import EventBus
from p402_sync.inflight import InFlight, settle_all
from p402_sync.types import Agent, Task

logger = logging.getLogger(__name__)

_ROSTER = "agents"


class AgentsApi(Protocol):
    async def get_agents(self, token: str) -> list[Agent]: ...

    async def get_agent_tasks(self, token: str, agent_id: str) -> list[Task]: ...

    async def archive_agent(self, token: str, agent_id: str) -> dict[str, Any]: ...

    async def activate_agent(self, token: str, agent_id: str) -> dict[str, Any]: ...

    async def create_agent_task(self, token: str, agent_id: str, payload: dict[str, Any]) -> Task: ...

    async def update_agent_task(
        self, token: str, agent_id: str, task_id: str, payload: dict[str, Any]
    ) -> Task: ...

    async def delete_agent_task(self, token: str, agent_id: str, task_id: str) -> dict[str, Any]: ...


class AgentTaskStore:
    """Holds agents and, per agent id, that agent's tasks.

    Read fetches never raise: failures land in :attr:`last_error` (roster)
    or :attr:`task_errors` (per agent). Write operations raise.
    """

    def __init__(self, api: AgentsApi, events: EventBus | None = None) -> None:
        self._api = api
        self._events = events or EventBus()
        self._roster = InFlight(on_change=self._update_loading)
        self._task_fetches = InFlight(on_change=self._update_loading)

        self.agents: list[Agent] = []
        self.tasks: dict[str, list[Task]] = {}
        self.selected_agent_id: str | None = None
        self.is_loading = False
        self.last_error: SyncError | None = None
        self.task_errors: dict[str, SyncError] = {}

    @property
    def per_agent_task_loading(self) -> set[str]:
        """Ids of agents whose task fetch is currently running."""
        return {str(k) for k in self._task_fetches.keys()}

    @property
    def selected_agent(self) -> Agent | None:
        return next((a for a in self.agents if a.id == self.selected_agent_id), None)

    def select_agent(self, agent_id: str | None) -> None:
        self.selected_agent_id = agent_id

    # -- Reads ----------------------------------------------------------------

    async def fetch_agents(self, token: str | None) -> None:
        """Replace the roster. Leaves :attr:`tasks` alone."""
        await self._roster.run(_ROSTER, lambda: self._load_agents(token))

    async def fetch_agent_tasks(self, agent_id: str, token: str | None) -> None:
        """Replace ``tasks[agent_id]``; on failure keep what was there."""
        await self._task_fetches.run(agent_id, lambda: self._load_tasks(agent_id, token))

    async def fetch_all_tasks(self, token: str | None) -> dict[str, SyncError]:
        """Fetch tasks for every agent in the roster, waiting for all of them.

        Returns:
            The failures from this round, keyed by agent id.
        """
        agent_ids = [a.id for a in self.agents]
        await settle_all(*(self.fetch_agent_tasks(agent_id, token) for agent_id in agent_ids))
        return {a: self.task_errors[a] for a in agent_ids if a in self.task_errors}

    async def refresh(self, token: str | None) -> dict[str, SyncError]:
        """Reload the roster, then every agent's tasks if the roster loaded."""
        await self.fetch_agents(token)
        if self.last_error is not None:
            return {}
        return await self.fetch_all_tasks(token)

    # -- Writes ---------------------------------------------------------------

    async def archive_agent(self, agent_id: str, token: str | None) -> None:
        await self._api.archive_agent(self._require(token), agent_id)
        logger.info("Archived agent %s", agent_id)
        await self.fetch_agents(token)

    async def activate_agent(self, agent_id: str, token: str | None) -> None:
        await self._api.activate_agent(self._require(token), agent_id)
        logger.info("Activated agent %s", agent_id)
        await self.fetch_agents(token)

    async def create_task(self, agent_id: str, payload: dict[str, Any], token: str | None) -> Task:
        task = await self._api.create_agent_task(self._require(token), agent_id, payload)
        await self.fetch_agent_tasks(agent_id, token)
        return task

    async def update_task(
        self, agent_id: str, task_id: str, payload: dict[str, Any], token: str | None
    ) -> Task:
        task = await self._api.update_agent_task(self._require(token), agent_id, task_id, payload)
        await self.fetch_agent_tasks(agent_id, token)
        return task

    async def delete_task(self, agent_id: str, task_id: str, token: str | None) -> None:
        await self._api.delete_agent_task(self._require(token), agent_id, task_id)
        await self.fetch_agent_tasks(agent_id, token)

    # ---- Internal ----

    @staticmethod
    def _require(token: str | None) -> str:
        if not token:
            raise AuthRequired("User not authenticated")
        return token

    async def _load_agents(self, token: str | None) -> None:
        try:
            agents = await self._api.get_agents(self._require(token))
        except SyncError as e:
            logger.warning("Fetching agents failed: %s", e)
            self.last_error = e
            self._events.emit("fetch.failed", store="agents", kind=_ROSTER, error=e.kind.value)
            return

        self.last_error = None
        if agents == self.agents:
            return
        self.agents = agents
        if self.selected_agent_id is not None and self.selected_agent is None:
            self.selected_agent_id = None
        self._events.emit("agents.changed", count=len(agents))

    async def _load_tasks(self, agent_id: str, token: str | None) -> None:
        try:
            tasks = await self._api.get_agent_tasks(self._require(token), agent_id)
        except SyncError as e:
            logger.warning("Fetching tasks for agent %s failed: %s", agent_id, e)
            self.task_errors[agent_id] = e
            self._events.emit("fetch.failed", store="agents", kind="tasks", agent_id=agent_id, error=e.kind.value)
            return

        self.task_errors.pop(agent_id, None)
        if self.tasks.get(agent_id) == tasks:
            return
        self.tasks = {**self.tasks, agent_id: tasks}
        self._events.emit("tasks.changed", agent_id=agent_id, count=len(tasks))

    def _update_loading(self) -> None:
        self.is_loading = len(self._roster) + len(self._task_fetches) > 0
