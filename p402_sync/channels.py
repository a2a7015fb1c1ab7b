"""
Payment-channel derivation.

Maps agents, tasks and activity onto the business vocabulary the payments
views use: an agent is a *payment channel*, a task is a *payment rule*,
and a payment-related activity event is a *payment transaction*.
Everything here is pure; recompute whenever the inputs change.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Sequence

from p402_sync.types import (
    ActivityEvent,
    ActivityType,
    Agent,
    AgentStatus,
    ApprovalStatus,
    ApprovalWorkflow,
    PaymentChannel,
    PaymentRule,
    PaymentStatus,
    PaymentTransaction,
    Task,
    TaskKind,
    TaskStatus,
    TransactionLimits,
)

PAYMENT_EVENT_TYPES = frozenset(
    {
        ActivityType.PAYMENT_402,
        ActivityType.TRANSACTION_COMPLETED,
        ActivityType.APPROVAL_REQUESTED,
        ActivityType.APPROVAL_GRANTED,
        ActivityType.APPROVAL_REJECTED,
    }
)

_PAYMENT_STATUS = {
    ActivityType.TRANSACTION_COMPLETED: PaymentStatus.SUCCESS,
    ActivityType.APPROVAL_GRANTED: PaymentStatus.SUCCESS,
    ActivityType.APPROVAL_REJECTED: PaymentStatus.FAILED,
}

_APPROVAL_STATUS = {
    ActivityType.APPROVAL_REQUESTED: ApprovalStatus.PENDING,
    ActivityType.APPROVAL_GRANTED: ApprovalStatus.APPROVED,
    ActivityType.APPROVAL_REJECTED: ApprovalStatus.REJECTED,
}


def _task_time(task: Task) -> datetime:
    return task.completed_at or task.created_at


def _has_unrecovered_failure(tasks: Sequence[Task]) -> bool:
    """True if some failed task has no succeeded task strictly after it."""
    failed = [_task_time(t) for t in tasks if t.status is TaskStatus.FAILED]
    if not failed:
        return False
    succeeded = [_task_time(t) for t in tasks if t.status is TaskStatus.SUCCEEDED]
    return not succeeded or max(succeeded) <= max(failed)


def map_task_to_payment_rule(task: Task) -> PaymentRule:
    if task.cron:
        schedule: str | None = task.cron
    elif task.minutes:
        schedule = f"Every {task.minutes} minutes"
    else:
        schedule = None

    return PaymentRule(
        id=task.id,
        name=task.name,
        description=task.description,
        enabled=task.enabled,
        schedule=schedule,
        prompt=task.prompt,
        has_memory=task.has_memory,
    )


def map_agent_to_channel(agent: Agent, tasks: Sequence[Task] = ()) -> PaymentChannel:
    """Derive the payment channel for one agent.

    ``volume`` counts only purchases that succeeded; queued, running and
    failed purchases are not money spent. ``last_activity`` is the latest
    task completion, or the agent's creation time when nothing completed.
    The channel reads ``error`` while the most recent failure has not been
    followed by a success; otherwise it mirrors the agent.

    Limits and merchant support come from the agent's permissions, budget
    and allow-list. A channel supports x402 payments when its agent may
    check out.
    """
    volume = sum(
        (
            t.amount or Decimal("0")
            for t in tasks
            if t.kind is TaskKind.PURCHASE and t.status is TaskStatus.SUCCEEDED
        ),
        Decimal("0"),
    )
    completions = [t.completed_at for t in tasks if t.completed_at is not None]
    status = AgentStatus.ERROR if _has_unrecovered_failure(tasks) else agent.status
    permissions = agent.permissions

    return PaymentChannel(
        id=agent.id,
        name=agent.name,
        description=agent.description,
        status=status,
        volume=volume,
        task_count=len(tasks),
        last_activity=max(completions) if completions else agent.created_at,
        payment_rules=[map_task_to_payment_rule(t) for t in tasks],
        merchant_support=list(agent.allowed_merchants),
        x402_integration=permissions.can_checkout,
        transaction_limits=TransactionLimits(
            max_amount=permissions.max_transaction_amount,
            require_approval_above=permissions.require_approval_above,
            daily_limit=agent.budget.daily_limit,
            weekly_limit=agent.budget.weekly_limit,
        ),
        approval_workflow=ApprovalWorkflow(require_approval_above=permissions.require_approval_above),
        created_at=agent.created_at,
        updated_at=agent.updated_at,
        last_active_at=agent.last_active_at,
    )


def derive_channels(
    agents: Sequence[Agent], tasks_by_agent: Mapping[str, Sequence[Task]]
) -> list[PaymentChannel]:
    """Map a whole roster, in roster order."""
    return [map_agent_to_channel(agent, tasks_by_agent.get(agent.id, ())) for agent in agents]


# ---- Activity ----


def _metadata_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def _metadata_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def filter_payment_events(events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
    """Keep only payment-related events, in their original order."""
    return [e for e in events if e.type in PAYMENT_EVENT_TYPES]


def map_activity_to_transaction(event: ActivityEvent) -> PaymentTransaction | None:
    """Map a payment-related activity event; any other event gives ``None``.

    Completed transactions and granted approvals succeed, rejected
    approvals fail, and everything else is pending. Amount, merchant and
    transaction hash are read from the event metadata when present and
    well-formed.
    """
    if event.type not in PAYMENT_EVENT_TYPES:
        return None
    kind = ActivityType(event.type)
    metadata = event.metadata

    return PaymentTransaction(
        id=event.id,
        type=kind,
        status=_PAYMENT_STATUS.get(kind, PaymentStatus.PENDING),
        amount=_metadata_amount(metadata.get("amount")),
        merchant=_metadata_str(metadata.get("merchant")),
        payment_channel=event.agent_name,
        channel_id=event.agent_id,
        tx_hash=_metadata_str(metadata.get("txHash")),
        x402_protocol_call=kind is ActivityType.PAYMENT_402,
        approval_status=_APPROVAL_STATUS.get(kind),
        created_at=event.created_at,
        description=event.description,
    )


def map_payment_events(events: Iterable[ActivityEvent]) -> list[PaymentTransaction]:
    """Filter an activity feed down to payment transactions, keeping order."""
    mapped = (map_activity_to_transaction(e) for e in filter_payment_events(events))
    return [t for t in mapped if t is not None]
