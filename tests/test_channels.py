"""Tests for payment-channel derivation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from p402_sync.channels import (
    derive_channels,
    filter_payment_events,
    map_activity_to_transaction,
    map_agent_to_channel,
    map_payment_events,
    map_task_to_payment_rule,
)
from p402_sync.types import (
    ActivityEvent,
    ActivityType,
    Agent,
    AgentStatus,
    ApprovalStatus,
    PaymentStatus,
    Task,
    TaskKind,
    TaskStatus,
)

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _agent(status: AgentStatus = AgentStatus.ACTIVE) -> Agent:
    return Agent(id="a1", name="Deal Hunter", status=status, created_at=T0)


def _task(
    task_id: str,
    kind: TaskKind = TaskKind.PURCHASE,
    status: TaskStatus = TaskStatus.SUCCEEDED,
    amount: str | None = None,
    completed_hours: int | None = None,
    **extra,
) -> Task:
    return Task(
        id=task_id,
        agent_id="a1",
        kind=kind,
        status=status,
        amount=Decimal(amount) if amount is not None else None,
        created_at=T0,
        completed_at=T0 + timedelta(hours=completed_hours) if completed_hours is not None else None,
        **extra,
    )


def test_agent_without_tasks() -> None:
    channel = map_agent_to_channel(_agent())

    assert channel.id == "a1"
    assert channel.name == "Deal Hunter"
    assert channel.volume == 0
    assert channel.task_count == 0
    assert channel.last_activity == T0
    assert channel.status is AgentStatus.ACTIVE
    assert channel.payment_rules == []


def test_volume_counts_only_succeeded_purchases() -> None:
    tasks = [
        _task("t1", amount="10", completed_hours=1),
        _task("t2", status=TaskStatus.FAILED, amount="50"),
        _task("t3", kind=TaskKind.MONITOR_PRICE, completed_hours=2),
    ]

    channel = map_agent_to_channel(_agent(), tasks)

    assert channel.volume == Decimal("10")
    assert channel.task_count == 3


def test_queued_and_running_purchases_do_not_count() -> None:
    tasks = [
        _task("t1", status=TaskStatus.QUEUED, amount="5"),
        _task("t2", status=TaskStatus.IN_PROGRESS, amount="7"),
        _task("t3", amount="0.05", completed_hours=1),
        _task("t4", amount=None, completed_hours=2),
    ]

    assert map_agent_to_channel(_agent(), tasks).volume == Decimal("0.05")


def test_last_activity_is_latest_completion() -> None:
    tasks = [
        _task("t1", completed_hours=3),
        _task("t2", completed_hours=9),
        _task("t3", status=TaskStatus.QUEUED),
    ]

    assert map_agent_to_channel(_agent(), tasks).last_activity == T0 + timedelta(hours=9)


def test_last_activity_falls_back_to_agent_creation() -> None:
    tasks = [_task("t1", status=TaskStatus.QUEUED)]

    assert map_agent_to_channel(_agent(), tasks).last_activity == T0


def test_unrecovered_failure_marks_channel_error() -> None:
    tasks = [
        _task("t1", completed_hours=1),
        _task("t2", status=TaskStatus.FAILED, completed_hours=2),
    ]

    assert map_agent_to_channel(_agent(), tasks).status is AgentStatus.ERROR


def test_later_success_recovers_channel() -> None:
    tasks = [
        _task("t1", status=TaskStatus.FAILED, completed_hours=1),
        _task("t2", completed_hours=2),
    ]

    assert map_agent_to_channel(_agent(AgentStatus.PAUSED), tasks).status is AgentStatus.PAUSED


def test_success_at_same_time_does_not_recover() -> None:
    tasks = [
        _task("t1", status=TaskStatus.FAILED, completed_hours=4),
        _task("t2", completed_hours=4),
    ]

    assert map_agent_to_channel(_agent(), tasks).status is AgentStatus.ERROR


def test_failure_without_completion_uses_creation_time() -> None:
    tasks = [
        _task("t1", status=TaskStatus.FAILED),
        _task("t2", completed_hours=1),
    ]

    assert map_agent_to_channel(_agent(), tasks).status is AgentStatus.ACTIVE


def test_repeated_calls_are_equal() -> None:
    tasks = [_task("t1", amount="3", completed_hours=1), _task("t2", status=TaskStatus.FAILED)]

    assert map_agent_to_channel(_agent(), tasks) == map_agent_to_channel(_agent(), list(tasks))


def test_payment_rule_schedule() -> None:
    assert map_task_to_payment_rule(_task("t1", cron="0 9 * * *")).schedule == "0 9 * * *"
    assert map_task_to_payment_rule(_task("t2", minutes=15)).schedule == "Every 15 minutes"
    assert map_task_to_payment_rule(_task("t3")).schedule is None


def test_payment_rule_fields() -> None:
    rule = map_task_to_payment_rule(
        _task("t1", name="Lamp watch", prompt="Buy under $40", has_memory=True, enabled=False)
    )

    assert rule.id == "t1"
    assert rule.name == "Lamp watch"
    assert rule.prompt == "Buy under $40"
    assert rule.has_memory is True
    assert rule.enabled is False


def test_derive_channels_keeps_roster_order() -> None:
    agents = [
        Agent(id="a2", name="Subscriber", created_at=T0),
        Agent(id="a1", name="Deal Hunter", created_at=T0),
    ]
    channels = derive_channels(agents, {"a1": [_task("t1", amount="2", completed_hours=1)]})

    assert [c.id for c in channels] == ["a2", "a1"]
    assert channels[0].task_count == 0
    assert channels[1].volume == Decimal("2")


# ============================================================
#  Wire timestamps
# ============================================================


def test_mixed_offset_timestamps_compare() -> None:
    agent = Agent.model_validate({"id": "a1", "name": "Deal Hunter", "createdAt": "2025-01-01T00:00:00Z"})
    tasks = [
        Task.model_validate(
            {"id": "t1", "agentId": "a1", "status": "failed", "createdAt": "2025-01-01T05:00:00"}
        ),
        Task.model_validate(
            {"id": "t2", "agentId": "a1", "status": "succeeded", "createdAt": "2025-01-01T00:00:00Z",
             "completedAt": "2025-01-01T06:00:00Z"}
        ),
    ]

    channel = map_agent_to_channel(agent, tasks)

    assert channel.status is AgentStatus.ACTIVE
    assert channel.last_activity == datetime(2025, 1, 1, 6, tzinfo=timezone.utc)
    assert tasks[0].created_at.tzinfo is timezone.utc


def test_offsets_are_converted_before_comparing() -> None:
    agent = Agent.model_validate({"id": "a1", "name": "Deal Hunter", "createdAt": "2025-01-01T00:00:00"})
    tasks = [
        Task.model_validate(
            {"id": "t1", "agentId": "a1", "status": "failed", "createdAt": "2025-01-01T05:00:00"}
        ),
        # 06:00 at +02:00 is 04:00 UTC, an hour before the failure
        Task.model_validate(
            {"id": "t2", "agentId": "a1", "status": "succeeded", "createdAt": "2025-01-01T00:00:00",
             "completedAt": "2025-01-01T06:00:00+02:00"}
        ),
    ]

    channel = map_agent_to_channel(agent, tasks)

    assert channel.status is AgentStatus.ERROR
    assert channel.last_activity == datetime(2025, 1, 1, 4, tzinfo=timezone.utc)


# ============================================================
#  Limits and merchant support
# ============================================================


def test_channel_carries_agent_limits() -> None:
    agent = Agent.model_validate(
        {
            "id": "a1",
            "name": "Deal Hunter",
            "description": "Finds lamps",
            "createdAt": "2025-01-01T00:00:00Z",
            "updatedAt": "2025-01-02T00:00:00Z",
            "lastActiveAt": "2025-01-03T00:00:00Z",
            "permissions": {
                "canReadPages": True,
                "canCheckout": True,
                "maxTransactionAmount": 200,
                "requireApprovalAbove": "50.00",
            },
            "budget": {"dailyLimit": 100, "weeklyLimit": 500, "monthlyLimit": 1500},
            "allowedMerchants": ["amazon.com", "ikea.com"],
        }
    )

    channel = map_agent_to_channel(agent)

    assert channel.description == "Finds lamps"
    assert channel.x402_integration is True
    assert channel.merchant_support == ["amazon.com", "ikea.com"]
    assert channel.transaction_limits.max_amount == Decimal("200")
    assert channel.transaction_limits.require_approval_above == Decimal("50")
    assert channel.transaction_limits.daily_limit == Decimal("100")
    assert channel.transaction_limits.weekly_limit == Decimal("500")
    assert channel.approval_workflow.require_approval_above == Decimal("50")
    assert channel.created_at == datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert channel.updated_at == datetime(2025, 1, 2, tzinfo=timezone.utc)
    assert channel.last_active_at == datetime(2025, 1, 3, tzinfo=timezone.utc)


def test_agent_without_permissions_gets_closed_defaults() -> None:
    agent = Agent.model_validate(
        {"id": "a1", "name": "Deal Hunter", "createdAt": "2025-01-01T00:00:00Z",
         "permissions": None, "budget": None, "allowedMerchants": None, "description": None}
    )

    channel = map_agent_to_channel(agent)

    assert channel.x402_integration is False
    assert channel.merchant_support == []
    assert channel.transaction_limits.max_amount == 0
    assert channel.description == ""
    assert channel.last_active_at is None


# ============================================================
#  Activity
# ============================================================


def _event(event_id: str, event_type: str, **metadata) -> ActivityEvent:
    return ActivityEvent.model_validate(
        {
            "id": event_id,
            "type": event_type,
            "title": "Event",
            "description": f"{event_type} happened",
            "agentId": "a1",
            "agentName": "Deal Hunter",
            "metadata": metadata,
            "createdAt": "2025-01-01T00:00:00Z",
        }
    )


@pytest.mark.parametrize(
    ("event_type", "status", "approval", "x402"),
    [
        ("payment_402", PaymentStatus.PENDING, None, True),
        ("transaction_completed", PaymentStatus.SUCCESS, None, False),
        ("approval_requested", PaymentStatus.PENDING, ApprovalStatus.PENDING, False),
        ("approval_granted", PaymentStatus.SUCCESS, ApprovalStatus.APPROVED, False),
        ("approval_rejected", PaymentStatus.FAILED, ApprovalStatus.REJECTED, False),
    ],
)
def test_map_activity_to_transaction(event_type, status, approval, x402) -> None:
    tx = map_activity_to_transaction(_event("e1", event_type, amount=12.5, merchant="ikea.com", txHash="0xabc"))

    assert tx is not None
    assert tx.type is ActivityType(event_type)
    assert tx.status is status
    assert tx.approval_status is approval
    assert tx.x402_protocol_call is x402
    assert tx.amount == Decimal("12.5")
    assert tx.merchant == "ikea.com"
    assert tx.tx_hash == "0xabc"
    assert tx.channel_id == "a1"
    assert tx.payment_channel == "Deal Hunter"
    assert tx.currency == "USDC"
    assert tx.description == f"{event_type} happened"


def test_non_payment_activity_is_not_a_transaction() -> None:
    assert map_activity_to_transaction(_event("e1", "tool_call")) is None
    assert map_activity_to_transaction(_event("e2", "something_new")) is None


def test_malformed_metadata_is_dropped() -> None:
    tx = map_activity_to_transaction(_event("e1", "payment_402", amount="lots", merchant=7))

    assert tx is not None
    assert tx.amount is None
    assert tx.merchant is None
    assert tx.tx_hash is None


def test_filter_and_map_payment_events_keep_order() -> None:
    events = [
        _event("e1", "agent_created"),
        _event("e2", "transaction_completed", amount="3"),
        _event("e3", "price_alert"),
        _event("e4", "payment_402"),
    ]

    assert [e.id for e in filter_payment_events(events)] == ["e2", "e4"]
    assert [t.id for t in map_payment_events(events)] == ["e2", "e4"]
