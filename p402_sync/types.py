"""
Pydantic models for the p402 sync runtime.

Wire payloads from the agent API arrive in either camelCase or
snake_case; every model accepts both and exposes snake_case attributes.
Monetary values are :class:`~decimal.Decimal` throughout.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field, ValidationInfo, field_validator


def _normalize_enum_token(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower().replace("_", "-")
    return value


def _as_utc(value: datetime) -> datetime:
    # Offset-less timestamps from the API are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Every wire timestamp is held timezone-aware in UTC, so any two compare.
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


# ============================================================
#  Enums
# ============================================================


class AgentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"
    ERROR = "error"


class TaskKind(str, Enum):
    MONITOR_PRICE = "monitor-price"
    PURCHASE = "purchase"
    OTHER = "other"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in-progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    PAYMENT = "payment"
    REFUND = "refund"


class ActivityType(str, Enum):
    AGENT_CREATED = "agent_created"
    AGENT_UPDATED = "agent_updated"
    TOOL_CALL = "tool_call"
    PAYMENT_402 = "payment_402"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_REJECTED = "approval_rejected"
    TRANSACTION_COMPLETED = "transaction_completed"
    WISHLIST_ADDED = "wishlist_added"
    PRICE_ALERT = "price_alert"
    AUTO_PURCHASE = "auto_purchase"


class PaymentStatus(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ============================================================
#  Identity
# ============================================================


class WalletInfo(BaseModel):
    """A wallet linked to the signed-in user."""

    address: str
    chain_id: int = Field(1, alias="chainId")
    chain_type: str = Field("ethereum", alias="chainType")
    wallet_client_type: str | None = Field(None, alias="walletClientType")
    is_embedded: bool = Field(False, alias="isEmbedded")

    model_config = {"populate_by_name": True}


class IdentityRecord(BaseModel):
    """The signed-in user as seen by the dashboard."""

    id: str = Field(min_length=1)
    display_name: str = Field(alias="displayName")
    email: str = ""
    avatar: str | None = None
    created_at: UtcDatetime | None = Field(None, alias="createdAt")
    wallet: WalletInfo | None = None

    model_config = {"populate_by_name": True}

    @property
    def wallet_address(self) -> str | None:
        return self.wallet.address if self.wallet else None


# ============================================================
#  Balance
# ============================================================


class Balance(BaseModel):
    """Spendable and pending funds. Both are non-negative."""

    available: Decimal = Field(Decimal("0"), ge=0)
    pending: Decimal = Field(Decimal("0"), ge=0)
    currency: str = "USDC"


class Transaction(BaseModel):
    """A single ledger entry. ``amount`` is signed."""

    id: str
    amount: Decimal
    timestamp: UtcDatetime = Field(alias="createdAt")
    status: TransactionStatus
    counterparty: str | None = Field(None, alias="merchantName")
    type: TransactionType = TransactionType.PAYMENT
    currency: str = "USDC"
    description: str = ""
    agent_id: str | None = Field(None, alias="agentId")
    tx_hash: str | None = Field(None, alias="txHash")

    model_config = {"populate_by_name": True}

    @field_validator("status", "type", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> Any:
        return _normalize_enum_token(value)


class UserWallet(BaseModel):
    """Server-side wallet provisioned for the user."""

    address: str
    network_id: str = Field("", alias="networkId")
    usdc_balance: Decimal = Field(Decimal("0"), alias="usdcBalance")

    model_config = {"populate_by_name": True}


# ============================================================
#  Agents & tasks
# ============================================================


class AgentPermissions(BaseModel):
    """What an agent may do on the user's behalf. Nothing is granted by default."""

    can_read_pages: bool = Field(False, alias="canReadPages")
    can_checkout: bool = Field(False, alias="canCheckout")
    max_transaction_amount: Decimal = Field(Decimal("0"), alias="maxTransactionAmount")
    require_approval_above: Decimal = Field(Decimal("0"), alias="requireApprovalAbove")
    allowed_categories: list[str] = Field(default_factory=list, alias="allowedCategories")
    blocked_merchants: list[str] = Field(default_factory=list, alias="blockedMerchants")

    model_config = {"populate_by_name": True}


class BudgetSpend(BaseModel):
    daily: Decimal = Decimal("0")
    weekly: Decimal = Decimal("0")
    monthly: Decimal = Decimal("0")


class AgentBudget(BaseModel):
    """Spending limits for an agent and what it has spent against them."""

    daily_limit: Decimal = Field(Decimal("0"), alias="dailyLimit")
    weekly_limit: Decimal = Field(Decimal("0"), alias="weeklyLimit")
    monthly_limit: Decimal = Field(Decimal("0"), alias="monthlyLimit")
    per_merchant_limit: Decimal = Field(Decimal("0"), alias="perMerchantLimit")
    spent: BudgetSpend = Field(default_factory=BudgetSpend)

    model_config = {"populate_by_name": True}


_NULL_DEFAULTS = {
    "description": str,
    "permissions": dict,
    "budget": dict,
    "allowed_merchants": list,
}


class Agent(BaseModel):
    """A purchasing agent owned by the user."""

    id: str
    name: str
    status: AgentStatus = AgentStatus.ACTIVE
    created_at: UtcDatetime = Field(alias="createdAt")
    description: str = ""
    updated_at: UtcDatetime | None = Field(None, alias="updatedAt")
    last_active_at: UtcDatetime | None = Field(None, alias="lastActiveAt")
    template: str | None = None
    avatar: str | None = None
    permissions: AgentPermissions = Field(default_factory=AgentPermissions)
    budget: AgentBudget = Field(default_factory=AgentBudget)
    allowed_merchants: list[str] = Field(default_factory=list, alias="allowedMerchants")

    model_config = {"populate_by_name": True}

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return _normalize_enum_token(value)

    @field_validator("description", "permissions", "budget", "allowed_merchants", mode="before")
    @classmethod
    def _null_means_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is not None:
            return value
        return _NULL_DEFAULTS[info.field_name]()


class Task(BaseModel):
    """A unit of agent work: a price watch, a purchase, or anything else.

    Unknown ``kind`` values are kept as :attr:`TaskKind.OTHER` so that a
    new server-side task type never breaks the roster.
    """

    id: str
    agent_id: str = Field(alias="agentId")
    kind: TaskKind = TaskKind.OTHER
    status: TaskStatus = TaskStatus.QUEUED
    amount: Decimal | None = None
    created_at: UtcDatetime = Field(alias="createdAt")
    completed_at: UtcDatetime | None = Field(None, alias="completedAt")

    # Scheduling attributes
    name: str = ""
    description: str | None = None
    enabled: bool = True
    cron: str | None = None
    minutes: int | None = None
    prompt: str = ""
    has_memory: bool = Field(False, alias="hasMemory")

    model_config = {"populate_by_name": True}

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: Any) -> Any:
        value = _normalize_enum_token(value)
        if value is None:
            return TaskKind.OTHER
        if value not in {k.value for k in TaskKind}:
            return TaskKind.OTHER
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return _normalize_enum_token(value)


class TaskLogEntry(BaseModel):
    """One execution record from a task's log."""

    id: str
    task_id: str = Field(alias="taskId")
    status: TaskStatus
    output: str | None = None
    created_at: UtcDatetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True}

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        return _normalize_enum_token(value)


# ============================================================
#  Derived views
# ============================================================


class PaymentRule(BaseModel):
    """Business view of a task: when it runs and what it is told to do."""

    id: str
    name: str
    description: str | None = None
    enabled: bool
    schedule: str | None = None
    prompt: str
    has_memory: bool


class TransactionLimits(BaseModel):
    max_amount: Decimal = Decimal("0")
    require_approval_above: Decimal = Decimal("0")
    daily_limit: Decimal = Decimal("0")
    weekly_limit: Decimal = Decimal("0")


class ApprovalWorkflow(BaseModel):
    require_approval_above: Decimal = Decimal("0")


class PaymentChannel(BaseModel):
    """Business view of an agent and the money its tasks have moved."""

    id: str
    name: str
    status: AgentStatus
    volume: Decimal
    task_count: int
    last_activity: datetime
    created_at: datetime
    description: str = ""
    payment_rules: list[PaymentRule] = []
    merchant_support: list[str] = []
    x402_integration: bool = False
    transaction_limits: TransactionLimits = Field(default_factory=TransactionLimits)
    approval_workflow: ApprovalWorkflow = Field(default_factory=ApprovalWorkflow)
    updated_at: datetime | None = None
    last_active_at: datetime | None = None


class PaymentTransaction(BaseModel):
    """Business view of a payment-related activity event."""

    id: str
    type: ActivityType
    status: PaymentStatus
    created_at: datetime
    amount: Decimal | None = None
    currency: str = "USDC"
    merchant: str | None = None
    payment_channel: str | None = None
    channel_id: str | None = None
    tx_hash: str | None = None
    x402_protocol_call: bool = False
    approval_status: ApprovalStatus | None = None
    description: str = ""


# ============================================================
#  Activity
# ============================================================


class ActivityEvent(BaseModel):
    """An entry in an agent's activity feed.

    ``type`` is kept as the raw string so feeds with newer event types
    still load; compare it against :class:`ActivityType`.
    """

    id: str
    type: str
    title: str = ""
    description: str = ""
    agent_id: str | None = Field(None, alias="agentId")
    agent_name: str | None = Field(None, alias="agentName")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: UtcDatetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True}

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


# ============================================================
#  Chat
# ============================================================


class ChatMessage(BaseModel):
    """A message in a conversation with an agent."""

    id: str
    agent_id: str = Field(alias="agentId")
    chat_id: str = Field(alias="chatId")
    author_type: str = Field("user", alias="authorType")
    author_id: str | None = Field(None, alias="authorId")
    message: str
    attachments: list[dict[str, Any]] | None = None
    created_at: UtcDatetime = Field(alias="createdAt")

    model_config = {"populate_by_name": True}


class ChatThread(BaseModel):
    """A conversation thread with one agent."""

    id: str
    agent_id: str = Field(alias="agentId")
    summary: str = ""
    rounds: int = 0
    created_at: UtcDatetime = Field(alias="createdAt")
    updated_at: UtcDatetime | None = Field(None, alias="updatedAt")

    model_config = {"populate_by_name": True}


class ChatPage(BaseModel):
    """One page of thread history, oldest message first."""

    messages: list[ChatMessage] = []
    next_cursor: str | None = Field(None, alias="nextCursor")
    has_more: bool = Field(False, alias="hasMore")

    model_config = {"populate_by_name": True}


# ============================================================
#  Events
# ============================================================


class StoreEvent(BaseModel):
    """A state-change notification emitted by one of the stores.

    Event types:
    - session.changed
    - balance.changed, transactions.changed, wallet.changed
    - agents.changed, tasks.changed
    - fetch.failed
    """

    type: str
    timestamp: str
    data: dict[str, Any] = Field(default_factory=dict)
