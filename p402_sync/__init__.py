"""
p402 dashboard sync runtime for Python.

Keeps a signed-in user's identity, funds and purchasing agents in sync
with the p402 agent API, and derives the payment-channel view from the
agents' tasks.

Example::

    from p402_sync import DashboardRuntime

    runtime = DashboardRuntime(provider)   # any IdentityProvider
    await runtime.reconcile()

    print(runtime.session.identity)
    print(runtime.balance.balance.available)
    for channel in runtime.channels:
        print(channel.name, channel.status, channel.volume)

    await runtime.chat.send_message(agent_id, thread_id, "Watch this for me")
    await runtime.close()
"""

from p402_sync.agents import AgentTaskStore
from p402_sync.balance import BalanceStore
from p402_sync.channels import (
    derive_channels,
    filter_payment_events,
    map_activity_to_transaction,
    map_agent_to_channel,
    map_payment_events,
    map_task_to_payment_rule,
)
from p402_sync.chat import ChatSessionService
from p402_sync.client import AgentApiClient
from p402_sync.config import SyncSettings
from p402_sync.errors import (
    AuthRequired,
    ErrorKind,
    MappingError,
    NetworkError,
    NotFound,
    SyncError,
    TokenAcquisitionFailed,
)
from p402_sync.events import EventBus
from p402_sync.gate import IdentityProvider, TokenGate
from p402_sync.runtime import DashboardRuntime
from p402_sync.session import SessionStore, map_raw_user
from p402_sync.types import (
    ActivityEvent,
    ActivityType,
    Agent,
    AgentBudget,
    AgentPermissions,
    AgentStatus,
    ApprovalStatus,
    Balance,
    ChatMessage,
    ChatPage,
    ChatThread,
    IdentityRecord,
    PaymentChannel,
    PaymentRule,
    PaymentStatus,
    PaymentTransaction,
    StoreEvent,
    Task,
    TaskKind,
    TaskLogEntry,
    TaskStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    UserWallet,
    WalletInfo,
)

__all__ = [
    "DashboardRuntime",
    "SyncSettings",
    "AgentApiClient",
    "IdentityProvider",
    "TokenGate",
    "SessionStore",
    "BalanceStore",
    "AgentTaskStore",
    "ChatSessionService",
    "EventBus",
    "map_raw_user",
    "map_agent_to_channel",
    "map_task_to_payment_rule",
    "derive_channels",
    "filter_payment_events",
    "map_activity_to_transaction",
    "map_payment_events",
    "SyncError",
    "ErrorKind",
    "AuthRequired",
    "NetworkError",
    "NotFound",
    "MappingError",
    "TokenAcquisitionFailed",
    "ActivityEvent",
    "ActivityType",
    "Agent",
    "AgentBudget",
    "AgentPermissions",
    "AgentStatus",
    "ApprovalStatus",
    "Balance",
    "ChatMessage",
    "ChatPage",
    "ChatThread",
    "IdentityRecord",
    "PaymentChannel",
    "PaymentRule",
    "PaymentStatus",
    "PaymentTransaction",
    "StoreEvent",
    "Task",
    "TaskKind",
    "TaskLogEntry",
    "TaskStatus",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "UserWallet",
    "WalletInfo",
]

__version__ = "0.1.0"
