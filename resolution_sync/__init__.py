"""
Resolution Sync

Local-first synchronized record store for expense-resolution documents and
a shared daily task board.

Features:
- Dual-write / fallback-read over a durable local cache and a remote store
- Push change propagation with periodic-refresh fallback
- Approval workflow state machine with owner/admin permissions
- Date-partitioned task board and append-only comment stream
"""

from .access import AccessController, AccessDecision, Action, TaskEditPolicy
from .board import CommentStream, TaskBoard, TaskStats
from .clock import Clock, DeterministicClock, SystemClock
from .config import SyncConfig
from .exceptions import (
    AuthenticationRequiredError,
    ConfigurationError,
    InvalidTransitionError,
    PermissionDeniedError,
    RecordNotFoundError,
    RemoteRejectedError,
    RemoteTimeoutError,
    RemoteUnavailableError,
    ResolutionSyncError,
    StorageIOError,
    SubscriptionError,
)
from .identity import AuthGate, ConfigFileAuthGate, Principal, Role, StaticAuthGate
from .local import FileCache, LocalCache, MemoryCache
from .logging_utils import configure_structured_logging
from .realtime import (
    ChangeNotifier,
    CollectionChanged,
    EventBus,
    RemoteWriteFailed,
    SubscriptionStatusChanged,
)
from .records import (
    Approval,
    Comment,
    CommentStatus,
    Document,
    DocumentStatus,
    FormType,
    TaskItem,
    TaskStatus,
)
from .remote import (
    ChangeFeedClient,
    CosmosConfig,
    CosmosRemoteStore,
    InMemoryRemoteStore,
    RemoteStore,
)
from .session import SessionContext
from .synced import CollectionSpec, PendingWriteQueue, SyncedRecordStore, WriteResult
from .workflow import WorkflowEngine
from .workspace import ResolutionWorkspace

__version__ = "0.1.0"

__all__ = [
    # Workspace
    "ResolutionWorkspace",
    "SessionContext",
    "SyncConfig",
    # Records
    "Document",
    "DocumentStatus",
    "FormType",
    "Approval",
    "TaskItem",
    "TaskStatus",
    "Comment",
    "CommentStatus",
    # Sync
    "SyncedRecordStore",
    "CollectionSpec",
    "WriteResult",
    "PendingWriteQueue",
    "LocalCache",
    "FileCache",
    "MemoryCache",
    "RemoteStore",
    "InMemoryRemoteStore",
    "CosmosRemoteStore",
    "CosmosConfig",
    "ChangeFeedClient",
    # Realtime
    "EventBus",
    "ChangeNotifier",
    "CollectionChanged",
    "SubscriptionStatusChanged",
    "RemoteWriteFailed",
    # Workflow and board
    "WorkflowEngine",
    "TaskBoard",
    "TaskStats",
    "CommentStream",
    # Identity and access
    "AuthGate",
    "StaticAuthGate",
    "ConfigFileAuthGate",
    "Principal",
    "Role",
    "AccessController",
    "AccessDecision",
    "Action",
    "TaskEditPolicy",
    # Time
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Logging
    "configure_structured_logging",
    # Exceptions
    "ResolutionSyncError",
    "RecordNotFoundError",
    "PermissionDeniedError",
    "InvalidTransitionError",
    "RemoteUnavailableError",
    "RemoteTimeoutError",
    "RemoteRejectedError",
    "SubscriptionError",
    "StorageIOError",
    "ConfigurationError",
    "AuthenticationRequiredError",
]
