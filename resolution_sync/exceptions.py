"""
Custom exceptions for the synced record store.

Workflow and board operations return these inside a WriteResult instead of
raising them; the sync layer raises them internally and absorbs the
remote-side ones as soft failures.
"""


class ResolutionSyncError(Exception):
    """Base exception for all resolution sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RecordNotFoundError(ResolutionSyncError):
    """Raised when a mutation targets a record that is not in the collection."""

    def __init__(self, record_id: str, collection: str | None = None):
        details = {"record_id": record_id}
        if collection:
            details["collection"] = collection
        super().__init__(f"Record not found: {record_id}", details)
        self.record_id = record_id
        self.collection = collection


class PermissionDeniedError(ResolutionSyncError):
    """Principal is not allowed to perform the requested action.

    Note: Named PermissionDeniedError to avoid shadowing the builtin PermissionError.
    """

    def __init__(self, principal_id: str, action: str, reason: str, record_id: str | None = None):
        details = {"principal_id": principal_id, "action": action, "reason": reason}
        if record_id:
            details["record_id"] = record_id
        target = f" on {record_id}" if record_id else ""
        super().__init__(
            f"Permission denied for {principal_id} to {action}{target}: {reason}",
            details,
        )
        self.principal_id = principal_id
        self.action = action
        self.reason = reason
        self.record_id = record_id


class InvalidTransitionError(ResolutionSyncError):
    """Raised when an action is not legal from the record's current status."""

    def __init__(self, record_id: str, action: str, current_status: str):
        super().__init__(
            f"Cannot {action} document {record_id} in status '{current_status}'",
            {"record_id": record_id, "action": action, "current_status": current_status},
        )
        self.record_id = record_id
        self.action = action
        self.current_status = current_status


class RemoteUnavailableError(ResolutionSyncError):
    """Raised when the remote store cannot be reached.

    This is a soft failure: the synced store degrades to the local cache.
    """

    def __init__(self, operation: str, table: str | None = None, cause: Exception | None = None):
        details: dict = {"operation": operation}
        if table:
            details["table"] = table
        if cause:
            details["cause"] = str(cause)
        message = f"Remote store unavailable during {operation}"
        if table:
            message += f" on {table}"
        super().__init__(message, details)
        self.operation = operation
        self.table = table
        self.cause = cause


class RemoteTimeoutError(RemoteUnavailableError):
    """Raised when a remote call loses the race against its timeout."""

    def __init__(self, operation: str, table: str | None = None, timeout: float | None = None):
        super().__init__(operation, table, TimeoutError(f"timed out after {timeout}s"))
        self.timeout = timeout


class RemoteRejectedError(ResolutionSyncError):
    """Raised when the remote store answers but refuses a write."""

    def __init__(self, operation: str, table: str, reason: str, code: str | None = None):
        details = {"operation": operation, "table": table, "reason": reason}
        if code:
            details["code"] = code
        super().__init__(f"Remote store rejected {operation} on {table}: {reason}", details)
        self.operation = operation
        self.table = table
        self.reason = reason
        self.code = code


class SubscriptionError(ResolutionSyncError):
    """Raised when a change-feed subscription cannot be opened."""

    def __init__(self, table: str, reason: str):
        super().__init__(
            f"Cannot subscribe to changes on {table}: {reason}",
            {"table": table, "reason": reason},
        )
        self.table = table
        self.reason = reason


class StorageIOError(ResolutionSyncError):
    """Raised when a local cache I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class ConfigurationError(ResolutionSyncError):
    """Raised when required configuration is missing or invalid."""

    def __init__(self, setting: str, reason: str):
        super().__init__(
            f"Invalid configuration for {setting}: {reason}",
            {"setting": setting, "reason": reason},
        )
        self.setting = setting
        self.reason = reason


class AuthenticationRequiredError(ResolutionSyncError):
    """Raised when an operation needs a principal but nobody is signed in."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)
