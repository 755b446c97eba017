"""
Runtime configuration.

Settings come from environment variables (``RESOLUTION_SYNC_*``) or from the
``sync:`` section of a YAML settings file:

```yaml
sync:
  cache_dir: ~/.resolution_sync/cache
  document_load_timeout: 5.0
  task_load_timeout: 1.5
  comment_load_timeout: 1.0
  write_timeout: 5.0
  cancel_on_timeout: false
  enable_outbox: false
  refresh_interval: 30
  board_utc_offset_hours: 9
  task_edit_policy: owner_or_admin
  cosmos:
    endpoint: https://example.documents.azure.com:443/
    key: "..."
    database: resolution_sync
  change_feed:
    url: https://relay.example.com/realtime
    api_key: "..."
    use_websocket: false
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .access.permissions import TaskEditPolicy
from .exceptions import ConfigurationError
from .remote.cosmos import CosmosConfig

ENV_PREFIX = "RESOLUTION_SYNC_"

DEFAULT_CACHE_DIR = Path.home() / ".resolution_sync" / "cache"


@dataclass
class SyncConfig:
    """Configuration for a resolution workspace.

    Attributes:
        cache_dir: Directory for local cache blobs
        document_load_timeout: Seconds to wait for the remote on document loads
        task_load_timeout: Seconds to wait for the remote on task loads
        comment_load_timeout: Seconds to wait for the remote on comment loads
        write_timeout: Seconds to wait for a remote write before reporting it unsynced
        cancel_on_timeout: Cancel remote calls that lose the timeout race
            instead of letting them finish in the background
        enable_outbox: Queue unsynced writes on disk and replay them later
        outbox_path: Location of the outbox queue file
        refresh_interval: Seconds between periodic reloads when no change
            feed is available (None disables periodic refresh)
        board_utc_offset_hours: Fixed UTC offset that defines the board's "today"
        task_edit_policy: Who may edit or delete tasks and comments
        cosmos_endpoint: Cosmos DB account endpoint (None runs local-only)
        cosmos_key: Cosmos DB account key
        cosmos_database: Cosmos DB database name
        change_feed_url: Change relay URL for push updates
        change_feed_api_key: Bearer token for the change relay
        change_feed_use_websocket: Use WebSocket instead of SSE
    """

    cache_dir: Path = DEFAULT_CACHE_DIR
    document_load_timeout: float = 5.0
    task_load_timeout: float = 1.5
    comment_load_timeout: float = 1.0
    write_timeout: float = 5.0
    cancel_on_timeout: bool = False
    enable_outbox: bool = False
    outbox_path: Path | None = None
    refresh_interval: float | None = None
    board_utc_offset_hours: float = 9.0
    task_edit_policy: TaskEditPolicy = TaskEditPolicy.OWNER_OR_ADMIN

    cosmos_endpoint: str | None = None
    cosmos_key: str | None = None
    cosmos_database: str = "resolution_sync"

    change_feed_url: str | None = None
    change_feed_api_key: str | None = None
    change_feed_use_websocket: bool = False

    def __post_init__(self) -> None:
        self.cache_dir = Path(self.cache_dir).expanduser()
        if self.outbox_path is not None:
            self.outbox_path = Path(self.outbox_path).expanduser()
        if isinstance(self.task_edit_policy, str):
            self.task_edit_policy = _parse_policy(self.task_edit_policy)
        for name in (
            "document_load_timeout",
            "task_load_timeout",
            "comment_load_timeout",
            "write_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(name, "must be a positive number of seconds")
        if self.refresh_interval is not None and self.refresh_interval <= 0:
            raise ConfigurationError("refresh_interval", "must be positive when set")

    @property
    def remote_enabled(self) -> bool:
        return bool(self.cosmos_endpoint)

    @property
    def resolved_outbox_path(self) -> Path:
        return self.outbox_path or self.cache_dir / "pending_writes.jsonl"

    def cosmos_config(self) -> CosmosConfig:
        """Build the Cosmos DB connection settings.

        Raises:
            ConfigurationError: If the endpoint or key is missing
        """
        if not self.cosmos_endpoint:
            raise ConfigurationError("cosmos_endpoint", "not set")
        if not self.cosmos_key:
            raise ConfigurationError("cosmos_key", "not set")
        return CosmosConfig(
            endpoint=self.cosmos_endpoint,
            key=self.cosmos_key,
            database_name=self.cosmos_database,
        )

    @classmethod
    def from_environment(cls) -> SyncConfig:
        """Create configuration from environment variables.

        Every field maps to ``RESOLUTION_SYNC_<FIELD_NAME>`` in upper case,
        e.g. ``RESOLUTION_SYNC_TASK_LOAD_TIMEOUT=2.5``. Unset variables keep
        their defaults.

        Raises:
            ConfigurationError: If a variable cannot be parsed
        """
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(f.name, raw, _FIELD_KINDS[f.name])
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path | str) -> SyncConfig:
        """Create configuration from the ``sync:`` section of a YAML file.

        Nested ``cosmos:`` and ``change_feed:`` sections are flattened onto
        the matching ``cosmos_*`` and ``change_feed_*`` fields. A missing
        file or section yields the defaults.

        Raises:
            ConfigurationError: If the file is not valid YAML or holds unknown keys
        """
        config_path = Path(path).expanduser()
        if not config_path.exists():
            return cls()

        try:
            document = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(str(config_path), f"invalid YAML: {e}") from e

        section = document.get("sync") or {}
        if not isinstance(section, dict):
            raise ConfigurationError("sync", "section must be a mapping")

        values: dict[str, Any] = {}
        for key, value in section.items():
            if key in ("cosmos", "change_feed") and isinstance(value, dict):
                for sub_key, sub_value in value.items():
                    values[f"{key}_{sub_key}"] = sub_value
            else:
                values[key] = value

        unknown = set(values) - set(_FIELD_KINDS)
        if unknown:
            raise ConfigurationError("sync", f"unknown settings: {', '.join(sorted(unknown))}")

        parsed = {
            name: _coerce(name, value, _FIELD_KINDS[name]) if isinstance(value, str) else value
            for name, value in values.items()
        }
        return cls(**parsed)


_FIELD_KINDS: dict[str, str] = {
    "cache_dir": "path",
    "document_load_timeout": "float",
    "task_load_timeout": "float",
    "comment_load_timeout": "float",
    "write_timeout": "float",
    "cancel_on_timeout": "bool",
    "enable_outbox": "bool",
    "outbox_path": "path",
    "refresh_interval": "float",
    "board_utc_offset_hours": "float",
    "task_edit_policy": "policy",
    "cosmos_endpoint": "str",
    "cosmos_key": "str",
    "cosmos_database": "str",
    "change_feed_url": "str",
    "change_feed_api_key": "str",
    "change_feed_use_websocket": "bool",
}


def _parse_policy(value: str) -> TaskEditPolicy:
    try:
        return TaskEditPolicy(value.strip().lower())
    except ValueError as e:
        choices = ", ".join(p.value for p in TaskEditPolicy)
        raise ConfigurationError("task_edit_policy", f"expected one of {choices}") from e


def _coerce(name: str, raw: str, kind: str) -> Any:
    if kind == "float":
        try:
            return float(raw)
        except ValueError as e:
            raise ConfigurationError(name, f"not a number: {raw!r}") from e
    if kind == "bool":
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if kind == "path":
        return Path(raw)
    if kind == "policy":
        return _parse_policy(raw)
    return raw
