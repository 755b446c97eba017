"""
Config file auth gate.

Reads the principal from a local settings file for development and
single-user installs.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from ..exceptions import AuthenticationRequiredError, ConfigurationError
from .provider import AuthGate
from .types import Principal

logger = logging.getLogger(__name__)


class ConfigFileAuthGate(AuthGate):
    """Auth gate that reads the principal from local config.

    Configuration in ~/.resolution_sync/settings.yaml:

    ```yaml
    identity:
      id: "kim.minjun"
      name: "Kim Minjun"
      role: "user"        # or "admin"
      dept: "Finance"
    ```

    Without an identity section nobody is signed in.
    """

    def __init__(self, config_path: Path | None = None):
        """Initialize the config file gate.

        Args:
            config_path: Path to settings.yaml. Defaults to ~/.resolution_sync/settings.yaml
        """
        self.config_path = config_path or Path.home() / ".resolution_sync" / "settings.yaml"
        self._principal: Principal | None = None
        self._signed_out = False

    async def current_principal(self) -> Principal:
        """Get the principal from config, cached after the first read."""
        if self._signed_out:
            raise AuthenticationRequiredError()
        if self._principal is not None:
            return self._principal

        identity_config = self._load_config().get("identity")
        if not identity_config:
            raise AuthenticationRequiredError(f"No identity configured in {self.config_path}")
        if not isinstance(identity_config, dict):
            raise ConfigurationError("identity", "section must be a mapping")

        try:
            self._principal = Principal.from_dict(identity_config)
        except ValueError as e:
            raise ConfigurationError("identity", str(e)) from e
        return self._principal

    async def sign_out(self) -> None:
        """Clear the cached principal. The config file is not modified."""
        self._principal = None
        self._signed_out = True

    async def sign_in_again(self) -> Principal:
        """Re-read the config file after a sign out."""
        self._signed_out = False
        return await self.current_principal()

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            return {}

        try:
            content = self.config_path.read_text(encoding="utf-8")
            return yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            logger.warning(f"Ignoring unreadable settings file {self.config_path}: {e}")
            return {}
