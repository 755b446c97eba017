"""
Session context.

One explicit object carries the collaborators every component needs: who
is acting, where to publish events, what time it is, and the settings.
It is passed to constructors; nothing reads it from module state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .access.controller import AccessController
from .clock import Clock, SystemClock
from .config import SyncConfig
from .identity.provider import AuthGate
from .identity.types import Principal
from .realtime.events import EventBus


@dataclass
class SessionContext:
    """Collaborators shared by the stores, the workflow engine and the board."""

    auth: AuthGate
    config: SyncConfig = field(default_factory=SyncConfig)
    bus: EventBus = field(default_factory=EventBus)
    clock: Clock = field(default_factory=SystemClock)
    access: AccessController | None = None

    def __post_init__(self) -> None:
        if self.access is None:
            self.access = AccessController(self.config.task_edit_policy)

    async def principal(self) -> Principal:
        """Current principal.

        Raises:
            AuthenticationRequiredError: If nobody is signed in
        """
        return await self.auth.current_principal()
