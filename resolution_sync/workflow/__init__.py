"""Document approval workflow."""

from .engine import WorkflowEngine
from .transitions import TRANSITIONS, allowed_actions, target_status

__all__ = ["WorkflowEngine", "TRANSITIONS", "allowed_actions", "target_status"]
