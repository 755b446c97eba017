"""
Identity module.

Provides the AuthGate contract and the principal it hands out.
"""

from .config_provider import ConfigFileAuthGate
from .provider import AuthGate
from .static_provider import StaticAuthGate
from .types import Principal, Role

__all__ = [
    "AuthGate",
    "ConfigFileAuthGate",
    "StaticAuthGate",
    "Principal",
    "Role",
]
