"""
In-process auth gate.

Holds whatever principal the login layer signed in. No credential
checking happens here.
"""

from ..exceptions import AuthenticationRequiredError
from .provider import AuthGate
from .types import Principal


class StaticAuthGate(AuthGate):
    """Auth gate backed by an explicitly signed-in principal."""

    def __init__(self, principal: Principal | None = None):
        self._principal = principal

    def sign_in(self, principal: Principal) -> None:
        self._principal = principal

    async def current_principal(self) -> Principal:
        if self._principal is None:
            raise AuthenticationRequiredError()
        return self._principal

    async def sign_out(self) -> None:
        self._principal = None
