"""
Auth gate abstract interface.

The login layer is out of scope; whatever signs a user in hands the
resulting Principal to an AuthGate, and every component asks the gate
who is acting.
"""

from abc import ABC, abstractmethod

from ..exceptions import AuthenticationRequiredError
from .types import Principal


class AuthGate(ABC):
    """Supplies the currently signed-in principal.

    After sign_out(), current_principal() raises
    AuthenticationRequiredError until someone signs in again.
    """

    @abstractmethod
    async def current_principal(self) -> Principal:
        """Get the signed-in principal.

        Raises:
            AuthenticationRequiredError: If nobody is signed in
        """
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        """Forget the signed-in principal."""
        ...

    async def is_signed_in(self) -> bool:
        try:
            await self.current_principal()
        except AuthenticationRequiredError:
            return False
        return True
