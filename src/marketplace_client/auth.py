"""In-process session holder for the signed-in user."""

import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from marketplace_client.models import AuthUser

logger = logging.getLogger(__name__)

AuthListener = Callable[[Optional[AuthUser]], Union[None, Awaitable[None]]]


class AuthSession:
    """Holds the current user and token and notifies listeners on change.

    The OAuth exchange itself is done by the host application, which calls
    :meth:`sign_in` with the result.
    """

    def __init__(self, user: Optional[AuthUser] = None, access_token: Optional[str] = None):
        self._user = user
        self._access_token = access_token
        self._listeners: List[AuthListener] = []

    def get_current_user(self) -> Optional[AuthUser]:
        return self._user

    def get_access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, user: AuthUser, access_token: Optional[str] = None) -> None:
        self._user = user
        self._access_token = access_token
        logger.info(f"Signed in as {user.id}")
        await self._notify()

    async def sign_out(self) -> None:
        if self._user is None and self._access_token is None:
            return
        self._user = None
        self._access_token = None
        logger.info("Signed out")
        await self._notify()

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            result = listener(self._user)
            if inspect.isawaitable(result):
                await result
