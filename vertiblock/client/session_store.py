"""Client-side authentication state with persistence."""

import json
from typing import Callable, List, Optional

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from vertiblock.client.storage import LocalStorage
from vertiblock.models.account import AccountView

logger = structlog.get_logger(__name__)

STORAGE_KEY = "auth-storage"

Listener = Callable[["SessionState"], None]


class SessionState(BaseModel):
    """What the client currently believes about its session."""

    user: Optional[AccountView] = None
    is_authenticated: bool = False
    is_loading: bool = False
    error: Optional[str] = None
    is_initialized: bool = False


class SessionStore:
    """Reactive holder of the client session.

    Only ``user`` and ``is_authenticated`` are persisted. When a persisted
    state is found at construction, loading and error are reset and the
    store counts as initialized, so a resumed session never looks like it
    is mid-request or mid-error.
    """

    def __init__(self, storage: Optional[LocalStorage] = None):
        self.storage = storage or LocalStorage()
        self._state = SessionState()
        self._listeners: List[Listener] = []
        self._rehydrate()

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new state after every change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, **changes) -> None:
        self._state = self._state.model_copy(update=changes)
        self._persist()
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error("session_listener_failed", error=str(e))

    # Actions

    def login(self, user: AccountView) -> None:
        self._set(user=user, is_authenticated=True, error=None, is_loading=False)

    def logout(self) -> None:
        self._set(user=None, is_authenticated=False, error=None, is_loading=False)

    def set_user(self, user: Optional[AccountView]) -> None:
        self._set(user=user, is_authenticated=user is not None, error=None)

    def set_loading(self, loading: bool) -> None:
        self._set(is_loading=loading)

    def set_error(self, error: Optional[str]) -> None:
        self._set(error=error, is_loading=False)

    def clear_error(self) -> None:
        self._set(error=None)

    def initialize(self) -> None:
        if not self._state.is_initialized:
            self._set(is_initialized=True)

    def reset(self) -> None:
        self._set(**SessionState().model_dump())

    # Persistence

    def _persist(self) -> None:
        user = self._state.user
        snapshot = {
            "state": {
                "user": user.model_dump(mode="json", by_alias=True) if user else None,
                "isAuthenticated": self._state.is_authenticated,
            },
            "version": 0,
        }
        self.storage.set_item(STORAGE_KEY, json.dumps(snapshot))

    def _rehydrate(self) -> None:
        raw = self.storage.get_item(STORAGE_KEY)
        if raw is None:
            return

        try:
            persisted = json.loads(raw)
            state = persisted["state"]
            user = AccountView.model_validate(state["user"]) if state.get("user") else None
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError, PydanticValidationError) as e:
            logger.error("session_storage_unreadable", error=str(e))
            return

        self._state = SessionState(
            user=user,
            is_authenticated=user is not None,
            is_loading=False,
            error=None,
            is_initialized=True,
        )
        logger.debug("session_rehydrated", is_authenticated=self._state.is_authenticated)
