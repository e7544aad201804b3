"""Session state shared between the registration flow and the rest of the app."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from .errors import AlreadyPublishedError

if TYPE_CHECKING:  # pragma: no cover - imported for static type checking only
    from .client import ProvisioningClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserIdentity:
    """The signed-in user. ``id`` doubles as the credential passphrase."""

    id: str
    name: Optional[str] = None


class ClientSlot(Enum):
    UNSET = "unset"
    SIMULATED = "simulated"
    CONNECTED = "connected"


class ActionType(Enum):
    CONNECT = "CONNECT"


@dataclass(frozen=True, slots=True)
class Action:
    """A state mutation. ``payload`` is a client, or ``None`` for simulation."""

    type: ActionType
    payload: Any = None


Listener = Callable[[Action], None]


class ConfigStore:
    """Holds the active provisioning client for the lifetime of a session.

    The client slot is written at most once. A second ``CONNECT`` raises
    :class:`AlreadyPublishedError` instead of replacing the live client.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slot = ClientSlot.UNSET
        self._client: Optional["ProvisioningClient"] = None
        self._listeners: List[Listener] = []

    @property
    def slot(self) -> ClientSlot:
        return self._slot

    @property
    def client(self) -> Optional["ProvisioningClient"]:
        return self._client

    @property
    def is_published(self) -> bool:
        return self._slot is not ClientSlot.UNSET

    @property
    def is_simulated(self) -> bool:
        return self._slot is ClientSlot.SIMULATED

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for published actions; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> None:
        if action.type is not ActionType.CONNECT:
            raise ValueError(f"Unsupported action: {action.type}")

        with self._lock:
            if self._slot is not ClientSlot.UNSET:
                raise AlreadyPublishedError("A client has already been published")
            if action.payload is None:
                self._slot = ClientSlot.SIMULATED
            else:
                self._slot = ClientSlot.CONNECTED
                self._client = action.payload

        logger.info("Published %s client", self._slot.value)
        for listener in list(self._listeners):
            listener(action)

    def publish(self, client: Optional["ProvisioningClient"]) -> None:
        """Publish a connected client, or ``None`` for a simulated session."""

        self.dispatch(Action(ActionType.CONNECT, client))


__all__ = ["UserIdentity", "ClientSlot", "ActionType", "Action", "ConfigStore"]
