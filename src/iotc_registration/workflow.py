"""The device verification workflow.

The workflow is a small state machine that sits between the registration
screen and the collaborators doing the real work::

    CHOOSING_METHOD --numeric--> ENTERING_CODE --submit--> CONNECTING
                    --scan-----> SCANNING      --read----> CONNECTING
                    --simulate-> (publish None)

    CONNECTING --ok--> (publish client)
               --failure--> ERROR --dismiss--> ENTERING_CODE | SCANNING

Back always returns to ``CHOOSING_METHOD``. Once the store holds a client, or
while no user is signed in, the workflow reports ``IDLE`` and ignores input.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from .client import ProvisioningClientFactory
from .config import AppConfig
from .credentials import CredentialDecoder
from .errors import AlreadyPublishedError, RegistrationError
from .source import AcquisitionMethod, CredentialSource, Numeric, Scanned, Simulated
from .state import ConfigStore, UserIdentity

logger = logging.getLogger(__name__)


class WorkflowState(Enum):
    IDLE = "idle"
    CHOOSING_METHOD = "choosing_method"
    ENTERING_CODE = "entering_code"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    ERROR = "error"


_ENTRY_STATES = (
    WorkflowState.CHOOSING_METHOD,
    WorkflowState.ENTERING_CODE,
    WorkflowState.SCANNING,
)

_METHOD_STATES = {
    Numeric: WorkflowState.ENTERING_CODE,
    Scanned: WorkflowState.SCANNING,
}


class VerificationWorkflow:
    def __init__(
        self,
        store: ConfigStore,
        user: Optional[UserIdentity],
        source: CredentialSource,
        decoder: CredentialDecoder,
        factory: ProvisioningClientFactory,
        config: Optional[AppConfig] = None,
    ):
        self._store = store
        self._user = user
        self._source = source
        self._decoder = decoder
        self._factory = factory
        self._error_message = (config or AppConfig()).error_message

        self._state = WorkflowState.CHOOSING_METHOD
        self._resume_state: Optional[WorkflowState] = None
        self._pending: Optional[AcquisitionMethod] = None
        self._last_error: Optional[BaseException] = None

    @property
    def is_active(self) -> bool:
        return self._user is not None and not self._store.is_published

    @property
    def state(self) -> WorkflowState:
        if not self.is_active:
            return WorkflowState.IDLE
        return self._state

    @property
    def is_loading(self) -> bool:
        return self.state is WorkflowState.CONNECTING

    @property
    def error_message(self) -> Optional[str]:
        """The message shown to the user; identical for every failure kind."""

        if self.state is WorkflowState.ERROR:
            return self._error_message
        return None

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    def _transition(self, target: WorkflowState) -> None:
        logger.debug("Workflow %s -> %s", self._state.value, target.value)
        self._state = target

    def _reset(self) -> None:
        self._pending = None
        self._resume_state = None
        self._last_error = None
        self._transition(WorkflowState.CHOOSING_METHOD)

    def choose_numeric(self) -> bool:
        if self.state is not WorkflowState.CHOOSING_METHOD:
            return False
        self._transition(WorkflowState.ENTERING_CODE)
        return True

    def choose_scan(self) -> bool:
        if self.state is not WorkflowState.CHOOSING_METHOD:
            return False
        self._transition(WorkflowState.SCANNING)
        return True

    def choose_simulated(self) -> bool:
        return self.begin(Simulated())

    def begin(self, method: AcquisitionMethod) -> bool:
        """Accept ``method`` if the current page allows it.

        A simulated connection is published immediately. Numeric and scanned
        input move the workflow to ``CONNECTING``; :meth:`complete` then does
        the work. Returns ``False`` when the input is ignored, which includes
        every call made while an attempt is in flight.
        """

        state = self.state
        if isinstance(method, Simulated):
            if state not in _ENTRY_STATES:
                return False
            self._store.publish(None)
            self._reset()
            return True

        try:
            expected = _METHOD_STATES[type(method)]
        except KeyError as exc:
            raise TypeError(f"Unknown acquisition method: {method!r}") from exc

        if state is not expected:
            logger.debug("Ignoring %s while %s", type(method).__name__, state.value)
            return False

        self._resume_state = state
        self._pending = method
        self._last_error = None
        self._transition(WorkflowState.CONNECTING)
        return True

    async def complete(self) -> WorkflowState:
        """Run lookup, decode and connect for the accepted input."""

        if self.state is not WorkflowState.CONNECTING or self._pending is None:
            return self.state

        try:
            payload = await self._source.acquire(self._pending)
            credentials = self._decoder.decode(payload, self._user)
            client = await self._factory.connect(credentials)
            try:
                self._store.publish(client)
            except AlreadyPublishedError:
                await client.disconnect()
                raise
        except RegistrationError as exc:
            logger.warning("Verification failed (%s): %s", exc.kind, exc)
            self._fail(exc)
        except Exception as exc:
            logger.exception("Unexpected verification failure")
            self._fail(exc)
        else:
            logger.info("Device %s verified", credentials.device_id)
            self._pending = None
            self._resume_state = None

        return self.state

    def _fail(self, exc: BaseException) -> None:
        self._pending = None
        self._last_error = exc
        self._transition(WorkflowState.ERROR)

    async def verify(self, method: AcquisitionMethod) -> bool:
        if not self.begin(method):
            return False
        await self.complete()
        return True

    async def submit_code(self, code: str) -> bool:
        return await self.verify(Numeric(code))

    async def on_scan(self, data: str | bytes) -> bool:
        return await self.verify(Scanned(data))

    def dismiss_error(self) -> bool:
        """Close the error dialog and return to the page the attempt came from."""

        if self.state is not WorkflowState.ERROR:
            return False
        target = self._resume_state or WorkflowState.CHOOSING_METHOD
        self._resume_state = None
        self._transition(target)
        return True

    def back(self) -> bool:
        """Handle the hardware back action.

        Always lands on ``CHOOSING_METHOD`` rather than stepping back one page.
        An attempt in flight cannot be cancelled, so back is swallowed while
        connecting. Returns ``True`` if the event was consumed.
        """

        state = self.state
        if state is WorkflowState.IDLE:
            return False
        if state is not WorkflowState.CONNECTING:
            self._reset()
        return True


__all__ = ["WorkflowState", "VerificationWorkflow"]
