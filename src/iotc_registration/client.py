"""Provisioning and connection of the Azure IoT device client."""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Any, Optional

from azure.iot.device.aio import IoTHubDeviceClient, ProvisioningDeviceClient

from .config import AppConfig
from .credentials import Credentials
from .errors import ClientConnectionError

logger = logging.getLogger(__name__)

SDK_LOGGER = "azure.iot.device"


def derive_device_key(group_key: str, device_id: str) -> str:
    """Derive a device's symmetric key from its enrollment group key."""

    try:
        secret = base64.b64decode(group_key, validate=True)
    except ValueError as exc:
        raise ClientConnectionError("Group key is not valid base64") from exc
    digest = hmac.new(secret, device_id.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


async def shutdown_quietly(closable: Any) -> bool:
    """Shut down a device client or :class:`ProvisioningClient`, logging failures.

    Returns ``False`` if the shutdown raised.
    """

    if isinstance(closable, ProvisioningClient):
        close = closable.disconnect
    else:
        close = closable.shutdown
    try:
        await close()
    except Exception:
        logger.warning("Shutdown of %r raised", closable, exc_info=True)
        return False
    return True


class ProvisioningClient:
    """A connected device client together with the identity it was opened for."""

    def __init__(self, device_client: Any, device_id: str, model_id: str, hub: str):
        self.device_client = device_client
        self.device_id = device_id
        self.model_id = model_id
        self.hub = hub

    @property
    def connected(self) -> bool:
        return bool(getattr(self.device_client, "connected", False))

    async def disconnect(self) -> None:
        await self.device_client.shutdown()

    def __repr__(self) -> str:
        return f"ProvisioningClient(device_id={self.device_id!r}, hub={self.hub!r})"


class ProvisioningClientFactory:
    """Register a device with DPS and connect it to its assigned hub.

    One attempt per call. Retry and timeout behaviour is whatever the SDK
    does; nothing is layered on top here.
    """

    def __init__(
        self,
        config: AppConfig,
        provisioning_client_cls: Any = ProvisioningDeviceClient,
        device_client_cls: Any = IoTHubDeviceClient,
    ):
        self._config = config
        self._provisioning_client_cls = provisioning_client_cls
        self._device_client_cls = device_client_cls

    def _configure_sdk_logging(self) -> None:
        level = logging.getLevelName(self._config.client_log_level.upper())
        if not isinstance(level, int):
            level = logging.DEBUG
        logging.getLogger(SDK_LOGGER).setLevel(level)

    def _device_key(self, credentials: Credentials) -> str:
        if credentials.key_type == "group":
            return derive_device_key(credentials.device_key, credentials.device_id)
        return credentials.device_key

    async def _register(self, credentials: Credentials, key: str) -> tuple[str, str]:
        provisioning = self._provisioning_client_cls.create_from_symmetric_key(
            provisioning_host=self._config.provisioning_host,
            registration_id=credentials.device_id,
            id_scope=credentials.scope_id,
            symmetric_key=key,
        )
        provisioning.provisioning_payload = {"modelId": credentials.model_id}
        result = await provisioning.register()

        if result.status != "assigned" or result.registration_state is None:
            raise ClientConnectionError(f"Device registration ended as {result.status!r}")

        state = result.registration_state
        return state.assigned_hub, state.device_id or credentials.device_id

    async def connect(self, credentials: Credentials) -> ProvisioningClient:
        """Return a connected client for ``credentials``.

        Raises:
            ClientConnectionError: registration or connection failed. A device
                client created before the failure is shut down first.
        """

        self._configure_sdk_logging()
        key = self._device_key(credentials)

        try:
            hub, device_id = await self._register(credentials, key)
        except ClientConnectionError:
            raise
        except Exception as exc:
            raise ClientConnectionError(f"Device registration failed: {exc}") from exc

        logger.info("Device %s assigned to %s", device_id, hub)

        device_client: Optional[Any] = None
        try:
            device_client = self._device_client_cls.create_from_symmetric_key(
                symmetric_key=key,
                hostname=hub,
                device_id=device_id,
                product_info=credentials.model_id,
            )
            await device_client.connect()
        except Exception as exc:
            if device_client is not None:
                await self._discard(device_client)
            raise ClientConnectionError(f"Connection to {hub} failed: {exc}") from exc

        return ProvisioningClient(device_client, device_id, credentials.model_id, hub)

    @staticmethod
    async def _discard(device_client: Any) -> None:
        await shutdown_quietly(device_client)


__all__ = [
    "ProvisioningClient",
    "ProvisioningClientFactory",
    "derive_device_key",
    "shutdown_quietly",
]
