"""IoT Central device registration package."""
from __future__ import annotations

from .client import ProvisioningClient, ProvisioningClientFactory
from .config import AppConfig, CameraConfig, StyleConfig
from .credentials import CredentialDecoder, Credentials
from .errors import (
    AlreadyPublishedError,
    ClientConnectionError,
    CredentialDecodeError,
    CredentialLookupError,
    RegistrationError,
)
from .lookup import NumericCodeLookup
from .qr import QRCodeManager
from .source import CredentialSource, Numeric, Scanned, Simulated
from .state import Action, ActionType, ClientSlot, ConfigStore, UserIdentity
from .workflow import VerificationWorkflow, WorkflowState

__all__ = [
    "AppConfig",
    "CameraConfig",
    "StyleConfig",
    "Credentials",
    "CredentialDecoder",
    "CredentialSource",
    "Numeric",
    "Scanned",
    "Simulated",
    "NumericCodeLookup",
    "QRCodeManager",
    "ProvisioningClient",
    "ProvisioningClientFactory",
    "ConfigStore",
    "UserIdentity",
    "Action",
    "ActionType",
    "ClientSlot",
    "VerificationWorkflow",
    "WorkflowState",
    "RegistrationError",
    "CredentialLookupError",
    "CredentialDecodeError",
    "ClientConnectionError",
    "AlreadyPublishedError",
]

__version__ = "1.0"
