"""Configuration data structures for the IoT Central registration app."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import List

GENERIC_ERROR_MESSAGE = (
    "Failed to parse inserted code. Try again or use a simulated connection"
)


@dataclass(slots=True)
class AppConfig:
    """Static configuration options used across the application."""

    app_name: str = "IoTCRegistration"
    app_version: str = "1.0"
    lookup_url: str = "https://localhost/api/codes/verify"
    lookup_timeout_s: float = 30.0
    provisioning_host: str = "global.azure-devices-provisioning.net"
    client_log_level: str = "DEBUG"
    log_level: str = "INFO"
    error_message: str = GENERIC_ERROR_MESSAGE
    kdf_algorithm: str = "argon2id"
    pbkdf2_iterations: int = 600_000
    argon2_time_cost: int = 3
    argon2_memory_cost_kib: int = 65_536
    argon2_parallelism: int = 2
    salt_size_bytes: int = 16
    aes_key_size_bytes: int = 32
    camera_frame_skip: int = 5
    qr_error_correction: str = "M"
    qr_scale: int = 8
    qr_border: int = 4
    max_frame_size: int = 1_280

    @classmethod
    def from_env(cls, **overrides) -> "AppConfig":
        """Build a configuration, letting ``IOTC_*`` environment variables win.

        Keyword arguments are applied first; the environment is consulted only
        for the deployment-specific endpoints and the log level.
        """

        config = cls(**overrides)
        env = {
            "lookup_url": os.getenv("IOTC_LOOKUP_URL"),
            "provisioning_host": os.getenv("IOTC_PROVISIONING_HOST"),
            "log_level": os.getenv("IOTC_LOG_LEVEL"),
        }
        return replace(config, **{key: value for key, value in env.items() if value})


@dataclass(slots=True)
class CameraConfig:
    """Runtime camera configuration used by the optional camera worker."""

    width: int = 640
    height: int = 480

    def get_backends(self) -> List[int]:
        """Return a list of OpenCV backend identifiers to try."""

        try:  # pragma: no cover - optional dependency
            import cv2  # type: ignore
        except ImportError:  # pragma: no cover - camera support is optional
            return []

        return [getattr(cv2, "CAP_V4L2", cv2.CAP_ANY), cv2.CAP_ANY]

    def get_indices(self) -> List[int]:
        return [0, 1]


@dataclass(slots=True)
class StyleConfig:
    """Simple grouping of UI styling constants."""

    bg_primary: str = "#FFFFFF"
    bg_secondary: str = "#F3F2F1"
    fg_primary: str = "#201F1E"
    fg_inverse: str = "#FFFFFF"
    accent_primary: str = "#0078D4"
    accent_secondary: str = "#106EBE"
    warning: str = "#A4262C"
    border: str = "#C8C6C4"
    font_family: str = "Segoe UI, sans-serif"
    font_size: int = 14


__all__ = ["AppConfig", "CameraConfig", "StyleConfig", "GENERIC_ERROR_MESSAGE"]
