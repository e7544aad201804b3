"""Acquisition of raw credential payloads."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from .errors import CredentialLookupError
from .lookup import NumericCodeLookup
from .qr import QRCodeManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Numeric:
    """A verification code typed by the user."""

    code: str


@dataclass(frozen=True, slots=True)
class Scanned:
    """Text reported by the QR scanner."""

    payload: Union[str, bytes]


@dataclass(frozen=True, slots=True)
class Simulated:
    """Skip the backend entirely."""


AcquisitionMethod = Union[Numeric, Scanned, Simulated]


class CredentialSource:
    """Turn an acquisition method into a raw payload for the decoder."""

    def __init__(self, lookup: NumericCodeLookup, qr: QRCodeManager):
        self._lookup = lookup
        self._qr = qr

    async def acquire(self, method: AcquisitionMethod) -> Optional[bytes | str]:
        """Return the raw payload for ``method``; ``None`` for :class:`Simulated`."""

        if isinstance(method, Simulated):
            return None

        if isinstance(method, Numeric):
            code = "".join(method.code.split())
            if not code.isdigit():
                raise CredentialLookupError("Verification codes contain digits only")
            logger.debug("Looking up numeric code of length %d", len(code))
            return await self._lookup.fetch(code)

        if isinstance(method, Scanned):
            payload = self._qr.decode_qr_payload(method.payload)
            logger.debug("Scanned payload sha256=%s", self._qr.payload_digest(payload))
            return payload

        raise TypeError(f"Unknown acquisition method: {method!r}")


__all__ = ["Numeric", "Scanned", "Simulated", "AcquisitionMethod", "CredentialSource"]
