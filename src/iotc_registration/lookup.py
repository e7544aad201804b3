"""Exchange numeric verification codes for credential envelopes."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from .config import AppConfig
from .errors import CredentialLookupError

logger = logging.getLogger(__name__)

_UNRECOGNISED_STATUSES = (400, 404, 410)


class NumericCodeLookup:
    """Client for the back-office endpoint that maps codes to envelopes."""

    def __init__(self, config: AppConfig, session: Optional[aiohttp.ClientSession] = None):
        self._url = config.lookup_url
        self._timeout = aiohttp.ClientTimeout(total=config.lookup_timeout_s)
        self._session = session

    async def fetch(self, code: str) -> str:
        """Return the envelope registered for ``code``.

        Raises:
            CredentialLookupError: the code is unknown or expired, or the
                endpoint could not be reached.
        """

        if self._session is not None:
            return await self._post(self._session, code)

        async with aiohttp.ClientSession() as session:
            return await self._post(session, code)

    async def _post(self, session: aiohttp.ClientSession, code: str) -> str:
        try:
            async with session.post(
                self._url, json={"code": code}, timeout=self._timeout
            ) as response:
                if response.status in _UNRECOGNISED_STATUSES:
                    raise CredentialLookupError(
                        f"Verification code not recognised (HTTP {response.status})"
                    )
                if response.status != 200:
                    raise CredentialLookupError(f"Code lookup failed: HTTP {response.status}")
                data = await response.json()
        except aiohttp.ClientError as exc:
            logger.error("Code lookup request failed: %s", exc)
            raise CredentialLookupError("Code lookup request failed") from exc
        except asyncio.TimeoutError as exc:
            logger.error("Code lookup timed out after %ss", self._timeout.total)
            raise CredentialLookupError("Code lookup timed out") from exc
        except ValueError as exc:
            raise CredentialLookupError("Code lookup response is not valid JSON") from exc

        payload = data.get("payload") if isinstance(data, dict) else None
        if not isinstance(payload, str) or not payload:
            raise CredentialLookupError("Code lookup response has no payload")
        return payload


__all__ = ["NumericCodeLookup"]
