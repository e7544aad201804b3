"""QR code helpers for credential envelopes."""
from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass
from typing import Optional

from .config import AppConfig


@dataclass(slots=True)
class QRCodeManager:
    """Convert envelopes to and from the text a QR code carries."""

    config: AppConfig

    @staticmethod
    def _ensure_bytes(payload: bytes | bytearray | str) -> bytes:
        if isinstance(payload, (bytes, bytearray)):
            return bytes(payload)
        return payload.encode("utf-8")

    @staticmethod
    def encode_for_qr(payload: bytes | bytearray | str) -> str:
        """Return the base64 text stored in a QR code for ``payload``."""

        return base64.b64encode(QRCodeManager._ensure_bytes(payload)).decode("ascii")

    @staticmethod
    def decode_qr_payload(data: bytes | bytearray | str) -> bytes:
        """Recover the envelope bytes from scanned QR text.

        Scanners hand back the text of the code. Envelopes are stored as
        base64; anything that is not valid base64 (a JSON envelope, for
        instance) is returned unchanged as bytes.
        """

        raw = QRCodeManager._ensure_bytes(data).strip()
        try:
            return base64.b64decode(raw, validate=True)
        except (ValueError, binascii.Error):
            return raw

    def payload_digest(self, data: bytes | bytearray | str) -> str:
        """Return the SHA-256 hex digest of ``data``.

        Used in logs so scanned payloads can be correlated without writing
        secrets to disk.
        """

        return hashlib.sha256(self._ensure_bytes(data)).hexdigest()

    def save_png(self, data: bytes | bytearray | str, path: str) -> str:
        """Write a QR code carrying ``data`` to ``path`` and return its digest."""

        try:
            import segno  # type: ignore
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise RuntimeError("QR generation requires segno") from exc

        payload = self._ensure_bytes(data)
        qr = segno.make(self.encode_for_qr(payload), error=self.config.qr_error_correction)
        qr.save(path, scale=self.config.qr_scale, border=self.config.qr_border)
        return self.payload_digest(payload)

    @staticmethod
    def _vision_modules():
        """Return ``(cv2, pyzbar)``, or ``None`` when camera support is missing."""

        try:
            import cv2  # type: ignore
            from pyzbar import pyzbar  # type: ignore
        except ImportError:
            return None
        return cv2, pyzbar

    def decode_frame(self, frame) -> Optional[bytes]:
        """Return the raw text of the first QR code found in a BGR ``frame``.

        The grey image is tried as-is, blurred, then Otsu-thresholded; the
        result is the scanner text, which :meth:`decode_qr_payload` turns into
        envelope bytes later.
        """

        modules = self._vision_modules()
        if modules is None:
            return None
        cv2, pyzbar = modules

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        for processed in (
            gray,
            cv2.GaussianBlur(gray, (5, 5), 0),
            cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)[1],
        ):
            decoded = pyzbar.decode(processed)
            if decoded:
                return bytes(decoded[0].data)

        return None

    def read_from_file(self, path: str) -> Optional[bytes]:
        """Decode a QR image file with OpenCV and :mod:`pyzbar` when available."""

        modules = self._vision_modules()
        if modules is None:
            return None

        image = modules[0].imread(path)
        if image is None:
            return None
        return self.decode_frame(image)


__all__ = ["QRCodeManager"]
