"""Binary envelope format for encrypted device credentials.

A QR code has far less room than a JSON document, so issued credentials are
packed as::

    header (>BBHHI) | salt | nonce | ciphertext

The header carries the envelope format version, the KDF code and the three
section lengths. ``decode_envelope`` returns the same base64 dictionary that the
JSON form of an envelope uses, so the decoder only deals with one shape.
"""
from __future__ import annotations

import base64
import binascii
import struct
from typing import Dict, Mapping

ENVELOPE_VERSION = 1
"""Current binary envelope format version."""

_HEADER = struct.Struct(">BBHHI")
"""Header structure: format version, kdf code, salt len, nonce len, ciphertext len."""

_IGNORABLE_SUFFIX = b"\x09\x0A\x0B\x0C\x0D\x20"
"""Whitespace-like bytes that scanners and text fields tend to append."""

_KDF_TO_CODE = {"argon2id": 1, "pbkdf2": 2}
_CODE_TO_KDF = {value: key for key, value in _KDF_TO_CODE.items()}

ENVELOPE_FIELDS = ("salt", "nonce", "ciphertext")


def encode_components(*, kdf: str, salt: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    """Pack raw envelope components into the binary format."""

    try:
        kdf_code = _KDF_TO_CODE[kdf]
    except KeyError as exc:
        raise ValueError(f"Unsupported KDF: {kdf}") from exc

    header = _HEADER.pack(
        ENVELOPE_VERSION, kdf_code, len(salt), len(nonce), len(ciphertext)
    )
    return b"".join((header, salt, nonce, ciphertext))


def encode_envelope(envelope: Mapping[str, str]) -> bytes:
    """Convert the JSON form of an envelope into the binary format."""

    missing = [name for name in ENVELOPE_FIELDS if name not in envelope]
    if missing:
        raise ValueError(f"Missing field in envelope: {missing[0]}")

    try:
        sections = {name: base64.b64decode(envelope[name]) for name in ENVELOPE_FIELDS}
    except (TypeError, binascii.Error) as exc:
        raise ValueError("Envelope contains invalid base64 data") from exc

    return encode_components(kdf=envelope.get("kdf", "argon2id"), **sections)


def _read_header(data: bytes) -> tuple[str, int, int, int]:
    """Validate ``data`` and return ``(kdf, salt_len, nonce_len, end)``."""

    if len(data) < _HEADER.size:
        raise ValueError("Binary envelope is truncated")

    version, kdf_code, salt_len, nonce_len, ciphertext_len = _HEADER.unpack_from(data)
    if version != ENVELOPE_VERSION:
        raise ValueError(f"Unsupported envelope version: {version}")

    try:
        kdf = _CODE_TO_KDF[kdf_code]
    except KeyError as exc:
        raise ValueError(f"Unsupported KDF code: {kdf_code}") from exc

    end = _HEADER.size + salt_len + nonce_len + ciphertext_len
    if len(data) < end:
        raise ValueError("Binary envelope is truncated")

    suffix = data[end:]
    if any(byte not in _IGNORABLE_SUFFIX for byte in suffix):
        raise ValueError("Binary envelope length mismatch")

    return kdf, salt_len, nonce_len, end


def decode_envelope(data: bytes) -> Dict[str, str]:
    """Decode a binary envelope into its JSON-friendly dictionary."""

    kdf, salt_len, nonce_len, end = _read_header(data)

    start_nonce = _HEADER.size + salt_len
    start_ciphertext = start_nonce + nonce_len

    return {
        "kdf": kdf,
        "salt": base64.b64encode(data[_HEADER.size:start_nonce]).decode("ascii"),
        "nonce": base64.b64encode(data[start_nonce:start_ciphertext]).decode("ascii"),
        "ciphertext": base64.b64encode(data[start_ciphertext:end]).decode("ascii"),
    }


def is_binary_envelope(data: bytes) -> bool:
    """Return ``True`` if ``data`` parses as a binary envelope."""

    try:
        _read_header(data)
    except ValueError:
        return False
    return True


__all__ = [
    "ENVELOPE_VERSION",
    "ENVELOPE_FIELDS",
    "encode_components",
    "encode_envelope",
    "decode_envelope",
    "is_binary_envelope",
]
