"""Device credentials and the decoder that recovers them from an envelope."""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Tuple

from argon2.exceptions import HashingError
from argon2.low_level import Type as Argon2Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import AppConfig
from .errors import CredentialDecodeError
from .payload import (
    ENVELOPE_FIELDS,
    ENVELOPE_VERSION,
    decode_envelope,
    encode_components,
    is_binary_envelope,
)
from .state import UserIdentity

logger = logging.getLogger(__name__)

KEY_TYPES = ("device", "group")


@dataclass(frozen=True, slots=True)
class Credentials:
    """Everything needed to open a connection to IoT Central."""

    device_id: str
    scope_id: str
    device_key: str
    model_id: str
    key_type: str = "device"

    _WIRE_NAMES = {
        "device_id": "deviceId",
        "scope_id": "scopeId",
        "device_key": "deviceKey",
        "model_id": "modelId",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Credentials":
        """Build credentials from the camelCase document stored in a code."""

        values: Dict[str, str] = {}
        for attribute, wire_name in cls._WIRE_NAMES.items():
            value = data.get(wire_name)
            if not isinstance(value, str) or not value:
                raise CredentialDecodeError(f"Credentials are missing {wire_name!r}")
            values[attribute] = value

        key_type = data.get("keyType", "device")
        if key_type not in KEY_TYPES:
            raise CredentialDecodeError(f"Unknown key type: {key_type!r}")

        return cls(key_type=key_type, **values)

    def to_mapping(self) -> Dict[str, str]:
        data = {wire: getattr(self, attr) for attr, wire in self._WIRE_NAMES.items()}
        if self.key_type != "device":
            data["keyType"] = self.key_type
        return data

    def __repr__(self) -> str:
        return (
            f"Credentials(device_id={self.device_id!r}, scope_id={self.scope_id!r}, "
            f"model_id={self.model_id!r}, key_type={self.key_type!r})"
        )


@dataclass(slots=True)
class CredentialDecoder:
    """Decrypt credential envelopes with a key derived from the user's id."""

    config: AppConfig

    _SUPPORTED_KDFS = ("argon2id", "pbkdf2")

    def _normalise_kdf_name(self, name: str | None) -> str:
        if name is not None and not isinstance(name, str):
            raise CredentialDecodeError(f"Unsupported KDF algorithm: {name!r}")
        algorithm = (name or self.config.kdf_algorithm).strip().lower()
        if algorithm not in self._SUPPORTED_KDFS:
            raise CredentialDecodeError(f"Unsupported KDF algorithm: {name}")
        return algorithm

    def _derive_key(self, secret: bytes, salt: bytes, algorithm: str) -> bytes:
        if algorithm == "pbkdf2":
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=self.config.aes_key_size_bytes,
                salt=salt,
                iterations=self.config.pbkdf2_iterations,
            )
            return kdf.derive(secret)
        try:
            return hash_secret_raw(
                secret,
                salt,
                time_cost=self.config.argon2_time_cost,
                memory_cost=self.config.argon2_memory_cost_kib,
                parallelism=self.config.argon2_parallelism,
                hash_len=self.config.aes_key_size_bytes,
                type=Argon2Type.ID,
            )
        except HashingError as exc:
            raise CredentialDecodeError(f"Key derivation failed: {exc}") from exc

    @staticmethod
    def _build_aad(kdf_algorithm: str) -> bytes:
        metadata = {
            "cipher": "AES-256-GCM",
            "format": ENVELOPE_VERSION,
            "kdf": kdf_algorithm,
        }
        return json.dumps(metadata, sort_keys=True, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def _user_secret(user: UserIdentity | None) -> bytes:
        if user is None or not user.id:
            raise CredentialDecodeError("A signed-in user is required to decode credentials")
        return user.id.encode("utf-8")

    @staticmethod
    def _dedupe_preserve_order(items: Iterable[str]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(items))

    def encrypt(
        self, credentials: Credentials, user: UserIdentity
    ) -> Tuple[Dict[str, str], bytes]:
        """Encrypt ``credentials`` for ``user``.

        Returns ``(envelope_dict, envelope_bytes)``: the JSON form with base64
        fields and the compact binary form suitable for a QR code.
        """

        secret = self._user_secret(user)
        kdf_algorithm = self._normalise_kdf_name(None)
        salt = os.urandom(self.config.salt_size_bytes)
        nonce = os.urandom(12)
        key = self._derive_key(secret, salt, kdf_algorithm)
        plaintext = json.dumps(credentials.to_mapping(), separators=(",", ":")).encode("utf-8")
        ciphertext = AESGCM(key).encrypt(nonce, plaintext, self._build_aad(kdf_algorithm))

        envelope = {
            "kdf": kdf_algorithm,
            "salt": base64.b64encode(salt).decode("ascii"),
            "nonce": base64.b64encode(nonce).decode("ascii"),
            "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
        }
        binary = encode_components(
            kdf=kdf_algorithm, salt=salt, nonce=nonce, ciphertext=ciphertext
        )
        return envelope, binary

    def _coerce_envelope(self, payload: Mapping[str, str] | bytes | str) -> Dict[str, str]:
        if isinstance(payload, Mapping):
            return dict(payload)

        if isinstance(payload, (bytes, bytearray)):
            data = bytes(payload)
            if is_binary_envelope(data):
                return decode_envelope(data)
            try:
                payload = data.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise CredentialDecodeError("Invalid envelope format") from exc

        if not isinstance(payload, str):
            raise CredentialDecodeError("Unsupported envelope type")

        text = payload.strip()
        if text.startswith("{"):
            try:
                envelope = json.loads(text)
            except json.JSONDecodeError as exc:
                raise CredentialDecodeError("Invalid envelope format") from exc
            if not isinstance(envelope, dict):
                raise CredentialDecodeError("Invalid envelope format")
            return envelope

        try:
            data = base64.b64decode(text, validate=True)
        except (ValueError, binascii.Error) as exc:
            raise CredentialDecodeError("Invalid envelope format") from exc
        if not is_binary_envelope(data):
            raise CredentialDecodeError("Invalid envelope format")
        return decode_envelope(data)

    def decode(
        self, payload: Mapping[str, str] | bytes | str, user: UserIdentity | None
    ) -> Credentials:
        """Decrypt ``payload`` for ``user`` and return the structured credentials."""

        secret = self._user_secret(user)
        envelope = self._coerce_envelope(payload)

        missing = set(ENVELOPE_FIELDS).difference(envelope)
        if missing:
            raise CredentialDecodeError(f"Invalid envelope, missing fields: {sorted(missing)}")

        try:
            salt = base64.b64decode(envelope["salt"])
            nonce = base64.b64decode(envelope["nonce"])
            ciphertext = base64.b64decode(envelope["ciphertext"])
        except (TypeError, binascii.Error) as exc:
            raise CredentialDecodeError("Envelope contains invalid base64 data") from exc

        if len(nonce) != 12:
            raise CredentialDecodeError("Nonce must be 12 bytes for AES-GCM")

        if envelope.get("kdf") is not None:
            candidates = [self._normalise_kdf_name(envelope["kdf"])]
        else:
            candidates = [self._normalise_kdf_name(None), "pbkdf2"]

        for algorithm in self._dedupe_preserve_order(candidates):
            key = self._derive_key(secret, salt, algorithm)
            try:
                plaintext = AESGCM(key).decrypt(nonce, ciphertext, self._build_aad(algorithm))
            except InvalidTag:
                logger.debug("Envelope did not authenticate with %s", algorithm)
                continue
            break
        else:
            raise CredentialDecodeError("Decryption failed: authentication error")

        try:
            document = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CredentialDecodeError("Decrypted credentials are not valid JSON") from exc
        if not isinstance(document, dict):
            raise CredentialDecodeError("Decrypted credentials are not an object")

        return Credentials.from_mapping(document)


__all__ = ["Credentials", "CredentialDecoder", "KEY_TYPES"]
