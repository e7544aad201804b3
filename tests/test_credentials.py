from __future__ import annotations

import base64
import json

import pytest

from iotc_registration.config import AppConfig
from iotc_registration.credentials import CredentialDecoder, Credentials
from iotc_registration.errors import CredentialDecodeError
from iotc_registration.payload import decode_envelope, is_binary_envelope
from iotc_registration.qr import QRCodeManager
from iotc_registration.state import UserIdentity


@pytest.fixture()
def config() -> AppConfig:
    return AppConfig(
        pbkdf2_iterations=1_000,
        argon2_time_cost=1,
        argon2_memory_cost_kib=1_024,
        argon2_parallelism=1,
    )


@pytest.fixture()
def pbkdf2_config() -> AppConfig:
    return AppConfig(kdf_algorithm="pbkdf2", pbkdf2_iterations=1_000)


@pytest.fixture()
def user() -> UserIdentity:
    return UserIdentity("user-42", "Dr. Example")


@pytest.fixture()
def credentials() -> Credentials:
    return Credentials(
        device_id="device-001",
        scope_id="0ne00000000",
        device_key="ZGV2aWNlLWtleQ==",
        model_id="dtmi:example:Thermostat;1",
    )


def test_decode_binary_envelope(config, user, credentials):
    decoder = CredentialDecoder(config)
    envelope, binary = decoder.encrypt(credentials, user)

    assert set(envelope) == {"kdf", "salt", "nonce", "ciphertext"}
    assert is_binary_envelope(binary)
    assert decode_envelope(binary) == envelope
    assert decoder.decode(binary, user) == credentials
    assert decoder.decode(envelope, user) == credentials


def test_decode_accepts_qr_text_and_json(config, user, credentials):
    decoder = CredentialDecoder(config)
    envelope, binary = decoder.encrypt(credentials, user)

    assert decoder.decode(QRCodeManager.encode_for_qr(binary), user) == credentials
    assert decoder.decode(json.dumps(envelope), user) == credentials
    assert decoder.decode(json.dumps(envelope).encode("utf-8"), user) == credentials


def test_decode_with_wrong_user_fails(config, user, credentials):
    decoder = CredentialDecoder(config)
    _, binary = decoder.encrypt(credentials, user)

    with pytest.raises(CredentialDecodeError) as excinfo:
        decoder.decode(binary, UserIdentity("someone-else"))

    assert "authentication error" in str(excinfo.value)


def test_decode_without_user_fails(config, user, credentials):
    decoder = CredentialDecoder(config)
    _, binary = decoder.encrypt(credentials, user)

    with pytest.raises(CredentialDecodeError):
        decoder.decode(binary, None)


def test_decode_rejects_tampered_ciphertext(config, user, credentials):
    decoder = CredentialDecoder(config)
    envelope, _ = decoder.encrypt(credentials, user)
    ciphertext = bytearray(base64.b64decode(envelope["ciphertext"]))
    ciphertext[0] ^= 0xFF
    envelope["ciphertext"] = base64.b64encode(bytes(ciphertext)).decode("ascii")

    with pytest.raises(CredentialDecodeError):
        decoder.decode(envelope, user)


@pytest.mark.parametrize("payload", ["not a code", "{broken json", b"\xff\xfe\x00", "1234"])
def test_decode_rejects_garbage(config, user, payload):
    with pytest.raises(CredentialDecodeError):
        CredentialDecoder(config).decode(payload, user)


def test_decode_rejects_invalid_base64_sections(config, user):
    payload = {"salt": "?bad", "nonce": "?bad", "ciphertext": "?bad"}

    with pytest.raises(CredentialDecodeError) as excinfo:
        CredentialDecoder(config).decode(payload, user)

    assert str(excinfo.value) == "Envelope contains invalid base64 data"


def test_decode_rejects_missing_sections(config, user):
    with pytest.raises(CredentialDecodeError) as excinfo:
        CredentialDecoder(config).decode({"salt": ""}, user)

    assert "missing fields" in str(excinfo.value)


def test_decode_rejects_short_nonce(config, user, credentials):
    decoder = CredentialDecoder(config)
    envelope, _ = decoder.encrypt(credentials, user)
    envelope["nonce"] = base64.b64encode(b"short").decode("ascii")

    with pytest.raises(CredentialDecodeError) as excinfo:
        decoder.decode(envelope, user)

    assert "Nonce" in str(excinfo.value)


def test_decodes_pbkdf2_envelope_without_kdf_field(config, pbkdf2_config, user, credentials):
    envelope, _ = CredentialDecoder(pbkdf2_config).encrypt(credentials, user)
    del envelope["kdf"]

    assert CredentialDecoder(config).decode(envelope, user) == credentials


def test_decode_error_is_a_value_error(config, user):
    with pytest.raises(ValueError):
        CredentialDecoder(config).decode("{}", user)


def test_credentials_from_mapping_requires_every_field():
    with pytest.raises(CredentialDecodeError) as excinfo:
        Credentials.from_mapping({"deviceId": "d", "scopeId": "s", "deviceKey": "k"})

    assert "modelId" in str(excinfo.value)


def test_credentials_mapping_keeps_group_key_type(credentials):
    group = Credentials.from_mapping({**credentials.to_mapping(), "keyType": "group"})

    assert group.key_type == "group"
    assert group.to_mapping()["keyType"] == "group"
    assert "keyType" not in credentials.to_mapping()


def test_credentials_reject_unknown_key_type(credentials):
    with pytest.raises(CredentialDecodeError):
        Credentials.from_mapping({**credentials.to_mapping(), "keyType": "x509"})


def test_credentials_repr_hides_key(credentials):
    assert credentials.device_key not in repr(credentials)


def test_decode_rejects_salt_too_short_for_argon2(config, user, credentials):
    decoder = CredentialDecoder(config)
    envelope, _ = decoder.encrypt(credentials, user)
    envelope["salt"] = ""

    with pytest.raises(CredentialDecodeError) as excinfo:
        decoder.decode(json.dumps(envelope), user)

    assert "Key derivation failed" in str(excinfo.value)


@pytest.mark.parametrize("kdf", [7, ["argon2id"], {"name": "pbkdf2"}])
def test_decode_rejects_non_text_kdf(config, user, credentials, kdf):
    decoder = CredentialDecoder(config)
    envelope, _ = decoder.encrypt(credentials, user)
    envelope["kdf"] = kdf

    with pytest.raises(CredentialDecodeError) as excinfo:
        decoder.decode(json.dumps(envelope), user)

    assert "Unsupported KDF" in str(excinfo.value)
