from __future__ import annotations

import base64

import pytest

from iotc_registration.payload import (
    decode_envelope,
    encode_components,
    encode_envelope,
    is_binary_envelope,
)


@pytest.fixture()
def sample_components():
    return {
        "kdf": "argon2id",
        "salt": b"s" * 16,
        "nonce": b"n" * 12,
        "ciphertext": b"c" * 48,
    }


def test_decode_envelope_rejects_truncated_binary(sample_components):
    binary = encode_components(**sample_components)

    with pytest.raises(ValueError) as excinfo:
        decode_envelope(binary[:-1])

    assert "truncated" in str(excinfo.value)


def test_decode_envelope_rejects_trailing_garbage(sample_components):
    binary = encode_components(**sample_components)

    with pytest.raises(ValueError) as excinfo:
        decode_envelope(binary + b"xyz")

    assert "length mismatch" in str(excinfo.value)


def test_decode_envelope_tolerates_trailing_newline(sample_components):
    binary = encode_components(**sample_components)

    assert is_binary_envelope(binary + b"\r\n")
    assert decode_envelope(binary + b"\n")["kdf"] == "argon2id"


def test_decode_envelope_rejects_unknown_version(sample_components):
    binary = bytearray(encode_components(**sample_components))
    binary[0] = 9

    assert not is_binary_envelope(bytes(binary))
    with pytest.raises(ValueError) as excinfo:
        decode_envelope(bytes(binary))

    assert "version" in str(excinfo.value)


def test_decode_envelope_returns_base64_sections(sample_components):
    envelope = decode_envelope(encode_components(**sample_components))

    assert envelope["kdf"] == sample_components["kdf"]
    assert base64.b64decode(envelope["salt"]) == sample_components["salt"]
    assert base64.b64decode(envelope["nonce"]) == sample_components["nonce"]
    assert base64.b64decode(envelope["ciphertext"]) == sample_components["ciphertext"]
    assert encode_envelope(envelope) == encode_components(**sample_components)


def test_encode_envelope_requires_all_sections():
    with pytest.raises(ValueError) as excinfo:
        encode_envelope({"salt": "", "nonce": ""})

    assert "ciphertext" in str(excinfo.value)


def test_encode_components_rejects_unknown_kdf(sample_components):
    sample_components["kdf"] = "scrypt"

    with pytest.raises(ValueError):
        encode_components(**sample_components)


def test_short_data_is_not_an_envelope():
    assert not is_binary_envelope(b"{}")
