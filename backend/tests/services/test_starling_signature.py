import base64
import logging

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from finsync.services.starling_signature import (
    PublicKeyHandle,
    find_signature_header,
    load_public_key,
    verify_signature,
)


BODY = b'{"webhookEventUid":"evt-1","content":{"amount":{"minorUnits":1250}}}'


class ExplodingKey:
    """Stands in for a public key; fails the test if verification is attempted."""

    def verify(self, *args, **kwargs):  # pragma: no cover - must not be called
        raise AssertionError("cryptographic check should not run")


def _spki_pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def _bare_base64(pem: str) -> str:
    return "".join(line for line in pem.splitlines() if "-----" not in line)


def test_valid_signature_is_accepted(public_key_handle, sign):
    assert verify_signature(BODY, sign(BODY), public_key_handle.get()) is True


def test_single_value_list_is_accepted(public_key_handle, sign):
    assert verify_signature(BODY, [sign(BODY)], public_key_handle.get()) is True


def test_altered_body_byte_is_rejected(public_key_handle, sign):
    signature = sign(BODY)
    tampered = BODY.replace(b"1250", b"9250")

    assert verify_signature(tampered, signature, public_key_handle.get()) is False


def test_signature_from_other_key_is_rejected(public_key_handle):
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import padding, rsa

    other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    signature = base64.b64encode(other.sign(BODY, padding.PKCS1v15(), hashes.SHA512())).decode()

    assert verify_signature(BODY, signature, public_key_handle.get()) is False


@pytest.mark.parametrize("header_value", [None, "", []])
def test_missing_header_skips_crypto(header_value, caplog):
    with caplog.at_level(logging.ERROR, logger="finsync"):
        assert verify_signature(BODY, header_value, ExplodingKey()) is False
    assert "Missing X-Hook-Signature header" in caplog.text


def test_repeated_header_skips_crypto(caplog):
    with caplog.at_level(logging.ERROR, logger="finsync"):
        assert verify_signature(BODY, ["c2ln", "c2ln"], ExplodingKey()) is False
    assert "sent 2 times" in caplog.text


def test_invalid_base64_is_rejected(public_key_handle):
    assert verify_signature(BODY, "not base64 !!", public_key_handle.get()) is False


def test_find_signature_header_case_insensitive_by_default():
    items = [("x-hook-signature", "abc"), ("content-type", "application/json")]

    assert find_signature_header(items, "X-Hook-Signature") == ["abc"]


def test_find_signature_header_exact_case_misses_lowercased_names():
    items = [("x-hook-signature", "abc")]

    assert find_signature_header(items, "X-Hook-Signature", case_sensitive=True) == []
    assert find_signature_header([("X-Hook-Signature", "abc")], "X-Hook-Signature", case_sensitive=True) == ["abc"]


def test_find_signature_header_keeps_repeats():
    items = [("X-Hook-Signature", "a"), ("x-hook-signature", "b")]

    assert find_signature_header(items, "x-hook-signature") == ["a", "b"]


def test_load_public_key_accepts_bare_base64_and_pem(rsa_private_key):
    pem = _spki_pem(rsa_private_key)
    expected = rsa_private_key.public_key().public_numbers()

    assert load_public_key(pem).public_numbers() == expected
    assert load_public_key(_bare_base64(pem)).public_numbers() == expected


def test_load_public_key_rejects_empty_and_non_rsa():
    with pytest.raises(ValueError):
        load_public_key("   ")

    ec_key = ec.generate_private_key(ec.SECP256R1())
    with pytest.raises(ValueError):
        load_public_key(_spki_pem(ec_key))


def test_public_key_handle_parses_once(rsa_private_key):
    pem = _spki_pem(rsa_private_key)
    calls = []

    def provider():
        calls.append(1)
        return _bare_base64(pem)

    handle = PublicKeyHandle(provider)
    assert handle.initialized is False

    first = handle.get()
    second = handle.get()
    handle.initialize()

    assert first is second
    assert handle.initialized is True
    assert len(calls) == 1


def test_public_key_handle_surfaces_bad_configuration():
    handle = PublicKeyHandle(lambda: None)

    with pytest.raises(ValueError):
        handle.initialize()
    assert handle.initialized is False
