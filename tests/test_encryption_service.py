import pytest
from cryptography.fernet import Fernet

from app.services.encryption_service import EncryptionError, EncryptionService


def test_encrypt_then_decrypt_returns_plaintext():
    service = EncryptionService(secret_key="derive-me")

    encrypted = service.encrypt("ya29.provider-token")

    assert encrypted != "ya29.provider-token"
    assert service.decrypt(encrypted) == "ya29.provider-token"


def test_derived_key_is_stable_for_the_same_secret():
    encrypted = EncryptionService(secret_key="stable-secret").encrypt("token")

    assert EncryptionService(secret_key="stable-secret").decrypt(encrypted) == "token"


def test_configured_fernet_key_is_used():
    key = Fernet.generate_key().decode()
    encrypted = EncryptionService(key=key).encrypt("token")

    assert Fernet(key.encode()).decrypt(encrypted.encode()) == b"token"


def test_decrypt_with_another_key_fails():
    encrypted = EncryptionService(secret_key="first").encrypt("token")

    with pytest.raises(EncryptionError):
        EncryptionService(secret_key="second").decrypt(encrypted)


def test_tampered_ciphertext_fails():
    service = EncryptionService(secret_key="secret")
    encrypted = service.encrypt("token")

    with pytest.raises(EncryptionError):
        service.decrypt(encrypted[:-4] + "AAAA")


def test_empty_values_are_refused():
    service = EncryptionService(secret_key="secret")

    with pytest.raises(EncryptionError):
        service.encrypt("")
    with pytest.raises(EncryptionError):
        service.decrypt("")


def test_optional_helpers_pass_none_through():
    service = EncryptionService(secret_key="secret")

    assert service.encrypt_optional(None) is None
    assert service.decrypt_optional(None) is None
    assert service.decrypt_optional(service.encrypt_optional("token")) == "token"
