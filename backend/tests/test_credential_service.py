"""Tests for credential encryption and ownership-checked resolution."""

import base64
import hashlib

import pytest

from chainflow.engine.errors import ConfigurationError, CredentialAccessError
from chainflow.services.credential_service import CredentialService, derive_key


class TestDeriveKey:
    def test_hex_key(self):
        raw = "ab" * 32
        assert derive_key(raw) == bytes.fromhex(raw)

    def test_base64_key(self):
        key = bytes(range(32))
        assert derive_key(base64.b64encode(key).decode()) == key

    def test_passphrase_is_hashed(self):
        assert derive_key("correct horse battery staple") == hashlib.sha256(
            b"correct horse battery staple"
        ).digest()

    def test_short_base64_falls_back_to_hash(self):
        assert derive_key("abcd") == hashlib.sha256(b"abcd").digest()


class TestEncryption:
    def test_round_trip(self, credential_service):
        payload = {"token": "123:ABC", "chatId": "-100", "nested": {"port": 5432}}
        blob = credential_service.encrypt(payload)

        assert credential_service.decrypt(blob) == payload
        assert "123:ABC" not in blob
        assert len(blob.split(":")) == 3

    def test_fresh_iv_per_encryption(self, credential_service):
        assert credential_service.encrypt({"a": 1}) != credential_service.encrypt({"a": 1})

    def test_tampered_blob_is_rejected(self, credential_service):
        iv, tag, ciphertext = credential_service.encrypt({"secret": "value"}).split(":")
        flipped = ("0" if ciphertext[0] != "0" else "1") + ciphertext[1:]

        with pytest.raises(ConfigurationError):
            credential_service.decrypt(f"{iv}:{tag}:{flipped}")

    def test_malformed_blob_is_rejected(self, credential_service):
        with pytest.raises(ConfigurationError):
            credential_service.decrypt("not-a-blob")

    def test_wrong_key_cannot_decrypt(self, db_session, credential_service):
        blob = credential_service.encrypt({"secret": "value"})
        other = CredentialService(db_session, encryption_key="another-key")

        with pytest.raises(ConfigurationError):
            other.decrypt(blob)


class TestResolve:
    def test_owner_resolves_payload(self, credential_service):
        credential = credential_service.create_credential("alice", "bot", "telegram", {"token": "t", "chatId": "c"})

        assert credential_service.resolve(credential.id, "alice", "telegram") == {"token": "t", "chatId": "c"}

    def test_other_user_is_denied(self, credential_service):
        """A credential owned by bob cannot be resolved for alice's run."""
        credential = credential_service.create_credential("bob", "db", "postgres_db", {"connectionUrl": "postgres://secret"})

        with pytest.raises(CredentialAccessError) as excinfo:
            credential_service.resolve(credential.id, "alice", "postgres_db")

        assert "secret" not in str(excinfo.value)

    def test_deactivated_credential_is_denied(self, credential_service):
        credential = credential_service.create_credential("alice", "bot", "telegram", {"token": "t"})
        credential_service.deactivate(credential.id, "alice")

        with pytest.raises(CredentialAccessError):
            credential_service.resolve(credential.id, "alice")
        assert credential_service.list_credentials("alice") == []

    def test_type_mismatch(self, credential_service):
        credential = credential_service.create_credential("alice", "bot", "telegram", {"token": "t"})

        with pytest.raises(ConfigurationError, match="expected 'ai'"):
            credential_service.resolve(credential.id, "alice", "ai")

    def test_missing_id(self, credential_service):
        with pytest.raises(ConfigurationError):
            credential_service.resolve("", "alice")

    def test_stored_data_is_encrypted(self, credential_service):
        credential = credential_service.create_credential("alice", "mail", "email", {"password": "hunter2"})
        assert "hunter2" not in credential.data
