"""
Credential Service.

Encrypts credential payloads at rest with AES-256-GCM and resolves them for
node handlers. Stored blobs have the form ``iv:tag:ciphertext`` (hex), where the
plaintext is the JSON-serialised payload.
"""

import base64
import binascii
import hashlib
import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy.orm import Session

from chainflow.config.settings import get_settings
from chainflow.database.models.credentials import Credential
from chainflow.database.repositories.credentials_repository import CredentialsRepository
from chainflow.engine.errors import ConfigurationError, CredentialAccessError

logger = logging.getLogger(__name__)

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")
_BASE64_KEY = re.compile(r"^[A-Za-z0-9+/=]+$")
_IV_BYTES = 12
_TAG_BYTES = 16


def derive_key(raw_key: str) -> bytes:
    """
    Turn the configured key string into 32 key bytes.

    Accepted forms, in order: 64 hex characters, base64 decoding to exactly
    32 bytes, or any passphrase (hashed with SHA-256).
    """
    raw = str(raw_key).strip()
    if _HEX_KEY.match(raw):
        return bytes.fromhex(raw)
    if _BASE64_KEY.match(raw):
        try:
            decoded = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError):
            decoded = b""
        if len(decoded) == 32:
            return decoded
    return hashlib.sha256(raw.encode("utf-8")).digest()


class CredentialService:
    """Credential vault adapter: encryption plus ownership-checked lookup."""

    def __init__(self, db: Session, encryption_key: Optional[str] = None):
        self.db = db
        self.repository = CredentialsRepository(db)
        self._key = derive_key(encryption_key or get_settings().encryption_key)

    def encrypt(self, payload: Any) -> str:
        """
        Encrypt a JSON-serialisable payload.

        Args:
            payload: Secret data to protect.

        Returns:
            ``hex(iv):hex(tag):hex(ciphertext)``
        """
        iv = os.urandom(_IV_BYTES)
        sealed = AESGCM(self._key).encrypt(iv, json.dumps(payload).encode("utf-8"), None)
        ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, blob: str) -> Any:
        """
        Decrypt a blob produced by ``encrypt``.

        Raises:
            ConfigurationError: If the blob is malformed or fails authentication.
        """
        parts = blob.split(":")
        if len(parts) != 3:
            raise ConfigurationError("Invalid encrypted credential format, expected iv:tag:ciphertext")
        try:
            iv, tag, ciphertext = (bytes.fromhex(part) for part in parts)
            plaintext = AESGCM(self._key).decrypt(iv, ciphertext + tag, None)
        except (ValueError, InvalidTag) as e:
            raise ConfigurationError("Credential could not be decrypted") from e
        return json.loads(plaintext.decode("utf-8"))

    def create_credential(self, user_id: str, name: str, type_: str, payload: Dict[str, Any]) -> Credential:
        return self.repository.create_credential(user_id, name, type_, self.encrypt(payload))

    def get_credential(self, credential_id: str, user_id: str) -> Credential:
        """
        Load an active credential owned by ``user_id``.

        Raises:
            CredentialAccessError: If id, owner and active flag do not all match.
        """
        credential = self.repository.get_active_credential(credential_id, user_id)
        if credential is None:
            logger.warning(f"Credential {credential_id} not found or not owned by {user_id}")
            raise CredentialAccessError()
        return credential

    def resolve(self, credential_id: str, user_id: str, expected_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Resolve and decrypt a credential for a node handler.

        Args:
            credential_id: Credential referenced by the node configuration.
            user_id: Owner of the run; never the owner written in node data.
            expected_type: When given, the credential type must match.

        Returns:
            The decrypted payload.
        """
        if not credential_id:
            raise ConfigurationError("credentialId is required")
        credential = self.get_credential(credential_id, user_id)
        if expected_type and credential.type != expected_type:
            raise ConfigurationError(
                f"Invalid credential type: expected '{expected_type}', got '{credential.type}'"
            )
        return self.decrypt(credential.data)

    def list_credentials(self, user_id: str) -> List[Credential]:
        return self.repository.list_credentials(user_id)

    def deactivate(self, credential_id: str, user_id: str) -> Credential:
        return self.repository.deactivate(self.get_credential(credential_id, user_id))
