"""Encrypted-at-rest storage of raw credential material behind opaque handles."""

import secrets
from collections.abc import Sequence

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from rag_control.config import Settings
from rag_control.core.constants import STATE_SECRET
from rag_control.core.exceptions import AppException, NotFoundException
from rag_control.core.logging import get_logger
from rag_control.services.state_store import QdrantStateStore

logger = get_logger(__name__)


class SecretStore:
    """Holds Fernet ciphertexts keyed by random handles.

    Handles are generated independently of the plaintext, so they reveal
    nothing about it. This is the only component that ever sees plaintext
    on the write path; reads go through :meth:`decrypt`, which only the
    credential registry's resolution path calls.
    """

    def __init__(
        self,
        keys: Sequence[str | bytes] = (),
        state: QdrantStateStore | None = None,
    ):
        if not keys:
            logger.warning(
                "No encryption key configured. Generating a process-local key; "
                "stored secrets will not survive a restart. DO NOT use in production!"
            )
            keys = [Fernet.generate_key()]

        try:
            self._cipher = MultiFernet([Fernet(key) for key in keys])
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid encryption key: {e}") from e

        self._state = state
        self._ciphertexts: dict[str, bytes] = {}
        if state is not None:
            self._ciphertexts = {
                handle: data["token"].encode("ascii")
                for handle, data in state.load(STATE_SECRET).items()
            }
        logger.info(
            "SecretStore initialized with %d key(s), %d stored secret(s)",
            len(keys),
            len(self._ciphertexts),
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, state: QdrantStateStore | None = None
    ) -> "SecretStore":
        """Build the store; with retired keys still configured, migrate to the primary key."""
        store = cls(settings.encryption_keys, state=state)
        if len(settings.encryption_keys) > 1:
            store.rotate()
        return store

    def _save(self, handle: str, token: bytes) -> None:
        self._ciphertexts[handle] = token
        if self._state is not None:
            self._state.put(STATE_SECRET, handle, {"token": token.decode("ascii")})

    def __len__(self) -> int:
        return len(self._ciphertexts)

    def __contains__(self, handle: object) -> bool:
        return handle in self._ciphertexts

    def encrypt(self, plaintext: str) -> str:
        """Encrypt and store a secret.

        Args:
            plaintext: Raw secret material.

        Returns:
            Opaque handle for later decrypt/erase.
        """
        handle = secrets.token_urlsafe(24)
        self._save(handle, self._cipher.encrypt(plaintext.encode("utf-8")))
        return handle

    def decrypt(self, handle: str) -> str:
        """Return the plaintext stored under a handle.

        Raises:
            NotFoundException: If the handle was never issued or has been erased.
            AppException: If the ciphertext cannot be decrypted with any configured key.
        """
        token = self._ciphertexts.get(handle)
        if token is None:
            raise NotFoundException("Secret not found")
        try:
            return self._cipher.decrypt(token).decode("utf-8")
        except InvalidToken as e:
            logger.error("Stored secret could not be decrypted with the configured keys")
            raise AppException("Stored secret could not be decrypted") from e

    def erase(self, handle: str) -> bool:
        """Irreversibly drop the ciphertext behind a handle.

        Returns:
            True if something was erased.
        """
        if self._ciphertexts.pop(handle, None) is None:
            return False
        if self._state is not None:
            self._state.delete(STATE_SECRET, handle)
        return True

    def rotate(self) -> int:
        """Re-encrypt every stored secret under the primary (first) key.

        Returns:
            Number of secrets re-encrypted.
        """
        for handle, token in list(self._ciphertexts.items()):
            self._save(handle, self._cipher.rotate(token))
        logger.info("Re-encrypted %d secrets under the primary key", len(self._ciphertexts))
        return len(self._ciphertexts)
