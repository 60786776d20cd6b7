"""
Credentials Management
======================

Abstraction for credential retrieval. The production provider keeps the
account password in an AES-256-GCM encrypted file next to a locally
generated key; the first run prompts for the password and stores it.
For testing, StaticCredentialProvider can be injected instead.

Credentials are handed to the session orchestrator and never logged.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from pathlib import Path
from typing import Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from contracts import CredentialError, Credentials

logger = logging.getLogger("mail-triage.credentials")

KEY_FILE = ".encryption_key"
PASSWORD_FILE = ".encrypted_password"
NONCE_SIZE = 12
KEY_SIZE = 32


class EncryptedCredentialCache:
    """
    Password cache backed by a key file and an encrypted password file.

    The password file holds base64(nonce || ciphertext). Both files live in
    `directory`, which is created on first write.
    """

    def __init__(
        self,
        directory: str | Path,
        prompt: Callable[[str], str] = getpass.getpass,
    ) -> None:
        self._directory = Path(directory).expanduser()
        self._prompt = prompt

    @property
    def key_path(self) -> Path:
        return self._directory / KEY_FILE

    @property
    def password_path(self) -> Path:
        return self._directory / PASSWORD_FILE

    def get_credentials(self, identity: str) -> Credentials:
        """
        Return the cached password for identity, prompting on first use.

        PRE: directory is writable if no password has been stored yet
        POST: password file exists and decrypts to the returned password

        ERRORS:
        - CredentialError: key or password file unreadable, tampered with,
          or encrypted under a different key
        """
        if self.password_path.exists():
            password = self._decrypt(self._read_text(self.password_path))
        else:
            logger.info("No stored password found, prompting")
            password = self._prompt(f"Enter the password for {identity}: ")
            self.store(password)
        return Credentials(username=identity, password=password)

    def store(self, password: str) -> None:
        """Encrypt password and write it to the password file."""
        self._write(self.password_path, self._encrypt(password).encode("ascii"))

    def clear(self) -> None:
        """Remove the stored password. The key is kept."""
        try:
            self.password_path.unlink()
        except FileNotFoundError:
            return
        logger.info("Stored password removed")

    def _cipher(self) -> AESGCM:
        if self.key_path.exists():
            key = self._read_bytes(self.key_path)
        else:
            key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
            self._write(self.key_path, key)
            logger.info("Generated new encryption key")

        try:
            return AESGCM(key)
        except ValueError as e:
            raise CredentialError(f"Invalid encryption key in {self.key_path}") from e

    def _encrypt(self, password: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._cipher().encrypt(nonce, password.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def _decrypt(self, encoded: str) -> str:
        try:
            combined = base64.b64decode(encoded.strip(), validate=True)
        except ValueError as e:
            raise CredentialError("Stored password is not valid base64") from e

        if len(combined) <= NONCE_SIZE:
            raise CredentialError("Stored password is truncated")

        nonce, ciphertext = combined[:NONCE_SIZE], combined[NONCE_SIZE:]
        try:
            plaintext = self._cipher().decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise CredentialError("Failed to decrypt stored password") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CredentialError("Stored password is not valid UTF-8") from e

    def _read_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError) as e:
            raise CredentialError(f"Cannot read {path}") from e

    def _read_bytes(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise CredentialError(f"Cannot read {path}") from e

    def _write(self, path: Path, data: bytes) -> None:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            path.chmod(0o600)
        except OSError as e:
            raise CredentialError(f"Cannot write {path}") from e


class StaticCredentialProvider:
    """Provider returning a fixed password, for tests and non-interactive runs."""

    def __init__(self, password: str) -> None:
        self._password = password

    def get_credentials(self, identity: str) -> Credentials:
        return Credentials(username=identity, password=self._password)
