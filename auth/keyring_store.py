"""Secure credential storage backed by the system keyring

One secret per host: service name is fixed, the account is the host key.
"""

import logging
from pathlib import Path
from typing import List, Optional

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

import settings
from .credentials import Credential, dump_credential, load_credential
from .errors import CredentialStoreError

logger = logging.getLogger(__name__)

REFRESH_SUFFIX = ".refresh"


def refresh_key(host: str) -> str:
    """Keyring account under which a host's OAuth refresh token is kept"""
    return f"{host}{REFRESH_SUFFIX}"


class KeyringStore:
    """Stores one credential string per host in the OS keyring"""

    def __init__(self, service: Optional[str] = None, backend: Optional[KeyringBackend] = None):
        """Initialize keyring access

        Args:
            service: Keyring service name (default: settings.KEYRING_SERVICE)
            backend: Explicit keyring backend; the platform default otherwise
        """
        self.service = service or settings.KEYRING_SERVICE
        self._backend = backend

    @property
    def backend(self) -> KeyringBackend:
        if self._backend is None:
            self._backend = keyring.get_keyring()
        return self._backend

    def store(self, host: str, value: str) -> None:
        """Save a credential string for a host, replacing any previous one

        Raises:
            CredentialStoreError: If the keyring refuses the write
        """
        try:
            self.backend.set_password(self.service, host, value)
        except KeyringError as e:
            logger.error(f"Failed to store credential for {host}: {e}")
            raise CredentialStoreError(f"Failed to store credential for {host}: {e}") from e
        logger.debug(f"Stored credential for {host} in keyring service {self.service}")

    def get(self, host: str) -> Optional[str]:
        """Return the stored string for a host, or None when there is none

        Raises:
            CredentialStoreError: If the keyring itself fails
        """
        try:
            return self.backend.get_password(self.service, host)
        except KeyringError as e:
            logger.error(f"Failed to read credential for {host}: {e}")
            raise CredentialStoreError(f"Failed to read credential for {host}: {e}") from e

    def delete(self, host: str) -> None:
        """Remove a host's entry; deleting a missing entry succeeds

        Raises:
            CredentialStoreError: If the keyring itself fails
        """
        try:
            self.backend.delete_password(self.service, host)
        except PasswordDeleteError:
            logger.debug(f"No credential stored for {host}, nothing to delete")
        except KeyringError as e:
            logger.error(f"Failed to delete credential for {host}: {e}")
            raise CredentialStoreError(f"Failed to delete credential for {host}: {e}") from e

    def list_hosts(self) -> List[str]:
        """Always empty: keyrings offer no portable enumeration

        Use the profile registry to find out which hosts have credentials.
        """
        return []

    def store_credential(self, host: str, credential: Credential) -> None:
        self.store(host, dump_credential(credential))

    def get_credential(self, host: str) -> Optional[Credential]:
        """Load and parse a host's credential

        Raises:
            CredentialStoreError: If the keyring fails or the value is corrupt
        """
        raw = self.get(host)
        if raw is None:
            return None
        try:
            return load_credential(raw)
        except ValueError as e:
            raise CredentialStoreError(f"Stored credential for {host} is unreadable: {e}") from e


class FileCredentialStore:
    """File fallback for systems without a keyring

    Not implemented: nothing is written to ``path``, ``get`` always returns
    None and ``delete`` does nothing. It exists so callers can be wired
    against the same interface; do not rely on it to keep anything.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def store(self, host: str, value: str) -> None:
        logger.debug(f"File credential store does not persist; dropping credential for {host}")

    def get(self, host: str) -> Optional[str]:
        return None

    def delete(self, host: str) -> None:
        pass
