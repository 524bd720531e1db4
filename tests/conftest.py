"""Pytest configuration and shared fixtures."""

import io
import socket

import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError
from rich.console import Console

from auth.keyring_store import KeyringStore


class MemoryKeyring(KeyringBackend):
    """Keyring backend that keeps passwords in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords = {}

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def delete_password(self, service, username):
        if (service, username) not in self.passwords:
            raise PasswordDeleteError("Password not found")
        del self.passwords[(service, username)]


class BrokenKeyring(KeyringBackend):
    """Keyring backend whose every operation fails, like a locked keychain."""

    priority = 1

    def set_password(self, service, username, password):
        raise KeyringError("keychain is locked")

    def get_password(self, service, username):
        raise KeyringError("keychain is locked")

    def delete_password(self, service, username):
        raise KeyringError("keychain is locked")


@pytest.fixture
def keyring_backend():
    return MemoryKeyring()


@pytest.fixture
def store(keyring_backend):
    """KeyringStore writing to an in-memory backend."""
    return KeyringStore(service="bitbucket-cli-test", backend=keyring_backend)


@pytest.fixture
def broken_store():
    return KeyringStore(service="bitbucket-cli-test", backend=BrokenKeyring())


@pytest.fixture
def profiles_path(tmp_path):
    return tmp_path / "bb" / "profiles.json"


@pytest.fixture
def console():
    """Console that records output instead of writing to the terminal."""
    return Console(file=io.StringIO(), width=200, force_terminal=False, color_system=None)


@pytest.fixture
def free_port():
    """A local TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
