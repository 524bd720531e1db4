"""Authentication profiles for working with several accounts

A profile records which host an account lives on and how it authenticates.
Secrets are not part of a profile; they stay in the keyring under the same
host key.
"""

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .credentials import CredentialKind
from .errors import ProfileStoreError

logger = logging.getLogger(__name__)


@dataclass
class Profile:
    """Named account on a Bitbucket host

    Attributes:
        name: Unique profile name
        host: Host key the credential is stored under
        username: Account username, when known
        credential_kind: How the account authenticates
        is_default: Whether this profile asked to become the default
    """
    name: str
    host: str
    credential_kind: CredentialKind
    username: Optional[str] = None
    is_default: bool = False

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["credential_kind"] = self.credential_kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Profile":
        return cls(
            name=data["name"],
            host=data["host"],
            credential_kind=CredentialKind(data["credential_kind"]),
            username=data.get("username"),
            is_default=bool(data.get("is_default", False)),
        )


class ProfileManager:
    """Registry of profiles with a single default pointer"""

    def __init__(self):
        self._profiles: Dict[str, Profile] = {}
        self._default: Optional[str] = None

    def add(self, profile: Profile) -> None:
        """Insert or replace a profile by name

        A profile flagged as default moves the default pointer to itself.
        The flag on the previously default profile is left as it was.
        """
        if profile.is_default:
            self._default = profile.name
        self._profiles[profile.name] = profile

    def remove(self, name: str) -> Optional[Profile]:
        """Remove a profile; removing the default leaves no default"""
        if self._default == name:
            self._default = None
        return self._profiles.pop(name, None)

    def get(self, name: str) -> Optional[Profile]:
        return self._profiles.get(name)

    def list(self) -> List[Profile]:
        return list(self._profiles.values())

    def default_profile(self) -> Optional[Profile]:
        if self._default is None:
            return None
        return self._profiles.get(self._default)

    def set_default(self, name: str) -> bool:
        """Point the default at an existing profile

        Returns:
            False, with nothing changed, if the name is unknown
        """
        if name not in self._profiles:
            return False
        self._default = name
        return True

    def for_host(self, host: str) -> Optional[Profile]:
        """First profile whose host matches exactly (case-sensitive)"""
        for profile in self._profiles.values():
            if profile.host == host:
                return profile
        return None

    def __len__(self) -> int:
        return len(self._profiles)

    @classmethod
    def load(cls, path: Path) -> "ProfileManager":
        """Read a registry file; a missing file gives an empty registry

        Raises:
            ProfileStoreError: If the file exists but cannot be parsed
        """
        path = Path(path)
        manager = cls()
        if not path.exists():
            logger.debug(f"No profile file at {path}")
            return manager

        try:
            data = json.loads(path.read_text())
            for entry in data.get("profiles", []):
                manager._profiles[entry["name"]] = Profile.from_dict(entry)
        except (json.JSONDecodeError, OSError, KeyError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to load profiles from {path}: {e}")
            raise ProfileStoreError(f"Failed to load profiles from {path}: {e}") from e

        default = data.get("default")
        if default in manager._profiles:
            manager._default = default
        return manager

    def save(self, path: Path) -> None:
        """Write the registry as JSON readable only by the owner

        Raises:
            ProfileStoreError: If the file cannot be written
        """
        path = Path(path)
        data = {
            "default": self._default,
            "profiles": [profile.to_dict() for profile in self._profiles.values()],
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2))
            if platform.system() != "Windows":
                os.chmod(path, 0o600)
        except OSError as e:
            logger.error(f"Failed to save profiles to {path}: {e}")
            raise ProfileStoreError(f"Failed to save profiles to {path}: {e}") from e
        logger.debug(f"Saved {len(self._profiles)} profile(s) to {path}")
