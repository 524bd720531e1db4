"""Handlers for the ``bb auth`` command group"""

import dataclasses
import datetime
import logging
import webbrowser
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

import settings
from auth.credentials import (
    Credential,
    CredentialKind,
    OAuthToken,
    PersonalAccessToken,
    can_refresh,
    credential_kind,
    is_expired,
    mask_secret,
)
from auth.keyring_store import KeyringStore, refresh_key
from auth.oauth import OAuthConfig, oauth_login, refresh_credential, refresh_oauth_token
from auth.profile import Profile, ProfileManager
from auth.token import (
    TokenStatus,
    TokenValidation,
    get_cloud_username,
    get_server_username,
    read_token_from_stdin,
    validate_cloud_token,
    validate_server_token,
    validate_token_format,
)
from config.hosts import BITBUCKET_CLOUD, extract_host_key, is_cloud_host, normalize_host

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Failure reported to the user as a one-line message"""


def bearer_token(credential: Credential) -> Optional[str]:
    """Token string of a Bearer credential, None for username/password ones"""
    if isinstance(credential, OAuthToken):
        return credential.access_token
    if isinstance(credential, PersonalAccessToken):
        return credential.token
    return None


def _require_valid(result: TokenValidation) -> None:
    if result.status is TokenStatus.INVALID:
        raise CommandError("Token is invalid or expired")
    if result.status is TokenStatus.INCONCLUSIVE:
        raise CommandError(f"Could not validate token: {result.detail}")


class AuthCommands:
    """Runs auth subcommands against a credential store and profile file

    Args:
        store: Credential store (default: the OS keyring)
        profiles_path: Profile registry file (default: settings.PROFILES_FILE)
        console: Rich console for output
        open_browser: Callable used to open the OAuth authorize URL
        stdin: Stream tokens are read from with ``--with-token``
    """

    def __init__(
        self,
        store: Optional[KeyringStore] = None,
        profiles_path: Optional[Path] = None,
        console: Optional[Console] = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        stdin: Optional[TextIO] = None,
    ):
        self.store = store or KeyringStore()
        self.profiles_path = Path(profiles_path or settings.PROFILES_FILE)
        self.console = console or Console()
        self.open_browser = open_browser
        self.stdin = stdin

    def _load_profiles(self) -> ProfileManager:
        return ProfileManager.load(self.profiles_path)

    def _record_login(self, host_key: str, kind: CredentialKind, username: Optional[str]) -> None:
        profiles = self._load_profiles()
        profiles.add(Profile(
            name=host_key,
            host=host_key,
            credential_kind=kind,
            username=username,
            is_default=profiles.default_profile() is None,
        ))
        profiles.save(self.profiles_path)

    def _forget_host(self, host_key: str) -> None:
        self.store.delete(host_key)
        self.store.delete(refresh_key(host_key))

    def _known_hosts(self, profiles: ProfileManager) -> List[str]:
        return sorted({profile.host for profile in profiles.list()})

    def _print_logged_in(self, host_key: str, username: Optional[str], prefix: str = "Logged in to") -> None:
        if username:
            self.console.print(f"[green]✓[/green] {prefix} {escape(host_key)} as {escape(username)}")
        else:
            self.console.print(f"[green]✓[/green] {prefix} {escape(host_key)}")

    # Login

    async def login(
        self,
        server: bool = False,
        host: Optional[str] = None,
        with_token: bool = False,
        scopes: Optional[List[str]] = None,
    ) -> None:
        """Log in to Cloud (OAuth or pasted token) or to a Server/DC host (PAT)

        Cloud is the default; ``server`` or any non-Cloud ``host`` selects
        the Server/DC flow.
        """
        if server or (host is not None and not is_cloud_host(extract_host_key(host))):
            await self._login_server(host, with_token)
        else:
            await self._login_cloud(with_token, scopes)

    async def _login_cloud(self, with_token: bool, scopes: Optional[List[str]]) -> None:
        host = BITBUCKET_CLOUD

        existing = self.store.get_credential(host)
        token = bearer_token(existing) if existing is not None else None
        if token and (await validate_cloud_token(token)).is_valid:
            username = await get_cloud_username(token)
            self._print_logged_in(host, username, prefix="Already logged in to")
            if not Confirm.ask("Re-authenticate?", default=False, console=self.console):
                return

        if with_token:
            self.console.print("Paste your access token:")
            token = read_token_from_stdin(self.stdin)
            if not validate_token_format(token):
                raise CommandError("Invalid token format")
            self.console.print("Validating token...")
            _require_valid(await validate_cloud_token(token))
            credential = OAuthToken(access_token=token)
        else:
            config = OAuthConfig(scopes=scopes) if scopes else OAuthConfig()
            tokens = await oauth_login(config, open_browser=self.open_browser, console=self.console)
            credential = tokens.to_credential()

        self.store.store_credential(host, credential)
        username = await get_cloud_username(credential.access_token)
        self._record_login(host, CredentialKind.OAUTH, username)
        self._print_logged_in(host, username)

    async def _login_server(self, host: Optional[str], with_token: bool) -> None:
        if not host:
            host = Prompt.ask("Bitbucket Server hostname (e.g., bitbucket.company.com)", console=self.console)
        base_url = normalize_host(host)
        host_key = extract_host_key(host)

        existing = self.store.get_credential(host_key)
        token = bearer_token(existing) if existing is not None else None
        if token and (await validate_server_token(token, base_url)).is_valid:
            username = await get_server_username(token, base_url)
            self._print_logged_in(host_key, username, prefix="Already logged in to")
            if not Confirm.ask("Re-authenticate?", default=False, console=self.console):
                return

        if with_token:
            self.console.print("Paste your Personal Access Token:")
            token = read_token_from_stdin(self.stdin)
        else:
            self.console.print()
            self.console.print("To create a Personal Access Token:")
            self.console.print(f"  1. Go to {escape(base_url)}/plugins/servlet/access-tokens/manage")
            self.console.print("  2. Click 'Create token'")
            self.console.print("  3. Give it a name and select permissions")
            self.console.print("  4. Copy the generated token")
            self.console.print()
            token = Prompt.ask("Personal Access Token", password=True, console=self.console).strip()

        if not validate_token_format(token):
            raise CommandError("Invalid token format")

        self.console.print("Validating token...")
        _require_valid(await validate_server_token(token, base_url))

        self.store.store_credential(host_key, PersonalAccessToken(token=token))
        username = await get_server_username(token, base_url)
        self._record_login(host_key, CredentialKind.PAT, username)
        self._print_logged_in(host_key, username)

    # Logout

    async def logout(self, host: Optional[str] = None, all_hosts: bool = False) -> None:
        """Remove stored credentials and the profiles that point at them"""
        profiles = self._load_profiles()
        hosts = self._known_hosts(profiles)

        if all_hosts:
            if not hosts:
                self.console.print("Not logged in to any hosts")
                return
            for host_key in hosts:
                self._forget_host(host_key)
            for profile in profiles.list():
                profiles.remove(profile.name)
            profiles.save(self.profiles_path)
            self.console.print(f"[green]✓[/green] Logged out of {len(hosts)} host(s)")
            return

        if host is None:
            if not hosts:
                self.console.print("Not logged in to any hosts")
                return
            if len(hosts) == 1:
                host = hosts[0]
            else:
                self.console.print("Logged in to:")
                for i, host_key in enumerate(hosts, 1):
                    self.console.print(f"  {i}) {escape(host_key)}")
                choice = IntPrompt.ask(
                    "Select host to log out from",
                    choices=[str(i) for i in range(1, len(hosts) + 1)],
                    console=self.console,
                )
                host = hosts[choice - 1]

        host_key = extract_host_key(host)
        self._forget_host(host_key)
        for profile in profiles.list():
            if profile.host == host_key:
                profiles.remove(profile.name)
        profiles.save(self.profiles_path)
        self.console.print(f"[green]✓[/green] Logged out of {escape(host_key)}")

    # Status

    async def _describe(self, host_key: str, credential: Optional[Credential]) -> str:
        if credential is None:
            return "[red]No credential[/red]"
        if is_expired(credential):
            return "[yellow]Expired[/yellow]" + (" (refreshable)" if can_refresh(credential) else "")

        token = bearer_token(credential)
        if token is None:
            return "Stored (not checked)"
        if is_cloud_host(host_key):
            result = await validate_cloud_token(token)
        else:
            result = await validate_server_token(token, host_key)

        if result.status is TokenStatus.VALID:
            return "[green]Active[/green]"
        if result.status is TokenStatus.INVALID:
            return "[red]Invalid/Expired[/red]"
        return "[yellow]Unknown (could not reach server)[/yellow]"

    async def status(self, show_token: bool = False) -> None:
        """Show every profile with the live state of its credential"""
        profiles = self._load_profiles()
        if not len(profiles):
            self.console.print("Not logged in to any Bitbucket hosts")
            self.console.print()
            self.console.print("Run 'bb auth login' to authenticate")
            return

        default = profiles.default_profile()

        table = Table(title="Authentication Status")
        table.add_column("Profile", style="cyan")
        table.add_column("Host")
        table.add_column("User")
        table.add_column("Method")
        table.add_column("Status")
        if show_token:
            table.add_column("Token")

        for profile in sorted(profiles.list(), key=lambda p: p.name):
            credential = self.store.get_credential(profile.host)
            name = profile.name + (" *" if default is not None and default.name == profile.name else "")
            row = [
                escape(name),
                escape(profile.host),
                escape(profile.username or "-"),
                profile.credential_kind.value,
                await self._describe(profile.host, credential),
            ]
            if show_token:
                secret = None
                if credential is not None:
                    secret = bearer_token(credential) or credential.password
                row.append(mask_secret(secret) if secret else "-")
            table.add_row(*row)

        self.console.print(table)
        if default is not None:
            self.console.print("[dim]* default profile[/dim]")

    # Refresh

    async def refresh(self, host: str = BITBUCKET_CLOUD) -> None:
        """Exchange the stored refresh token for a new access token"""
        host_key = extract_host_key(host)
        credential = self.store.get_credential(host_key)

        self.console.print("Refreshing token...")
        if isinstance(credential, OAuthToken) and can_refresh(credential):
            refreshed = await refresh_credential(credential)
        else:
            # Older logins kept the refresh token in its own entry
            legacy_refresh = self.store.get(refresh_key(host_key))
            if not legacy_refresh:
                raise CommandError("No refresh token found. Please re-authenticate with 'bb auth login'")
            refreshed = (await refresh_oauth_token(legacy_refresh)).to_credential()
            if refreshed.refresh_token is None:
                refreshed = dataclasses.replace(refreshed, refresh_token=legacy_refresh)
            self.store.delete(refresh_key(host_key))

        self.store.store_credential(host_key, refreshed)
        self.console.print("[green]✓[/green] Token refreshed successfully")

        if refreshed.expires_at is not None:
            remaining = refreshed.expires_at - datetime.datetime.now(datetime.timezone.utc)
            total_minutes = max(int(remaining.total_seconds()) // 60, 0)
            hours, minutes = divmod(total_minutes, 60)
            self.console.print(f"New token expires in {hours} hours {minutes} minutes")

    # Switch

    async def switch(self, profile: Optional[str] = None) -> None:
        """Make a profile the default, or list profiles when none is named"""
        profiles = self._load_profiles()
        if not len(profiles):
            self.console.print("No authentication profiles configured")
            self.console.print("Run 'bb auth login' to authenticate")
            return

        if profile is not None:
            if not profiles.set_default(profile):
                raise CommandError(f"Profile '{profile}' not found")
            profiles.save(self.profiles_path)
            selected = profiles.get(profile)
            self.console.print(f"[green]✓[/green] Switched to profile: {escape(profile)}")
            if selected.username:
                self.console.print(f"  User: {escape(selected.username)}")
            return

        default = profiles.default_profile()
        self.console.print("Available authentication profiles:")
        self.console.print()
        for entry in sorted(profiles.list(), key=lambda p: p.name):
            marker = "*" if default is not None and default.name == entry.name else " "
            self.console.print(f"  {marker} {escape(entry.name)} ({escape(entry.host)})")
            if entry.username:
                self.console.print(f"      User: {escape(entry.username)}")
        self.console.print()
        self.console.print("Use 'bb auth switch --profile <name>' to switch profiles")

    # Token

    def _resolve_host(self, profiles: ProfileManager, host: Optional[str]) -> str:
        if host:
            return extract_host_key(host)
        default = profiles.default_profile()
        if default is not None:
            return default.host
        if profiles.for_host(BITBUCKET_CLOUD) is not None:
            return BITBUCKET_CLOUD
        hosts = self._known_hosts(profiles)
        if len(hosts) == 1:
            return hosts[0]
        if not hosts:
            raise CommandError("Not logged in to any hosts")
        raise CommandError("Multiple hosts configured. Specify one with --host")

    async def token(self, host: Optional[str] = None) -> None:
        """Print the raw token for a host, for piping into other tools"""
        host_key = self._resolve_host(self._load_profiles(), host)
        credential = self.store.get_credential(host_key)
        if credential is None:
            raise CommandError(f"No token found for {host_key}")

        token = bearer_token(credential)
        if token is None:
            kind = credential_kind(credential).value
            raise CommandError(f"{host_key} uses {kind} credentials, which have no token")
        self.console.print(token, markup=False, highlight=False, soft_wrap=True)
