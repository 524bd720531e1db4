"""CLI entry point and argument parsing"""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import List, Optional

from rich.console import Console
from rich.markup import escape

import settings
from api.errors import ApiError
from auth.errors import CredentialStoreError, OAuthError, ProfileStoreError
from cli.auth_commands import AuthCommands, CommandError

logger = logging.getLogger(__name__)

console = Console()
error_console = Console(stderr=True)

# Failures shown as a one-line message instead of a traceback
USER_ERRORS = (CommandError, ApiError, OAuthError, CredentialStoreError, ProfileStoreError)

LOG_HANDLER_NAME = "bb-stderr"


def _scope_list(value: str) -> List[str]:
    return [scope.strip() for scope in value.split(",") if scope.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bb", description="Work with Bitbucket Cloud and Server/DC from the command line")
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"bb {settings.VERSION}")

    commands = parser.add_subparsers(dest="command", required=True)
    auth = commands.add_parser("auth", help="Authenticate with Bitbucket")
    auth_commands = auth.add_subparsers(dest="auth_command", required=True)

    login = auth_commands.add_parser("login", help="Log in to Bitbucket")
    login.add_argument(
        "--server", "--self-hosted",
        action="store_true",
        help="Authenticate with Bitbucket Server/Data Center (self-hosted)"
    )
    login.add_argument("--host", "-H", default=None, help="Hostname of the Bitbucket instance")
    login.add_argument("--with-token", action="store_true", help="Read token from standard input")
    login.add_argument(
        "--scopes",
        type=_scope_list,
        default=None,
        help="Comma separated OAuth scopes to request (Cloud only)"
    )

    logout = auth_commands.add_parser("logout", help="Log out of Bitbucket")
    logout.add_argument("--host", "-H", default=None, help="Hostname to log out from")
    logout.add_argument("--all", dest="all_hosts", action="store_true", help="Log out of all accounts")

    status = auth_commands.add_parser("status", help="View authentication status")
    status.add_argument("--show-token", "-t", action="store_true", help="Show the token (masked)")

    refresh = auth_commands.add_parser("refresh", help="Refresh the OAuth token")
    refresh.add_argument("--host", "-H", default="bitbucket.org", help="Host whose token to refresh")

    switch = auth_commands.add_parser("switch", help="Switch authentication profile")
    switch.add_argument("--profile", "-p", default=None, help="Profile name to switch to")

    token = auth_commands.add_parser("token", help="Print the authentication token")
    token.add_argument("--host", "-H", default=None, help="Hostname for which to print the token")

    return parser


def setup_logging(debug: bool) -> None:
    """Send log records to stderr; DEBUG with --debug, else settings.LOG_LEVEL"""
    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, str(settings.LOG_LEVEL).upper(), logging.WARNING)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(LOG_HANDLER_NAME)
    handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Replace the handler from an earlier call instead of stacking another
    for existing in list(root_logger.handlers):
        if existing.get_name() == LOG_HANDLER_NAME:
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    # httpx logs every request at INFO
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)


async def run_auth_command(args: argparse.Namespace, commands: AuthCommands) -> None:
    if args.auth_command == "login":
        await commands.login(server=args.server, host=args.host, with_token=args.with_token, scopes=args.scopes)
    elif args.auth_command == "logout":
        await commands.logout(host=args.host, all_hosts=args.all_hosts)
    elif args.auth_command == "status":
        await commands.status(show_token=args.show_token)
    elif args.auth_command == "refresh":
        await commands.refresh(host=args.host)
    elif args.auth_command == "switch":
        await commands.switch(profile=args.profile)
    elif args.auth_command == "token":
        await commands.token(host=args.host)


def main(argv: Optional[List[str]] = None, commands: Optional[AuthCommands] = None) -> int:
    """Entry point for the CLI

    Returns:
        Process exit status
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug)

    if commands is None:
        commands = AuthCommands(console=console)

    try:
        asyncio.run(run_auth_command(args, commands))
    except KeyboardInterrupt:
        error_console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except USER_ERRORS as e:
        logger.debug(f"Command failed: {type(e).__name__}")
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        if args.debug:
            traceback.print_exc()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
