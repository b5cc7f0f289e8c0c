"""Shared CLI utilities and helpers."""

import logging
import sys
from functools import wraps

import click
from click import prompt
from rich.console import Console
from rich.logging import RichHandler

from ..config import AccountConfig, find_root
from ..imap import IMAPClient
from ..pop3 import Pop3Mailbox


def err(*args, **kwargs):
    """Print to stderr."""
    print(*args, file=sys.stderr, **kwargs)


def setup_logging(verbose: bool) -> None:
    """Route the engine's log records through rich, on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def get_password(password_opt: str | None) -> str:
    """Get password from option, stdin (if piped), or prompt."""
    if password_opt:
        return password_opt
    elif not sys.stdin.isatty():
        return sys.stdin.readline().rstrip("\n")
    else:
        return prompt("Password", hide_input=True)


def pop3_opener(acct: AccountConfig, name: str):
    """Factory for fresh (unconnected) POP3 mailboxes of an account."""
    def open_pop3() -> Pop3Mailbox:
        return Pop3Mailbox(
            acct.host,
            acct.user,
            acct.password,
            port=acct.effective_port,
            ssl=acct.ssl,
            name=name,
        )
    return open_pop3


def connect_imap(acct: AccountConfig) -> IMAPClient:
    client = IMAPClient(acct.host, acct.effective_port, ssl=acct.ssl)
    client.connect(acct.user, acct.password)
    return client


# =============================================================================
# Decorators and Click helpers
# =============================================================================


def require_init(f):
    """Decorator that requires .pop3-migration directory to exist."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not find_root():
            err("Not in a pop3-migration project. Run 'pop3-migration init' first.")
            sys.exit(1)
        return f(*args, **kwargs)
    return wrapper


class AliasGroup(click.Group):
    """Click Group that supports command aliases."""

    def __init__(self, *args, aliases: dict[str, str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.aliases = aliases or {}
        # command -> its aliases, for help output
        self._cmd_aliases: dict[str, list[str]] = {}
        for alias, cmd in self.aliases.items():
            self._cmd_aliases.setdefault(cmd, []).append(alias)

    def get_command(self, ctx, cmd_name):
        cmd_name = self.aliases.get(cmd_name, cmd_name)
        return super().get_command(ctx, cmd_name)

    def resolve_command(self, ctx, args):
        _, cmd_name, args = super().resolve_command(ctx, args)
        cmd_name = self.aliases.get(cmd_name, cmd_name)
        return _, cmd_name, args

    def format_commands(self, ctx, formatter):
        """Write all commands with their aliases to the formatter."""
        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            aliases = self._cmd_aliases.get(subcommand, [])
            if aliases:
                name = f"{subcommand} ({', '.join(sorted(aliases))})"
            else:
                name = subcommand
            help_text = cmd.get_short_help_str(limit=formatter.width)
            commands.append((name, help_text))

        if commands:
            with formatter.section("Commands"):
                formatter.write_dl(commands)
