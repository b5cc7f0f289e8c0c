"""Account management commands."""

import sys

import click
from click import argument, echo, option

from ..config import ACCOUNT_TYPES, AccountConfig, get_config_path, get_root, load_config, save_config

from .utils import AliasGroup, err, get_password, require_init


@click.group(cls=AliasGroup, aliases={
    'a': 'add',
    'l': 'ls',
    'r': 'rm',
})
def account():
    """Manage the POP3 source and IMAP target accounts."""
    pass


@account.command("add", no_args_is_help=True)
@option('-H', '--host', required=True, help="Server host")
@option('-p', '--password', 'password_opt', help="Password (prompts if not provided)")
@option('-P', '--port', type=int, help="Server port (default: 995/110 for pop3, 993/143 for imap)")
@option('-S', '--no-ssl', is_flag=True, help="Connect without TLS")
@option('-t', '--type', 'acct_type', type=click.Choice(ACCOUNT_TYPES), help="Account type (pop3, imap)")
@argument('name')
@argument('user')
@require_init
def account_add(
    host: str,
    password_opt: str | None,
    port: int | None,
    no_ssl: bool,
    acct_type: str | None,
    name: str,
    user: str,
):
    """Add or update an account.

    \b
    Examples:
      pop3-migration account add -H pop.example.com pop3 user@example.com
      pop3-migration account add -t imap -H imap.example.com new user@example.com
      echo "$PASS" | pop3-migration a a -H pop.example.com pop3 user
    """
    # Infer type from name if not specified
    if not acct_type:
        if name.lower() in ACCOUNT_TYPES:
            acct_type = name.lower()
        else:
            err(f"Cannot infer account type from '{name}'. Use -t to specify.")
            sys.exit(1)

    password = get_password(password_opt)
    root = get_root()
    config = load_config(root)
    config.accounts[name] = AccountConfig(
        name=name,
        type=acct_type,
        user=user,
        password=password,
        host=host,
        port=port,
        ssl=not no_ssl,
    )
    save_config(config, root)
    echo(f"Account '{name}' saved ({acct_type}: {user}@{host})")


@account.command("ls")
@require_init
def account_ls():
    """List accounts."""
    root = get_root()
    config = load_config(root)
    if not config.accounts:
        echo("No accounts configured.")
        echo("  pop3-migration account add -t pop3 -H pop.example.com src user@example.com")
        return

    echo(f"Accounts ({get_config_path(root)}):\n")
    for name, acct in sorted(config.accounts.items()):
        tls = "" if acct.ssl else " (no TLS)"
        echo(f"  {name:20} {acct.type:6} {acct.user} @ {acct.host}:{acct.effective_port}{tls}")


@account.command("rm", no_args_is_help=True)
@argument('name')
@require_init
def account_rm(name: str):
    """Remove an account."""
    root = get_root()
    config = load_config(root)
    if name not in config.accounts:
        err(f"Account '{name}' not found.")
        sys.exit(1)
    del config.accounts[name]
    save_config(config, root)
    echo(f"Account '{name}' removed.")
