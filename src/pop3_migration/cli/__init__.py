"""CLI package for pop3-migration.

This package organizes CLI commands into modules:
- account.py: Account management (add, ls, rm)
- cache_cmds.py: cache ls, cache clear
- match.py: Match an IMAP folder against the POP3 source
- misc.py: init, hash
- utils.py: Shared utilities and helpers
"""

import click
from dotenv import load_dotenv

from .utils import AliasGroup

from .account import account
from .cache_cmds import cache
from .match import match
from .misc import hash_cmd, init


@click.group(cls=AliasGroup, aliases={
    'a': 'account',
    'c': 'cache',
    'h': 'hash',
    'i': 'init',
    'm': 'match',
})
def main():
    """Match migrated IMAP messages to their POP3 UIDLs."""
    load_dotenv()


main.add_command(account)
main.add_command(cache)
main.add_command(hash_cmd)
main.add_command(init)
main.add_command(match)


__all__ = [
    'main',
    'account',
    'cache',
    'hash_cmd',
    'init',
    'match',
]
