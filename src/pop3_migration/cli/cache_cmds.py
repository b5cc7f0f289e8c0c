"""Cache commands: inspect and clear cached header digests and UIDLs."""

import click
import humanize
from click import echo, option
from rich.console import Console
from rich.table import Table

from ..cache import HDR_DIGEST_FIELD, UIDL_FIELD
from ..config import get_cache_path, get_root
from ..store import SqliteCacheStore

from .utils import AliasGroup, require_init

FIELDS = {
    "hdr": HDR_DIGEST_FIELD,
    "uidl": UIDL_FIELD,
}


@click.group(cls=AliasGroup, aliases={
    'l': 'ls',
    'c': 'clear',
})
def cache():
    """Inspect or clear the per-message cache."""
    pass


@cache.command("ls")
@option('-f', '--folder', help="Only this mailbox")
@require_init
def cache_ls(folder: str | None):
    """Show how many values are cached, per mailbox and field."""
    path = get_cache_path(get_root())
    if not path.exists():
        echo("Cache is empty.")
        return
    with SqliteCacheStore(path) as store:
        counts = store.count(folder)
    if not counts:
        echo("Cache is empty.")
        return

    table = Table(title=f"Cache ({humanize.naturalsize(path.stat().st_size)})")
    table.add_column("Mailbox")
    table.add_column("Field")
    table.add_column("Count", justify="right")
    for (mailbox, field), n in counts.items():
        table.add_row(mailbox, field, humanize.intcomma(n))
    Console().print(table)


@cache.command("clear")
@option('-f', '--folder', help="Only this mailbox")
@option('-F', '--field', type=click.Choice(sorted(FIELDS)), help="Only this field")
@option('-y', '--yes', is_flag=True, help="Don't ask for confirmation")
@require_init
def cache_clear(folder: str | None, field: str | None, yes: bool):
    """Delete cached values.

    \b
    Examples:
      pop3-migration cache clear -y
      pop3-migration cache clear -f INBOX -F uidl
    """
    path = get_cache_path(get_root())
    if not path.exists():
        echo("Cache is empty.")
        return
    what = " ".join(filter(None, [f"field {field}" if field else "", f"in {folder}" if folder else ""]))
    if not yes:
        click.confirm(f"Clear cached values {what}".rstrip() + "?", abort=True)
    with SqliteCacheStore(path) as store:
        removed = store.clear(folder, FIELDS.get(field) if field else None)
    echo(f"Removed {humanize.intcomma(removed)} cached value(s).")
