"""Miscellaneous commands: init, hash."""

from pathlib import Path

import click
import humanize
from click import argument, echo, option, style

from ..config import PROJECT_DIR, ProjectConfig, Settings, get_config_path, save_config
from ..hashing import MAX_VERSION
from ..headers import filter_headers, header_digest

from .utils import err


@click.command()
@option('-m', '--mailbox', default="POP3", help="Name of the POP3 source mailbox (empty disables matching)")
@option('-a', '--all-mailboxes', is_flag=True, help="Match POP3 messages against every IMAP folder, not just INBOX")
def init(mailbox: str, all_mailboxes: bool):
    """Initialize a pop3-migration project in the current directory.

    \b
    Examples:
      pop3-migration init
      pop3-migration init -a          # messages may have been moved out of INBOX
    """
    root = Path.cwd()
    config_path = get_config_path(root)
    if config_path.exists():
        echo(f"Already initialized: {root / PROJECT_DIR}")
        return

    config = ProjectConfig(settings=Settings(mailbox=mailbox, all_mailboxes=all_mailboxes))
    save_config(config, root)
    echo(f"Initialized {root / PROJECT_DIR}")
    echo("Next: add the accounts to match")
    echo("  pop3-migration account add -t pop3 -H pop.example.com pop3 user@example.com")
    echo("  pop3-migration account add -t imap -H imap.example.com imap user@example.com")


@click.command("hash", no_args_is_help=True)
@option('-s', '--show', is_flag=True, help="Also print the header lines that get hashed")
@option('-V', '--hash-version', type=click.IntRange(1, MAX_VERSION), default=MAX_VERSION, show_default=True,
        help="Header hash normalization version")
@argument('paths', nargs=-1, type=click.Path(exists=True, dir_okay=False, path_type=Path))
def hash_cmd(show: bool, hash_version: int, paths: tuple[Path, ...]):
    """Print the header digest of .eml files.

    Messages with equal digests are considered the same message when POP3
    and IMAP can't be matched by size.

    \b
    Examples:
      pop3-migration hash msg.eml
      pop3-migration hash -s pop3/1.eml imap/17.eml
    """
    truncated = 0
    for path in paths:
        data = path.read_bytes()
        digest, have_eoh = header_digest(data, hash_version)
        note = ""
        if not have_eoh:
            truncated += 1
            note = style(" (no end of headers)", fg="yellow")
        echo(f"{digest.hex()}  {path} ({humanize.naturalsize(len(data))}){note}")
        if show:
            filtered = filter_headers(data)
            for line in filtered.data.decode("utf-8", errors="replace").splitlines():
                echo(style(f"    {line}", fg="bright_black"))
    if truncated:
        err(f"{truncated} of {len(paths)} file(s) have no end of headers; their digests cover what was there")
