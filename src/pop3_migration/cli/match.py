"""`match` command: resolve POP3 UIDLs for an IMAP folder."""

import sys
from dataclasses import replace

import click
import humanize
from click import echo, option
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import find_account, get_cache_path, get_root, load_config
from ..errors import MailboxError, TempError
from ..hooks import HookRegistry, MigrationMailbox, Pop3MigrationHooks, find_wrapper
from ..imap import ImapMailbox
from ..mailbox import FetchField
from ..store import SqliteCacheStore

from .utils import connect_imap, err, pop3_opener, require_init, setup_logging


@click.command()
@option('-a', '--all-mailboxes', is_flag=True, help="POP3 messages may be in any folder, not just INBOX")
@option('-C', '--skip-cache', is_flag=True, help="Don't read or write resolved UIDLs in the cache")
@option('-e', '--ignore-extra', is_flag=True, help="Continue if POP3 has more messages than IMAP")
@option('-f', '--folder', default="INBOX", show_default=True, help="IMAP folder to match")
@option('-i', '--imap', 'imap_name', help="IMAP account (default: first imap account)")
@option('-m', '--ignore-missing', is_flag=True, help="Continue if POP3 messages have no IMAP match")
@option('-p', '--pop3', 'pop3_name', help="POP3 account (default: first pop3 account)")
@option('-q', '--quiet', is_flag=True, help="Only print the summary")
@option('-S', '--skip-size-check', is_flag=True, help="Match by headers only")
@option('-v', '--verbose', is_flag=True, help="Log matching details")
@require_init
def match(
    all_mailboxes: bool,
    skip_cache: bool,
    ignore_extra: bool,
    folder: str,
    imap_name: str | None,
    ignore_missing: bool,
    pop3_name: str | None,
    quiet: bool,
    skip_size_check: bool,
    verbose: bool,
):
    """Match an IMAP folder's messages to the POP3 messages they came from.

    Prints each IMAP UID with the POP3 order and UIDL it was matched to.
    Resolved UIDLs are cached in .pop3-migration/cache.db, so later runs
    don't need to download headers again.

    \b
    Examples:
      pop3-migration match
      pop3-migration match -f Archive -a      # folder other than INBOX
      pop3-migration m -e -q                  # new mail may have arrived
    """
    setup_logging(verbose)
    root = get_root()
    config = load_config(root)

    overrides = {
        "all_mailboxes": all_mailboxes,
        "skip_uidl_cache": skip_cache,
        "ignore_extra_uidls": ignore_extra,
        "ignore_missing_uidls": ignore_missing,
        "skip_size_check": skip_size_check,
    }
    settings = replace(config.settings, **{k: v for k, v in overrides.items() if v})
    if not settings.enabled:
        err("pop3_migration mailbox setting is empty; matching is disabled.")
        sys.exit(1)

    pop3_acct = config.accounts.get(pop3_name) if pop3_name else find_account(config, "pop3")
    imap_acct = config.accounts.get(imap_name) if imap_name else find_account(config, "imap")
    for kind, name, acct in (("pop3", pop3_name, pop3_acct), ("imap", imap_name, imap_acct)):
        if acct is None:
            err(f"Account '{name}' not found." if name else f"No {kind} account configured.")
            sys.exit(1)
        if acct.type != kind:
            err(f"Account '{acct.name}' is a {acct.type} account, expected {kind}.")
            sys.exit(1)

    wanted = FetchField.UIDL_BACKEND | FetchField.POP3_ORDER
    rows = []
    with SqliteCacheStore(get_cache_path(root)) as store:
        hooks = Pop3MigrationHooks(settings, pop3_opener(pop3_acct, settings.mailbox), store)
        registry = HookRegistry([hooks])
        try:
            with connect_imap(imap_acct) as client:
                registry.storage_created(client)
                box = registry.mailbox_allocated(ImapMailbox(client, folder), client)
                try:
                    for mail in box.search(wanted=wanted):
                        mail = registry.mail_allocated(mail, box)
                        uidl = mail.get_special(FetchField.UIDL_BACKEND)
                        order = mail.get_special(FetchField.POP3_ORDER)
                        rows.append((mail.uid, order, uidl))
                finally:
                    registry.mailbox_freed(box)
                    box.close()
                    registry.storage_destroyed(client)
        except TempError as e:
            err(f"{folder}: {e}")
            sys.exit(1)
        except MailboxError as e:
            err(f"IMAP error: {e}")
            sys.exit(1)

    console = Console()
    if not quiet:
        table = Table(title=f"{imap_acct.name}:{folder}")
        table.add_column("UID", justify="right")
        table.add_column("POP3 #", justify="right")
        table.add_column("UIDL")
        for uid, order, uidl in rows:
            table.add_row(str(uid), order or "-", escape(uidl) if uidl else "[dim]-[/]")
        console.print(table)

    mbox = find_wrapper(box, MigrationMailbox)
    report = mbox.session.report if mbox is not None else None
    matched = sum(1 for _, _, uidl in rows if uidl)
    console.print(f"[bold]IMAP messages:[/] {humanize.intcomma(len(rows))} ({humanize.intcomma(matched)} with a POP3 UIDL)")
    if report is not None:
        console.print(f"[bold]POP3 messages:[/] {humanize.intcomma(report.total_pop)}")
        console.print(
            f"[bold]Matched:[/] {humanize.intcomma(report.matched)} "
            f"(cached {report.cached}, by size {report.by_size}, by headers {report.by_digest})"
        )
        if report.missing:
            first = report.first_missing
            console.print(
                f"[yellow]Unmatched POP3 messages:[/] {report.missing} "
                f"(first: msg {first.pop_seq}, UIDL {first.uidl})"
            )
    if not rows:
        echo("No messages in folder.")
