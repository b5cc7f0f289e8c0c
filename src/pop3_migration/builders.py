"""Build the POP3 and IMAP record sets and read their header digests."""

import logging
from typing import Callable

from .cache import CacheBridge
from .config import Settings
from .errors import EnumerationFailure, MailboxError, MessageExpunged
from .headers import header_digest
from .mailbox import FetchField, Mail, Mailbox
from .records import ImapRecord, PopMailboxState, PopRecord

logger = logging.getLogger(__name__)


def read_imap_records(box: Mailbox, settings: Settings, bridge: CacheBridge | None) -> list[ImapRecord]:
    """Enumerate the target mailbox in UID order.

    Sizes are fetched unless size checking is disabled. Resolved UIDLs of
    earlier sessions are pre-filled from the cache unless cache use is
    disabled.
    """
    wanted = FetchField.NONE if settings.skip_size_check else FetchField.PHYSICAL_SIZE
    use_cache = bridge is not None and not settings.skip_uidl_cache
    records: list[ImapRecord] = []
    try:
        for mail in box.search(wanted=wanted):
            size = None
            if not settings.skip_size_check:
                try:
                    size = mail.physical_size()
                except MailboxError as e:
                    logger.error(
                        "pop3_migration: Failed to get psize for imap uid %u: %s", mail.uid, e
                    )
                    raise EnumerationFailure(f"Failed to get psize for imap uid {mail.uid}: {e}") from e
            rec = ImapRecord(uid=mail.uid, physical_size=size)
            if use_cache:
                rec.pop_uidl = bridge.cached_uidl(mail.uid)
            records.append(rec)
    except EnumerationFailure:
        raise
    except MailboxError as e:
        logger.error("pop3_migration: Failed to search all IMAP mails: %s", e)
        raise EnumerationFailure(f"Failed to search all IMAP mails in {box.name}: {e}") from e

    for prev, cur in zip(records, records[1:]):
        if cur.uid <= prev.uid:
            raise EnumerationFailure(
                f"{box.name}: UIDs not in ascending order ({prev.uid} before {cur.uid})"
            )
    return records


def read_pop3_records(box: Mailbox, state: PopMailboxState, settings: Settings) -> None:
    """Enumerate the POP3 mailbox in listing order into `state`.

    A state that was already enumerated is only reset to unmatched.
    """
    if state.enumerated:
        state.reset_matches()
        return

    try:
        box.sync()
    except MailboxError as e:
        logger.error("pop3_migration: Couldn't sync mailbox %s: %s", box.name, e)
        raise EnumerationFailure(f"Couldn't sync mailbox {box.name}: {e}") from e

    wanted = FetchField.UIDL_BACKEND
    if not settings.skip_size_check:
        wanted |= FetchField.PHYSICAL_SIZE
    records: list[PopRecord] = []
    try:
        for mail in box.search(wanted=wanted):
            size = None
            if not settings.skip_size_check:
                # LIST size, not RETR
                try:
                    size = mail.physical_size()
                except MailboxError as e:
                    logger.error("pop3_migration: Failed to get size for msg %u: %s", mail.seq, e)
                    raise EnumerationFailure(f"Failed to get size for msg {mail.seq}: {e}") from e
            try:
                uidl = mail.backend_uidl()
            except MailboxError as e:
                logger.error("pop3_migration: Failed to get UIDL for msg %u: %s", mail.seq, e)
                raise EnumerationFailure(f"Failed to get UIDL for msg {mail.seq}: {e}") from e
            if not uidl:
                logger.warning("pop3_migration: UIDL for msg %u is empty", mail.seq)
                continue
            records.append(PopRecord(pop_seq=mail.seq, uidl=uidl, size=size))
    except EnumerationFailure:
        raise
    except MailboxError as e:
        logger.error("pop3_migration: Failed to search all POP3 mails: %s", e)
        raise EnumerationFailure(f"Failed to search all POP3 mails: {e}") from e

    state.records = records
    state.all_digests_set = False


def get_header_digest(mail: Mail) -> bytes | None:
    """Digest of a message's normalized header, None if it was expunged.

    Tries the header-only fetch first. If that lacks the end-of-headers
    line, the header either really ends there or was truncated by a buggy
    server (some cut the header at whitespace-only continuation lines or
    at lines without ":"; POP3 TOP returns the whole thing). The full
    message is fetched instead and its header parsed from there.
    """
    try:
        digest, have_eoh = header_digest(mail.header_bytes())
    except MessageExpunged:
        return None
    except MailboxError as e:
        logger.error("pop3_migration: Failed to get header for msg %u: %s", mail.seq, e)
        raise EnumerationFailure(f"Failed to get header for msg {mail.seq}: {e}") from e
    if have_eoh:
        return digest

    try:
        digest, have_eoh = header_digest(mail.full_bytes())
    except MessageExpunged:
        return None
    except MailboxError as e:
        logger.error("pop3_migration: Failed to get body for msg %u: %s", mail.seq, e)
        raise EnumerationFailure(f"Failed to get body for msg {mail.seq}: {e}") from e
    if not have_eoh:
        logger.warning("pop3_migration: Truncated email with UID %u stored as truncated", mail.uid)
    return digest


def _same_message(mail: Mail, rec: PopRecord | ImapRecord) -> bool:
    if isinstance(rec, ImapRecord):
        return mail.uid == rec.uid
    return True


def read_header_digests(
    box: Mailbox,
    targets: dict[int, PopRecord | ImapRecord],
    bridge: CacheBridge | None,
    cache_key: Callable[[PopRecord | ImapRecord], str],
) -> None:
    """Fill `header_digest` of the records in `targets` (keyed by sequence).

    Cached digests are used first; only the rest are fetched, so header
    prefetching never downloads headers of cached messages. Digests are
    written back to the cache. Records of expunged messages stay without a
    digest.
    """
    seqs = sorted(seq for seq, rec in targets.items() if rec.header_digest is None)
    if not seqs:
        return

    if bridge is not None:
        try:
            for mail in box.search(seqs):
                rec = targets[mail.seq]
                if not _same_message(mail, rec):
                    continue
                cached = bridge.cached_digest(cache_key(rec))
                if cached is not None:
                    rec.header_digest = cached
        except MailboxError as e:
            logger.warning(
                "pop3_migration: Failed to search all cached header hashes in %s: %s - ignoring",
                box.name, e,
            )
        seqs = [seq for seq in seqs if targets[seq].header_digest is None]
        if not seqs:
            return

    hashed = 0
    try:
        for mail in box.search(seqs, wanted=FetchField.STREAM_HEADER):
            rec = targets[mail.seq]
            if not _same_message(mail, rec):
                logger.warning(
                    "pop3_migration: %s: msg %u is now UID %u, not %u - treating as expunged",
                    box.name, mail.seq, mail.uid, rec.uid,
                )
                continue
            digest = get_header_digest(mail)
            if digest is None:
                # treat as expunged
                continue
            rec.header_digest = digest
            hashed += 1
            if bridge is not None:
                bridge.add_digest(cache_key(rec), digest)
    except EnumerationFailure:
        raise
    except MailboxError as e:
        logger.error("pop3_migration: Failed to search all mail headers in %s: %s", box.name, e)
        raise EnumerationFailure(f"Failed to search all mail headers in {box.name}: {e}") from e
    logger.debug("pop3_migration: %s: hashed %d headers", box.name, hashed)


def read_pop3_digests(
    box: Mailbox,
    state: PopMailboxState,
    first_index: int,
    settings: Settings,
    bridge: CacheBridge | None,
) -> None:
    """Read POP3 header digests from `first_index` on.

    In all-mailboxes mode every digest is read, once per storage.
    """
    if state.all_digests_set:
        return
    if settings.all_mailboxes:
        # we may be matching against multiple mailboxes; read all once
        first_index = 0
    records = state.records or []
    targets = {rec.pop_seq: rec for rec in records[first_index:]}
    read_header_digests(box, targets, bridge, lambda rec: rec.uidl)
    if first_index == 0:
        state.all_digests_set = True


def read_imap_digests(
    box: Mailbox,
    records: list[ImapRecord],
    first_index: int,
    bridge: CacheBridge | None,
) -> None:
    """Read IMAP header digests from `first_index` on (records in UID order)."""
    targets = {index + 1: rec for index, rec in enumerate(records) if index >= first_index}
    read_header_digests(box, targets, bridge, lambda rec: str(rec.uid))
