"""The three matching phases between POP3 and IMAP record sets.

1. Cached: IMAP records whose POP3 UIDL is known from an earlier session
   are linked to the POP3 record with that UIDL.
2. By size: walking both sets in natural order, a pair with equal sizes
   is linked, as long as the size is not ambiguous.
3. By header digest: whatever is left is linked by equal digests of the
   normalized headers.

Phases only link records that are not linked yet; a link is never undone
or replaced by a later phase.
"""

import logging
from dataclasses import dataclass

from .config import Settings
from .errors import ReconciliationFailure
from .records import ImapRecord, MigrationState, PopRecord, link, sort_natural

logger = logging.getLogger(__name__)


@dataclass
class MatchReport:
    """Counts of how the records of one session got matched."""
    total_pop: int = 0
    total_imap: int = 0
    cached: int = 0
    by_size: int = 0
    by_digest: int = 0
    missing: int = 0
    first_missing: PopRecord | None = None
    all_imap_found: bool = False

    @property
    def matched(self) -> int:
        return self.cached + self.by_size + self.by_digest


def _pop_uidl_key(rec: PopRecord) -> str:
    return rec.uidl


def _imap_uidl_key(rec: ImapRecord) -> tuple[bool, str]:
    # records without UIDL sort last
    return (rec.pop_uidl is None, rec.pop_uidl or "")


def _digest_key(rec: PopRecord | ImapRecord) -> tuple[bool, bytes]:
    return (rec.header_digest is None, rec.header_digest or b"")


def assign_cached(pop_records: list[PopRecord], imap_records: list[ImapRecord], settings: Settings) -> int:
    """Phase 1: link IMAP records whose cached UIDL exists on the POP3 side.

    Leaves both lists sorted by UIDL. Returns the number of links made.
    """
    if settings.skip_uidl_cache:
        return 0

    pop_records.sort(key=_pop_uidl_key)
    imap_records.sort(key=_imap_uidl_key)

    linked = 0
    pop_idx = 0
    for imap in imap_records:
        if imap.pop_uidl is None:
            # sorted last, nothing more to find
            break
        while pop_idx < len(pop_records) and pop_records[pop_idx].uidl < imap.pop_uidl:
            pop_idx += 1
        if pop_idx == len(pop_records):
            break
        if pop_records[pop_idx].uidl == imap.pop_uidl and link(pop_records[pop_idx], imap):
            linked += 1
    return linked


def assign_by_size(
    pop_records: list[PopRecord],
    imap_records: list[ImapRecord],
    state: MigrationState,
    settings: Settings,
) -> bool:
    """Phase 2: link records at the same position whose sizes agree.

    Both lists must be in natural order. Matching stops at the first
    position where the sizes can't be trusted: a cached UIDL that disagrees
    with the POP3 UIDL there, different sizes, size checking disabled, or a
    POP3 size equal to the next one's (two same-sized messages can't be
    told apart by position). The stop position is recorded as the state's
    first unfound index.

    Returns True if every record on both sides got matched.
    """
    count = min(len(pop_records), len(imap_records))
    uidl_match = size_match = 0

    i = 0
    while i < count:
        pop, imap = pop_records[i], imap_records[i]
        if imap.pop_uidl is not None:
            # some of the UIDLs were already found cached
            if imap.pop_uidl == pop.uidl:
                uidl_match += 1
                i += 1
                continue
            # mismatch - can't trust the sizes
            break

        if settings.skip_size_check or pop.size is None or pop.size != imap.physical_size:
            break
        if i + 1 < count and pop.size == pop_records[i + 1].size:
            # two messages with same size, don't trust them
            break

        if not link(pop, imap):
            break
        size_match += 1
        i += 1

    state.first_unfound_index = i
    logger.debug(
        "pop3_migration: cached uidls=%u, size matches=%u, total=%u",
        uidl_match, size_match, count,
    )
    return i == count and len(imap_records) == len(pop_records)


def count_missing(pop_records: list[PopRecord]) -> tuple[int, PopRecord | None]:
    """POP3 records that have a digest but no match, and the lowest-sequence one.

    Records without a digest were expunged while matching and don't count.
    """
    missing = 0
    first: PopRecord | None = None
    for rec in pop_records:
        if rec.matched_uid is not None or rec.header_digest is None:
            continue
        missing += 1
        if first is None or rec.pop_seq < first.pop_seq:
            first = rec
    return missing, first


def assign_by_header_digest(
    pop_records: list[PopRecord],
    imap_records: list[ImapRecord],
    settings: Settings,
) -> MatchReport:
    """Phase 3: link the remaining records by equal header digests.

    Digests must have been read already. When several records share a
    digest, they are paired up in sorted order. Raises
    ReconciliationFailure if POP3 messages remain unmatched and the
    settings don't allow that.
    """
    pop_records.sort(key=_digest_key)
    imap_records.sort(key=_digest_key)

    report = MatchReport(total_pop=len(pop_records), total_imap=len(imap_records))
    pop_idx = imap_idx = 0
    while pop_idx < len(pop_records) and imap_idx < len(imap_records):
        pop, imap = pop_records[pop_idx], imap_records[imap_idx]
        if pop.header_digest is None or pop.matched_uid is not None:
            pop_idx += 1
            continue
        if imap.header_digest is None or imap.pop_uidl is not None:
            imap_idx += 1
            continue
        if pop.header_digest < imap.header_digest:
            pop_idx += 1
        elif pop.header_digest > imap.header_digest:
            imap_idx += 1
        else:
            link(pop, imap)
            report.by_digest += 1
            pop_idx += 1
            imap_idx += 1

    report.missing, report.first_missing = count_missing(pop_records)
    report.all_imap_found = len(imap_records) + report.missing == len(pop_records)
    sort_natural(pop_records, imap_records)

    if report.missing == 0:
        logger.debug("pop3_migration: %u mails matched by headers", len(pop_records))
        return report
    if settings.all_mailboxes:
        # the rest may belong to other mailboxes
        return report

    first = report.first_missing
    msg = (
        f"pop3_migration: {report.missing} POP3 messages have no matching IMAP messages "
        f"(first POP3 msg {first.pop_seq} UIDL {first.uidl})"
    )
    if report.all_imap_found:
        msg += (
            " - all IMAP messages were found "
            "(POP3 contains more than IMAP INBOX - you may want to set all_mailboxes)"
        )
    if report.all_imap_found and settings.ignore_extra_uidls:
        # POP3 had more mails than IMAP. maybe a new mail was just delivered.
        return report
    if not settings.ignore_missing_uidls:
        msg += " - set ignore_missing_uidls"
        if report.all_imap_found:
            msg += " or ignore_extra_uidls"
        msg += " to continue anyway"
        logger.error("%s", msg)
        raise ReconciliationFailure(msg, report.missing, first.pop_seq, first.uidl)
    logger.warning("%s", msg)
    return report
