"""Record types shared by the builders, the matching phases and the session.

Each side of the migration is a plain list of records. The two lists are
cross-linked by value (POP3 sequence/UIDL on the IMAP side, IMAP UID on the
POP3 side), never by object reference, so either list can be re-sorted by
any key between phases without breaking the links.
"""

from bisect import bisect_left
from dataclasses import dataclass, field
from enum import Enum


DIGEST_SIZE = 20


@dataclass
class PopRecord:
    """A message as listed by the POP3 server."""
    pop_seq: int
    uidl: str
    size: int | None = None
    header_digest: bytes | None = None
    matched_uid: int | None = None


@dataclass
class ImapRecord:
    """A message in the target (IMAP) mailbox."""
    uid: int
    physical_size: int | None = None
    pop_uidl: str | None = None
    pop_seq: int | None = None
    header_digest: bytes | None = None


def link(pop: PopRecord, imap: ImapRecord) -> bool:
    """Cross-link a POP3 record with an IMAP record.

    Returns False (and changes nothing) if the POP3 record is already
    matched or the IMAP record already carries a different UIDL.
    """
    if pop.matched_uid is not None:
        return False
    if imap.pop_seq is not None:
        return False
    if imap.pop_uidl is not None and imap.pop_uidl != pop.uidl:
        return False
    pop.matched_uid = imap.uid
    imap.pop_uidl = pop.uidl
    imap.pop_seq = pop.pop_seq
    return True


def sort_natural(pop_records: list[PopRecord], imap_records: list[ImapRecord]) -> None:
    """Restore listing order: POP3 by sequence, IMAP by UID."""
    pop_records.sort(key=lambda r: r.pop_seq)
    imap_records.sort(key=lambda r: r.uid)


class SyncState(Enum):
    NOT_SYNCED = "not-synced"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


@dataclass
class PopMailboxState:
    """POP3 side of the migration, shared by all target mailboxes of a storage."""
    records: list[PopRecord] | None = None
    all_digests_set: bool = False

    @property
    def enumerated(self) -> bool:
        return self.records is not None

    def reset_matches(self) -> None:
        """Forget matches from a previous target mailbox; keep the listing."""
        for rec in self.records or []:
            rec.matched_uid = None


@dataclass
class MigrationState:
    """Per target mailbox matching state."""
    imap_records: list[ImapRecord] = field(default_factory=list)
    first_unfound_index: int = 0
    synced: bool = False
    sync_failed: bool = False
    syncing: bool = False

    @property
    def state(self) -> SyncState:
        if self.synced:
            return SyncState.SYNCED
        if self.sync_failed:
            return SyncState.FAILED
        if self.syncing:
            return SyncState.SYNCING
        return SyncState.NOT_SYNCED

    def lookup(self, uid: int) -> ImapRecord | None:
        """Find the record for a UID (records must be in UID order)."""
        recs = self.imap_records
        i = bisect_left(recs, uid, key=lambda r: r.uid)
        if i < len(recs) and recs[i].uid == uid:
            return recs[i]
        return None
