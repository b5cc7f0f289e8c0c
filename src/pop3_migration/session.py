"""Matching sessions: run the phases once per target mailbox, answer queries."""

import logging
from typing import Callable

from .builders import read_imap_digests, read_imap_records, read_pop3_digests, read_pop3_records
from .cache import CacheBridge
from .config import Settings
from .errors import MailboxError, Pop3MigrationError, TempError
from .mailbox import Mailbox
from .matching import MatchReport, assign_by_header_digest, assign_by_size, assign_cached
from .records import MigrationState, PopMailboxState, SyncState, sort_natural
from .store import CacheStore

logger = logging.getLogger(__name__)

TEMP_ERROR_MSG = "POP3 UIDLs couldn't be synced"


class MigrationStorage:
    """Per-storage context shared by all target mailboxes.

    Holds the settings, the cache store and the POP3 listing. The POP3
    listing is read once and reused by every session of this storage.

    open_pop3: returns a (not yet connected) POP3 source mailbox. Called
        once per session; the session closes it when done.
    """

    def __init__(
        self,
        settings: Settings,
        open_pop3: Callable[[], Mailbox],
        cache_store: CacheStore | None = None,
    ):
        self.settings = settings
        self.open_pop3 = open_pop3
        self.cache_store = cache_store
        self.pop_state = PopMailboxState()

    def bridge(self, box: Mailbox) -> CacheBridge | None:
        if self.cache_store is None:
            return None
        return CacheBridge(self.cache_store, box.name, box.uidvalidity)


class MigrationSession:
    """POP3 UIDL/order resolution for one target mailbox.

    The first query runs a full matching session. After that, queries are
    answered from memory. A failed session is not retried: every later
    query raises TempError until a new session object is created.
    """

    def __init__(self, storage: MigrationStorage, box: Mailbox):
        self.storage = storage
        self.box = box
        self.state = MigrationState()
        self.report: MatchReport | None = None

    @property
    def sync_state(self) -> SyncState:
        return self.state.state

    def sync_if_needed(self) -> None:
        """Run the matching session unless it already ran.

        Raises TempError if the session failed now or earlier.
        """
        if self.state.synced:
            return
        if self.state.sync_failed:
            raise TempError(TEMP_ERROR_MSG)
        if self.state.syncing:
            raise TempError(f"{TEMP_ERROR_MSG}: sync already in progress")

        self.state.syncing = True
        try:
            self.report = self._sync()
        except (Pop3MigrationError, MailboxError) as e:
            self._fail()
            logger.error("pop3_migration: %s: %s", self.box.name, e)
            raise TempError(TEMP_ERROR_MSG) from e
        except Exception as e:
            # unexpected, but still terminal for this mailbox
            self._fail()
            logger.exception("pop3_migration: %s: sync failed unexpectedly", self.box.name)
            raise TempError(TEMP_ERROR_MSG) from e
        finally:
            self.state.syncing = False
        self.state.synced = True

    def _fail(self) -> None:
        self.state.sync_failed = True
        self.state.imap_records = []

    def _sync(self) -> MatchReport:
        settings = self.storage.settings
        pop_state = self.storage.pop_state
        bridge = self.storage.bridge(self.box)

        pop3_box = self.storage.open_pop3()
        try:
            # the POP3 server isn't connected to yet. handle all IMAP
            # traffic first, so the POP3 server won't disconnect us due to
            # idling.
            imap_records = read_imap_records(self.box, settings, bridge)
            self.state.imap_records = imap_records
            read_pop3_records(pop3_box, pop_state, settings)
            pop_records = pop_state.records

            cached = assign_cached(pop_records, imap_records, settings)
            sort_natural(pop_records, imap_records)

            if assign_by_size(pop_records, imap_records, self.state, settings):
                report = MatchReport(total_pop=len(pop_records), total_imap=len(imap_records))
            else:
                # everything wasn't assigned, figure out the rest with
                # header hashes
                first = self.state.first_unfound_index
                read_pop3_digests(pop3_box, pop_state, first, settings, self.storage.bridge(pop3_box))
                read_imap_digests(self.box, imap_records, first, bridge)
                report = assign_by_header_digest(pop_records, imap_records, settings)
        finally:
            pop3_box.close()

        report.cached = cached
        report.by_size = _count_linked(pop_records) - cached - report.by_digest

        if bridge is not None and not settings.skip_uidl_cache:
            bridge.add_uidls(imap_records)

        logger.info(
            "pop3_migration: %s: %d/%d POP3 messages matched (cached=%d, size=%d, headers=%d)",
            self.box.name, report.matched, report.total_pop,
            report.cached, report.by_size, report.by_digest,
        )
        return report

    def get_backend_uidl(self, uid: int) -> str | None:
        """POP3 UIDL of the message with this IMAP UID, None if unknown."""
        self.sync_if_needed()
        rec = self.state.lookup(uid)
        return rec.pop_uidl if rec else None

    def get_pop3_order(self, uid: int) -> int | None:
        """POP3 listing position of the message with this IMAP UID."""
        self.sync_if_needed()
        rec = self.state.lookup(uid)
        if rec is None or rec.pop_uidl is None:
            return None
        return rec.pop_seq

    def mapping(self) -> dict[int, tuple[str | None, int | None]]:
        """UID -> (UIDL, POP3 order) for every IMAP message."""
        self.sync_if_needed()
        return {rec.uid: (rec.pop_uidl, rec.pop_seq) for rec in self.state.imap_records}


def _count_linked(pop_records) -> int:
    return sum(1 for rec in pop_records if rec.matched_uid is not None)
