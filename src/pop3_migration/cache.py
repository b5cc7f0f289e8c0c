"""Typed access to the per-message cache fields the engine persists."""

import logging
from typing import Iterable

from .records import DIGEST_SIZE, ImapRecord
from .store import CacheStore

logger = logging.getLogger(__name__)

HDR_DIGEST_FIELD = "pop3-migration.hdr"
UIDL_FIELD = "pop3.uidl"


class CacheBridge:
    """Cache fields of one mailbox.

    Keys are the IMAP UID (as a string) for IMAP messages and the UIDL for
    POP3 messages, whose sequence numbers shift between sessions.
    """

    def __init__(self, store: CacheStore, mailbox: str, uidvalidity: int = 0):
        self.store = store
        self.mailbox = mailbox
        self.uidvalidity = uidvalidity

    def _lookup(self, key: str, field: str) -> bytes | None:
        return self.store.lookup(self.mailbox, self.uidvalidity, key, field)

    def cached_digest(self, key: str) -> bytes | None:
        value = self._lookup(key, HDR_DIGEST_FIELD)
        if value is None or len(value) != DIGEST_SIZE:
            return None
        return value

    def add_digest(self, key: str, digest: bytes) -> None:
        if len(digest) != DIGEST_SIZE:
            raise ValueError(f"Header digest must be {DIGEST_SIZE} bytes, got {len(digest)}")
        self.store.add(self.mailbox, self.uidvalidity, key, HDR_DIGEST_FIELD, digest)

    def cached_uidl(self, uid: int) -> str | None:
        value = self._lookup(str(uid), UIDL_FIELD)
        if not value:
            return None
        return value.decode("utf-8", errors="replace") or None

    def add_uidls(self, records: Iterable[ImapRecord]) -> int:
        """Persist resolved UIDLs not yet in the cache. Returns count written."""
        added = 0
        for rec in records:
            if rec.pop_uidl is None:
                continue
            key = str(rec.uid)
            if not self.store.can_add(self.mailbox, self.uidvalidity, key, UIDL_FIELD):
                continue
            self.store.add(self.mailbox, self.uidvalidity, key, UIDL_FIELD, rec.pop_uidl.encode("utf-8"))
            added += 1
        logger.debug("pop3_migration: %s: cached %d new UIDLs", self.mailbox, added)
        return added
