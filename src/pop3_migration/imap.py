"""IMAP target mailbox via imaplib."""

import imaplib
import logging
import re
from typing import Iterable, Iterator

from .errors import MailboxError, MessageExpunged
from .mailbox import FetchField

logger = logging.getLogger(__name__)

FETCH_BATCH = 500

_MSG_START = re.compile(rb"^\d+ \(")
_UID = re.compile(rb"\bUID (\d+)")
_SIZE = re.compile(rb"\bRFC822\.SIZE (\d+)")
_LITERAL = re.compile(rb"(BODY\[[^\]]*\])(?:<\d+>)? \{\d+\}$")


def parse_fetch_response(data: list) -> dict[int, dict[str, object]]:
    """Parse imaplib `UID FETCH` response data into {uid: items}.

    Items are "size" (int) and the body sections by name ("BODY[HEADER]",
    "BODY[]") as bytes. imaplib returns a literal as a (meta, bytes) tuple;
    further literals of the same message follow as more tuples, and a bare
    b")" ends the message. Some servers send UID after the literals.
    """
    result: dict[int, dict[str, object]] = {}
    current: dict[str, object] | None = None
    for item in data:
        if item is None:
            continue
        if isinstance(item, tuple):
            meta, literal = item[0], item[1]
        else:
            meta, literal = item, None
        if _MSG_START.match(meta):
            current = {}
        if current is None:
            continue
        m = _UID.search(meta)
        if m:
            result[int(m.group(1))] = current
        m = _SIZE.search(meta)
        if m:
            current["size"] = int(m.group(1))
        if literal is not None:
            m = _LITERAL.search(meta)
            if m:
                current[m.group(1).decode()] = literal
    return result


class IMAPClient:
    """Connection to an IMAP server."""

    def __init__(self, host: str, port: int = 993, ssl: bool = True):
        self.host = host
        self.port = port
        self.ssl = ssl
        self._conn: imaplib.IMAP4 | None = None

    def connect(self, user: str, password: str) -> None:
        try:
            if self.ssl:
                self._conn = imaplib.IMAP4_SSL(self.host, self.port)
            else:
                self._conn = imaplib.IMAP4(self.host, self.port)
            self._conn.login(user, password)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"Failed to log in to {self.host}: {e}") from e

    def disconnect(self) -> None:
        if self._conn:
            try:
                self._conn.logout()
            except (imaplib.IMAP4.error, OSError) as e:
                logger.debug("IMAP logout from %s failed: %s", self.host, e)
            self._conn = None

    @property
    def conn(self) -> imaplib.IMAP4:
        if not self._conn:
            raise MailboxError("Not connected")
        return self._conn

    def select_folder(self, folder: str, readonly: bool = True) -> int:
        """Select a folder, return its UIDVALIDITY."""
        try:
            typ, data = self.conn.select(_quote(folder), readonly=readonly)
            if typ != "OK":
                raise MailboxError(f"Failed to select folder {folder}: {data}")
            _, values = self.conn.response("UIDVALIDITY")
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"Failed to select folder {folder}: {e}") from e
        if not values or values[0] is None:
            return 0
        try:
            return int(values[0])
        except ValueError as e:
            raise MailboxError(f"Malformed UIDVALIDITY for {folder}: {values[0]!r}") from e

    def search(self, criteria: str = "ALL") -> list[int]:
        """UIDs of messages matching criteria, ascending."""
        try:
            typ, data = self.conn.uid("SEARCH", None, criteria)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"Search failed: {e}") from e
        if typ != "OK":
            raise MailboxError(f"Search failed: {data}")
        try:
            return sorted(int(uid) for uid in (data[0] or b"").split())
        except ValueError as e:
            raise MailboxError(f"Malformed SEARCH response: {data[0]!r}") from e

    def fetch(self, uids: list[int], items: list[str]) -> dict[int, dict[str, object]]:
        """UID FETCH in batches. UIDs missing from the result were expunged."""
        result: dict[int, dict[str, object]] = {}
        query = "(" + " ".join(items) + ")"
        for start in range(0, len(uids), FETCH_BATCH):
            batch = ",".join(str(uid) for uid in uids[start:start + FETCH_BATCH])
            try:
                typ, data = self.conn.uid("FETCH", batch, query)
            except (imaplib.IMAP4.error, OSError) as e:
                raise MailboxError(f"Fetch failed: {e}") from e
            if typ != "OK":
                raise MailboxError(f"Fetch failed: {data}")
            result.update(parse_fetch_response(data))
        return result

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.disconnect()


def _quote(folder: str) -> str:
    if folder.startswith('"'):
        return folder
    return '"' + folder.replace("\\", "\\\\").replace('"', '\\"') + '"'


class ImapMail:
    """A message of an ImapMailbox, with whatever the search prefetched."""

    def __init__(self, box: "ImapMailbox", seq: int, uid: int, items: dict[str, object] | None):
        self.box = box
        self.seq = seq
        self.uid = uid
        self._items = items

    def _item(self, name: str, fetch_item: str):
        if self._items is None or name not in self._items:
            fetched = self.box.client.fetch([self.uid], [fetch_item]).get(self.uid)
            if fetched is None:
                raise MessageExpunged(f"UID {self.uid} expunged from {self.box.name}")
            self._items = {**(self._items or {}), **fetched}
        if name not in self._items:
            raise MailboxError(f"Server didn't return {fetch_item} for UID {self.uid}")
        return self._items[name]

    def physical_size(self) -> int:
        return self._item("size", "RFC822.SIZE")

    def header_bytes(self) -> bytes:
        return self._item("BODY[HEADER]", "BODY.PEEK[HEADER]")

    def full_bytes(self) -> bytes:
        return self._item("BODY[]", "BODY.PEEK[]")

    def backend_uidl(self) -> str:
        return ""

    def get_special(self, field: FetchField) -> str:
        return ""


class ImapMailbox:
    """An IMAP folder, selected read-only.

    Sequence numbers are positions in the UID listing taken by sync(), so
    they stay stable for the lifetime of this object.
    """

    def __init__(self, client: IMAPClient, folder: str = "INBOX", namespace: str = ""):
        self.client = client
        self.folder = folder
        self.namespace = namespace
        self._uidvalidity: int | None = None
        self._uids: list[int] | None = None

    @property
    def name(self) -> str:
        return self.folder

    @property
    def is_inbox(self) -> bool:
        return self.folder.upper() == "INBOX"

    @property
    def uidvalidity(self) -> int:
        if self._uidvalidity is None:
            self._uidvalidity = self.client.select_folder(self.folder)
        return self._uidvalidity

    def sync(self) -> None:
        self._uidvalidity = self.client.select_folder(self.folder)
        self._uids = self.client.search("ALL")
        logger.debug("%s: %d messages, uidvalidity %d", self.folder, len(self._uids), self._uidvalidity)

    def search(
        self,
        seqs: Iterable[int] | None = None,
        wanted: FetchField = FetchField.NONE,
    ) -> Iterator[ImapMail]:
        if self._uids is None:
            self.sync()
        uids = self._uids
        if seqs is None:
            picked = list(enumerate(uids, start=1))
        else:
            picked = [(seq, uids[seq - 1]) for seq in sorted(seqs) if 0 < seq <= len(uids)]

        items = []
        if wanted & FetchField.PHYSICAL_SIZE:
            items.append("RFC822.SIZE")
        if wanted & FetchField.STREAM_HEADER:
            items.append("BODY.PEEK[HEADER]")
        if wanted & FetchField.STREAM_BODY:
            items.append("BODY.PEEK[]")

        for start in range(0, len(picked), FETCH_BATCH):
            batch = picked[start:start + FETCH_BATCH]
            fetched = self.client.fetch([uid for _, uid in batch], items) if items else {}
            for seq, uid in batch:
                if items and uid not in fetched:
                    # expunged since the listing; report it on access
                    yield ImapMail(self, seq, uid, {})
                    continue
                yield ImapMail(self, seq, uid, fetched.get(uid))

    def close(self) -> None:
        self._uids = None
