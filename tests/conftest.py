"""In-memory mailboxes and cache stores shared by the tests."""

from dataclasses import dataclass, replace

import pytest

from pop3_migration.config import Settings
from pop3_migration.errors import MailboxError, MessageExpunged
from pop3_migration.mailbox import FetchField
from pop3_migration.session import MigrationSession, MigrationStorage


def make_raw(n: int, subject: str | None = None, body: bytes = b"Hello\r\n", extra: bytes = b"") -> bytes:
    """A small RFC 822 message, unique per `n`."""
    subject = subject or f"Message {n}"
    return (
        f"From: sender{n}@example.com\r\n"
        f"To: rcpt@example.com\r\n"
        f"Subject: {subject}\r\n"
        f"Message-ID: <{n}@example.com>\r\n"
    ).encode() + extra + b"\r\n" + body


@dataclass
class FakeMessage:
    raw: bytes
    uidl: str = ""
    size: int | None = None
    header: bytes | None = None
    expunged: bool = False

    @property
    def physical_size(self) -> int:
        return len(self.raw) if self.size is None else self.size

    @property
    def header_bytes(self) -> bytes:
        if self.header is not None:
            return self.header
        end = self.raw.find(b"\r\n\r\n")
        return self.raw if end < 0 else self.raw[:end + 4]


def msg(n: int, uidl: str | None = None, body_len: int | None = None, **kwargs) -> FakeMessage:
    """FakeMessage `n`; sizes differ per `n` unless `body_len` is given."""
    body = b"x" * (10 * n if body_len is None else body_len) + b"\r\n"
    return FakeMessage(make_raw(n, body=body, **kwargs), uidl=uidl if uidl is not None else f"uidl-{n}")


def imap_copies(*messages: FakeMessage) -> list[FakeMessage]:
    """The same messages as seen on the IMAP side (no UIDL)."""
    return [replace(m, uidl="") for m in messages]


class FakeMail:
    def __init__(self, box: "FakeMailbox", seq: int):
        self.box = box
        self.seq = seq
        self.uid = box.uids[seq - 1]
        self.msg = box.messages[seq - 1]

    def _check(self, what: str) -> None:
        self.box.log.append((self.box.name, what, self.seq))
        if self.msg.expunged and what != "size":
            raise MessageExpunged(f"msg {self.seq} expunged")
        if what in self.box.fail_fetch:
            raise MailboxError(f"{what} failed for msg {self.seq}")

    def physical_size(self) -> int:
        self._check("size")
        return self.msg.physical_size

    def backend_uidl(self) -> str:
        return self.msg.uidl

    def header_bytes(self) -> bytes:
        self._check("header")
        return self.msg.header_bytes

    def full_bytes(self) -> bytes:
        self._check("body")
        return self.msg.raw

    def get_special(self, field: FetchField) -> str:
        if field == FetchField.UIDL_BACKEND:
            return self.msg.uidl
        if field == FetchField.POP3_ORDER:
            return str(self.seq)
        return ""


class FakeMailbox:
    """Mailbox over a list of FakeMessages. Records every access in `log`."""

    def __init__(
        self,
        messages: list[FakeMessage],
        name: str = "INBOX",
        uids: list[int] | None = None,
        namespace: str = "",
        uidvalidity: int = 1,
        log: list | None = None,
    ):
        self.messages = messages
        self.name = name
        self.uids = uids or list(range(1, len(messages) + 1))
        self.namespace = namespace
        self.uidvalidity = uidvalidity
        self.log = log if log is not None else []
        self.fail_sync = False
        self.fail_search = False
        self.fail_fetch: set[str] = set()
        self.closed = False

    @property
    def is_inbox(self) -> bool:
        return self.name == "INBOX"

    def sync(self) -> None:
        self.log.append((self.name, "sync", None))
        if self.fail_sync:
            raise MailboxError("sync failed")

    def search(self, seqs=None, wanted: FetchField = FetchField.NONE):
        self.log.append((self.name, "search", wanted))
        if self.fail_search:
            raise MailboxError("search failed")
        if seqs is None:
            seqs = range(1, len(self.messages) + 1)
        for seq in sorted(seqs):
            yield FakeMail(self, seq)

    def close(self) -> None:
        self.closed = True

    def fetches(self, what: str) -> list[int]:
        return [seq for name, op, seq in self.log if name == self.name and op == what]


class FakeCacheStore:
    """Dict-backed CacheStore."""

    def __init__(self):
        self.data: dict[tuple, bytes] = {}

    def lookup(self, mailbox, uidvalidity, key, field):
        return self.data.get((mailbox, uidvalidity, key, field))

    def add(self, mailbox, uidvalidity, key, field, value):
        self.data[(mailbox, uidvalidity, key, field)] = value

    def can_add(self, mailbox, uidvalidity, key, field):
        return (mailbox, uidvalidity, key, field) not in self.data

    def count(self, mailbox=None):
        counts: dict[tuple[str, str], int] = {}
        for box, _, _, field in self.data:
            if mailbox is None or box == mailbox:
                counts[(box, field)] = counts.get((box, field), 0) + 1
        return dict(sorted(counts.items()))

    def clear(self, mailbox=None, field=None):
        doomed = [
            k for k in self.data
            if (mailbox is None or k[0] == mailbox) and (field is None or k[3] == field)
        ]
        for k in doomed:
            del self.data[k]
        return len(doomed)

    def fields(self, mailbox: str, field: str) -> dict[str, bytes]:
        return {k[2]: v for k, v in self.data.items() if k[0] == mailbox and k[3] == field}


class FakeIMAPClient:
    """Stands in for IMAPClient: raw messages by UID, every fetch recorded."""

    def __init__(self, uids: list[int], messages: dict[int, bytes], uidvalidity: int = 42):
        self.uids = uids
        self.messages = messages
        self.uidvalidity = uidvalidity
        self.fetch_calls: list[tuple[list[int], list[str]]] = []
        self.disconnected = False

    def select_folder(self, folder, readonly=True):
        return self.uidvalidity

    def search(self, criteria="ALL"):
        return list(self.uids)

    def fetch(self, uids, items):
        self.fetch_calls.append((list(uids), list(items)))
        result = {}
        for uid in uids:
            if uid not in self.messages:
                continue
            raw = self.messages[uid]
            entry = {}
            for item in items:
                if item == "RFC822.SIZE":
                    entry["size"] = len(raw)
                elif item == "BODY.PEEK[HEADER]":
                    entry["BODY[HEADER]"] = raw[:raw.index(b"\r\n\r\n") + 4]
                elif item == "BODY.PEEK[]":
                    entry["BODY[]"] = raw
            result[uid] = entry
        return result

    def disconnect(self):
        self.disconnected = True

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.disconnect()


class Pair:
    """A POP3 source and an IMAP target sharing one access log."""

    def __init__(self, pop3: list[FakeMessage], imap: list[FakeMessage], uids: list[int] | None = None):
        self.log: list = []
        self.pop3_messages = pop3
        self.imap = FakeMailbox(imap, uids=uids, log=self.log)
        self.pop3_boxes: list[FakeMailbox] = []

    def open_pop3(self) -> FakeMailbox:
        box = FakeMailbox(self.pop3_messages, name="POP3", log=self.log)
        box.uidvalidity = 0
        self.pop3_boxes.append(box)
        return box

    @property
    def pop3(self) -> FakeMailbox:
        return self.pop3_boxes[-1]

    def session(self, settings: Settings | None = None, cache=None, storage: MigrationStorage | None = None):
        storage = storage or MigrationStorage(settings or Settings(mailbox="POP3"), self.open_pop3, cache)
        return MigrationSession(storage, self.imap)


@pytest.fixture
def settings():
    return Settings(mailbox="POP3")


@pytest.fixture
def cache():
    return FakeCacheStore()
