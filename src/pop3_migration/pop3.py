"""POP3 source mailbox via poplib."""

import logging
import poplib
from typing import Iterable, Iterator

from .errors import MailboxError, MessageExpunged
from .mailbox import FetchField

logger = logging.getLogger(__name__)


def _join_lines(lines: list[bytes]) -> bytes:
    """Rejoin poplib's CRLF-stripped lines into a message."""
    if not lines:
        return b""
    return b"\r\n".join(lines) + b"\r\n"


def parse_listing(lines: list[bytes]) -> dict[int, bytes]:
    """Parse `UIDL`/`LIST` multi-line responses: b"<seq> <value>" -> {seq: value}.

    Raises ValueError if a sequence number isn't a number.
    """
    result = {}
    for line in lines:
        parts = line.split(None, 1)
        if len(parts) != 2:
            continue
        result[int(parts[0])] = parts[1].strip()
    return result


class Pop3Mail:
    """A message of a Pop3Mailbox. POP3 has no UIDs, so uid == seq."""

    def __init__(self, box: "Pop3Mailbox", seq: int):
        self.box = box
        self.seq = seq

    @property
    def uid(self) -> int:
        return self.seq

    def physical_size(self) -> int:
        return self.box.sizes[self.seq]

    def backend_uidl(self) -> str:
        return self.box.uidls.get(self.seq, "")

    def header_bytes(self) -> bytes:
        return self.box.command("TOP", self.seq, lambda conn: conn.top(self.seq, 0))

    def full_bytes(self) -> bytes:
        return self.box.command("RETR", self.seq, lambda conn: conn.retr(self.seq))

    def get_special(self, field: FetchField) -> str:
        if field == FetchField.UIDL_BACKEND:
            return self.backend_uidl()
        if field == FetchField.POP3_ORDER:
            return str(self.seq)
        return ""


class Pop3Mailbox:
    """A POP3 maildrop as a read-only mailbox.

    Nothing is sent to the server until the first sync() or search(), so
    opening one is free. close() sends QUIT, which never deletes anything
    since no DELE is ever issued.
    """

    namespace = ""
    is_inbox = False
    uidvalidity = 0

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        port: int = 995,
        ssl: bool = True,
        name: str = "POP3",
    ):
        self.host = host
        self.user = user
        self.password = password
        self.port = port
        self.ssl = ssl
        self.name = name
        self._conn: poplib.POP3 | None = None
        self.uidls: dict[int, str] = {}
        self.sizes: dict[int, int] = {}
        self._synced = False

    def connect(self) -> None:
        try:
            if self.ssl:
                self._conn = poplib.POP3_SSL(self.host, self.port)
            else:
                self._conn = poplib.POP3(self.host, self.port)
            self._conn.user(self.user)
            self._conn.pass_(self.password)
        except (poplib.error_proto, OSError) as e:
            self._conn = None
            raise MailboxError(f"Failed to log in to {self.host}: {e}") from e
        logger.debug("Connected to POP3 server %s:%d", self.host, self.port)

    @property
    def conn(self) -> poplib.POP3:
        if self._conn is None:
            self.connect()
        return self._conn

    def command(self, name: str, seq: int, call) -> bytes:
        try:
            _, lines, _ = call(self.conn)
        except poplib.error_proto as e:
            if "no such message" in str(e).lower():
                raise MessageExpunged(f"POP3 msg {seq} expunged") from e
            raise MailboxError(f"POP3 {name} {seq} failed: {e}") from e
        except OSError as e:
            raise MailboxError(f"POP3 {name} {seq} failed: {e}") from e
        return _join_lines(lines)

    def sync(self) -> None:
        try:
            _, uidl_lines, _ = self.conn.uidl()
            _, list_lines, _ = self.conn.list()
        except (poplib.error_proto, OSError) as e:
            raise MailboxError(f"POP3 listing failed: {e}") from e
        try:
            uidls = parse_listing(uidl_lines)
            sizes = {seq: int(value) for seq, value in parse_listing(list_lines).items()}
        except ValueError as e:
            raise MailboxError(f"Malformed POP3 listing from {self.host}: {e}") from e
        self.uidls = {seq: value.decode("ascii", "replace") for seq, value in uidls.items()}
        self.sizes = sizes
        self._synced = True
        logger.debug("%s: %d POP3 messages", self.name, len(self.sizes))

    def search(
        self,
        seqs: Iterable[int] | None = None,
        wanted: FetchField = FetchField.NONE,
    ) -> Iterator[Pop3Mail]:
        if not self._synced:
            self.sync()
        if seqs is None:
            seqs = sorted(self.sizes)
        for seq in sorted(seqs):
            if seq in self.sizes:
                yield Pop3Mail(self, seq)

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.quit()
            except (poplib.error_proto, OSError) as e:
                logger.warning("POP3 QUIT to %s failed: %s", self.host, e)
            self._conn = None
        self._synced = False
