"""Mailbox protocol consumed by the matching engine.

The engine never talks to a server directly. It enumerates and fetches
through these protocols, implemented by:

- Pop3Mailbox: a POP3 server via poplib (pop3.py)
- ImapMailbox: an IMAP folder via imaplib (imap.py)
- anything else with the same shape (the tests use in-memory mailboxes)
"""

from enum import Flag, auto
from typing import Iterable, Iterator, Protocol, runtime_checkable


class FetchField(Flag):
    """Fields a caller intends to fetch; lets mailboxes prefetch."""
    NONE = 0
    PHYSICAL_SIZE = auto()
    STREAM_HEADER = auto()
    STREAM_BODY = auto()
    UIDL_BACKEND = auto()
    POP3_ORDER = auto()
    GUID = auto()


@runtime_checkable
class Mail(Protocol):
    """A single message in a mailbox."""

    @property
    def seq(self) -> int:
        """1-based position in the mailbox at enumeration time."""
        ...

    @property
    def uid(self) -> int:
        """Mailbox-scoped unique identifier (POP3 mailboxes use seq)."""
        ...

    def physical_size(self) -> int:
        """Size in bytes, without downloading the message if possible."""
        ...

    def backend_uidl(self) -> str:
        """POP3 UIDL as reported by the backend ("" if none)."""
        ...

    def header_bytes(self) -> bytes:
        """Raw header block (POP3 TOP n 0, IMAP BODY.PEEK[HEADER])."""
        ...

    def full_bytes(self) -> bytes:
        """Raw full message (POP3 RETR, IMAP BODY.PEEK[])."""
        ...

    def get_special(self, field: FetchField) -> str:
        """Backend-specific string field, "" if unknown."""
        ...


@runtime_checkable
class Mailbox(Protocol):
    """A mailbox that can be synced and searched."""

    @property
    def name(self) -> str:
        ...

    @property
    def namespace(self) -> str:
        """Namespace prefix the mailbox lives in ("" for the default one)."""
        ...

    @property
    def is_inbox(self) -> bool:
        ...

    @property
    def uidvalidity(self) -> int:
        ...

    def sync(self) -> None:
        """Refresh the mailbox listing (connects lazily if needed)."""
        ...

    def search(
        self,
        seqs: Iterable[int] | None = None,
        wanted: FetchField = FetchField.NONE,
    ) -> Iterator[Mail]:
        """Iterate messages in sequence order, all of them or only `seqs`.

        Errors while listing raise MailboxError; a message that vanished
        raises MessageExpunged when its data is fetched.
        """
        ...

    def close(self) -> None:
        ...
