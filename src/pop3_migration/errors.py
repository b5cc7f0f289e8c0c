"""Exceptions raised by the POP3 migration engine and its mailbox adapters."""


class Pop3MigrationError(Exception):
    """Base class for errors that abort a matching session."""


class EnumerationFailure(Pop3MigrationError):
    """Search/fetch failed while enumerating a mailbox or reading headers."""


class ReconciliationFailure(Pop3MigrationError):
    """POP3 messages were left without a matching IMAP message."""

    def __init__(self, message: str, missing: int = 0, first_seq: int | None = None, first_uidl: str | None = None):
        super().__init__(message)
        self.missing = missing
        self.first_seq = first_seq
        self.first_uidl = first_uidl


class TempError(Pop3MigrationError):
    """POP3 UIDLs are unavailable for this mailbox (sync failed earlier, or now)."""


class MailboxError(Exception):
    """A mailbox backend (POP3/IMAP server, fake store) failed an operation."""


class MessageExpunged(MailboxError):
    """The message disappeared between listing and fetching."""
