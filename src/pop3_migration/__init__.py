"""POP3 to IMAP migration: give IMAP messages the UIDLs their POP3 originals had."""

from .config import AccountConfig, ProjectConfig, Settings
from .errors import (
    EnumerationFailure,
    MailboxError,
    MessageExpunged,
    Pop3MigrationError,
    ReconciliationFailure,
    TempError,
)
from .headers import filter_headers, header_digest
from .hooks import HookRegistry, MigrationMail, MigrationMailbox, Pop3MigrationHooks
from .mailbox import FetchField, Mail, Mailbox
from .matching import MatchReport
from .session import MigrationSession, MigrationStorage
from .store import CacheStore, SqliteCacheStore

__all__ = [
    "AccountConfig",
    "CacheStore",
    "EnumerationFailure",
    "FetchField",
    "HookRegistry",
    "Mail",
    "Mailbox",
    "MailboxError",
    "MatchReport",
    "MessageExpunged",
    "MigrationMail",
    "MigrationMailbox",
    "MigrationSession",
    "MigrationStorage",
    "Pop3MigrationError",
    "Pop3MigrationHooks",
    "ProjectConfig",
    "ReconciliationFailure",
    "Settings",
    "SqliteCacheStore",
    "TempError",
    "filter_headers",
    "header_digest",
]
