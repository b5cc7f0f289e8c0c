"""Hook integration with a mail storage framework.

The framework owns storages, mailboxes and mails. It hands each new object
to a HookRegistry, and every registered hook object may wrap it. The POP3
migration hooks wrap target mailboxes (to start syncing before bulk
fetches) and their mails (to answer POP3 UIDL/order lookups). Wrapping is
plain composition: a wrapper holds the object it wraps as `inner` and
forwards everything it doesn't handle. Hooks find their own wrapper of a
mailbox by following `inner` from the outermost one.
"""

import logging
from typing import Any, Callable, Iterable, Iterator, Protocol

from .config import Settings
from .errors import TempError
from .mailbox import FetchField, Mail, Mailbox
from .session import MigrationSession, MigrationStorage
from .store import CacheStore

logger = logging.getLogger(__name__)

POP3_FIELDS = FetchField.UIDL_BACKEND | FetchField.POP3_ORDER


class StorageHooks(Protocol):
    """Callbacks a hook object may implement; missing ones are skipped."""

    def storage_created(self, storage: Any) -> None:
        ...

    def storage_destroyed(self, storage: Any) -> None:
        ...

    def mailbox_allocated(self, box: Mailbox, storage: Any) -> Mailbox:
        ...

    def mailbox_freed(self, box: Mailbox) -> None:
        ...

    def mail_allocated(self, mail: Mail, box: Mailbox) -> Mail:
        ...


class HookRegistry:
    """Ordered set of hook objects, passed explicitly to the framework."""

    def __init__(self, hooks: Iterable[StorageHooks] = ()):
        self._hooks: list[StorageHooks] = list(hooks)

    def add(self, hooks: StorageHooks) -> None:
        if hooks not in self._hooks:
            self._hooks.append(hooks)

    def remove(self, hooks: StorageHooks) -> None:
        self._hooks.remove(hooks)

    def __iter__(self):
        return iter(self._hooks)

    def __len__(self):
        return len(self._hooks)

    def _each(self, name: str) -> Iterator[Callable]:
        for hooks in self._hooks:
            callback = getattr(hooks, name, None)
            if callback is not None:
                yield callback

    def storage_created(self, storage: Any) -> None:
        for callback in self._each("storage_created"):
            callback(storage)

    def storage_destroyed(self, storage: Any) -> None:
        for callback in self._each("storage_destroyed"):
            callback(storage)

    def mailbox_allocated(self, box: Mailbox, storage: Any) -> Mailbox:
        """Let each hook wrap the mailbox in turn. Returns the outermost one."""
        for callback in self._each("mailbox_allocated"):
            box = callback(box, storage)
        return box

    def mailbox_freed(self, box: Mailbox) -> None:
        for callback in self._each("mailbox_freed"):
            callback(box)

    def mail_allocated(self, mail: Mail, box: Mailbox) -> Mail:
        for callback in self._each("mail_allocated"):
            mail = callback(mail, box)
        return mail


def find_wrapper(obj: Any, cls: type) -> Any:
    """The `cls` instance in obj's chain of `inner` wrappers, or None."""
    seen = set()
    while obj is not None and id(obj) not in seen:
        if isinstance(obj, cls):
            return obj
        seen.add(id(obj))
        obj = getattr(obj, "inner", None)
    return None


class MigrationMailbox:
    """Target mailbox wrapper that syncs POP3 UIDLs ahead of searches.

    A search that wants POP3 UIDLs or order triggers the sync before the
    search starts, so it happens before any message bodies are fetched.
    """

    def __init__(self, inner: Mailbox, session: MigrationSession, settings: Settings):
        self.inner = inner
        self.session = session
        self.settings = settings

    @property
    def name(self) -> str:
        return self.inner.name

    @property
    def namespace(self) -> str:
        return self.inner.namespace

    @property
    def is_inbox(self) -> bool:
        return self.inner.is_inbox

    @property
    def uidvalidity(self) -> int:
        return self.inner.uidvalidity

    def sync(self) -> None:
        self.inner.sync()

    def search(
        self,
        seqs: Iterable[int] | None = None,
        wanted: FetchField = FetchField.NONE,
    ) -> Iterator[Mail]:
        if wanted & POP3_FIELDS and (self.settings.all_mailboxes or self.inner.is_inbox):
            try:
                self.session.sync_if_needed()
            except TempError as e:
                # raised again by the UIDL/order lookups
                logger.debug("pop3_migration: %s: early sync failed: %s", self.name, e)
        return self.inner.search(seqs, wanted)

    def close(self) -> None:
        self.inner.close()


class MigrationMail:
    """Mail wrapper answering POP3 UIDL/order from the matching session."""

    def __init__(self, inner: Mail, session: MigrationSession):
        self.inner = inner
        self.session = session

    @property
    def seq(self) -> int:
        return self.inner.seq

    @property
    def uid(self) -> int:
        return self.inner.uid

    def physical_size(self) -> int:
        return self.inner.physical_size()

    def header_bytes(self) -> bytes:
        return self.inner.header_bytes()

    def full_bytes(self) -> bytes:
        return self.inner.full_bytes()

    def backend_uidl(self) -> str:
        return self.get_special(FetchField.UIDL_BACKEND)

    def get_special(self, field: FetchField) -> str:
        """POP3 UIDL/order from the session, else whatever the wrapped mail says.

        Raises TempError if the POP3 UIDLs couldn't be synced.
        """
        if field == FetchField.UIDL_BACKEND:
            uidl = self.session.get_backend_uidl(self.uid)
            if uidl is not None:
                return uidl
        elif field == FetchField.POP3_ORDER:
            order = self.session.get_pop3_order(self.uid)
            if order is not None:
                return str(order)
        # not found from POP3 server, fallback to default
        return self.inner.get_special(field)


class Pop3MigrationHooks:
    """Attach POP3 UIDL matching to storages, target mailboxes and mails.

    Per-storage contexts are kept here, looked up by storage identity.
    Each mailbox wrapper owns its session and hands it to the mail
    wrappers; nothing points back at the framework objects.
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
        self._storages: dict[int, MigrationStorage] = {}

    def storage_created(self, storage: Any) -> None:
        if not self.settings.enabled:
            logger.debug("pop3_migration: No pop3_migration mailbox setting - disabled")
            return
        self._storages[id(storage)] = MigrationStorage(self.settings, self.open_pop3, self.cache_store)

    def storage_destroyed(self, storage: Any) -> None:
        self._storages.pop(id(storage), None)

    def storage_context(self, storage: Any) -> MigrationStorage | None:
        return self._storages.get(id(storage))

    def mailbox_allocated(self, box: Mailbox, storage: Any) -> Mailbox:
        mstorage = self._storages.get(id(storage))
        if mstorage is None:
            return box
        return MigrationMailbox(box, MigrationSession(mstorage, box), self.settings)

    def _in_pop3_namespace(self, box: Mailbox) -> bool:
        if box.name == self.settings.mailbox:
            return True
        return box.namespace != "" and self.settings.mailbox.startswith(box.namespace)

    def mail_allocated(self, mail: Mail, box: Mailbox) -> Mail:
        box = find_wrapper(box, MigrationMailbox)
        if box is None:
            return mail
        if not self.settings.all_mailboxes and not box.is_inbox:
            # assigns UIDLs only for INBOX
            return mail
        if self._in_pop3_namespace(box):
            # we're accessing the pop3-migration namespace itself
            return mail
        return MigrationMail(mail, box.session)
