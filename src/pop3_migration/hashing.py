"""Header hashing: fold a filtered header stream into a 20-byte digest.

Servers disagree on small details of the headers they hand out, so the
hash is computed over a normalized byte stream. The normalization is
versioned; a digest is only comparable with digests of the same version.

- v1: bytes are hashed as-is.
- v2: control bytes other than tab and LF (CR included), 8-bit bytes
  and "?" all become "?", with runs collapsed to a single "?". Some
  servers replace 8-bit characters with "?" in header fetches but not in
  full fetches, and a UTF-8 sequence may become one "?" or several.
- v3: v2, and spaces and tabs are dropped. Servers add or strip
  whitespace around ":" and at the end of values.
- v4: v3, and LFs are dropped. A truncated header may or may not
  keep its final empty line.
"""

import hashlib

MAX_VERSION = 4

_SPACES = frozenset(b" \t")
_LF = 0x0A


def _is_replaced(byte: int) -> bool:
    if byte in (0x09, 0x0A):
        return False
    return byte < 0x20 or byte >= 0x7F or byte == 0x3F  # "?"


class HeaderHasher:
    """Incremental SHA-1 over normalized header bytes."""

    def __init__(self, version: int = MAX_VERSION):
        if not 1 <= version <= MAX_VERSION:
            raise ValueError(f"Unsupported header hash version: {version}")
        self.version = version
        self._sha1 = hashlib.sha1()
        self._prev_was_questionmark = False

    def update(self, data: bytes) -> None:
        if self.version == 1:
            self._sha1.update(data)
            return

        out = bytearray()
        for byte in data:
            if _is_replaced(byte):
                if not self._prev_was_questionmark:
                    out.append(0x3F)
                self._prev_was_questionmark = True
                continue
            self._prev_was_questionmark = False
            if self.version >= 3 and byte in _SPACES:
                continue
            if self.version >= 4 and byte == _LF:
                continue
            out.append(byte)
        self._sha1.update(bytes(out))

    def digest(self) -> bytes:
        return self._sha1.digest()


def hash_headers(data: bytes, version: int = MAX_VERSION) -> bytes:
    """Digest of already-filtered header bytes."""
    hasher = HeaderHasher(version)
    hasher.update(data)
    return hasher.digest()
