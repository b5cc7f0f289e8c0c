"""Header normalization for cross-protocol message matching.

The same message fetched with POP3 TOP and with IMAP BODY[HEADER] does not
always come back with byte-identical headers. `filter_headers` drops the
lines that are known to differ between servers and protocols, so the
remaining lines hash to the same digest on both sides.
"""

from dataclasses import dataclass
from typing import Iterator

from .hashing import MAX_VERSION, HeaderHasher

# Headers that might change or be different in IMAP vs. POP3.
SKIP_HEADERS = frozenset(name.lower() for name in (
    b"Content-Length",
    b"Return-Path",  # Yahoo IMAP has Return-Path, Yahoo POP3 doesn't
    b"Status",
    b"X-IMAP",
    b"X-IMAPbase",
    b"X-Keywords",
    b"X-Message-Flag",
    b"X-Status",
    b"X-UID",
    b"X-UIDL",
    b"X-Yahoo-Newman-Property",
))


@dataclass
class HeaderLine:
    """One physical header line, split the way a header parser sees it.

    For continuation lines `name` and `middle` are empty and `value` is the
    whole line including its leading whitespace.
    """
    name: bytes
    middle: bytes
    value: bytes
    continued: bool = False
    eoh: bool = False

    @property
    def is_cr_only(self) -> bool:
        return (
            not self.continued
            and not self.name
            and not self.middle
            and self.value != b""
            and self.value.strip(b"\r") == b""
        )

    def to_bytes(self) -> bytes:
        return self.name + self.middle + self.value + b"\n"


@dataclass
class FilteredHeaders:
    data: bytes
    have_eoh: bool


def _strip_eol(line: bytes) -> bytes:
    if line.endswith(b"\n"):
        line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
    return line


def iter_header_lines(data: bytes) -> Iterator[HeaderLine]:
    """Split raw message bytes into header lines, up to end-of-headers.

    Only LF ends a line; a stray CR stays part of the line. Anything after
    the empty line that ends the header is not looked at.
    """
    have_header = False
    pos = 0
    while pos < len(data):
        end = data.find(b"\n", pos)
        end = len(data) if end < 0 else end + 1
        line = _strip_eol(data[pos:end])
        pos = end

        if line == b"":
            yield HeaderLine(b"", b"", b"", eoh=True)
            return
        if have_header and line[:1] in (b" ", b"\t"):
            yield HeaderLine(b"", b"", line, continued=True)
            continue
        if line.strip(b"\r") == b"":
            yield HeaderLine(b"", b"", line)
            continue

        have_header = True
        colon = line.find(b":")
        if colon < 0:
            yield HeaderLine(line, b"", b"")
            continue
        name = line[:colon].rstrip(b" \t")
        value = line[colon + 1:].lstrip(b" \t")
        yield HeaderLine(name, line[len(name):len(line) - len(value)], value)


def header_name_is_valid(name: bytes) -> bool:
    return all(0x20 < byte < 0x7F for byte in name)


def filter_headers(data: bytes) -> FilteredHeaders:
    """Filter a header (or full message) down to its comparable lines.

    Returns the kept lines with bare LF line endings, and whether the
    end-of-headers line was seen.
    """
    out = bytearray()
    have_eoh = False
    stop = False
    name = b""
    header_matched = False

    for hdr in iter_header_lines(data):
        if hdr.eoh:
            have_eoh = True
            if not stop:
                out += b"\n"
            break

        if hdr.continued:
            # continuation lines follow their header's fate
            matched = header_matched
        else:
            name = hdr.name
            matched = name.lower() in SKIP_HEADERS

        if hdr.is_cr_only:
            # CR+CR+LF - some servers stop the header processing here
            # while others don't. Stop here everywhere.
            stop = True
        elif not hdr.continued and not hdr.middle:
            # not a valid "key: value" header
            matched = True
        elif hdr.continued and hdr.value.strip(b" \t") == b"":
            # "header: \r\n \r\n" - some servers strip the blank line away
            matched = True

        if stop:
            matched = True
        elif not header_name_is_valid(name):
            # some servers drop headers with invalid names, others keep them
            matched = True

        if not hdr.continued:
            header_matched = matched
        if not matched:
            out += hdr.to_bytes()
    return FilteredHeaders(bytes(out), have_eoh)


def header_digest(data: bytes, version: int = MAX_VERSION) -> tuple[bytes, bool]:
    """Filter `data` and hash it. Returns (20-byte digest, have_eoh)."""
    filtered = filter_headers(data)
    hasher = HeaderHasher(version)
    hasher.update(filtered.data)
    return hasher.digest(), filtered.have_eoh
