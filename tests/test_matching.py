"""Tests for the three matching phases on plain record lists."""

import pytest

from pop3_migration.config import Settings
from pop3_migration.errors import ReconciliationFailure
from pop3_migration.matching import (
    assign_by_header_digest,
    assign_by_size,
    assign_cached,
    count_missing,
)
from pop3_migration.records import ImapRecord, MigrationState, PopRecord, link, sort_natural


def digest(n: int) -> bytes:
    return bytes([n]) * 20


def pops(*specs):
    """PopRecords from (uidl, size) pairs, in listing order."""
    return [PopRecord(pop_seq=i, uidl=uidl, size=size) for i, (uidl, size) in enumerate(specs, start=1)]


def imaps(*sizes, start=1):
    return [ImapRecord(uid=uid, physical_size=size) for uid, size in enumerate(sizes, start=start)]


def assert_consistent(pop_records, imap_records):
    by_uid = {rec.uid: rec for rec in imap_records}
    for pop in pop_records:
        if pop.matched_uid is not None:
            imap = by_uid[pop.matched_uid]
            assert imap.pop_uidl == pop.uidl
            assert imap.pop_seq == pop.pop_seq


class TestLink:
    def test_links_both_sides(self):
        pop, imap = PopRecord(1, "a"), ImapRecord(7)
        assert link(pop, imap)
        assert pop.matched_uid == 7
        assert (imap.pop_uidl, imap.pop_seq) == ("a", 1)

    def test_never_relinks(self):
        pop, imap = PopRecord(1, "a"), ImapRecord(7)
        link(pop, imap)
        assert not link(PopRecord(2, "b"), imap)
        assert not link(pop, ImapRecord(8))
        assert pop.matched_uid == 7
        assert imap.pop_uidl == "a"

    def test_refuses_different_cached_uidl(self):
        imap = ImapRecord(7, pop_uidl="x")
        assert not link(PopRecord(1, "a"), imap)
        assert imap.pop_seq is None


class TestAssignCached:
    def test_merge_join(self):
        pop_records = pops(("c", 30), ("a", 10), ("b", 20))
        imap_records = imaps(10, 20, 30)
        imap_records[0].pop_uidl = "a"
        imap_records[2].pop_uidl = "c"
        assert assign_cached(pop_records, imap_records, Settings(mailbox="POP3")) == 2
        sort_natural(pop_records, imap_records)
        assert [p.matched_uid for p in pop_records] == [3, 1, None]
        assert imap_records[0].pop_seq == 2
        assert_consistent(pop_records, imap_records)

    def test_unknown_cached_uidl_left_alone(self):
        pop_records = pops(("a", 10))
        imap_records = imaps(10)
        imap_records[0].pop_uidl = "gone"
        assert assign_cached(pop_records, imap_records, Settings(mailbox="POP3")) == 0
        assert pop_records[0].matched_uid is None

    def test_skip_uidl_cache(self):
        pop_records = pops(("a", 10))
        imap_records = imaps(10)
        imap_records[0].pop_uidl = "a"
        assert assign_cached(pop_records, imap_records, Settings(mailbox="POP3", skip_uidl_cache=True)) == 0
        assert pop_records[0].matched_uid is None


class TestAssignBySize:
    def test_all_match(self):
        # Scenario A
        pop_records = pops(("a", 10), ("b", 20), ("c", 30))
        imap_records = imaps(10, 20, 30)
        state = MigrationState()
        assert assign_by_size(pop_records, imap_records, state, Settings(mailbox="POP3"))
        assert state.first_unfound_index == 3
        assert [i.pop_uidl for i in imap_records] == ["a", "b", "c"]
        assert_consistent(pop_records, imap_records)

    def test_ambiguous_sizes_stop(self):
        pop_records = pops(("a", 15), ("b", 15), ("c", 40))
        imap_records = imaps(15, 15, 40)
        state = MigrationState()
        assert not assign_by_size(pop_records, imap_records, state, Settings(mailbox="POP3"))
        assert state.first_unfound_index == 0
        assert all(p.matched_uid is None for p in pop_records)

    def test_size_mismatch_stops_with_prefix_matched(self):
        pop_records = pops(("a", 10), ("b", 20), ("c", 30))
        imap_records = imaps(10, 21, 30)
        state = MigrationState()
        assert not assign_by_size(pop_records, imap_records, state, Settings(mailbox="POP3"))
        assert state.first_unfound_index == 1
        assert pop_records[0].matched_uid == 1
        assert pop_records[1].matched_uid is None
        assert pop_records[2].matched_uid is None

    def test_skip_size_check(self):
        pop_records = pops(("a", 10))
        imap_records = imaps(10)
        state = MigrationState()
        assert not assign_by_size(pop_records, imap_records, state, Settings(mailbox="POP3", skip_size_check=True))
        assert state.first_unfound_index == 0

    def test_cached_prefix_then_sizes(self):
        pop_records = pops(("a", 10), ("b", 20))
        imap_records = imaps(10, 20)
        link(pop_records[0], imap_records[0])
        state = MigrationState()
        assert assign_by_size(pop_records, imap_records, state, Settings(mailbox="POP3"))
        assert imap_records[1].pop_uidl == "b"

    def test_cached_uidl_mismatch_stops(self):
        pop_records = pops(("a", 10), ("b", 20))
        imap_records = imaps(20, 10)
        link(pop_records[1], imap_records[0])
        state = MigrationState()
        assert not assign_by_size(pop_records, imap_records, state, Settings(mailbox="POP3"))
        assert state.first_unfound_index == 0
        # cached link untouched
        assert imap_records[0].pop_uidl == "b"
        assert pop_records[0].matched_uid is None

    def test_more_pop3_than_imap(self):
        pop_records = pops(("a", 10), ("b", 20), ("c", 30))
        imap_records = imaps(10, 20)
        state = MigrationState()
        assert not assign_by_size(pop_records, imap_records, state, Settings(mailbox="POP3"))
        assert state.first_unfound_index == 2


class TestAssignByHeaderDigest:
    def test_resolves_reordered(self):
        # Scenario B after hashing
        pop_records = pops(("a", 15), ("b", 15), ("c", 40))
        imap_records = imaps(15, 15, 40)
        for rec, d in zip(pop_records, (1, 2, 3)):
            rec.header_digest = digest(d)
        for rec, d in zip(imap_records, (2, 1, 3)):
            rec.header_digest = digest(d)
        report = assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3"))
        assert report.by_digest == 3
        assert report.missing == 0
        assert [p.matched_uid for p in pop_records] == [2, 1, 3]
        # natural order restored
        assert [p.pop_seq for p in pop_records] == [1, 2, 3]
        assert [i.uid for i in imap_records] == [1, 2, 3]
        assert_consistent(pop_records, imap_records)

    def test_duplicate_digests_paired_in_order(self):
        pop_records = pops(("a", 1), ("b", 1))
        imap_records = imaps(1, 1)
        for rec in pop_records + imap_records:
            rec.header_digest = digest(9)
        report = assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3"))
        assert report.by_digest == 2
        assert_consistent(pop_records, imap_records)

    def test_keeps_earlier_links(self):
        pop_records = pops(("a", 1), ("b", 2))
        imap_records = imaps(1, 2)
        link(pop_records[0], imap_records[1])
        for rec in pop_records + imap_records:
            rec.header_digest = digest(5)
        assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3"))
        assert pop_records[0].matched_uid == 2
        assert pop_records[1].matched_uid == 1

    def test_missing_fails(self):
        # Scenario D
        pop_records = pops(("a", 1), ("b", 2), ("c", 3))
        imap_records = imaps(1, 2)
        for rec, d in zip(pop_records, (1, 2, 3)):
            rec.header_digest = digest(d)
        for rec, d in zip(imap_records, (1, 2)):
            rec.header_digest = digest(d)
        with pytest.raises(ReconciliationFailure) as exc:
            assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3"))
        assert exc.value.missing == 1
        assert exc.value.first_seq == 3
        assert exc.value.first_uidl == "c"
        assert "ignore_extra_uidls" in str(exc.value)
        # order restored even on failure
        assert [p.pop_seq for p in pop_records] == [1, 2, 3]

    def test_missing_tolerated_with_ignore_extra(self):
        pop_records = pops(("a", 1), ("b", 2))
        imap_records = imaps(1)
        pop_records[0].header_digest = imap_records[0].header_digest = digest(1)
        pop_records[1].header_digest = digest(2)
        report = assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3", ignore_extra_uidls=True))
        assert report.missing == 1
        assert report.all_imap_found

    def test_ignore_extra_needs_all_imap_found(self):
        pop_records = pops(("a", 1), ("b", 2))
        imap_records = imaps(1, 2)
        pop_records[0].header_digest = imap_records[0].header_digest = digest(1)
        pop_records[1].header_digest = digest(2)
        imap_records[1].header_digest = digest(3)
        with pytest.raises(ReconciliationFailure) as exc:
            assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3", ignore_extra_uidls=True))
        assert "ignore_extra_uidls" not in str(exc.value)

    def test_missing_tolerated_with_ignore_missing(self, caplog):
        pop_records = pops(("a", 1), ("b", 2))
        imap_records = imaps(1, 2)
        pop_records[0].header_digest = imap_records[0].header_digest = digest(1)
        pop_records[1].header_digest = digest(2)
        imap_records[1].header_digest = digest(3)
        report = assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3", ignore_missing_uidls=True))
        assert report.missing == 1
        assert "have no matching IMAP messages" in caplog.text

    def test_missing_tolerated_in_all_mailboxes_mode(self):
        pop_records = pops(("a", 1), ("b", 2))
        imap_records = imaps(1)
        pop_records[0].header_digest = imap_records[0].header_digest = digest(1)
        pop_records[1].header_digest = digest(2)
        report = assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3", all_mailboxes=True))
        assert report.missing == 1

    def test_records_without_digest_not_missing(self):
        pop_records = pops(("a", 1), ("b", 2))
        imap_records = imaps(1)
        pop_records[0].header_digest = imap_records[0].header_digest = digest(1)
        report = assign_by_header_digest(pop_records, imap_records, Settings(mailbox="POP3"))
        assert report.missing == 0


class TestCountMissing:
    def test_first_is_lowest_seq(self):
        pop_records = pops(("a", 1), ("b", 2), ("c", 3))
        for rec in pop_records:
            rec.header_digest = digest(rec.pop_seq)
        pop_records.reverse()
        missing, first = count_missing(pop_records)
        assert missing == 3
        assert first.uidl == "a"
