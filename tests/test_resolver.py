"""Tests for the read resolver."""

import pysam
import pytest

from cellsnp.core.resolver import MISSING_QUAL, ReadResolver, ResolverConfig
from cellsnp.exceptions import MalformedReadError
from cellsnp.models.core import PileupRecord, RejectReason

M, I, D, N, S = pysam.CMATCH, pysam.CINS, pysam.CDEL, pysam.CREF_SKIP, pysam.CSOFT_CLIP


@pytest.fixture
def resolver():
    return ReadResolver(ResolverConfig(min_mapq=20, max_flag=255, min_len=30))


def test_resolve_simple_match(resolver, snp_read):
    read = snp_read("G", quals=35)
    record = resolver.resolve(read, 100)

    assert isinstance(record, PileupRecord)
    assert record.base == "G"
    assert record.base_index == 2
    assert record.qual == 35
    assert record.query_pos == 20
    assert record.aligned_length == 40
    assert record.cell_barcode is None
    assert record.umi is None


def test_ambiguity_code_counts_as_n(resolver, make_read):
    read = make_read("A" * 20 + "R" + "A" * 19, 80)
    record = resolver.resolve(read, 100)
    assert record.base == "R"
    assert record.base_index == 4


def test_soft_clip_shifts_query_position(resolver, make_read):
    read = make_read("T" * 5 + "A" * 20 + "C" + "A" * 14, 80, cigar=[(S, 5), (M, 35)])
    record = resolver.resolve(read, 100)
    assert record.query_pos == 25
    assert record.base == "C"
    assert record.aligned_length == 35


def test_insertion_before_target(resolver, make_read):
    # 10M 2I 28M from 80: reference 90.. maps to query 12..
    seq = "A" * 12 + "A" * 10 + "G" + "A" * 17
    read = make_read(seq, 80, cigar=[(M, 10), (I, 2), (M, 28)])
    record = resolver.resolve(read, 100)
    assert record.query_pos == 22
    assert record.base == "G"
    assert record.aligned_length == 38


def test_deletion_at_target_is_rejected(resolver, make_read):
    read = make_read("A" * 40, 80, cigar=[(M, 20), (D, 5), (M, 20)])
    assert resolver.resolve(read, 102) == RejectReason.DELETION


def test_ref_skip_at_target_is_rejected(resolver, make_read):
    read = make_read("A" * 40, 80, cigar=[(M, 20), (N, 50), (M, 20)])
    assert resolver.resolve(read, 130) == RejectReason.REF_SKIP


def test_base_after_deletion_resolves(resolver, make_read):
    seq = "A" * 20 + "T" + "A" * 19
    read = make_read(seq, 75, cigar=[(M, 20), (D, 5), (M, 20)])
    record = resolver.resolve(read, 100)
    assert record.base == "T"
    assert record.query_pos == 20


def test_length_filter_counts_whole_read(make_read):
    resolver = ReadResolver(ResolverConfig(min_len=30))
    # target in the first block; only the blocks after it reach the minimum
    read = make_read("A" * 35, 90, cigar=[(M, 15), (N, 100), (M, 20)])
    record = resolver.resolve(read, 100)
    assert isinstance(record, PileupRecord)
    assert record.aligned_length == 35


def test_short_alignment_rejected(resolver, make_read):
    read = make_read("A" * 40, 90, cigar=[(M, 20), (S, 20)])
    assert resolver.resolve(read, 100) == RejectReason.SHORT_ALIGNMENT


def test_low_mapq_rejected(resolver, snp_read):
    assert resolver.resolve(snp_read("A", mapq=10), 100) == RejectReason.LOW_MAPQ


def test_high_flag_rejected(resolver, snp_read):
    assert resolver.resolve(snp_read("A", flag=1024), 100) == RejectReason.HIGH_FLAG


def test_unmapped_rejected(resolver, snp_read):
    assert resolver.resolve(snp_read("A", flag=4), 100) == RejectReason.UNMAPPED


def test_missing_umi_rejected_first(snp_read):
    resolver = ReadResolver(ResolverConfig(cell_tag="CB", umi_tag="UR"))
    # every other filter would also fail; the UMI check comes first
    read = snp_read("A", mapq=0, flag=1024)
    assert resolver.resolve(read, 100) == RejectReason.MISSING_UMI


def test_missing_barcode_rejected_before_mapq(snp_read):
    resolver = ReadResolver(ResolverConfig(cell_tag="CB", umi_tag="UR"))
    read = snp_read("A", mapq=0, tags={"UR": "UMI1"})
    assert resolver.resolve(read, 100) == RejectReason.MISSING_BARCODE


def test_empty_tag_counts_as_missing(snp_read):
    resolver = ReadResolver(ResolverConfig(cell_tag="CB"))
    read = snp_read("A", tags={"CB": ""})
    assert resolver.resolve(read, 100) == RejectReason.MISSING_BARCODE


def test_tags_copied_to_record(snp_read):
    resolver = ReadResolver(ResolverConfig(cell_tag="CB", umi_tag="UR"))
    read = snp_read("C", tags={"CB": "AAACGG-1", "UR": "TTGCA"})
    record = resolver.resolve(read, 100)
    assert record.cell_barcode == "AAACGG-1"
    assert record.umi == "TTGCA"


def test_missing_qualities(resolver, snp_read):
    record = resolver.resolve(snp_read("A", quals=None), 100)
    assert record.qual == MISSING_QUAL


def test_target_past_read_end_is_malformed(resolver, make_read):
    read = make_read("A" * 40, 10)
    with pytest.raises(MalformedReadError):
        resolver.resolve(read, 100)


def test_target_before_read_start_is_malformed(resolver, snp_read):
    with pytest.raises(MalformedReadError):
        resolver.resolve(snp_read("A", pos=100), 50)


def test_read_without_sequence_rejected(make_read):
    resolver = ReadResolver(ResolverConfig(max_flag=4095))
    read = make_read("A" * 40, 80, flag=256, quals=None)
    read.query_sequence = None
    assert read.query_sequence is None
    assert resolver.resolve(read, 100) == RejectReason.NO_SEQUENCE


def test_sequence_shorter_than_cigar_is_malformed(resolver, make_read):
    read = make_read("A" * 10, 80, cigar=[(M, 40)], quals=None)
    with pytest.raises(MalformedReadError):
        resolver.resolve(read, 100)
