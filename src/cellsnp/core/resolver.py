"""
Read Resolver: find what one read reports at one reference position.

The resolver walks the read's CIGAR directly instead of building the full
aligned-pairs list, applying the read filters on the way:

1. UMI tag required but missing/empty
2. Cell-barcode tag required but missing/empty
3. Mapping quality below minimum
4. FLAG above maximum
5. Unmapped, or stored without a sequence
6. Target position falls in a deletion or reference skip
7. Total aligned (M/=/X) length below minimum

Failing a filter returns a ``RejectReason``. A CIGAR that cannot be resolved
raises ``MalformedReadError``.
"""

from dataclasses import dataclass

import pysam

from cellsnp.exceptions import MalformedReadError
from cellsnp.models.core import CellsnpConfig, GroupingMode, PileupRecord, RejectReason

from .kernel import CoordinateKernel

_MATCH_OPS = frozenset((pysam.CMATCH, pysam.CEQUAL, pysam.CDIFF))
_REF_ONLY_OPS = frozenset((pysam.CDEL, pysam.CREF_SKIP))
_QUERY_ONLY_OPS = frozenset((pysam.CINS, pysam.CSOFT_CLIP))
_NOOP_OPS = frozenset((pysam.CHARD_CLIP, pysam.CPAD, pysam.CBACK))

# htslib reports a missing QUAL string as 0xff
MISSING_QUAL = 255


@dataclass(frozen=True)
class ResolverConfig:
    """Read filter settings. ``cell_tag``/``umi_tag`` of None disable the tag checks."""

    cell_tag: str | None = None
    umi_tag: str | None = None
    min_mapq: int = 20
    max_flag: int = 255
    min_len: int = 30

    @classmethod
    def from_config(cls, config: CellsnpConfig) -> "ResolverConfig":
        return cls(
            cell_tag=config.cell_tag if config.grouping_mode == GroupingMode.BARCODE else None,
            umi_tag=config.umi_tag,
            min_mapq=config.min_mapq,
            max_flag=config.max_flag,
            min_len=config.min_len,
        )


def get_tag_str(read: pysam.AlignedSegment, tag: str) -> str | None:
    """String value of ``tag``, or None when absent, empty or not a string."""
    if not read.has_tag(tag):
        return None
    value = read.get_tag(tag)
    if not isinstance(value, str) or not value:
        return None
    return value


class ReadResolver:
    """Resolve reads at a target position under a fixed filter configuration."""

    def __init__(self, config: ResolverConfig):
        self.config = config

    def resolve(self, read: pysam.AlignedSegment, pos: int) -> PileupRecord | RejectReason:
        """
        Resolve ``read`` at 0-based reference position ``pos``.

        Args:
            read: Alignment overlapping ``pos``.
            pos: 0-based reference position, not before the read's start.

        Returns:
            PileupRecord on success, RejectReason if a filter fails.

        Raises:
            MalformedReadError: CIGAR/sequence does not cover ``pos`` consistently.
        """
        cfg = self.config
        umi = None
        if cfg.umi_tag:
            umi = get_tag_str(read, cfg.umi_tag)
            if umi is None:
                return RejectReason.MISSING_UMI
        cell_barcode = None
        if cfg.cell_tag:
            cell_barcode = get_tag_str(read, cfg.cell_tag)
            if cell_barcode is None:
                return RejectReason.MISSING_BARCODE
        if read.mapping_quality < cfg.min_mapq:
            return RejectReason.LOW_MAPQ
        if read.flag > cfg.max_flag:
            return RejectReason.HIGH_FLAG
        if read.is_unmapped:
            return RejectReason.UNMAPPED
        # SEQ '*', usual for secondary alignments
        seq = read.query_sequence
        if seq is None:
            return RejectReason.NO_SEQUENCE

        cigar = read.cigartuples
        if not cigar:
            raise MalformedReadError(f"Read {read.query_name} has no CIGAR")
        start = read.reference_start
        if pos < start:
            raise MalformedReadError(
                f"Read {read.query_name} starts at {start + 1}, after target {pos + 1}"
            )

        ops = iter(cigar)
        x, y, aligned = start, 0, 0
        hit = None
        for op, length in ops:
            px, py = x, y
            if op in _MATCH_OPS:
                x += length
                y += length
                aligned += length
            elif op in _REF_ONLY_OPS:
                x += length
            elif op in _QUERY_ONLY_OPS:
                y += length
            elif op not in _NOOP_OPS:
                raise MalformedReadError(f"Read {read.query_name} has unknown CIGAR op {op}")
            if x > pos:
                hit = (op, px, py)
                break
        if hit is None:
            raise MalformedReadError(
                f"Read {read.query_name} ({read.cigarstring}) does not cover position {pos + 1}"
            )

        op, px, py = hit
        if op == pysam.CDEL:
            return RejectReason.DELETION
        if op == pysam.CREF_SKIP:
            return RejectReason.REF_SKIP
        qpos = py + (pos - px)

        # the length filter counts aligned bases over the whole read
        for op, length in ops:
            if op in _MATCH_OPS:
                aligned += length
        if aligned < cfg.min_len:
            return RejectReason.SHORT_ALIGNMENT

        if qpos >= len(seq):
            raise MalformedReadError(
                f"Read {read.query_name} has no sequence at query position {qpos}"
            )
        quals = read.query_qualities
        qual = quals[qpos] if quals is not None else MISSING_QUAL
        base = seq[qpos].upper()
        return PileupRecord(
            query_pos=qpos,
            base=base,
            base_index=CoordinateKernel.base_to_index(base),
            qual=qual,
            aligned_length=aligned,
            cell_barcode=cell_barcode,
            umi=umi,
        )
