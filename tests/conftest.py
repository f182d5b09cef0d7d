"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pysam
import pytest

# Add src directory to path so tests use local code, not installed package
project_root = Path(__file__).parent.parent
src_dir = project_root / "src"
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

CONTIGS = (("chr1", 1000), ("chr2", 1000))


@pytest.fixture
def make_read():
    """Factory for unattached ``pysam.AlignedSegment`` objects."""

    def _make(
        seq,
        start,
        cigar=None,
        name="read",
        mapq=60,
        flag=0,
        quals=30,
        tags=None,
        reference_id=0,
    ):
        a = pysam.AlignedSegment()
        a.query_name = name
        a.query_sequence = seq
        a.flag = flag
        a.reference_id = reference_id
        a.reference_start = start
        a.mapping_quality = mapq
        a.cigartuples = cigar if cigar is not None else [(pysam.CMATCH, len(seq))]
        # setting the sequence clears qualities; None keeps them missing
        if quals is not None:
            a.query_qualities = [quals] * len(seq) if isinstance(quals, int) else list(quals)
        for tag, value in (tags or {}).items():
            a.set_tag(tag, value, value_type="Z")
        return a

    return _make


@pytest.fixture
def snp_read(make_read):
    """
    A 40 bp read starting 20 bp before ``pos`` (0-based) and showing ``base`` there.
    """

    def _make(base, pos=100, name="read", **kwargs):
        seq = "A" * 20 + base + "A" * 19
        return make_read(seq, pos - 20, name=name, **kwargs)

    return _make


@pytest.fixture
def bam_factory(tmp_path):
    """Write reads to a sorted, indexed BAM in ``tmp_path``."""

    def _write(name, reads, contigs=CONTIGS):
        path = tmp_path / name
        header = {
            "HD": {"VN": "1.6", "SO": "coordinate"},
            "SQ": [{"SN": chrom, "LN": length} for chrom, length in contigs],
        }
        with pysam.AlignmentFile(str(path), "wb", header=header) as out:
            for read in sorted(reads, key=lambda r: (r.reference_id, r.reference_start)):
                out.write(read)
        pysam.index(str(path))
        return path

    return _write


@pytest.fixture
def vcf_factory(tmp_path):
    """Write ``(chrom, pos1, ref, alt)`` tuples as a minimal VCF in ``tmp_path``."""

    def _write(name, snps, contigs=CONTIGS):
        lines = ["##fileformat=VCFv4.2"]
        lines += [f"##contig=<ID={chrom},length={length}>" for chrom, length in contigs]
        lines.append("#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO")
        for chrom, pos, ref, alt in snps:
            lines.append(f"{chrom}\t{pos}\t.\t{ref}\t{alt}\t.\t.\t.")
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n")
        return path

    return _write


def read_matrix(path: Path) -> tuple[list[str], list[int], list[tuple[int, int, int]]]:
    """Split a final matrix file into header lines, summary and records."""
    header, summary, records = [], None, []
    for line in path.read_text().splitlines():
        if line.startswith("%"):
            header.append(line)
        elif summary is None:
            summary = [int(v) for v in line.split("\t")]
        else:
            site, sample, count = (int(v) for v in line.split("\t"))
            records.append((site, sample, count))
    return header, summary, records


@pytest.fixture
def matrix_reader():
    return read_matrix
