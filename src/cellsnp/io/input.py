"""
Input Adapters: SNP lists, plain list files and alignment files.

This module reads candidate SNPs from a VCF, roster/list files one entry per
line, and wraps ``pysam.AlignmentFile`` as the read source the pileup engine
fetches from.
"""

import gzip
import logging
from collections.abc import Iterator
from pathlib import Path

import pysam
from pydantic import ValidationError

from ..core.kernel import CoordinateKernel
from ..exceptions import InputError
from ..models.core import Snp

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


def read_list_file(path: Path) -> list[str]:
    """Read one entry per line, skipping blank lines and '#' comments."""
    try:
        with open(path) as f:
            entries = [line.strip() for line in f]
    except OSError as e:
        raise InputError(f"Could not read list file {path}: {e}") from e
    return [e for e in entries if e and not e.startswith("#")]


class SnpReader:
    """
    Reads candidate SNPs from a VCF (plain or gzip/bgzip compressed).

    Only the CHROM, POS, REF and ALT columns are used, so records are parsed
    from the text lines directly. Rows with too few columns or a POS that is
    not a positive integer are skipped with a warning.
    """

    def __init__(self, path: Path):
        self.path = path
        try:
            with open(path, "rb") as f:
                compressed = f.read(2) == GZIP_MAGIC
            self._file = (
                gzip.open(path, "rt", encoding="utf-8")
                if compressed
                else open(path, encoding="utf-8")
            )
        except OSError as e:
            raise InputError(f"Could not open SNP list {path}: {e}") from e
        self.skipped = 0

    def __iter__(self) -> Iterator[Snp]:
        lineno = 0
        try:
            for lineno, line in enumerate(self._file, start=1):
                if not line.strip() or line.startswith("#"):
                    continue
                snp = self._parse(line.rstrip("\r\n").split("\t"), lineno)
                if snp is not None:
                    yield snp
        except (OSError, UnicodeDecodeError) as e:
            raise InputError(f"Could not read SNP list {self.path} at line {lineno + 1}: {e}") from e

    def _parse(self, fields: list[str], lineno: int) -> Snp | None:
        if len(fields) < 5:
            return self._skip(lineno, f"expected at least 5 columns, got {len(fields)}")
        chrom, pos, _, ref, alts = fields[:5]
        try:
            pos1 = int(pos)
        except ValueError:
            return self._skip(lineno, f"POS {pos!r} is not an integer")
        # only the first listed ALT is considered
        alt = alts.split(",")[0]
        try:
            return CoordinateKernel.vcf_to_internal(chrom=chrom, pos=pos1, ref=ref, alt=alt)
        except ValidationError as e:
            return self._skip(lineno, f"{chrom}:{pos}: {e}")

    def _skip(self, lineno: int, reason: str) -> None:
        self.skipped += 1
        logger.warning("Skipping SNP record at %s line %d: %s", self.path, lineno, reason)
        return None

    def close(self):
        self._file.close()

    def __enter__(self) -> "SnpReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def load_snps(path: Path) -> list[Snp]:
    with SnpReader(path) as reader:
        snps = list(reader)
    if reader.skipped:
        logger.warning("Skipped %d malformed SNP records in %s", reader.skipped, path)
    return snps


class AlignmentSource:
    """
    An indexed BAM/SAM/CRAM file used as a region-bounded read source.

    Each worker opens its own instances; handles are never shared.
    """

    def __init__(self, path: Path):
        self.path = path
        try:
            self._file = pysam.AlignmentFile(str(path))
        except (OSError, ValueError) as e:
            raise InputError(f"Could not open alignment file {path}: {e}") from e
        if not self._file.has_index():
            self._file.close()
            raise InputError(f"Alignment file {path} is not indexed")

    def resolve_contig(self, chrom: str) -> str | None:
        """Contig name in this file's header for ``chrom``, or None if absent."""
        for name in CoordinateKernel.chromosome_aliases(chrom):
            if self._file.get_tid(name) >= 0:
                return name
        return None

    def fetch(self, contig: str, start: int, stop: int) -> Iterator[pysam.AlignedSegment]:
        """Reads overlapping the 0-based half-open interval [start, stop)."""
        return self._file.fetch(contig, start, stop)

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "AlignmentSource":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
