"""
Output Writers: sparse matrices and VCF files.

A passing SNP produces one line in each VCF and one record per sample with a
nonzero count in each of the AD, DP and OTH matrices. Final matrices use
``site<TAB>sample<TAB>count`` lines with 1-based ordinals. Shard fragments use
shard-local site ordinals and end every site with a blank line so the merge
step can renumber them.
"""

import gzip
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import IO

from .. import __version__
from ..core.pileup import GroupTable
from ..core.stats import SiteAggregate, call_genotype, phred_scale
from ..exceptions import OutputError
from ..models.core import Snp

logger = logging.getLogger(__name__)

OUT_VCF_CELLS = "cellSNP.cells.vcf"
OUT_VCF_BASE = "cellSNP.base.vcf"
OUT_SAMPLES = "cellSNP.samples.tsv"
OUT_MTX_AD = "cellSNP.tag.AD.mtx"
OUT_MTX_DP = "cellSNP.tag.DP.mtx"
OUT_MTX_OTH = "cellSNP.tag.OTH.mtx"

MTX_HEADER = "%%MatrixMarket matrix coordinate integer general\n%\n"

VCF_BASE_HEADER = "##fileformat=VCFv4.2\n#CHROM\tPOS\tID\tREF\tALT\tQUAL\tFILTER\tINFO\n"

VCF_CELLS_META = [
    "##fileformat=VCFv4.2",
    f"##source=cellSNP_v{__version__}",
    '##FILTER=<ID=PASS,Description="All filters passed">',
    '##FILTER=<ID=.,Description="Filter info not available">',
    '##INFO=<ID=DP,Number=1,Type=Integer,Description="total counts for ALT and REF">',
    '##INFO=<ID=AD,Number=1,Type=Integer,Description="total counts for ALT">',
    '##INFO=<ID=OTH,Number=1,Type=Integer,Description="total counts for other bases from REF and ALT">',
    '##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">',
    '##FORMAT=<ID=PL,Number=G,Type=Integer,Description="List of Phred-scaled genotype likelihoods">',
    '##FORMAT=<ID=DP,Number=1,Type=Integer,Description="total counts for ALT and REF">',
    '##FORMAT=<ID=AD,Number=1,Type=Integer,Description="total counts for ALT">',
    '##FORMAT=<ID=OTH,Number=1,Type=Integer,Description="total counts for other bases from REF and ALT">',
    '##FORMAT=<ID=ALL,Number=5,Type=Integer,Description="total counts for all bases in order of A,C,G,T,N">',
] + [f"##contig=<ID={c}>" for c in [str(i) for i in range(1, 23)] + ["X", "Y"]]

CELLS_FORMAT = "GT:AD:DP:OTH:PL:ALL"
EMPTY_CELL = ".:.:.:.:.:."


class GzipTextWriter:
    """
    Text writer that encodes straight into a binary ``GzipFile``.

    Never flushes the compressor before ``close``, so a member holds the same
    bytes as one written by copying the encoded text in binary mode.
    """

    def __init__(self, raw: gzip.GzipFile):
        self.raw = raw

    def write(self, text: str) -> int:
        self.raw.write(text.encode("utf-8"))
        return len(text)

    def close(self) -> None:
        self.raw.close()

    def __enter__(self) -> "GzipTextWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_output(path: Path, mode: str = "wt", compress: bool = False) -> IO:
    """
    Open an output file, optionally gzip-compressed.

    Compressed members carry mtime 0 so identical content gives identical bytes.
    """
    try:
        if compress:
            raw = gzip.GzipFile(str(path), mode.replace("t", ""), mtime=0)
            return raw if "b" in mode else GzipTextWriter(raw)
        if "b" in mode:
            return open(path, mode)
        return open(path, mode, encoding="utf-8")
    except OSError as e:
        raise OutputError(f"Could not open output file {path}: {e}") from e


@dataclass(frozen=True)
class OutputPaths:
    """Locations of one complete set of outputs (final files or one shard's fragments)."""

    mtx_ad: Path
    mtx_dp: Path
    mtx_oth: Path
    vcf_base: Path
    vcf_cells: Path | None
    compress_vcf: bool = False

    @classmethod
    def for_dir(cls, out_dir: Path, genotype: bool = False, compress: bool = False) -> "OutputPaths":
        suffix = ".gz" if compress else ""
        return cls(
            mtx_ad=out_dir / OUT_MTX_AD,
            mtx_dp=out_dir / OUT_MTX_DP,
            mtx_oth=out_dir / OUT_MTX_OTH,
            vcf_base=out_dir / f"{OUT_VCF_BASE}{suffix}",
            vcf_cells=out_dir / f"{OUT_VCF_CELLS}{suffix}" if genotype else None,
            compress_vcf=compress,
        )

    @property
    def matrices(self) -> tuple[Path, Path, Path]:
        return self.mtx_ad, self.mtx_dp, self.mtx_oth

    @property
    def vcfs(self) -> list[Path]:
        return [p for p in (self.vcf_base, self.vcf_cells) if p is not None]

    def fragment(self, index: int) -> "OutputPaths":
        """Uncompressed per-shard temporary files named ``<final>.<index>``."""

        def tmp(path: Path | None) -> Path | None:
            if path is None:
                return None
            name = path.name[:-3] if path.name.endswith(".gz") else path.name
            return path.with_name(f"{name}.{index}")

        return replace(
            self,
            mtx_ad=tmp(self.mtx_ad),
            mtx_dp=tmp(self.mtx_dp),
            mtx_oth=tmp(self.mtx_oth),
            vcf_base=tmp(self.vcf_base),
            vcf_cells=tmp(self.vcf_cells),
            compress_vcf=False,
        )


def write_headers(paths: OutputPaths, sample_names: list[str]) -> None:
    """Create the final files with their header text, truncating old content."""
    for path in paths.matrices:
        with open_output(path, "wt") as f:
            f.write(MTX_HEADER)
    with open_output(paths.vcf_base, "wt", paths.compress_vcf) as f:
        f.write(VCF_BASE_HEADER)
    if paths.vcf_cells is not None:
        columns = ["#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO", "FORMAT"]
        with open_output(paths.vcf_cells, "wt", paths.compress_vcf) as f:
            f.write("\n".join(VCF_CELLS_META) + "\n")
            f.write("\t".join(columns + sample_names) + "\n")


def write_samples(path: Path, sample_names: list[str]) -> None:
    with open_output(path, "wt") as f:
        for name in sample_names:
            f.write(f"{name}\n")


def format_base_record(snp: Snp, site: SiteAggregate) -> str:
    return (
        f"{snp.chrom}\t{snp.pos + 1}\t.\t{site.ref_base}\t{site.alt_base}\t.\tPASS\t"
        f"AD={site.ad};DP={site.dp};OTH={site.oth}"
    )


def format_cells_record(snp: Snp, site: SiteAggregate, groups: GroupTable) -> str:
    fields = [format_base_record(snp, site), CELLS_FORMAT]
    for group in groups:
        if group.total_count == 0 or group.genotype_likelihoods is None:
            fields.append(EMPTY_CELL)
            continue
        gl = group.genotype_likelihoods
        pl = ",".join(str(v) for v in phred_scale(gl))
        counts = ",".join(str(int(c)) for c in group.base_counts)
        fields.append(f"{call_genotype(gl)}:{group.ad}:{group.dp}:{group.oth}:{pl}:{counts}")
    return "\t".join(fields)


class MatrixWriter:
    """One sparse count matrix (AD, DP or OTH)."""

    def __init__(self, path: Path, fragment: bool = False):
        self.path = path
        self.fragment = fragment
        self.records = 0
        self.file = open_output(path, "wt" if fragment else "at")

    def write_site(self, ordinal: int, values: list[int]) -> int:
        """Write the nonzero entries of ``values`` (roster order) for site ``ordinal``."""
        n = 0
        for sample_ordinal, count in enumerate(values, start=1):
            if count:
                self.file.write(f"{ordinal}\t{sample_ordinal}\t{count}\n")
                n += 1
        if self.fragment:
            self.file.write("\n")
        self.records += n
        return n

    def close(self):
        self.file.close()


class SiteWriter:
    """
    Writes passing SNPs to all matrix and VCF outputs of one worker.

    In fragment mode the files are private temporaries (truncated on open);
    otherwise results are appended to the final files after their headers.
    """

    def __init__(self, paths: OutputPaths, fragment: bool = False):
        self.paths = paths
        self.fragment = fragment
        self._handles: list = []
        self.ordinal = 0
        try:
            self.ad = self._track(MatrixWriter(paths.mtx_ad, fragment))
            self.dp = self._track(MatrixWriter(paths.mtx_dp, fragment))
            self.oth = self._track(MatrixWriter(paths.mtx_oth, fragment))
            vcf_mode = "wt" if fragment else "at"
            self.vcf_base = self._track(open_output(paths.vcf_base, vcf_mode, paths.compress_vcf))
            self.vcf_cells = None
            if paths.vcf_cells is not None:
                self.vcf_cells = self._track(
                    open_output(paths.vcf_cells, vcf_mode, paths.compress_vcf)
                )
        except Exception:
            self.close()
            raise

    def _track(self, handle):
        self._handles.append(handle)
        return handle

    def write_site(self, snp: Snp, site: SiteAggregate, groups: GroupTable) -> None:
        self.ordinal += 1
        try:
            self.ad.write_site(self.ordinal, [g.ad for g in groups])
            self.dp.write_site(self.ordinal, [g.dp for g in groups])
            self.oth.write_site(self.ordinal, [g.oth for g in groups])
            self.vcf_base.write(format_base_record(snp, site) + "\n")
            if self.vcf_cells is not None:
                self.vcf_cells.write(format_cells_record(snp, site, groups) + "\n")
        except OSError as e:
            raise OutputError(f"Failed writing SNP {snp.label} to {self.paths.mtx_ad.parent}: {e}") from e

    def close(self) -> None:
        for handle in reversed(self._handles):
            handle.close()
        self._handles.clear()

    def __enter__(self) -> "SiteWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
