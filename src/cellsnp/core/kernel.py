"""
Coordinate Kernel: The source of truth for coordinates, bases and contig names.

Handles conversion between:
- VCF (1-based POS)
- Internal (0-based position of the SNP base)

and the fixed base ordering A, C, G, T, N used by every count vector.
"""

from cellsnp.models.core import Snp

BASES = "ACGTN"
N_INDEX = 4


class CoordinateKernel:
    """
    Stateless utility for coordinate transformations and normalization.
    """

    @staticmethod
    def vcf_to_internal(chrom: str, pos: int, ref: str | None, alt: str | None) -> Snp:
        """
        Convert a VCF record (1-based POS) to an internal Snp.

        Multi-base or missing alleles are dropped; allele inference then
        supplies them downstream.
        """
        return Snp(
            chrom=chrom,
            pos=pos - 1,
            ref=CoordinateKernel.normalize_allele(ref),
            alt=CoordinateKernel.normalize_allele(alt),
        )

    @staticmethod
    def normalize_allele(allele: str | None) -> str | None:
        if allele is None:
            return None
        allele = allele.upper()
        if len(allele) == 1 and allele in BASES:
            return allele
        return None

    @staticmethod
    def base_to_index(base: str) -> int:
        """Index of a base in ACGTN; anything that is not A/C/G/T counts as N."""
        idx = BASES.find(base.upper())
        return N_INDEX if idx < 0 else idx

    @staticmethod
    def index_to_base(idx: int) -> str:
        return BASES[idx]

    @staticmethod
    def normalize_chromosome(chrom: str) -> str:
        """
        Normalize chromosome name (remove 'chr' prefix).
        """
        if chrom.lower().startswith("chr"):
            return chrom[3:]
        return chrom

    @staticmethod
    def chromosome_aliases(chrom: str) -> list[str]:
        """Names to try when looking a chromosome up: as given, then with 'chr' toggled."""
        bare = CoordinateKernel.normalize_chromosome(chrom)
        alias = f"chr{chrom}" if bare == chrom else bare
        return [chrom, alias]
