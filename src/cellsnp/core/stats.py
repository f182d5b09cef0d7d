"""
Site-wide statistics: allele inference, AD/DP/OTH and genotype likelihoods.

Genotype likelihoods follow the cellSNP model. Each base quality is turned into
four log-probabilities of observing that base when it makes up all, 3/4, 1/2
or none of the sample's genotype. Summing those per base gives a 5x4 quality
matrix per sample, from which the likelihoods of 0/0, 1/0 and 1/1 (and
optionally the doublet states 0.5 and 1.5) are read off.
"""

import math
from dataclasses import dataclass, field

import numpy as np

from cellsnp.exceptions import QualityValueError
from cellsnp.models.core import RejectReason, Snp

from .kernel import CoordinateKernel
from .pileup import N_BASES, N_STATES, GroupTable

CAP_BQ = 45.0
MIN_BQ = 0.25
LOG_QUARTER = math.log(0.25)
LN10 = math.log(10)
GENOTYPES = ("0/0", "1/0", "1/1")


def infer_alleles(base_counts: np.ndarray) -> tuple[int, int]:
    """
    Most and second-most frequent of A, C, G, T.

    Ties go to the base earlier in ACGT order, so {A:10, C:10} gives (A, C).
    N is never inferred as an allele.
    """
    order = sorted(range(4), key=lambda i: (-int(base_counts[i]), i))
    return order[0], order[1]


def _as_quality_array(quals: list[int]) -> np.ndarray:
    try:
        arr = np.asarray(quals, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise QualityValueError(f"Non-numeric base quality: {e}") from e
    if arr.ndim != 1 or not np.all(np.isfinite(arr)) or np.any(arr < 0) or np.any(arr != np.floor(arr)):
        raise QualityValueError(f"Invalid base quality values: {quals!r}")
    return arr


def quality_vectors(
    quals: list[int], cap_bq: float = CAP_BQ, min_bq: float = MIN_BQ
) -> np.ndarray:
    """
    Log-probability vectors, one row per quality value.

    Columns: base is the whole genotype, 3/4 of it, 1/2 of it, absent from it.
    """
    arr = _as_quality_array(quals)
    bq = np.maximum(np.minimum(arr, cap_bq), min_bq)
    bp = np.power(0.1, bq / 10)
    return np.column_stack(
        (
            np.log(1 - bp),
            np.log(3.0 / 4 - 2.0 / 3 * bp),
            np.log(1.0 / 2 - 1.0 / 3 * bp),
            np.log(bp) - math.log(3),
        )
    )


def quality_matrix(qualities: list[list[int]]) -> np.ndarray:
    """5x4 matrix of summed quality vectors, one row per base in ACGTN order."""
    qmat = np.zeros((N_BASES, N_STATES), dtype=np.float64)
    for idx, quals in enumerate(qualities):
        if quals:
            qmat[idx] = quality_vectors(quals).sum(axis=0)
    return qmat


def genotype_likelihoods(
    qmat: np.ndarray,
    base_counts: np.ndarray,
    ref_idx: int,
    alt_idx: int,
    doublet: bool = False,
) -> np.ndarray:
    """
    Natural-log genotype likelihoods in the order 0/0, 1/0, 1/1[, 0.5, 1.5].
    """
    oth = [i for i in range(N_BASES) if i not in (ref_idx, alt_idx)]
    oth_sum = qmat[oth, 3].sum()
    gl = [
        qmat[ref_idx, 0] + qmat[alt_idx, 3] + oth_sum,
        qmat[ref_idx, 2] + qmat[alt_idx, 2] + oth_sum,
        qmat[ref_idx, 3] + qmat[alt_idx, 0] + oth_sum,
    ]
    if doublet:
        gl.append(qmat[ref_idx, 1] + base_counts[alt_idx] * LOG_QUARTER + oth_sum)
        gl.append(base_counts[ref_idx] * LOG_QUARTER + qmat[alt_idx, 1] + oth_sum)
    return np.asarray(gl, dtype=np.float64)


def phred_scale(gl: np.ndarray) -> list[int]:
    """PL = round(-10 * log10(L)), rounding halves away from zero."""
    return [int(math.floor(v + 0.5)) for v in (-10 * gl / LN10)]


def call_genotype(gl: np.ndarray) -> str:
    """Best of the three called states; doublet states are never called."""
    return GENOTYPES[int(np.argmax(gl[:3]))]


@dataclass
class SiteAggregate:
    """Cross-sample totals for the current SNP. Reused across SNPs by ``reset``."""

    base_counts: np.ndarray = field(default_factory=lambda: np.zeros(N_BASES, dtype=np.int64))
    total_count: int = 0
    ref_index: int = -1
    alt_index: int = -1
    inferred_ref: int = -1
    inferred_alt: int = -1
    ad: int = 0
    dp: int = 0
    oth: int = 0
    nr_ad: int = 0
    nr_dp: int = 0
    nr_oth: int = 0

    @property
    def ref_base(self) -> str:
        return CoordinateKernel.index_to_base(self.ref_index)

    @property
    def alt_base(self) -> str:
        return CoordinateKernel.index_to_base(self.alt_index)

    def reset(self) -> None:
        self.base_counts[:] = 0
        self.total_count = 0
        self.ref_index = self.alt_index = -1
        self.inferred_ref = self.inferred_alt = -1
        self.ad = self.dp = self.oth = 0
        self.nr_ad = self.nr_dp = self.nr_oth = 0


class AggregateStats:
    """Turns filled GroupTables into a SiteAggregate, or rejects the SNP."""

    def __init__(
        self,
        min_count: int = 20,
        min_maf: float = 0.0,
        genotype: bool = False,
        doublet_gl: bool = False,
    ):
        self.min_count = min_count
        self.min_maf = min_maf
        self.genotype = genotype
        self.doublet_gl = doublet_gl
        self.site = SiteAggregate()

    def finalize(self, groups: GroupTable, snp: Snp) -> SiteAggregate | RejectReason:
        """
        Aggregate all groups for ``snp``.

        Returns the shared ``SiteAggregate`` (valid until the next reset) or a
        RejectReason when the site fails the count or MAF filter.

        Raises:
            QualityValueError: a retained quality cannot be converted.
        """
        site = self.site
        site.base_counts[:] = 0
        for group in groups:
            group.total_count = int(group.base_counts.sum())
            site.base_counts += group.base_counts
        site.total_count = int(site.base_counts.sum())
        if site.total_count < self.min_count:
            return RejectReason.LOW_COUNT

        site.inferred_ref, site.inferred_alt = infer_alleles(site.base_counts)
        if site.base_counts[site.inferred_alt] < site.total_count * self.min_maf:
            return RejectReason.LOW_MAF

        if snp.ref is not None and snp.alt is not None:
            site.ref_index = CoordinateKernel.base_to_index(snp.ref)
            site.alt_index = CoordinateKernel.base_to_index(snp.alt)
        else:
            site.ref_index, site.alt_index = site.inferred_ref, site.inferred_alt

        ref_idx, alt_idx = site.ref_index, site.alt_index
        site.ad = int(site.base_counts[alt_idx])
        site.dp = int(site.base_counts[ref_idx]) + site.ad
        site.oth = site.total_count - site.dp
        site.nr_ad = site.nr_dp = site.nr_oth = 0

        for group in groups:
            group.ad = int(group.base_counts[alt_idx])
            group.dp = int(group.base_counts[ref_idx]) + group.ad
            group.oth = group.total_count - group.dp
            if group.ad:
                site.nr_ad += 1
            if group.dp:
                site.nr_dp += 1
            if group.oth:
                site.nr_oth += 1
            if self.genotype:
                group.qual_matrix[:] = quality_matrix(group.qualities)
                group.genotype_likelihoods = genotype_likelihoods(
                    group.qual_matrix, group.base_counts, ref_idx, alt_idx, self.doublet_gl
                )
        return site
