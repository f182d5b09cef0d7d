"""
Site Driver: pile up one SNP at a time across every alignment source.

For each SNP the driver fetches the reads overlapping it from every source,
resolves them, pushes them into the worker's ``GroupTable`` and finalizes the
site. ``pileup_shard`` runs the driver over a contiguous run of SNPs and
writes the passing ones, either to the final files (single worker) or to a
shard's private fragments.
"""

import logging
from collections import Counter
from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import dataclass

from .core.pileup import GroupTable
from .core.resolver import ReadResolver, ResolverConfig
from .core.stats import AggregateStats, SiteAggregate
from .exceptions import CellsnpError, SiteProcessingError
from .io.input import AlignmentSource
from .io.output import OutputPaths, SiteWriter
from .models.core import CellsnpConfig, GroupingMode, PushOutcome, RejectReason, Snp

logger = logging.getLogger(__name__)


@dataclass
class ShardResult:
    """What one worker reports back to the coordinator."""

    index: int
    processed: int
    passing: int
    nr_ad: int
    nr_dp: int
    nr_oth: int
    paths: OutputPaths


class SiteDriver:
    """
    Per-worker pileup state: resolver, group table and site aggregate.

    The group table and aggregate are allocated once and reset for every SNP.
    """

    def __init__(self, config: CellsnpConfig, sources: list[AlignmentSource]):
        self.config = config
        self.sources = sources
        self.barcode_mode = config.grouping_mode == GroupingMode.BARCODE
        self.resolver = ReadResolver(ResolverConfig.from_config(config))
        self.groups = GroupTable.prepare(config.sample_names, config.use_umi)
        self.stats = AggregateStats(
            min_count=config.min_count,
            min_maf=config.min_maf,
            genotype=config.genotype,
            doublet_gl=config.doublet_gl,
        )
        self.read_rejects: Counter[RejectReason] = Counter()
        self.push_outcomes: Counter[PushOutcome] = Counter()

        if not self.barcode_mode and len(sources) != len(self.groups):
            raise SiteProcessingError(
                f"{len(sources)} alignment sources for {len(self.groups)} sample IDs"
            )

    def reset(self) -> None:
        self.groups.reset()
        self.stats.site.reset()

    def process_site(self, snp: Snp) -> SiteAggregate | RejectReason:
        """
        Pile up ``snp`` over all sources.

        Returns:
            The finalized SiteAggregate (valid until the next call) or the
            RejectReason for a filtered SNP.

        Raises:
            MalformedReadError, GroupStateError, QualityValueError.
        """
        self.reset()
        pushed = 0
        for idx, source in enumerate(self.sources):
            contig = source.resolve_contig(snp.chrom)
            if contig is None:
                logger.debug("%s: chromosome absent from %s", snp.label, source.path)
                continue
            key = None if self.barcode_mode else self.groups.names[idx]
            for read in source.fetch(contig, snp.pos, snp.pos + 1):
                record = self.resolver.resolve(read, snp.pos)
                if isinstance(record, RejectReason):
                    self.read_rejects[record] += 1
                    continue
                outcome = self.groups.push(record, record.cell_barcode if self.barcode_mode else key)
                self.push_outcomes[outcome] += 1
                # duplicate UMIs still count towards the early depth check
                if outcome != PushOutcome.UNKNOWN_GROUP:
                    pushed += 1

        if pushed < self.config.min_count:
            return RejectReason.LOW_COUNT
        return self.stats.finalize(self.groups, snp)


def pileup_shard(
    config: CellsnpConfig,
    snps: list[Snp],
    paths: OutputPaths,
    index: int = 0,
    fragment: bool = False,
    on_site: Callable[[], None] | None = None,
) -> ShardResult:
    """
    Process ``snps`` in order and write every passing site to ``paths``.

    Alignment files and output handles are owned by this call and closed on
    every exit path.

    Raises:
        InputError: an alignment file cannot be opened.
        OutputError: an output file cannot be opened.
        SiteProcessingError: any failure while piling up a SNP.
    """
    processed = passing = 0
    nr_ad = nr_dp = nr_oth = 0
    rejected: Counter[RejectReason] = Counter()

    with ExitStack() as stack:
        sources = [stack.enter_context(AlignmentSource(path)) for path in config.sam_files]
        writer = stack.enter_context(SiteWriter(paths, fragment))
        driver = SiteDriver(config, sources)

        for snp in snps:
            try:
                outcome = driver.process_site(snp)
                if isinstance(outcome, RejectReason):
                    rejected[outcome] += 1
                    logger.debug("%s filtered: %s", snp.label, outcome.value)
                else:
                    writer.write_site(snp, outcome, driver.groups)
                    passing += 1
                    nr_ad += outcome.nr_ad
                    nr_dp += outcome.nr_dp
                    nr_oth += outcome.nr_oth
            except (CellsnpError, OSError, ValueError) as e:
                raise SiteProcessingError(f"Failed at SNP {snp.label} (shard {index}): {e}") from e
            processed += 1
            if on_site is not None:
                on_site()
        driver.reset()

    logger.debug(
        "Shard %d: %d SNPs processed, %d passed, filtered %s, reads rejected %s",
        index,
        processed,
        passing,
        dict(rejected),
        dict(driver.read_rejects),
    )
    return ShardResult(
        index=index,
        processed=processed,
        passing=passing,
        nr_ad=nr_ad,
        nr_dp=nr_dp,
        nr_oth=nr_oth,
        paths=paths,
    )
