"""
Pipeline Orchestrator: Manages the execution flow of cellsnp.

This module handles:
1. Reading the candidate SNPs.
2. Writing the samples file and the output headers.
3. Splitting the SNPs into shards and piling them up on a worker pool.
4. Merging shard fragments into the final matrices and VCFs.
"""

import logging
from dataclasses import dataclass

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from .core.kernel import CoordinateKernel
from .driver import ShardResult, pileup_shard
from .exceptions import CellsnpError, InputError, ShardError
from .io.input import AlignmentSource, load_snps
from .io.merge import merge_matrix, merge_vcf, remove_files, rewrite_matrix
from .io.output import OUT_SAMPLES, OutputPaths, write_headers, write_samples
from .models.core import CellsnpConfig, RunState, Snp
from .parallel import ParallelProcessor, Shard, plan_shards
from .utils.logging import console as log_console
from .utils.logging import run_clock, timed

logger = logging.getLogger(__name__)


@dataclass
class MergedOutput:
    """Totals of a finished run."""

    paths: OutputPaths
    nsample: int
    processed: int
    nsite: int
    nr_ad: int
    nr_dp: int
    nr_oth: int


def run_shard(
    config: CellsnpConfig, snps: list[Snp], shard: Shard, paths: OutputPaths
) -> ShardResult:
    """Worker entry point: pile up one shard into its private fragments."""
    try:
        return pileup_shard(config, snps, paths.fragment(shard.index), shard.index, fragment=True)
    except CellsnpError as e:
        raise ShardError(
            f"Shard {shard.index} (SNPs {shard.start + 1}-{shard.stop}) failed: {e}"
        ) from e


class ShardCoordinator:
    """
    Runs the pileup over all SNPs and produces the final outputs.

    The final files must already hold their headers. With one worker the
    results are appended to them directly and the matrix summary lines are
    filled in afterwards; with more, every shard writes private fragments that
    are merged in shard order.
    """

    def __init__(self, config: CellsnpConfig, paths: OutputPaths, show_progress: bool = True):
        self.config = config
        self.paths = paths
        self.show_progress = show_progress
        self.state = RunState.IDLE
        self.results: list[ShardResult] = []

    def _transition(self, state: RunState) -> None:
        logger.debug("Coordinator %s -> %s", self.state.value, state.value)
        self.state = state

    def run(self, snps: list[Snp]) -> MergedOutput:
        """
        Process ``snps`` with ``config.nproc`` workers.

        Raises:
            ShardError: a worker failed (multi-worker runs).
            SiteProcessingError: a SNP failed (single-worker runs).
            MergeError / OutputError: fragments could not be merged or written.
        """
        if self.state != RunState.IDLE:
            raise CellsnpError(f"Coordinator already used (state {self.state.value})")
        fragments: list[OutputPaths] = []
        try:
            if self.config.nproc == 1:
                return self._run_direct(snps)
            return self._run_sharded(snps, fragments)
        except BaseException:
            failed_in = self.state
            self._transition(RunState.FAILED)
            logger.error("Run failed during %s", failed_in.value)
            remove_files([p for f in fragments for p in (*f.matrices, *f.vcfs)])
            raise

    def _run_direct(self, snps: list[Snp]) -> MergedOutput:
        self._transition(RunState.SHARDING)
        shard = Shard(0, 0, len(snps))

        self._transition(RunState.WORKERS_RUNNING)
        if self.show_progress:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                console=log_console,
                transient=True,
            ) as progress:
                task = progress.add_task("[cyan]Piling up SNPs...", total=len(shard))
                result = pileup_shard(
                    self.config, snps, self.paths, on_site=lambda: progress.advance(task)
                )
        else:
            result = pileup_shard(self.config, snps, self.paths)
        self.results = [result]

        self._transition(RunState.MERGING)
        nsample = self.config.nsample
        for path, nrecord in zip(self.paths.matrices, (result.nr_ad, result.nr_dp, result.nr_oth)):
            rewrite_matrix(path, result.passing, nsample, nrecord)
        return self._finish()

    def _run_sharded(self, snps: list[Snp], fragments: list[OutputPaths]) -> MergedOutput:
        self._transition(RunState.SHARDING)
        shards = plan_shards(len(snps), self.config.nproc)
        fragments.extend(self.paths.fragment(s.index) for s in shards)
        logger.debug("Shard sizes: %s", [len(s) for s in shards])

        self._transition(RunState.WORKERS_RUNNING)
        processor = ParallelProcessor(n_jobs=self.config.nproc, backend=self.config.backend)
        self.results = processor.starmap(
            run_shard,
            [(self.config, snps[s.start : s.stop], s, self.paths) for s in shards],
            description="Piling up SNPs",
            show_progress=self.show_progress,
        )

        self._transition(RunState.MERGING)
        nsite = sum(r.passing for r in self.results)
        nsample = self.config.nsample
        with timed("Merging fragments", logger):
            merge_matrix(
                self.paths.mtx_ad,
                [f.mtx_ad for f in fragments],
                nsample,
                nsite,
                sum(r.nr_ad for r in self.results),
            )
            merge_matrix(
                self.paths.mtx_dp,
                [f.mtx_dp for f in fragments],
                nsample,
                nsite,
                sum(r.nr_dp for r in self.results),
            )
            merge_matrix(
                self.paths.mtx_oth,
                [f.mtx_oth for f in fragments],
                nsample,
                nsite,
                sum(r.nr_oth for r in self.results),
            )
            merge_vcf(self.paths.vcf_base, [f.vcf_base for f in fragments], self.paths.compress_vcf)
            if self.paths.vcf_cells is not None:
                merge_vcf(
                    self.paths.vcf_cells, [f.vcf_cells for f in fragments], self.paths.compress_vcf
                )

        remove_files([p for f in fragments for p in (*f.matrices, *f.vcfs)])
        return self._finish()

    def _finish(self) -> MergedOutput:
        self._transition(RunState.DONE)
        return MergedOutput(
            paths=self.paths,
            nsample=self.config.nsample,
            processed=sum(r.processed for r in self.results),
            nsite=sum(r.passing for r in self.results),
            nr_ad=sum(r.nr_ad for r in self.results),
            nr_dp=sum(r.nr_dp for r in self.results),
            nr_oth=sum(r.nr_oth for r in self.results),
        )


class Pipeline:
    def __init__(self, config: CellsnpConfig, show_progress: bool = True):
        self.config = config
        self.show_progress = show_progress
        self.console = Console()

    def run(self) -> MergedOutput:
        """Execute the pipeline."""
        config = self.config
        self.console.print("[bold blue]Starting cellsnp pipeline[/bold blue]")
        self.console.print(f"Output directory: {config.out_dir}")
        config.out_dir.mkdir(parents=True, exist_ok=True)

        with run_clock(logger):
            # 1. Load SNPs
            with self.console.status("[bold green]Loading SNPs...[/bold green]"), timed(
                "Loading SNPs", logger
            ):
                snps = load_snps(config.regions_vcf)
            if not snps:
                raise InputError(f"No SNPs loaded from {config.regions_vcf}")
            self.console.print(f"Loaded [bold]{len(snps)}[/bold] SNPs.")

            # 2. Check chromosome naming against the alignment headers
            self._check_chromosomes(snps)

            # 3. Samples file and output headers
            paths = OutputPaths.for_dir(config.out_dir, config.genotype, config.gzip)
            write_samples(config.out_dir / OUT_SAMPLES, config.sample_names)
            write_headers(paths, config.sample_names)

            # 4. Pileup, then merge
            coordinator = ShardCoordinator(config, paths, self.show_progress)
            with timed("Pileup", logger):
                result = coordinator.run(snps)

        self.console.print(
            f"Processed [bold]{result.processed}[/bold] SNPs; "
            f"[bold]{result.nsite}[/bold] passed filters across {result.nsample} samples."
        )
        self.console.print("[bold green]Pipeline completed successfully.[/bold green]")
        return result

    def _check_chromosomes(self, snps: list[Snp]) -> None:
        """Warn about SNP chromosomes that an alignment file does not contain."""
        chroms = list(dict.fromkeys(snp.chrom for snp in snps))
        for path in self.config.sam_files:
            with AlignmentSource(path) as source:
                missing = [c for c in chroms if source.resolve_contig(c) is None]
            if missing:
                norm = {CoordinateKernel.normalize_chromosome(c) for c in missing}
                self.console.print(
                    f"[yellow]Warning: {path.name} does not contain chromosome(s) "
                    f"{', '.join(sorted(norm))}; those SNPs get no counts from it.[/yellow]"
                )
