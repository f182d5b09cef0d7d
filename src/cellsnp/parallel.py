"""Shard planning and parallel shard execution with joblib."""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from joblib import Parallel, delayed
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from .utils.logging import console

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Shard:
    """A contiguous range ``[start, stop)`` of the SNP list."""

    index: int
    start: int
    stop: int

    def __len__(self) -> int:
        return self.stop - self.start


def plan_shards(n_snps: int, n_workers: int) -> list[Shard]:
    """
    Split ``n_snps`` into ``n_workers`` contiguous shards.

    Every shard gets ``n_snps // n_workers`` SNPs and the last one also takes
    the remainder, so with fewer SNPs than workers the leading shards are empty.
    """
    if n_workers < 1:
        raise ValueError(f"Need at least one worker, got {n_workers}")
    size = n_snps // n_workers
    shards = [Shard(i, i * size, (i + 1) * size) for i in range(n_workers - 1)]
    shards.append(Shard(n_workers - 1, (n_workers - 1) * size, n_snps))
    return shards


class ParallelProcessor:
    """Runs independent tasks on a joblib worker pool."""

    def __init__(self, n_jobs: int = -1, backend: str = "loky"):
        """
        Args:
            n_jobs: Number of parallel jobs (-1 for all CPUs)
            backend: joblib backend ('loky', 'threading', 'multiprocessing')
        """
        self.n_jobs = n_jobs if n_jobs > 0 else os.cpu_count()
        self.backend = backend

    def map(
        self,
        func: Callable,
        items: list[Any],
        description: str = "Processing",
        show_progress: bool = True,
    ) -> list[Any]:
        """
        Map function over items in parallel.

        Results come back in item order. The first task failure is re-raised
        once it is collected; joblib then stops dispatching remaining tasks.
        """
        logger.debug("Running %d tasks on %d %s workers", len(items), self.n_jobs, self.backend)
        if not show_progress:
            return Parallel(n_jobs=self.n_jobs, backend=self.backend)(
                delayed(func)(item) for item in items
            )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task(f"[cyan]{description}...", total=len(items))
            results = []
            with Parallel(n_jobs=self.n_jobs, backend=self.backend, return_as="generator") as parallel:
                for result in parallel(delayed(func)(item) for item in items):
                    results.append(result)
                    progress.update(task, advance=1)
            return results

    def starmap(
        self,
        func: Callable,
        items: list[tuple],
        description: str = "Processing",
        show_progress: bool = True,
    ) -> list[Any]:
        """Like ``map`` but each item is unpacked into positional arguments."""
        return self.map(_Star(func), items, description, show_progress)


class _Star:
    """Picklable ``lambda args: func(*args)`` for process backends."""

    def __init__(self, func: Callable):
        self.func = func

    def __call__(self, args: tuple) -> Any:
        return self.func(*args)
