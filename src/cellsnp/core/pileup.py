"""
Per-sample-group pileup tables.

A ``GroupTable`` holds one ``SampleGroup`` per roster entry (cell barcode or
bulk sample). Groups are created up front and reset between SNPs, never
re-created, so a worker allocates them once for its whole shard.
"""

from collections.abc import Iterator

import numpy as np

from cellsnp.exceptions import GroupStateError
from cellsnp.models.core import PileupRecord, PushOutcome

N_BASES = 5
N_STATES = 4


class SampleGroup:
    """
    Counts for one sample group at the current SNP.

    Base qualities are kept per base (not just counted) because genotype
    likelihoods need every quality value.
    """

    def __init__(self, name: str, use_umi: bool = False):
        self.name = name
        self.base_counts = np.zeros(N_BASES, dtype=np.int64)
        self.qualities: list[list[int]] = [[] for _ in range(N_BASES)]
        self.seen_umis: set[str] | None = set() if use_umi else None
        self.total_count = 0
        self.ad = 0
        self.dp = 0
        self.oth = 0
        self.qual_matrix = np.zeros((N_BASES, N_STATES), dtype=np.float64)
        self.genotype_likelihoods: np.ndarray | None = None

    def add(self, base_index: int, qual: int) -> None:
        self.base_counts[base_index] += 1
        self.qualities[base_index].append(qual)

    def reset(self) -> None:
        self.base_counts[:] = 0
        for quals in self.qualities:
            quals.clear()
        if self.seen_umis is not None:
            self.seen_umis.clear()
        self.total_count = self.ad = self.dp = self.oth = 0
        self.qual_matrix[:] = 0.0
        self.genotype_likelihoods = None

    def __repr__(self) -> str:
        return f"SampleGroup({self.name!r}, counts={self.base_counts.tolist()})"


class GroupTable:
    """Roster-ordered sample groups with UMI de-duplication."""

    def __init__(self, names: list[str], use_umi: bool = False):
        self.names = list(names)
        self.use_umi = use_umi
        self._groups = {name: SampleGroup(name, use_umi) for name in self.names}

    @classmethod
    def prepare(cls, names: list[str], use_umi: bool = False) -> "GroupTable":
        """Create an empty group for every roster name."""
        if len(set(names)) != len(names):
            raise GroupStateError("Sample group names must be unique")
        return cls(names, use_umi)

    def push(self, record: PileupRecord, key: str) -> PushOutcome:
        """
        Record one resolved read into the group named ``key``.

        Only the first read of each UMI within a group is counted; later reads
        sharing it are dropped.
        """
        group = self._groups.get(key)
        if group is None:
            return PushOutcome.UNKNOWN_GROUP
        if group.seen_umis is not None:
            if record.umi is None:
                raise GroupStateError(f"UMI grouping is on but read for {key!r} carries no UMI")
            if record.umi in group.seen_umis:
                return PushOutcome.DUPLICATE_UMI
            group.seen_umis.add(record.umi)
        group.add(record.base_index, record.qual)
        return PushOutcome.COUNTED

    def get(self, name: str) -> SampleGroup:
        try:
            return self._groups[name]
        except KeyError:
            raise GroupStateError(f"No sample group for roster entry {name!r}") from None

    def reset(self) -> None:
        for group in self._groups.values():
            group.reset()

    def __iter__(self) -> Iterator[SampleGroup]:
        for name in self.names:
            yield self.get(name)

    def __len__(self) -> int:
        return len(self.names)
