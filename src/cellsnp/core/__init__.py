"""
Core module for cellsnp.

Provides the pileup engine: read resolution, per-sample grouping and site statistics.
"""

from .kernel import BASES, CoordinateKernel
from .pileup import GroupTable, SampleGroup
from .resolver import ReadResolver, ResolverConfig
from .stats import AggregateStats, SiteAggregate, infer_alleles

__all__ = [
    "AggregateStats",
    "BASES",
    "CoordinateKernel",
    "GroupTable",
    "ReadResolver",
    "ResolverConfig",
    "SampleGroup",
    "SiteAggregate",
    "infer_alleles",
]
