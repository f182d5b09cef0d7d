"""
cellsnp - pileup and allele counting of expressed SNPs in single cells or bulk samples.

This package provides a command-line interface and Python API that counts the
alleles observed at a list of SNPs across cell barcodes (one BAM) or bulk
samples (one BAM per sample), writing sparse AD/DP/OTH matrices and VCFs.

Example usage:
    $ cellsnp run -s possorted.bam -b barcodes.tsv -R snps.vcf.gz -O out/ -p 4
"""

__version__ = "1.0.0"

from .models.core import CellsnpConfig, GroupingMode, Snp
from .pipeline import MergedOutput, Pipeline, ShardCoordinator

__all__ = [
    "__version__",
    "CellsnpConfig",
    "GroupingMode",
    "MergedOutput",
    "Pipeline",
    "ShardCoordinator",
    "Snp",
]
