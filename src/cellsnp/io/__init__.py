"""
I/O module for cellsnp.

Provides the SNP list and alignment readers, the matrix/VCF writers and the
fragment merge step.
"""

from .input import AlignmentSource, SnpReader, load_snps, read_list_file
from .merge import merge_matrix, merge_vcf, rewrite_matrix
from .output import OutputPaths, SiteWriter, write_headers, write_samples

__all__ = [
    "AlignmentSource",
    "OutputPaths",
    "SiteWriter",
    "SnpReader",
    "load_snps",
    "merge_matrix",
    "merge_vcf",
    "read_list_file",
    "rewrite_matrix",
    "write_headers",
    "write_samples",
]
