"""
Unrecoverable error types.

Anything raised from here aborts the whole run. Reads and SNPs that merely fail
a filter are reported with ``RejectReason`` values instead.
"""


class CellsnpError(Exception):
    """Base class for fatal cellsnp errors."""


class InputError(CellsnpError):
    """An input file is missing, unreadable or not indexed."""


class MalformedReadError(CellsnpError):
    """A read's CIGAR, sequence or coordinates cannot be resolved."""


class QualityValueError(CellsnpError):
    """A base quality cannot be converted into genotype likelihoods."""


class GroupStateError(CellsnpError):
    """A sample group is missing or inconsistent with the run configuration."""


class SiteProcessingError(CellsnpError):
    """Failure while piling up one SNP."""


class ShardError(CellsnpError):
    """A worker failed while processing its shard."""


class MergeError(CellsnpError):
    """Shard fragments could not be merged consistently."""


class OutputError(CellsnpError):
    """An output or temporary file could not be opened or written."""
