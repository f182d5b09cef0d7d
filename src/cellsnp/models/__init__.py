"""
Data models for cellsnp.

Provides Pydantic models for SNPs and configuration, plus the enums shared by the engine.
"""

from .core import (
    CellsnpConfig,
    GroupingMode,
    PileupRecord,
    PushOutcome,
    RejectReason,
    RunState,
    Snp,
)

__all__ = [
    "CellsnpConfig",
    "GroupingMode",
    "PileupRecord",
    "PushOutcome",
    "RejectReason",
    "RunState",
    "Snp",
]
