"""
Core data models for cellsnp.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CELL_TAG = "CB"
DEFAULT_UMI_TAG = "UR"
AUTO_TAG = "Auto"


class GroupingMode(str, Enum):
    """How reads are assigned to sample groups."""

    BARCODE = "barcode"  # one input file, groups keyed by the cell-barcode tag
    SAMPLE = "sample"  # one group per input file


class RejectReason(str, Enum):
    """Expected, non-fatal reasons for dropping a read or a SNP."""

    MISSING_UMI = "missing_umi"
    MISSING_BARCODE = "missing_barcode"
    LOW_MAPQ = "low_mapq"
    HIGH_FLAG = "high_flag"
    UNMAPPED = "unmapped"
    NO_SEQUENCE = "no_sequence"
    DELETION = "deletion"
    REF_SKIP = "ref_skip"
    SHORT_ALIGNMENT = "short_alignment"
    LOW_COUNT = "low_count"
    LOW_MAF = "low_maf"


class PushOutcome(str, Enum):
    """Result of pushing one resolved read into a GroupTable."""

    COUNTED = "counted"
    DUPLICATE_UMI = "duplicate_umi"
    UNKNOWN_GROUP = "unknown_group"


class RunState(str, Enum):
    """Lifecycle of a sharded pileup run."""

    IDLE = "idle"
    SHARDING = "sharding"
    WORKERS_RUNNING = "workers_running"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


class Snp(BaseModel):
    """
    A candidate SNP site.

    ``pos`` is 0-based. ``ref``/``alt`` are single upper-case letters from
    ``ACGTN`` or None when the input did not supply a usable allele.
    """

    model_config = ConfigDict(frozen=True)

    chrom: str
    pos: int = Field(ge=0, description="0-based position of the SNP")
    ref: str | None = None
    alt: str | None = None

    @field_validator("ref", "alt")
    @classmethod
    def validate_allele(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.upper()
        if len(v) != 1 or v not in "ACGTN":
            raise ValueError(f"Allele must be a single base from ACGTN, got {v!r}")
        return v

    @property
    def label(self) -> str:
        """1-based ``chrom:pos`` for messages."""
        return f"{self.chrom}:{self.pos + 1}"


@dataclass(frozen=True)
class PileupRecord:
    """What one read reports at one SNP. Recomputed for every (read, SNP) pair."""

    query_pos: int
    base: str
    base_index: int
    qual: int
    aligned_length: int
    cell_barcode: str | None = None
    umi: str | None = None


def _disable_tag(value: Any) -> Any:
    if isinstance(value, str) and value in ("None", "none"):
        return None
    return value


class CellsnpConfig(BaseModel):
    """
    Run configuration for cellsnp.

    Validated once and then shared read-only by every worker.
    """

    model_config = ConfigDict(frozen=True)

    # Input
    sam_files: list[Path] = Field(min_length=1)
    regions_vcf: Path
    barcodes: list[str] | None = None
    sample_ids: list[str] | None = None

    # Output
    out_dir: Path
    gzip: bool = False

    # Grouping
    cell_tag: str | None = DEFAULT_CELL_TAG
    umi_tag: str | None = DEFAULT_UMI_TAG

    # Site filters
    min_count: int = Field(default=20, ge=0)
    min_maf: float = Field(default=0.0, ge=0.0, le=1.0)

    # Read filters
    min_len: int = Field(default=30, ge=0)
    min_mapq: int = Field(default=20, ge=0)
    max_flag: int = Field(default=255, ge=0)

    # Genotyping
    genotype: bool = False
    doublet_gl: bool = False

    # Performance
    nproc: int = Field(default=1, ge=1)
    backend: str = "loky"

    @model_validator(mode="before")
    @classmethod
    def resolve_grouping(cls, data: Any) -> Any:
        """
        Settle which grouping strategy is active and resolve the tag names.

        Exactly one of barcodes and sample IDs ends up set.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        barcodes = data.get("barcodes")
        sample_ids = data.get("sample_ids")
        cell_tag = _disable_tag(data.get("cell_tag", DEFAULT_CELL_TAG))
        umi_tag = _disable_tag(data.get("umi_tag", DEFAULT_UMI_TAG))

        if sample_ids is not None:
            if barcodes is not None:
                raise ValueError("Barcodes and sample IDs are mutually exclusive")
            cell_tag = None

        if cell_tag and barcodes is not None:
            data["barcodes"] = sorted(barcodes)
        elif (cell_tag is None) != (barcodes is None):
            raise ValueError("Cell tag and barcodes must be specified together")
        elif sample_ids is None:
            data["sample_ids"] = [f"Sample_{i}" for i in range(len(data.get("sam_files") or []))]

        if umi_tag == AUTO_TAG:
            umi_tag = DEFAULT_UMI_TAG if data.get("barcodes") is not None else None

        data["cell_tag"] = cell_tag
        data["umi_tag"] = umi_tag
        return data

    @field_validator("sam_files")
    @classmethod
    def validate_sam_files(cls, v: list[Path]) -> list[Path]:
        for path in v:
            if not path.exists():
                raise ValueError(f"Alignment file not found: {path}")
        return v

    @field_validator("regions_vcf")
    @classmethod
    def validate_file_exists(cls, v: Path) -> Path:
        if not v.exists():
            raise ValueError(f"File not found: {v}")
        return v

    @field_validator("out_dir")
    @classmethod
    def validate_output_dir(cls, v: Path) -> Path:
        if v.is_file():
            raise ValueError(f"Output path must be a directory, not a file: {v}")
        return v

    @model_validator(mode="after")
    def validate_roster(self) -> "CellsnpConfig":
        names = self.sample_names
        if not names:
            raise ValueError("At least one barcode or sample ID is required")
        if len(set(names)) != len(names):
            raise ValueError("Barcodes / sample IDs must be unique")
        if self.barcodes is not None and len(self.sam_files) != 1:
            raise ValueError(
                f"Barcode grouping takes exactly one alignment file, got {len(self.sam_files)}"
            )
        if self.sample_ids is not None and len(self.sample_ids) != len(self.sam_files):
            raise ValueError(
                f"Num of sample IDs ({len(self.sample_ids)}) is not equal to "
                f"num of alignment files ({len(self.sam_files)})"
            )
        return self

    @property
    def grouping_mode(self) -> GroupingMode:
        return GroupingMode.BARCODE if self.barcodes is not None else GroupingMode.SAMPLE

    @property
    def sample_names(self) -> list[str]:
        """The roster: sample-group names in output order."""
        if self.barcodes is not None:
            return list(self.barcodes)
        return list(self.sample_ids or [])

    @property
    def nsample(self) -> int:
        return len(self.sample_names)

    @property
    def use_umi(self) -> bool:
        return self.umi_tag is not None
