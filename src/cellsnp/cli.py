"""
CLI Entry Point: Exposes the cellsnp functionality via command line.
"""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from . import __version__
from .exceptions import CellsnpError
from .io.input import read_list_file
from .models.core import DEFAULT_CELL_TAG, DEFAULT_UMI_TAG, CellsnpConfig
from .pipeline import Pipeline
from .utils.logging import get_logger, setup_logging

app = typer.Typer(help="cellsnp: pileup expressed alleles in single cells or bulk samples")

console = Console()
logger = get_logger(__name__)


@app.callback()
def main():
    """
    cellsnp: pileup expressed alleles in single cells or bulk samples
    """
    pass


def _split_commas(values: list[str] | None) -> list[str]:
    items: list[str] = []
    for value in values or []:
        items.extend(v.strip() for v in value.split(",") if v.strip())
    return items


def _fail(message: str) -> None:
    console.print(f"[bold red]Error: {message}[/bold red]")
    raise typer.Exit(code=1)


@app.command()
def run(
    sam_files: list[str] | None = typer.Option(
        None,
        "--sam-file",
        "-s",
        help="Indexed BAM/SAM/CRAM file(s), comma separated or repeated.",
    ),
    sam_file_list: Path | None = typer.Option(
        None, "--sam-file-list", "-S", help="File listing alignment files, one per line"
    ),
    out_dir: Path = typer.Option(..., "--out-dir", "-O", help="Output directory"),
    regions_vcf: Path = typer.Option(
        ..., "--regions-vcf", "-R", help="VCF (optionally gzipped) with the SNPs to genotype"
    ),
    barcode_file: Path | None = typer.Option(
        None, "--barcode-file", "-b", help="Cell barcodes, one per line"
    ),
    sample_list: Path | None = typer.Option(
        None, "--sample-list", "-i", help="Sample IDs, one per line, in alignment file order"
    ),
    sample_ids: str | None = typer.Option(
        None, "--sample-ids", "-I", help="Comma separated sample IDs, in alignment file order"
    ),
    genotype: bool = typer.Option(
        False, "--genotype", help="Compute genotype likelihoods and write cellSNP.cells.vcf"
    ),
    gzip_output: bool = typer.Option(False, "--gzip", help="gzip-compress the output VCFs"),
    nproc: int = typer.Option(1, "--nproc", "-p", min=1, help="Number of worker processes"),
    cell_tag: str = typer.Option(
        DEFAULT_CELL_TAG, "--cell-tag", help="Tag for cell barcodes; 'None' for bulk samples"
    ),
    umi_tag: str = typer.Option(
        DEFAULT_UMI_TAG,
        "--umi-tag",
        help="Tag for UMIs; 'Auto' picks UR with barcodes, 'None' counts reads",
    ),
    min_count: int = typer.Option(20, "--min-count", help="Minimum aggregated count per SNP"),
    min_maf: float = typer.Option(0.0, "--min-maf", help="Minimum minor allele frequency"),
    doublet_gl: bool = typer.Option(
        False, "--doublet-gl", help="Keep doublet genotype likelihoods in the PL field"
    ),
    min_len: int = typer.Option(30, "--min-len", help="Minimum aligned length of a read"),
    min_mapq: int = typer.Option(20, "--min-mapq", help="Minimum mapping quality"),
    max_flag: int = typer.Option(255, "--max-flag", help="Maximum FLAG value of a read"),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose debug logging"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write logs to this file"),
):
    """
    Pile up and count alleles at the SNPs of a VCF.
    """
    setup_logging(verbose=verbose, log_file=str(log_file) if log_file else None)

    try:
        # 1. Alignment files
        files = _split_commas(sam_files)
        if sam_file_list is not None:
            if files:
                _fail("--sam-file and --sam-file-list are mutually exclusive")
            files = read_list_file(sam_file_list)
        if not files:
            _fail("No alignment files given via --sam-file or --sam-file-list")

        # 2. Roster
        barcodes = read_list_file(barcode_file) if barcode_file is not None else None
        ids = None
        if sample_list is not None:
            if sample_ids is not None:
                _fail("--sample-list and --sample-ids are mutually exclusive")
            ids = read_list_file(sample_list)
        elif sample_ids is not None:
            ids = _split_commas([sample_ids])

        config = CellsnpConfig(
            sam_files=[Path(f) for f in files],
            regions_vcf=regions_vcf,
            barcodes=barcodes,
            sample_ids=ids,
            out_dir=out_dir,
            gzip=gzip_output,
            cell_tag=cell_tag,
            umi_tag=umi_tag,
            min_count=min_count,
            min_maf=min_maf,
            min_len=min_len,
            min_mapq=min_mapq,
            max_flag=max_flag,
            genotype=genotype,
            doublet_gl=doublet_gl,
            nproc=nproc,
        )
    except ValidationError as e:
        errors = "; ".join(err["msg"] for err in e.errors())
        console.print(f"[bold red]Invalid options: {errors}[/bold red]")
        raise typer.Exit(code=1) from e
    except CellsnpError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e

    logger.debug("Configuration: %s", config.model_dump())
    try:
        Pipeline(config).run()
    except CellsnpError as e:
        logger.error("%s", e)
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command()
def version():
    """Print the version."""
    console.print(f"py-cellsnp {__version__}")


if __name__ == "__main__":
    app()
