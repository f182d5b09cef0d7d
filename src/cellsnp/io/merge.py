"""
Merging shard fragments into the final outputs.

Matrix fragments hold ``localSite<TAB>sample<TAB>count`` lines with a blank
line closing every site. Merging replaces the local site ordinal with the
global one, in shard order. VCF fragments are concatenated byte for byte.
"""

import logging
import os
import shutil
from pathlib import Path

from ..exceptions import MergeError, OutputError
from ..utils.logging import log_call
from .output import open_output

logger = logging.getLogger(__name__)


def summary_line(nsite: int, nsample: int, nrecord: int) -> str:
    return f"{nsite}\t{nsample}\t{nrecord}\n"


@log_call()
def merge_matrix(
    out_path: Path,
    fragments: list[Path],
    nsample: int,
    expected_sites: int,
    expected_records: int,
) -> tuple[int, int]:
    """
    Append the summary line and the renumbered fragments to ``out_path``.

    ``out_path`` must already contain the comment header.

    Returns:
        (sites, records) actually merged.

    Raises:
        MergeError: a fragment is malformed or the merged counts differ from
            the counts the workers reported.
    """
    site = 1
    nrecord = 0
    try:
        with open_output(out_path, "at") as out:
            out.write(summary_line(expected_sites, nsample, expected_records))
            for fragment in fragments:
                local = 1
                with open(fragment, encoding="utf-8") as f:
                    for line in f:
                        line = line.rstrip("\n")
                        if not line:
                            site += 1
                            local += 1
                            continue
                        ordinal, rest = line.split("\t", 1)
                        if int(ordinal) != local:
                            raise MergeError(
                                f"Fragment {fragment} is out of order: site {ordinal}, expected {local}"
                            )
                        out.write(f"{site}\t{rest}\n")
                        nrecord += 1
    except OSError as e:
        raise OutputError(f"Failed to merge matrix into {out_path}: {e}") from e
    except ValueError as e:
        raise MergeError(f"Malformed matrix fragment while merging {out_path}: {e}") from e

    nsite = site - 1
    if nsite != expected_sites or nrecord != expected_records:
        raise MergeError(
            f"Merged {out_path.name} has {nsite} sites / {nrecord} records, "
            f"workers reported {expected_sites} / {expected_records}"
        )
    return nsite, nrecord


@log_call()
def merge_vcf(out_path: Path, fragments: list[Path], compress: bool = False) -> None:
    """Append fragments to ``out_path`` unchanged, in order."""
    try:
        with open_output(out_path, "ab", compress) as out:
            for fragment in fragments:
                with open(fragment, "rb") as f:
                    shutil.copyfileobj(f, out)
    except OSError as e:
        raise OutputError(f"Failed to merge VCF into {out_path}: {e}") from e


@log_call()
def rewrite_matrix(path: Path, nsite: int, nsample: int, nrecord: int) -> None:
    """
    Insert the summary line after the comment header of a directly written matrix.

    The file is copied to ``<path>.tmp`` with the summary in place, then
    renamed over the original.
    """
    tmp = path.with_name(f"{path.name}.tmp")
    try:
        with open(path, encoding="utf-8") as src, open(tmp, "w", encoding="utf-8") as dst:
            line = src.readline()
            while line.startswith("%"):
                dst.write(line)
                line = src.readline()
            if not line and nrecord:
                raise MergeError(f"{path} has no records but {nrecord} were reported")
            dst.write(summary_line(nsite, nsample, nrecord))
            dst.write(line)
            shutil.copyfileobj(src, dst)
        os.replace(tmp, path)
    except OSError as e:
        _discard(tmp)
        raise OutputError(f"Failed to rewrite matrix {path}: {e}") from e
    except MergeError:
        _discard(tmp)
        raise


def remove_files(paths: list[Path]) -> int:
    """Best-effort removal; failures are logged, never raised."""
    removed = 0
    for path in paths:
        try:
            path.unlink(missing_ok=True)
            removed += 1
        except OSError as e:
            logger.warning("Could not remove temporary file %s: %s", path, e)
    return removed


def _discard(path: Path) -> None:
    remove_files([path])
