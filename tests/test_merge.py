"""Tests for fragment merging and matrix header rewriting."""

import pytest

from cellsnp.exceptions import MergeError
from cellsnp.io.merge import merge_matrix, merge_vcf, remove_files, rewrite_matrix
from cellsnp.io.output import MTX_HEADER


@pytest.fixture
def matrix_with_header(tmp_path):
    path = tmp_path / "cellSNP.tag.AD.mtx"
    path.write_text(MTX_HEADER)
    return path


def write_fragments(tmp_path, *contents):
    paths = []
    for i, text in enumerate(contents):
        path = tmp_path / f"cellSNP.tag.AD.mtx.{i}"
        path.write_text(text)
        paths.append(path)
    return paths


def test_merge_renumbers_sites(tmp_path, matrix_with_header):
    fragments = write_fragments(
        tmp_path,
        "1\t1\t5\n\n2\t2\t3\n2\t3\t1\n\n",
        "",
        "1\t1\t2\n\n",
    )
    nsite, nrecord = merge_matrix(matrix_with_header, fragments, 3, 3, 4)

    assert (nsite, nrecord) == (3, 4)
    assert matrix_with_header.read_text() == (
        MTX_HEADER + "3\t3\t4\n" + "1\t1\t5\n" + "2\t2\t3\n" + "2\t3\t1\n" + "3\t1\t2\n"
    )


def test_merge_counts_sites_without_records(tmp_path, matrix_with_header):
    # a passing site where every sample has a zero count
    fragments = write_fragments(tmp_path, "\n2\t1\t1\n\n", "\n")
    assert merge_matrix(matrix_with_header, fragments, 1, 3, 1) == (3, 1)
    assert matrix_with_header.read_text().endswith("3\t1\t1\n2\t1\t1\n")


def test_merge_count_mismatch(tmp_path, matrix_with_header):
    fragments = write_fragments(tmp_path, "1\t1\t5\n\n")
    with pytest.raises(MergeError):
        merge_matrix(matrix_with_header, fragments, 1, 1, 2)


def test_merge_site_mismatch(tmp_path, matrix_with_header):
    fragments = write_fragments(tmp_path, "1\t1\t5\n")  # truncated: no site terminator
    with pytest.raises(MergeError):
        merge_matrix(matrix_with_header, fragments, 1, 1, 1)


def test_merge_out_of_order_fragment(tmp_path, matrix_with_header):
    fragments = write_fragments(tmp_path, "2\t1\t5\n\n")
    with pytest.raises(MergeError):
        merge_matrix(matrix_with_header, fragments, 1, 1, 1)


def test_merge_malformed_fragment(tmp_path, matrix_with_header):
    fragments = write_fragments(tmp_path, "garbage\n\n")
    with pytest.raises(MergeError):
        merge_matrix(matrix_with_header, fragments, 1, 1, 1)


def test_merge_vcf_concatenates_bytes(tmp_path):
    out = tmp_path / "cellSNP.base.vcf"
    out.write_text("#header\n")
    frags = [tmp_path / "a", tmp_path / "b", tmp_path / "c"]
    frags[0].write_text("chr1\t10\n")
    frags[1].write_text("")
    frags[2].write_text("chr2\t5\n")

    merge_vcf(out, frags)

    assert out.read_text() == "#header\nchr1\t10\nchr2\t5\n"


def test_rewrite_matrix_inserts_summary(tmp_path):
    path = tmp_path / "m.mtx"
    path.write_text(MTX_HEADER + "1\t1\t4\n2\t2\t1\n")

    rewrite_matrix(path, 2, 2, 2)

    assert path.read_text() == MTX_HEADER + "2\t2\t2\n1\t1\t4\n2\t2\t1\n"
    assert not (tmp_path / "m.mtx.tmp").exists()


def test_rewrite_matrix_without_records(tmp_path):
    path = tmp_path / "m.mtx"
    path.write_text(MTX_HEADER)
    rewrite_matrix(path, 0, 5, 0)
    assert path.read_text() == MTX_HEADER + "0\t5\t0\n"


def test_rewrite_matrix_missing_body(tmp_path):
    path = tmp_path / "m.mtx"
    path.write_text(MTX_HEADER)
    with pytest.raises(MergeError):
        rewrite_matrix(path, 1, 1, 3)
    assert path.read_text() == MTX_HEADER
    assert not (tmp_path / "m.mtx.tmp").exists()


def test_remove_files_ignores_missing(tmp_path):
    present = tmp_path / "x"
    present.write_text("1")
    assert remove_files([present, tmp_path / "missing"]) == 2
    assert not present.exists()
