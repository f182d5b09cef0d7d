"""Tests for configuration validation and grouping resolution."""

import pytest
from pydantic import ValidationError

from cellsnp.core.kernel import CoordinateKernel
from cellsnp.models.core import CellsnpConfig, GroupingMode, Snp


@pytest.fixture
def inputs(tmp_path):
    bams = []
    for name in ("a.bam", "b.bam"):
        path = tmp_path / name
        path.write_bytes(b"")
        bams.append(path)
    vcf = tmp_path / "snps.vcf"
    vcf.write_text("")
    return bams, vcf, tmp_path / "out"


def make(inputs, n_bams=1, **kwargs):
    bams, vcf, out = inputs
    return CellsnpConfig(sam_files=bams[:n_bams], regions_vcf=vcf, out_dir=out, **kwargs)


def test_barcode_mode_sorts_barcodes(inputs):
    config = make(inputs, barcodes=["CCC", "AAA", "BBB"])
    assert config.grouping_mode == GroupingMode.BARCODE
    assert config.sample_names == ["AAA", "BBB", "CCC"]
    assert config.cell_tag == "CB"
    assert config.use_umi
    assert config.nsample == 3


def test_sample_ids_keep_order_and_disable_cell_tag(inputs):
    config = make(inputs, n_bams=2, sample_ids=["s2", "s1"])
    assert config.grouping_mode == GroupingMode.SAMPLE
    assert config.sample_names == ["s2", "s1"]
    assert config.cell_tag is None


def test_default_sample_ids(inputs):
    config = make(inputs, n_bams=2, cell_tag="None", umi_tag="None")
    assert config.sample_names == ["Sample_0", "Sample_1"]
    assert not config.use_umi


def test_cell_tag_without_barcodes_is_error(inputs):
    with pytest.raises(ValidationError):
        make(inputs)


def test_barcodes_without_cell_tag_is_error(inputs):
    with pytest.raises(ValidationError):
        make(inputs, barcodes=["AAA"], cell_tag="none")


def test_barcodes_and_sample_ids_exclusive(inputs):
    with pytest.raises(ValidationError):
        make(inputs, barcodes=["AAA"], sample_ids=["s1"])


def test_barcode_mode_needs_one_file(inputs):
    with pytest.raises(ValidationError):
        make(inputs, n_bams=2, barcodes=["AAA"])


def test_sample_id_count_must_match_files(inputs):
    with pytest.raises(ValidationError):
        make(inputs, n_bams=2, sample_ids=["only_one"])


def test_duplicate_names_rejected(inputs):
    with pytest.raises(ValidationError):
        make(inputs, barcodes=["AAA", "AAA"])


@pytest.mark.parametrize(
    "barcodes, expected",
    [(["AAA"], "UR"), (None, None)],
)
def test_auto_umi_tag(inputs, barcodes, expected):
    if barcodes is None:
        config = make(inputs, cell_tag=None, umi_tag="Auto")
    else:
        config = make(inputs, barcodes=barcodes, umi_tag="Auto")
    assert config.umi_tag == expected


def test_missing_alignment_file(inputs, tmp_path):
    _, vcf, out = inputs
    with pytest.raises(ValidationError):
        CellsnpConfig(
            sam_files=[tmp_path / "nope.bam"], regions_vcf=vcf, out_dir=out, cell_tag=None
        )


def test_out_dir_must_not_be_file(inputs):
    bams, vcf, _ = inputs
    with pytest.raises(ValidationError):
        CellsnpConfig(sam_files=bams[:1], regions_vcf=vcf, out_dir=bams[0], cell_tag=None)


def test_invalid_thresholds(inputs):
    with pytest.raises(ValidationError):
        make(inputs, cell_tag=None, min_maf=1.5)
    with pytest.raises(ValidationError):
        make(inputs, cell_tag=None, nproc=0)


def test_config_is_frozen(inputs):
    config = make(inputs, cell_tag=None)
    with pytest.raises(ValidationError):
        config.min_count = 1


class TestSnp:
    def test_label_is_one_based(self):
        assert Snp(chrom="chr1", pos=99).label == "chr1:100"

    def test_allele_must_be_single_base(self):
        with pytest.raises(ValidationError):
            Snp(chrom="chr1", pos=0, ref="AT")

    def test_vcf_conversion_drops_multibase_alleles(self):
        snp = CoordinateKernel.vcf_to_internal("chr1", 100, "a", "GT")
        assert (snp.pos, snp.ref, snp.alt) == (99, "A", None)

    def test_chromosome_aliases(self):
        assert CoordinateKernel.chromosome_aliases("chr7") == ["chr7", "7"]
        assert CoordinateKernel.chromosome_aliases("7") == ["7", "chr7"]
