import logging

import anndata as ad
import numpy as np
import pandas as pd
import pytest

from sc_qc.core.exceptions import MetadataFieldError
from sc_qc.core.vis_values import QC_METRICS_KEY, choose_vis_values, qc_hunter


def _make_adata():
    """
    3 cells × 2 genes with numeric, string and single-level cell metadata
    """
    obs = pd.DataFrame(
        {
            "total_counts": [3.0, 5.0, 7.0],
            "batch": ["b1", "b2", "b1"],
            "plate": ["p1", "p1", "p1"],
        },
        index=["c1", "c2", "c3"],
    )
    var = pd.DataFrame(
        {"symbol": ["ACTB", "MT-CO1"], "is_feature_control": [False, True]},
        index=["g1", "g2"],
    )
    X = np.array([[1, 2], [0, 5], [3, 4]], dtype=float)
    adata = ad.AnnData(X=X, obs=obs, var=var)
    adata.layers["counts"] = X.copy()
    return adata


def test_none_resolves_to_none():
    assert choose_vis_values(_make_adata(), None) is None


def test_numeric_metadata_field():
    out = choose_vis_values(_make_adata(), "total_counts")
    assert out.name == "total_counts"
    assert out.is_numeric
    assert list(out.values) == [3.0, 5.0, 7.0]


def test_string_metadata_becomes_categorical():
    out = choose_vis_values(_make_adata(), "batch")
    assert isinstance(out.values, pd.Categorical)
    assert list(out.values.categories) == ["b1", "b2"]
    assert not out.is_numeric


def test_boolean_row_metadata_is_categorical():
    out = choose_vis_values(_make_adata(), "is_feature_control", mode="row", search="metadata")
    assert list(out.values.astype(str)) == ["False", "True"]


def test_feature_name_uses_expression_profile():
    out = choose_vis_values(_make_adata(), "g2", exprs_values="counts")
    assert out.name == "g2"
    assert list(out.values) == [2.0, 5.0, 4.0]


def test_cell_name_in_row_mode():
    out = choose_vis_values(_make_adata(), "c3", mode="row", exprs_values="counts")
    assert list(out.values) == [3.0, 4.0]


def test_metadata_search_does_not_fall_back_to_expression():
    with pytest.raises(MetadataFieldError, match="cell metadata"):
        choose_vis_values(_make_adata(), "g2", search="metadata")


def test_unknown_field_raises():
    with pytest.raises(MetadataFieldError, match="nope"):
        choose_vis_values(_make_adata(), "nope")


def test_integer_selects_metadata_column():
    out = choose_vis_values(_make_adata(), 1)
    assert out.name == "batch"


def test_vectors_and_series():
    adata = _make_adata()

    out = choose_vis_values(adata, [1, 2, 3])
    assert out.name == ""
    assert list(out.values) == [1.0, 2.0, 3.0]

    out = choose_vis_values(adata, pd.Series(["x", "y", "x"], name="group"))
    assert out.name == "group"
    assert list(out.values.categories) == ["x", "y"]

    with pytest.raises(MetadataFieldError):
        choose_vis_values(adata, [1, 2])


def test_discard_solo_drops_single_level():
    adata = _make_adata()
    assert choose_vis_values(adata, "plate", discard_solo=True) is None
    assert choose_vis_values(adata, "plate", discard_solo=False) is not None
    # numeric values are never discarded
    assert choose_vis_values(adata, [1, 1, 1], discard_solo=True) is not None


def test_compacted_qc_table_is_searched():
    adata = _make_adata()
    adata.obsm[QC_METRICS_KEY] = pd.DataFrame(
        {"pct_counts_mito": [10.0, 20.0, 30.0]}, index=adata.obs_names
    )

    assert qc_hunter(adata, "pct_counts_mito") == "pct_counts_mito"
    out = choose_vis_values(adata, "pct_counts_mito", search="metadata")
    assert list(out.values) == [10.0, 20.0, 30.0]


def test_qc_hunter_missing_field(caplog):
    adata = _make_adata()

    with pytest.raises(MetadataFieldError, match="total_features_by_counts"):
        qc_hunter(adata, "total_features_by_counts")

    with caplog.at_level(logging.WARNING, logger="sc_qc.core.vis_values"):
        assert qc_hunter(adata, "total_features_by_counts", error=False) is None
    assert "Failed to find" in caplog.text

    assert qc_hunter(adata, "is_feature_control", mode="row") == "is_feature_control"


def test_invalid_mode_and_search():
    adata = _make_adata()
    with pytest.raises(ValueError):
        choose_vis_values(adata, "batch", mode="cells")
    with pytest.raises(ValueError):
        choose_vis_values(adata, "batch", search="everywhere")
