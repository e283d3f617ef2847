from typing import cast

import anndata as ad
import numpy as np
import pandas as pd
import plotly.graph_objs as go
import pytest
import scipy.sparse as sp

from sc_qc.core.exceptions import AssayError, MetadataFieldError
from sc_qc.metrics.qc_metrics import calculate_qc_metrics
from sc_qc.plot.colours import TABLEAU_10_MEDIUM, colour
from sc_qc.plot.highest_exprs import HighestExprsPlot, plot_highest_exprs


def _make_adata(sparse: bool = False):
    """
    Tiny AnnData with:
    - 4 cells (totals 16, 26, 38, 50), batches a, a, b, b, one plate
    - 5 genes (totals 100, 6, 2, 20, 2; g3/g5 tie)
    """
    X = np.array(
        [
            [10, 0, 1, 5, 0],  # c1
            [20, 1, 0, 5, 0],  # c2
            [30, 2, 1, 5, 0],  # c3
            [40, 3, 0, 5, 2],  # c4
        ],
        dtype=float,
    )
    obs = pd.DataFrame(
        {
            "batch": ["a", "a", "b", "b"],
            "plate": ["p1", "p1", "p1", "p1"],
        },
        index=pd.Index(["c1", "c2", "c3", "c4"]),
    )
    var = pd.DataFrame(
        {"symbol": ["S1", "S2", "S3", "S4", "S5"]},
        index=pd.Index(["g1", "g2", "g3", "g4", "g5"]),
    )
    adata = ad.AnnData(X=X.copy(), obs=obs, var=var)
    adata.layers["counts"] = sp.csr_matrix(X) if sparse else X
    return adata


def test_compute_data_ranks_and_reshapes():
    view = HighestExprsPlot(_make_adata(), n=3, controls=None, colour_cells_by=None)
    data = view.compute_data()

    assert data.feature_order == ["g1", "g4", "g2"]
    assert data.top_pct == pytest.approx(100 * 126 / 130)
    assert data.title == "Top 3 account for 96.9% of total"
    assert data.x_column == "pct_total"
    assert data.x_title == "% of total counts"

    cells = data.cells
    assert len(cells) == 4 * 3
    # cell-major: all chosen features of c1 first
    assert list(cells["Cell"][:3]) == ["c1", "c1", "c1"]
    assert list(cells["Tag"][:3].astype(str)) == ["g1", "g4", "g2"]
    assert list(cells["value"][:3]) == pytest.approx([62.5, 31.25, 0.0])
    # most expressed feature is the last category (top of the y axis)
    assert list(cells["Tag"].cat.categories) == ["g2", "g4", "g1"]
    assert "colour_by" not in cells.columns

    features = data.features
    assert list(features["Feature"].astype(str)) == ["g1", "g4", "g2"]
    assert list(features["pct_total"]) == pytest.approx([100 * 100 / 130, 100 * 20 / 130, 100 * 6 / 130])


def test_render_figure_basic():
    fig = cast(go.Figure, plot_highest_exprs(_make_adata(), n=3))

    assert isinstance(fig, go.Figure)
    assert fig.layout.title.text == "Top 3 account for 96.9% of total"
    assert fig.layout.xaxis.title.text == "% of total counts"
    assert fig.layout.yaxis.title.text == "Feature"
    assert list(fig.layout.yaxis.categoryarray) == ["g2", "g4", "g1"]

    # no QC metrics: uncoloured ticks plus grey feature points
    assert len(fig.data) == 2
    ticks, points = fig.data
    assert ticks.marker.symbol == "line-ns-open"
    assert ticks.opacity == pytest.approx(0.6)
    assert points.marker.color == colour("grey80")
    assert points.marker.line.color == colour("gray30")

    # legend sits inside, bottom-right
    assert fig.layout.legend.x == 1
    assert fig.layout.legend.y == 0


def test_drop_features_and_ties():
    view = HighestExprsPlot(
        _make_adata(), n=5, drop_features=["g1"], controls=None, colour_cells_by=None
    )
    data = view.compute_data()

    # g3 and g5 tie; original order is kept
    assert data.feature_order == ["g4", "g2", "g3", "g5"]
    assert data.top_pct == pytest.approx(100 * 30 / 130)


def test_drop_features_by_mask():
    view = HighestExprsPlot(
        _make_adata(),
        n=2,
        drop_features=[True, False, False, True, False],
        controls=None,
        colour_cells_by=None,
    )
    assert view.compute_data().feature_order == ["g2", "g3"]


def test_raw_values():
    view = HighestExprsPlot(
        _make_adata(), n=2, as_percentage=False, controls=None, colour_cells_by=None
    )
    data = view.compute_data()

    assert data.title is None
    assert data.x_title == "counts"
    assert data.x_column == "ave_counts"
    # summary point is the feature total, the value used for ranking
    assert list(data.features["ave_counts"]) == [100.0, 20.0]
    assert list(data.cells["value"][:2]) == [10.0, 5.0]

    fig = view.render_figure(data)
    assert fig.layout.title.text is None
    assert fig.layout.xaxis.title.text == "counts"


def test_feature_names_from_metadata():
    view = HighestExprsPlot(
        _make_adata(), n=3, feature_names_to_plot="symbol", controls=None, colour_cells_by=None
    )
    assert view.compute_data().feature_order == ["S1", "S4", "S2"]


def test_defaults_pick_up_qc_metrics():
    adata = calculate_qc_metrics(_make_adata(), feature_controls={"spike": ["g5"]})
    fig = plot_highest_exprs(adata, n=5)

    ticks = fig.data[0]
    assert ticks.marker.showscale
    assert ticks.marker.colorbar.title.text == "total_features_by_counts"
    assert ticks.marker.colorscale[0][1] == colour("lightgoldenrod")
    assert ticks.marker.colorscale[-1][1] == colour("firebrick4")

    controls = [t for t in fig.data if t.legendgroup == "feature_control"]
    assert [t.name for t in controls] == ["False", "True"]
    assert controls[0].marker.color == colour("aliceblue")
    assert controls[1].marker.color == colour("wheat")
    assert controls[0].legendgrouptitle.text == "Feature control?"


def test_controls_only_report_present_levels():
    adata = calculate_qc_metrics(_make_adata(), feature_controls={"spike": ["g5"]})
    fig = plot_highest_exprs(adata, n=3, colour_cells_by=None)

    # g5 is not among the top 3, so only non-control points are drawn
    assert len(fig.data) == 2
    assert fig.data[1].name == "False"


def test_categorical_cell_colours():
    fig = plot_highest_exprs(_make_adata(), n=3, controls=None, colour_cells_by="batch")

    ticks = [t for t in fig.data if t.legendgroup == "cells"]
    assert [t.name for t in ticks] == ["a", "b"]
    assert ticks[0].marker.color == TABLEAU_10_MEDIUM[0]
    assert ticks[0].legendgrouptitle.text == "batch"
    # 2 cells × 3 features per batch
    assert len(ticks[0].x) == 6


def test_single_level_colour_dropped_when_requested():
    adata = _make_adata()

    fig = plot_highest_exprs(adata, n=3, controls=None, colour_cells_by="plate", by_show_single=False)
    assert len(fig.data) == 2
    assert fig.data[0].showlegend is False

    fig = plot_highest_exprs(adata, n=3, controls=None, colour_cells_by="plate", by_show_single=True)
    assert [t.name for t in fig.data if t.legendgroup == "cells"] == ["p1"]


def test_colour_by_feature_expression():
    view = HighestExprsPlot(_make_adata(), n=2, controls=None, colour_cells_by="g2")
    data = view.compute_data()

    assert data.colour_name == "g2"
    assert data.colour_is_numeric
    assert list(data.cells["colour_by"]) == [0, 0, 1, 1, 2, 2, 3, 3]


def test_missing_control_status_gets_na_point():
    adata = _make_adata()
    adata.var["ctl"] = [True, None, False, False, True]

    fig = plot_highest_exprs(adata, n=5, controls="ctl", colour_cells_by=None)

    controls = [t for t in fig.data if t.legendgroup == "feature_control"]
    assert [t.name for t in controls] == ["False", "True", "NA"]
    assert sum(len(t.x) for t in controls) == 5
    assert list(controls[-1].y) == ["g2"]
    assert controls[-1].marker.color == colour("grey80")


def test_more_than_two_control_levels_use_discrete_palette():
    adata = _make_adata()
    adata.var["kind"] = ["spike", "mito", "endo", "endo", "spike"]

    fig = plot_highest_exprs(adata, n=5, controls="kind", colour_cells_by=None)

    controls = [t for t in fig.data if t.legendgroup == "feature_control"]
    assert [t.name for t in controls] == ["endo", "mito", "spike"]
    assert [t.marker.color for t in controls] == TABLEAU_10_MEDIUM[:3]
    assert list(controls[2].y) == ["g1", "g5"]


def test_missing_cell_colour_levels_get_na_ticks():
    adata = _make_adata()
    adata.obs["batch"] = ["a", None, "b", "b"]

    fig = plot_highest_exprs(adata, n=3, controls=None, colour_cells_by="batch")

    ticks = [t for t in fig.data if t.legendgroup == "cells"]
    assert [t.name for t in ticks] == ["a", "b", "NA"]
    assert ticks[-1].marker.color == colour("grey80")
    # c2 only, once per chosen feature
    assert list(ticks[-1].text) == ["c2", "c2", "c2"]


def test_duplicate_feature_labels_made_unique():
    adata = _make_adata()
    adata.var["label"] = ["A", "A", "B", "C", "D"]

    view = HighestExprsPlot(
        adata, n=3, feature_names_to_plot="label", controls=None, colour_cells_by=None
    )
    data = view.compute_data()

    assert data.feature_order == ["A", "C", "A-1"]
    fig = view.render_figure(data)
    assert list(fig.layout.yaxis.categoryarray) == ["A-1", "C", "A"]


def test_zero_total_cell_gives_nan_ticks():
    X = np.array([[10, 0, 5], [0, 0, 0], [20, 4, 5]], dtype=float)
    adata = ad.AnnData(
        X=X.copy(),
        obs=pd.DataFrame(index=["c1", "c2", "c3"]),
        var=pd.DataFrame(index=["g1", "g2", "g3"]),
    )
    adata.layers["counts"] = X

    view = HighestExprsPlot(adata, n=3, controls=None, colour_cells_by=None)
    data = view.compute_data()

    empty_cell = data.cells[data.cells["Cell"] == "c2"]
    assert len(empty_cell) == 3
    assert empty_cell["value"].isna().all()
    assert data.cells.loc[data.cells["Cell"] == "c1", "value"].notna().all()

    ticks = view.render_figure(data).data[0]
    assert np.isnan(np.asarray(ticks.x, dtype=float)).sum() == 3


def test_sparse_input_matches_dense():
    dense = HighestExprsPlot(_make_adata(), n=3, controls=None, colour_cells_by=None).compute_data()
    sparse = HighestExprsPlot(
        _make_adata(sparse=True), n=3, controls=None, colour_cells_by=None
    ).compute_data()

    assert dense.feature_order == sparse.feature_order
    assert list(dense.cells["value"]) == pytest.approx(list(sparse.cells["value"]))


def test_empty_dataset_gives_empty_figure():
    adata = ad.AnnData(
        X=np.zeros((0, 2)),
        var=pd.DataFrame(index=["g1", "g2"]),
    )
    adata.layers["counts"] = np.zeros((0, 2))

    fig = plot_highest_exprs(adata)
    assert len(fig.data) == 0
    assert fig.layout.xaxis.visible is False


def test_invalid_arguments():
    adata = _make_adata()

    with pytest.raises(AssayError):
        plot_highest_exprs(adata, exprs_values="logcounts")

    with pytest.raises(MetadataFieldError):
        plot_highest_exprs(adata, colour_cells_by="nope")

    with pytest.raises(MetadataFieldError):
        plot_highest_exprs(adata, controls="nope")

    with pytest.raises(ValueError):
        HighestExprsPlot(adata, n=0)
