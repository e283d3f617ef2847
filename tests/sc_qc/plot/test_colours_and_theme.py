import pandas as pd
import plotly.graph_objs as go

from sc_qc.plot.base import BasePlot
from sc_qc.plot.colours import (
    TABLEAU_10_MEDIUM,
    TABLEAU_20,
    colour,
    continuous_colourscale,
    resolve_plot_colours,
)
from sc_qc.plot.theme import apply_theme_bw


def test_named_colours():
    assert colour("firebrick4") == "#8B1A1A"
    assert colour("Gray35") == "#595959"
    # names Plotly already knows pass through unchanged
    assert colour("steelblue") == "steelblue"


def test_palette_size_tiers():
    few = resolve_plot_colours(pd.Categorical(["b", "a", "b"]))
    assert list(few) == ["a", "b"]
    assert list(few.values()) == TABLEAU_10_MEDIUM[:2]

    some = resolve_plot_colours([f"l{i}" for i in range(15)])
    assert list(some.values()) == TABLEAU_20[:15]

    many = resolve_plot_colours([f"l{i}" for i in range(25)])
    assert len(many) == 25
    assert len(set(many.values())) == 25


def test_continuous_colourscale():
    assert continuous_colourscale() == [[0.0, "#EEDD82"], [1.0, "#8B1A1A"]]


def test_theme_bw():
    fig = apply_theme_bw(go.Figure(), base_size=8)

    assert fig.layout.font.size == 8
    assert fig.layout.font.color == "#595959"
    assert fig.layout.plot_bgcolor == "white"
    assert fig.layout.xaxis.showline is True
    assert fig.layout.legend.xanchor == "right"
    assert fig.layout.legend.yanchor == "bottom"


def test_theme_bw_legend_outside():
    fig = apply_theme_bw(go.Figure(), legend_inside=False)
    assert fig.layout.legend.x is None


def test_empty_figure():
    fig = BasePlot.empty_figure("Nothing here")
    assert fig.layout.title.text == "Nothing here"
    assert fig.layout.yaxis.visible is False
