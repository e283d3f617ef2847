from __future__ import annotations

from typing import Dict, List, Sequence

import pandas as pd
from plotly.colors import sample_colorscale

# Colour names used by the QC plots that Plotly/CSS do not define
NAMED_COLOURS: Dict[str, str] = {
    "lightgoldenrod": "#EEDD82",
    "firebrick4": "#8B1A1A",
    "gray30": "#4D4D4D",
    "grey30": "#4D4D4D",
    "gray35": "#595959",
    "grey35": "#595959",
    "gray80": "#CCCCCC",
    "grey80": "#CCCCCC",
    "aliceblue": "#F0F8FF",
    "wheat": "#F5DEB3",
}

TABLEAU_10_MEDIUM: List[str] = [
    "#729ECE", "#FF9E4A", "#67BF5C", "#ED665D", "#AD8BC9",
    "#A8786E", "#ED97CA", "#A2A2A2", "#CDCC5D", "#6DCCDA",
]

TABLEAU_20: List[str] = [
    "#1F77B4", "#AEC7E8", "#FF7F0E", "#FFBB78", "#2CA02C",
    "#98DF8A", "#D62728", "#FF9896", "#9467BD", "#C5B0D5",
    "#8C564B", "#C49C94", "#E377C2", "#F7B6D2", "#7F7F7F",
    "#C7C7C7", "#BCBD22", "#DBDB8D", "#17BECF", "#9EDAE5",
]


def colour(name: str) -> str:
    """Hex value for a colour name from NAMED_COLOURS, else the name unchanged."""
    return NAMED_COLOURS.get(name.lower(), name)


def _levels(values) -> List[str]:
    if isinstance(values, pd.Categorical):
        return [str(c) for c in values.categories]
    series = pd.Series(values).dropna()
    return [str(v) for v in pd.unique(series.astype(str))]


def resolve_plot_colours(values, name: str = "") -> Dict[str, str]:
    """
    Map each level of a categorical to a colour, in level order.

    <=10 levels use Tableau 10 (medium), <=20 Tableau 20, otherwise Viridis
    is sampled evenly.
    """
    levels = _levels(values)
    n = len(levels)

    if n <= len(TABLEAU_10_MEDIUM):
        palette: Sequence[str] = TABLEAU_10_MEDIUM[:n]
    elif n <= len(TABLEAU_20):
        palette = TABLEAU_20[:n]
    else:
        palette = sample_colorscale("Viridis", [i / (n - 1) for i in range(n)])

    return dict(zip(levels, palette))


def continuous_colourscale(low: str = "lightgoldenrod", high: str = "firebrick4") -> List[List]:
    """Two-stop Plotly colourscale between two colour names."""
    return [[0.0, colour(low)], [1.0, colour(high)]]
