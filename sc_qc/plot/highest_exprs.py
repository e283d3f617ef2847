from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import anndata as ad
import numpy as np
import pandas as pd
import plotly.graph_objects as go
from anndata.utils import make_index_unique

from sc_qc.core.assays import (
    AssaySelector,
    assay_name,
    cell_totals,
    dense_columns,
    feature_totals,
    get_assay,
)
from sc_qc.core.selection import subset_to_index
from sc_qc.core.vis_values import VisValues, choose_vis_values, qc_hunter
from sc_qc.plot.base import BasePlot
from sc_qc.plot.colours import colour, continuous_colourscale, resolve_plot_colours
from sc_qc.plot.theme import apply_theme_bw

logger = logging.getLogger(__name__)

# Default for `controls` / `colour_cells_by`: look the field up in the QC metrics
AUTO: Any = object()

CONTROL_FILLS = ("aliceblue", "wheat")


@dataclass
class HighestExprsData:
    """
    Tables behind the highest-expression plot.

    cells: one row per (cell, feature) with columns Cell, Tag, value[, colour_by]
    features: one row per chosen feature with Feature, the summary column
              (x_column) and optionally is_feature_control
    feature_order: chosen feature names, most expressed first
    """
    cells: pd.DataFrame
    features: pd.DataFrame
    feature_order: List[str]
    x_column: str
    x_title: str
    title: Optional[str]
    top_pct: Optional[float]
    colour_name: Optional[str] = None
    colour_is_numeric: bool = False


class HighestExprsPlot(BasePlot):
    """
    Features with the highest total expression across all cells, with their
    expression in every individual cell drawn as ticks.

    - y-axis: feature, most expressed at the top
    - x-axis: % of each cell's total (as_percentage) or raw assay values
    - ticks: one per cell, optionally coloured by cell metadata
    - points: feature summary, filled by feature-control status
    """

    id = "highest_exprs"
    label = "Highest expressing features"

    def __init__(
        self,
        adata: ad.AnnData,
        n: int = 50,
        controls: Any = AUTO,
        colour_cells_by: Any = AUTO,
        drop_features: Any = None,
        exprs_values: AssaySelector = "counts",
        by_exprs_values: Optional[AssaySelector] = None,
        by_show_single: bool = True,
        feature_names_to_plot: Any = None,
        as_percentage: bool = True,
    ) -> None:
        super().__init__(adata)
        if n < 1:
            raise ValueError(f"n must be a positive integer, got {n}")
        self.n = int(n)
        self.controls = controls
        self.colour_cells_by = colour_cells_by
        self.drop_features = drop_features
        self.exprs_values = exprs_values
        self.by_exprs_values = exprs_values if by_exprs_values is None else by_exprs_values
        self.by_show_single = by_show_single
        self.feature_names_to_plot = feature_names_to_plot
        self.as_percentage = as_percentage

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------
    def _feature_names(self) -> np.ndarray:
        if self.feature_names_to_plot is None:
            names = self.adata.var_names
        else:
            vis = choose_vis_values(
                self.adata,
                self.feature_names_to_plot,
                mode="row",
                search="metadata",
            )
            names = pd.Index(np.asarray(vis.values, dtype=object).astype(str))
        return np.asarray(names.astype(str))

    def _resolve_colour(self, ev: str) -> Optional[VisValues]:
        colour_by = self.colour_cells_by
        if colour_by is AUTO:
            colour_by = qc_hunter(self.adata, f"total_features_by_{ev}", mode="column", error=False)
        return choose_vis_values(
            self.adata,
            colour_by,
            mode="column",
            exprs_values=self.by_exprs_values,
            discard_solo=not self.by_show_single,
        )

    def _resolve_controls(self) -> Optional[pd.Categorical]:
        controls = self.controls
        if controls is AUTO:
            controls = qc_hunter(self.adata, "is_feature_control", mode="row", error=False)
        vis = choose_vis_values(self.adata, controls, mode="row", search="metadata")
        if vis is None:
            return None
        if isinstance(vis.values, pd.Categorical):
            return vis.values
        values = pd.Series(vis.values)
        return pd.Categorical(values.astype(str).where(values.notna(), None))

    def compute_data(self) -> HighestExprsData:
        adata = self.adata
        X = get_assay(adata, self.exprs_values)
        ev = assay_name(adata, self.exprs_values)

        # rank features by total expression; stable so ties keep their order
        totals = feature_totals(X)
        order = np.argsort(-totals, kind="stable")

        if self.drop_features is not None:
            discard = subset_to_index(self.drop_features, adata, byrow=True)
            order = order[~np.isin(order, discard)]

        chosen = order[: self.n]
        sub = dense_columns(X, chosen)  # cells × chosen features
        sub_totals = totals[chosen]

        names = make_index_unique(pd.Index(self._feature_names()[chosen]))
        feature_order = [str(x) for x in names]

        top_pct: Optional[float] = None
        if self.as_percentage:
            grand_total = totals.sum()
            top_pct = 100.0 * sub_totals.sum() / grand_total if grand_total else float("nan")
            per_cell = cell_totals(X)
            with np.errstate(divide="ignore", invalid="ignore"):
                sub = 100.0 * sub / per_cell[:, None]

        n_cells, n_chosen = sub.shape
        categories = feature_order[::-1]  # reversed so the most expressed is drawn last (top)

        cells = pd.DataFrame(
            {
                "Cell": np.repeat(np.asarray(adata.obs_names.astype(str)), n_chosen),
                "Tag": pd.Categorical(
                    np.tile(feature_order, n_cells), categories=categories, ordered=True
                ),
                "value": sub.ravel(),  # cell-major
            }
        )

        colour_vis = self._resolve_colour(ev)
        colour_name: Optional[str] = None
        colour_is_numeric = False
        if colour_vis is not None:
            colour_name = colour_vis.name
            colour_is_numeric = colour_vis.is_numeric
            if colour_is_numeric:
                cells["colour_by"] = np.repeat(colour_vis.values, n_chosen)
            else:
                cat: pd.Categorical = colour_vis.values
                cells["colour_by"] = pd.Categorical.from_codes(
                    np.repeat(cat.codes, n_chosen), categories=cat.categories
                )

        features = pd.DataFrame(
            {"Feature": pd.Categorical(feature_order, categories=categories, ordered=True)}
        )
        if self.as_percentage:
            x_column = "pct_total"
            x_title = f"% of total {ev}"
            features[x_column] = (
                100.0 * sub_totals / grand_total if grand_total else np.full(n_chosen, np.nan)
            )
            title = f"Top {self.n} account for {top_pct:.3g}% of total"
        else:
            x_column = f"ave_{ev}"
            x_title = ev
            features[x_column] = sub_totals
            title = None

        control_values = self._resolve_controls()
        if control_values is not None:
            features["is_feature_control"] = control_values[chosen]

        logger.debug(
            "Highest expressing features computed",
            extra={
                "assay": ev,
                "n_requested": self.n,
                "n_chosen": n_chosen,
                "n_cells": n_cells,
                "colour_by": colour_name,
                "controls": control_values is not None,
            },
        )

        return HighestExprsData(
            cells=cells,
            features=features,
            feature_order=feature_order,
            x_column=x_column,
            x_title=x_title,
            title=title,
            top_pct=top_pct,
            colour_name=colour_name,
            colour_is_numeric=colour_is_numeric,
        )

    # ------------------------------------------------------------------
    # Figure
    # ------------------------------------------------------------------
    def _add_cell_ticks(self, fig: go.Figure, data: HighestExprsData) -> None:
        cells = data.cells
        tick = dict(symbol="line-ns-open", size=9, line=dict(width=1))

        if data.colour_name is None:
            fig.add_trace(
                go.Scatter(
                    x=cells["value"],
                    y=cells["Tag"].astype(str),
                    mode="markers",
                    marker=dict(tick, color="black"),
                    opacity=0.6,
                    text=cells["Cell"],
                    name="cells",
                    showlegend=False,
                )
            )
            return

        legend_name = data.colour_name or "colour_by"

        if data.colour_is_numeric:
            fig.add_trace(
                go.Scatter(
                    x=cells["value"],
                    y=cells["Tag"].astype(str),
                    mode="markers",
                    marker=dict(
                        tick,
                        color=cells["colour_by"],
                        colorscale=continuous_colourscale("lightgoldenrod", "firebrick4"),
                        showscale=True,
                        colorbar=dict(title=dict(text=legend_name), len=0.5, y=0.75),
                    ),
                    opacity=0.6,
                    text=cells["Cell"],
                    name=legend_name,
                    showlegend=False,
                )
            )
            return

        levels: pd.Series = cells["colour_by"]
        palette = resolve_plot_colours(levels.cat.categories, legend_name)
        for level, fill in palette.items():
            mask = (levels.astype(str) == level) & levels.notna()
            if not mask.any():
                continue
            fig.add_trace(
                go.Scatter(
                    x=cells.loc[mask, "value"],
                    y=cells.loc[mask, "Tag"].astype(str),
                    mode="markers",
                    marker=dict(tick, color=fill),
                    opacity=0.6,
                    text=cells.loc[mask, "Cell"],
                    name=level,
                    legendgroup="cells",
                    legendgrouptitle_text=legend_name,
                )
            )

        missing = levels.isna()
        if missing.any():
            fig.add_trace(
                go.Scatter(
                    x=cells.loc[missing, "value"],
                    y=cells.loc[missing, "Tag"].astype(str),
                    mode="markers",
                    marker=dict(tick, color=colour("grey80")),
                    opacity=0.6,
                    text=cells.loc[missing, "Cell"],
                    name="NA",
                    legendgroup="cells",
                    legendgrouptitle_text=legend_name,
                )
            )

    def _add_feature_points(self, fig: go.Figure, data: HighestExprsData) -> None:
        features = data.features
        point = dict(symbol="circle", size=7, line=dict(width=1, color=colour("gray30")))

        if "is_feature_control" not in features.columns:
            fig.add_trace(
                go.Scatter(
                    x=features[data.x_column],
                    y=features["Feature"].astype(str),
                    mode="markers",
                    marker=dict(point, color=colour("grey80")),
                    name=data.x_column,
                    showlegend=False,
                )
            )
            return

        status: pd.Series = features["is_feature_control"]
        levels = [str(c) for c in status.cat.categories]
        if len(levels) <= len(CONTROL_FILLS):
            fills = {lvl: colour(CONTROL_FILLS[i]) for i, lvl in enumerate(levels)}
        else:
            fills = resolve_plot_colours(status.cat.categories)

        for level in levels:
            mask = (status.astype(str) == level) & status.notna()
            if not mask.any():
                continue
            fig.add_trace(
                go.Scatter(
                    x=features.loc[mask, data.x_column],
                    y=features.loc[mask, "Feature"].astype(str),
                    mode="markers",
                    marker=dict(point, color=fills[level]),
                    name=level,
                    legendgroup="feature_control",
                    legendgrouptitle_text="Feature control?",
                )
            )

        missing = status.isna()
        if missing.any():
            fig.add_trace(
                go.Scatter(
                    x=features.loc[missing, data.x_column],
                    y=features.loc[missing, "Feature"].astype(str),
                    mode="markers",
                    marker=dict(point, color=colour("grey80")),
                    name="NA",
                    legendgroup="feature_control",
                    legendgrouptitle_text="Feature control?",
                )
            )

    def render_figure(self, data: HighestExprsData) -> go.Figure:
        if data.cells.empty:
            return self.empty_figure("No features left to plot")

        fig = go.Figure()
        self._add_cell_ticks(fig, data)
        self._add_feature_points(fig, data)

        if data.title:
            fig.update_layout(title=data.title)
        fig.update_layout(
            xaxis_title=data.x_title,
            yaxis_title="Feature",
            height=max(400, 120 + 14 * len(data.feature_order)),
            margin=dict(l=40, r=40, t=60 if data.title else 30, b=40),
        )
        # categories listed bottom-up, so the most expressed feature ends on top
        fig.update_yaxes(
            type="category",
            categoryorder="array",
            categoryarray=data.feature_order[::-1],
        )

        return apply_theme_bw(fig, base_size=8, text_colour="gray35", legend_inside=True)


def plot_highest_exprs(
    adata: ad.AnnData,
    n: int = 50,
    controls: Any = AUTO,
    colour_cells_by: Any = AUTO,
    drop_features: Any = None,
    exprs_values: AssaySelector = "counts",
    by_exprs_values: Optional[AssaySelector] = None,
    by_show_single: bool = True,
    feature_names_to_plot: Any = None,
    as_percentage: bool = True,
) -> go.Figure:
    """
    Plot the features with the highest expression across all cells.

    :param n: number of most expressed features to show
    :param controls: per-feature metadata field flagging control features;
        defaults to "is_feature_control" when present, None disables
    :param colour_cells_by: cell metadata field, feature name or per-cell vector
        used to colour the ticks; defaults to "total_features_by_<assay>" when
        present, None disables
    :param drop_features: features to leave out (names, positions or boolean mask)
    :param exprs_values: assay used for ranking and plotting
    :param by_exprs_values: assay used when colour_cells_by names a feature;
        defaults to exprs_values
    :param by_show_single: colour by single-level categoricals too
    :param feature_names_to_plot: per-feature metadata field holding labels;
        defaults to var_names
    :param as_percentage: plot % of each cell's total instead of raw values
    :return: the Plotly figure
    """
    view = HighestExprsPlot(
        adata,
        n=n,
        controls=controls,
        colour_cells_by=colour_cells_by,
        drop_features=drop_features,
        exprs_values=exprs_values,
        by_exprs_values=by_exprs_values,
        by_show_single=by_show_single,
        feature_names_to_plot=feature_names_to_plot,
        as_percentage=as_percentage,
    )
    return view.figure()
