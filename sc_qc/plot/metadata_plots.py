from __future__ import annotations

from typing import Any, Dict, Optional

import anndata as ad
import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from sc_qc.core.assays import AssaySelector
from sc_qc.core.exceptions import MetadataFieldError
from sc_qc.core.vis_values import VisValues, choose_vis_values
from sc_qc.plot.base import BasePlot
from sc_qc.plot.colours import continuous_colourscale, resolve_plot_colours
from sc_qc.plot.theme import apply_theme_bw


class MetadataPlot(BasePlot):
    """
    Scatter/strip plot of per-cell (mode="column") or per-feature (mode="row")
    metadata, typically QC metrics from calculate_qc_metrics().

    - y: numeric field (or categorical when x is numeric)
    - x: optional field; categorical or missing x gives a strip plot
    - colour_by / size_by: optional extra aesthetics
    """

    id = "metadata"
    label = "Metadata"

    def __init__(
        self,
        adata: ad.AnnData,
        y: Any,
        x: Any = None,
        colour_by: Any = None,
        size_by: Any = None,
        by_exprs_values: AssaySelector = "counts",
        mode: str = "column",
    ) -> None:
        super().__init__(adata)
        self.y = y
        self.x = x
        self.colour_by = colour_by
        self.size_by = size_by
        self.by_exprs_values = by_exprs_values
        self.mode = mode

    def _resolve(self, by: Any) -> Optional[VisValues]:
        return choose_vis_values(
            self.adata, by, mode=self.mode, exprs_values=self.by_exprs_values
        )

    def compute_data(self) -> Dict[str, Any]:
        y_vis = self._resolve(self.y)
        if y_vis is None:
            raise MetadataFieldError("A y-axis field is required")
        x_vis = self._resolve(self.x)
        colour_vis = self._resolve(self.colour_by)
        size_vis = self._resolve(self.size_by)

        if size_vis is not None and not size_vis.is_numeric:
            raise MetadataFieldError(f"size_by field '{size_vis.name}' must be numeric")

        names = self.adata.obs_names if self.mode == "column" else self.adata.var_names
        df = pd.DataFrame({"Y": y_vis.values}, index=names.astype(str))
        df["X"] = x_vis.values if x_vis is not None else pd.Categorical([""] * len(df))
        if colour_vis is not None:
            df["colour_by"] = colour_vis.values
        if size_vis is not None:
            df["size_by"] = np.nan_to_num(size_vis.values, nan=0.0)

        return {
            "df": df,
            "y_name": y_vis.name or "Y",
            "x_name": x_vis.name if x_vis is not None else "",
            "x_numeric": x_vis is not None and x_vis.is_numeric,
            "y_numeric": y_vis.is_numeric,
            "colour_name": (colour_vis.name or "colour_by") if colour_vis is not None else None,
            "colour_numeric": colour_vis is not None and colour_vis.is_numeric,
            "size_name": (size_vis.name or "size_by") if size_vis is not None else None,
        }

    def render_figure(self, data: Dict[str, Any]) -> go.Figure:
        df: pd.DataFrame = data["df"].reset_index(names="name")

        if not data["x_numeric"] and not data["y_numeric"]:
            raise MetadataFieldError("At least one of x and y must be numeric")

        colour_kwargs: Dict[str, Any] = {}
        if data["colour_name"] is not None:
            colour_kwargs["color"] = "colour_by"
            if data["colour_numeric"]:
                colour_kwargs["color_continuous_scale"] = continuous_colourscale()
            else:
                # palette keys are strings; NaN stays missing
                df["colour_by"] = df["colour_by"].cat.rename_categories(str)
                colour_kwargs["color_discrete_map"] = resolve_plot_colours(df["colour_by"].cat.categories)

        labels = {
            "X": data["x_name"],
            "Y": data["y_name"],
            "colour_by": data["colour_name"] or "",
            "size_by": data["size_name"] or "",
        }

        both_numeric = data["x_numeric"] and data["y_numeric"]
        if both_numeric or data["size_name"] is not None or data["colour_numeric"]:
            fig = px.scatter(
                df,
                x="X",
                y="Y",
                size="size_by" if data["size_name"] is not None else None,
                hover_name="name",
                labels=labels,
                **colour_kwargs,
            )
        else:
            fig = px.strip(
                df,
                x="X",
                y="Y",
                orientation="v" if data["y_numeric"] else "h",
                hover_name="name",
                labels=labels,
                **colour_kwargs,
            )

        fig.update_traces(marker=dict(opacity=0.6))
        fig.update_layout(
            height=500,
            margin=dict(l=40, r=40, t=40, b=40),
            xaxis_title=data["x_name"],
            yaxis_title=data["y_name"],
        )
        return apply_theme_bw(fig, legend_inside=False)


def plot_col_data(
    adata: ad.AnnData,
    y: Any,
    x: Any = None,
    colour_by: Any = None,
    size_by: Any = None,
    by_exprs_values: AssaySelector = "counts",
) -> go.Figure:
    """Per-cell metadata plot, e.g. total_counts against total_features_by_counts."""
    return MetadataPlot(
        adata, y, x=x, colour_by=colour_by, size_by=size_by,
        by_exprs_values=by_exprs_values, mode="column",
    ).figure()


def plot_row_data(
    adata: ad.AnnData,
    y: Any,
    x: Any = None,
    colour_by: Any = None,
    size_by: Any = None,
    by_exprs_values: AssaySelector = "counts",
) -> go.Figure:
    """Per-feature metadata plot, e.g. mean_counts against pct_dropout_by_counts."""
    return MetadataPlot(
        adata, y, x=x, colour_by=colour_by, size_by=size_by,
        by_exprs_values=by_exprs_values, mode="row",
    ).figure()
