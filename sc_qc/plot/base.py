from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import anndata as ad
import plotly.graph_objects as go


class BasePlot(ABC):
    """
    Abstract base class for all QC plots.

    Defines the contract every plot follows
    - expose an 'id' - used by the report driver to name outputs
    - expose a 'label' - human-readable title
    - implement 'compute_data' - reduce/reshape the AnnData into plotting tables
    - implement 'render_figure' - build the Plotly figure from those tables
    """

    id: str = None
    label: str = None

    def __init__(self, adata: ad.AnnData):
        self.adata = adata

    @abstractmethod
    def compute_data(self) -> Any:
        """
        Compute the tables needed for plotting
        :return: data consumed by {@link render_figure()}
        """
        raise NotImplementedError()

    @abstractmethod
    def render_figure(self, data: Any) -> go.Figure:
        """
        Render the figure given the computed data
        :param data: the data provided by {@link compute_data()}
        :return: the Plotly figure
        """
        raise NotImplementedError()

    # ------------------------------------------------------------------
    # Common helpers for all plots
    # ------------------------------------------------------------------
    def is_empty(self) -> bool:
        return self.adata.n_obs == 0 or self.adata.n_vars == 0

    def figure(self) -> go.Figure:
        """compute_data() followed by render_figure(), or the empty figure."""
        if self.is_empty():
            return self.empty_figure("No cells or features to plot")
        return self.render_figure(self.compute_data())

    @staticmethod
    def empty_figure(message: str) -> go.Figure:
        """
        Standardised 'no data' figure used by all plots.
        """
        fig = go.Figure()
        fig.update_layout(
            title=message,
            xaxis={"visible": False},
            yaxis={"visible": False},
        )
        return fig
