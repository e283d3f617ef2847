"""
Top-level package for single-cell QC metrics and diagnostic plots.

Functions take an AnnData object and return either an annotated copy
(metrics) or a Plotly figure (plots):
    sc_qc.metrics.calculate_qc_metrics
    sc_qc.plot.plot_highest_exprs
    sc_qc.plot.plot_col_data / plot_row_data
"""

from .metrics import calculate_qc_metrics
from .plot import plot_col_data, plot_highest_exprs, plot_row_data

__all__: list[str] = [
    "calculate_qc_metrics",
    "plot_highest_exprs",
    "plot_col_data",
    "plot_row_data",
]
