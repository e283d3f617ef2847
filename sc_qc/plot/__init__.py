from .highest_exprs import HighestExprsPlot, plot_highest_exprs
from .metadata_plots import MetadataPlot, plot_col_data, plot_row_data

__all__ = ["HighestExprsPlot", "plot_highest_exprs", "MetadataPlot", "plot_col_data", "plot_row_data"]
