"""
Core layer: assay access, subset specifications, value resolution
against AnnData metadata, and the exception hierarchy
"""

from .assays import get_assay, available_assays
from .exceptions import AssayError, ConfigError, MetadataFieldError, ScQcError, SelectionError
from .selection import subset_to_index
from .vis_values import VisValues, choose_vis_values, qc_hunter

__all__ = [
    "get_assay",
    "available_assays",
    "subset_to_index",
    "VisValues",
    "choose_vis_values",
    "qc_hunter",
    "ScQcError",
    "AssayError",
    "MetadataFieldError",
    "SelectionError",
    "ConfigError",
]
