from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import anndata as ad
import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from sc_qc.core.assays import AssaySelector, dense_columns, dense_rows, get_assay
from sc_qc.core.exceptions import MetadataFieldError

logger = logging.getLogger(__name__)

# obsm/varm key holding QC metrics written with compact=True
QC_METRICS_KEY = "qc_metrics"

_MODES = ("column", "row")
_SEARCHES = ("any", "metadata", "exprs")


@dataclass(frozen=True)
class VisValues:
    """
    A resolved value specification.

    name: label for legends / axis titles ("" when the caller passed raw values)
    values: one entry per cell (mode="column") or per feature (mode="row").
            Numeric values are a float ndarray, everything else a pandas.Categorical.
    """
    name: str
    values: Any

    @property
    def is_numeric(self) -> bool:
        return not isinstance(self.values, pd.Categorical)


def _metadata(adata: ad.AnnData, mode: str) -> pd.DataFrame:
    return adata.obs if mode == "column" else adata.var


def _compact_metadata(adata: ad.AnnData, mode: str) -> Optional[pd.DataFrame]:
    store = adata.obsm if mode == "column" else adata.varm
    if QC_METRICS_KEY not in store:
        return None
    table = store[QC_METRICS_KEY]
    return table if isinstance(table, pd.DataFrame) else None


def _check_mode(mode: str) -> None:
    if mode not in _MODES:
        raise ValueError(f"mode must be one of {_MODES}, got {mode!r}")


def _normalise_values(values: Any) -> Any:
    """Numeric -> float ndarray, anything else -> Categorical."""
    if isinstance(values, pd.Categorical):
        return values
    series = pd.Series(values)
    if ptypes.is_numeric_dtype(series.dtype) and not ptypes.is_bool_dtype(series.dtype):
        return series.to_numpy(dtype=float, na_value=np.nan)
    if isinstance(series.dtype, pd.CategoricalDtype):
        return pd.Categorical(series)
    return pd.Categorical(series.astype(str).where(series.notna(), None))


def qc_hunter(
    adata: ad.AnnData,
    qc_field: str,
    mode: str = "column",
    error: bool = True,
) -> Optional[str]:
    """
    Find a QC field in .obs/.var or in the compacted QC table.

    :param qc_field: name of the field, e.g. "total_features_by_counts"
    :param mode: "column" searches per-cell metadata, "row" per-feature metadata
    :param error: raise MetadataFieldError when missing; otherwise warn and return None
    :return: the field name, usable as a choose_vis_values() specification
    """
    _check_mode(mode)

    if qc_field in _metadata(adata, mode).columns:
        return qc_field

    compact = _compact_metadata(adata, mode)
    if compact is not None and qc_field in compact.columns:
        return qc_field

    where = "cell" if mode == "column" else "feature"
    msg = f"Failed to find '{qc_field}' in {where} metadata"
    if error:
        raise MetadataFieldError(msg)

    logger.warning(
        msg,
        extra={"qc_field": qc_field, "mode": mode},
    )
    return None


def _expression_profile(
    adata: ad.AnnData,
    name: str,
    mode: str,
    exprs_values: AssaySelector,
) -> Optional[np.ndarray]:
    """
    Expression of a single feature across cells (mode="column") or of a single
    cell across features (mode="row"), or None when the name is unknown.
    """
    names = adata.var_names if mode == "column" else adata.obs_names
    hits = np.flatnonzero(names == name)
    if hits.size == 0:
        return None

    X = get_assay(adata, exprs_values)
    if mode == "column":
        return dense_columns(X, hits[:1]).ravel()
    return dense_rows(X, hits[:1]).ravel()


def choose_vis_values(
    adata: ad.AnnData,
    by: Any,
    mode: str = "column",
    search: str = "any",
    exprs_values: AssaySelector = "counts",
    discard_solo: bool = False,
) -> Optional[VisValues]:
    """
    Resolve a value specification against metadata or assay data.

    `by` may be:
    - None: nothing to resolve, returns None
    - str: a metadata field (then the compacted QC table), or with search="any"/"exprs"
      a feature name (mode="column") / cell name (mode="row") whose expression is used
    - int: a positional metadata column
    - array-like/Series with one entry per cell (column) or feature (row)

    With discard_solo=True a categorical with a single level resolves to None.
    """
    _check_mode(mode)
    if search not in _SEARCHES:
        raise ValueError(f"search must be one of {_SEARCHES}, got {search!r}")

    if by is None:
        return None

    meta = _metadata(adata, mode)
    n = len(meta)
    name: str
    values: Any = None

    if isinstance(by, str):
        name = by
        if search in ("any", "metadata"):
            if by in meta.columns:
                values = meta[by]
            else:
                compact = _compact_metadata(adata, mode)
                if compact is not None and by in compact.columns:
                    values = compact[by]

        if values is None and search in ("any", "exprs"):
            values = _expression_profile(adata, by, mode, exprs_values)

        if values is None:
            where = "cell" if mode == "column" else "feature"
            scope = {
                "any": f"{where} metadata or expression data",
                "metadata": f"{where} metadata",
                "exprs": "expression data",
            }[search]
            raise MetadataFieldError(f"Cannot find '{by}' in {scope}")

    elif isinstance(by, (int, np.integer)) and not isinstance(by, (bool, np.bool_)):
        if not 0 <= by < meta.shape[1]:
            raise MetadataFieldError(
                f"Metadata column position {by} out of range ({meta.shape[1]} columns)"
            )
        name = str(meta.columns[int(by)])
        values = meta.iloc[:, int(by)]

    else:
        name = str(by.name) if isinstance(by, pd.Series) and by.name is not None else ""
        values = by if isinstance(by, (pd.Series, pd.Categorical)) else np.asarray(by)
        if np.ndim(values) != 1 or len(values) != n:
            raise MetadataFieldError(
                f"Value vector has shape {np.shape(values)}, expected ({n},)"
            )

    values = _normalise_values(values)

    if discard_solo and isinstance(values, pd.Categorical):
        if pd.Series(values).nunique() <= 1:
            logger.debug(
                "Discarding single-level colouring values",
                extra={"field": name},
            )
            return None

    return VisValues(name=name, values=values)
