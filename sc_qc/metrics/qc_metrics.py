"""
Per-cell and per-feature QC metrics.

calculate_qc_metrics() annotates a copy of an AnnData object with:

- .obs: library size, number of detected features, share of expression held
  by the most expressed features, and the same summaries per feature-control set
- .var: mean expression, ranks, detection rates and totals, optionally
  restricted to cell-control sets

Column names follow the "<statistic>_<assay>[_<control set>]" pattern, e.g.
"total_counts", "pct_counts_in_top_50_features", "total_counts_mito".
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import anndata as ad
import numpy as np
import pandas as pd
import scipy.sparse as sp

from sc_qc.core.assays import (
    AssaySelector,
    assay_name,
    cell_totals,
    dense_rows,
    feature_totals,
    get_assay,
    n_detected,
)
from sc_qc.core.exceptions import SelectionError
from sc_qc.core.selection import subset_to_index
from sc_qc.core.vis_values import QC_METRICS_KEY

logger = logging.getLogger(__name__)

DEFAULT_PERCENT_TOP: Tuple[int, ...] = (50, 100, 200, 500)

# Cells are densified in blocks when computing top-feature percentages
_TOP_BLOCK_SIZE = 1024


def _log10p(x: np.ndarray) -> np.ndarray:
    return np.log10(np.asarray(x, dtype=float) + 1.0)


def _safe_pct(numerator: np.ndarray, denominator: np.ndarray) -> np.ndarray:
    """100 * numerator / denominator, NaN where the denominator is zero."""
    numerator = np.asarray(numerator, dtype=float)
    denominator = np.asarray(denominator, dtype=float)
    out = np.full(numerator.shape, np.nan)
    nonzero = denominator != 0
    out[nonzero] = 100.0 * numerator[nonzero] / denominator[nonzero]
    return out


def _control_masks(
    controls: Optional[Mapping[str, Any]],
    adata: ad.AnnData,
    byrow: bool,
) -> Dict[str, np.ndarray]:
    """
    Turn {name: subset specification} into {name: boolean mask}.
    """
    if not controls:
        return {}

    if not isinstance(controls, Mapping):
        kind = "feature" if byrow else "cell"
        raise SelectionError(f"{kind}_controls must be a mapping of set name -> subset")

    n = adata.n_vars if byrow else adata.n_obs
    masks: Dict[str, np.ndarray] = {}
    for name, subset in controls.items():
        if not isinstance(name, str) or not name:
            raise SelectionError("Control sets must have non-empty string names")
        mask = np.zeros(n, dtype=bool)
        mask[subset_to_index(subset, adata, byrow=byrow)] = True
        masks[name] = mask
    return masks


def _percent_top(X, totals: np.ndarray, percent_top: Iterable[int]) -> Dict[int, np.ndarray]:
    """
    For each n, the percentage of each cell's total held by its n most
    expressed features.
    """
    tops = sorted({int(n) for n in percent_top})
    if not tops:
        return {}

    n_cells = X.shape[0]
    max_top = tops[-1]
    cumulative = np.zeros((n_cells, len(tops)), dtype=float)

    for start in range(0, n_cells, _TOP_BLOCK_SIZE):
        rows = np.arange(start, min(start + _TOP_BLOCK_SIZE, n_cells))
        block = dense_rows(X, rows)
        # descending values per cell, truncated to the largest n requested
        ordered = -np.sort(-block, axis=1)[:, :max_top]
        running = np.cumsum(ordered, axis=1)
        cumulative[rows] = running[:, [n - 1 for n in tops]]

    return {n: _safe_pct(cumulative[:, i], totals) for i, n in enumerate(tops)}


def _cell_metrics(
    X,
    ev: str,
    feature_masks: Dict[str, np.ndarray],
    percent_top: Iterable[int],
    detection_limit: float,
) -> pd.DataFrame:
    totals = cell_totals(X)
    detected = n_detected(X, detection_limit, axis=1)

    cols: Dict[str, np.ndarray] = {
        f"total_features_by_{ev}": detected,
        f"log10_total_features_by_{ev}": _log10p(detected),
        f"total_{ev}": totals,
        f"log10_total_{ev}": _log10p(totals),
    }

    for n, pct in _percent_top(X, totals, percent_top).items():
        cols[f"pct_{ev}_in_top_{n}_features"] = pct

    if feature_masks:
        any_control = np.logical_or.reduce(list(feature_masks.values()))
        sets = {"endogenous": ~any_control, "feature_control": any_control}
        sets.update(feature_masks)

        for set_name, mask in sets.items():
            sub = X[:, np.flatnonzero(mask)]
            set_totals = cell_totals(sub)
            set_detected = n_detected(sub, detection_limit, axis=1)
            cols[f"total_features_by_{ev}_{set_name}"] = set_detected
            cols[f"log10_total_features_by_{ev}_{set_name}"] = _log10p(set_detected)
            cols[f"total_{ev}_{set_name}"] = set_totals
            cols[f"log10_total_{ev}_{set_name}"] = _log10p(set_totals)
            cols[f"pct_{ev}_{set_name}"] = _safe_pct(set_totals, totals)

    return pd.DataFrame(cols)


def _feature_stats(X, ev: str, detection_limit: float, suffix: str = "") -> Dict[str, np.ndarray]:
    n_cells = X.shape[0]
    totals = feature_totals(X)
    expressing = n_detected(X, detection_limit, axis=0)

    if n_cells:
        means = totals / n_cells
        dropout = 100.0 * (1.0 - expressing / n_cells)
    else:
        means = np.full(totals.shape, np.nan)
        dropout = np.full(totals.shape, np.nan)

    return {
        f"mean_{ev}{suffix}": means,
        f"log10_mean_{ev}{suffix}": _log10p(means),
        f"rank_{ev}{suffix}": pd.Series(means).rank(method="average").to_numpy(),
        f"n_cells_by_{ev}{suffix}": expressing,
        f"pct_dropout_by_{ev}{suffix}": dropout,
        f"total_{ev}{suffix}": totals,
        f"log10_total_{ev}{suffix}": _log10p(totals),
    }


def _feature_metrics(
    X,
    ev: str,
    cell_masks: Dict[str, np.ndarray],
    detection_limit: float,
) -> pd.DataFrame:
    cols = _feature_stats(X, ev, detection_limit)

    if cell_masks:
        any_control = np.logical_or.reduce(list(cell_masks.values()))
        sets = {"cell_control": any_control}
        sets.update(cell_masks)
        for set_name, mask in sets.items():
            cols.update(
                _feature_stats(X[np.flatnonzero(mask)], ev, detection_limit, suffix=f"_{set_name}")
            )

    return pd.DataFrame(cols)


def _flags(masks: Dict[str, np.ndarray], prefix: str, n: int) -> pd.DataFrame:
    cols: Dict[str, np.ndarray] = {
        f"{prefix}_{name}": mask for name, mask in masks.items()
    }
    if masks:
        cols[prefix] = np.logical_or.reduce(list(masks.values()))
    else:
        cols[prefix] = np.zeros(n, dtype=bool)
    return pd.DataFrame(cols)


def _write_metrics(target: pd.DataFrame, metrics: pd.DataFrame) -> List[str]:
    overwritten = [c for c in metrics.columns if c in target.columns]
    for col in metrics.columns:
        target[col] = metrics[col].to_numpy()
    return overwritten


def calculate_qc_metrics(
    adata: ad.AnnData,
    exprs_values: AssaySelector = "counts",
    feature_controls: Optional[Mapping[str, Any]] = None,
    cell_controls: Optional[Mapping[str, Any]] = None,
    percent_top: Iterable[int] = DEFAULT_PERCENT_TOP,
    detection_limit: float = 0,
    compact: bool = False,
    inplace: bool = False,
) -> Optional[ad.AnnData]:
    """
    Compute per-cell and per-feature QC metrics.

    :param adata: AnnData (cells × features)
    :param exprs_values: assay name ("X" or a layer) or position
    :param feature_controls: {set name: features} where features is any
        subset_to_index() specification (names, positions or boolean mask)
    :param cell_controls: {set name: cells}, same forms as feature_controls
    :param percent_top: top-n sizes for pct_<assay>_in_top_<n>_features;
        sizes larger than the number of features are skipped
    :param detection_limit: a value is "detected" when strictly above this
    :param compact: store the metrics as DataFrames in
        obsm/varm["qc_metrics"] instead of flat .obs/.var columns
    :param inplace: annotate adata itself and return None
    :return: annotated copy of adata, or None when inplace=True

    Raises:
        AssayError: if the assay does not exist
        SelectionError: if a control set specification is invalid
    """
    X = get_assay(adata, exprs_values)
    if sp.issparse(X) and X.format not in ("csr", "csc"):
        X = X.tocsr()
    ev = assay_name(adata, exprs_values)

    feature_masks = _control_masks(feature_controls, adata, byrow=True)
    cell_masks = _control_masks(cell_controls, adata, byrow=False)

    requested_top = list(percent_top or [])
    usable_top = [n for n in requested_top if 0 < int(n) <= adata.n_vars]
    skipped = sorted(set(requested_top) - set(usable_top))
    if skipped:
        logger.debug(
            "Skipping percent_top sizes not in 1..n_features",
            extra={"skipped": skipped, "n_features": adata.n_vars},
        )

    cell_df = _cell_metrics(X, ev, feature_masks, usable_top, detection_limit)
    cell_df = pd.concat(
        [cell_df, _flags(cell_masks, "is_cell_control", adata.n_obs)], axis=1
    )
    cell_df.index = adata.obs_names

    feature_df = _feature_metrics(X, ev, cell_masks, detection_limit)
    feature_df = pd.concat(
        [feature_df, _flags(feature_masks, "is_feature_control", adata.n_vars)], axis=1
    )
    feature_df.index = adata.var_names

    target = adata if inplace else adata.copy()

    if compact:
        target.obsm[QC_METRICS_KEY] = cell_df
        target.varm[QC_METRICS_KEY] = feature_df
    else:
        overwritten = _write_metrics(target.obs, cell_df)
        overwritten += _write_metrics(target.var, feature_df)
        if overwritten:
            logger.debug(
                "Overwriting existing QC columns",
                extra={"columns": overwritten},
            )

    logger.info(
        "Computed QC metrics",
        extra={
            "assay": ev,
            "n_cells": adata.n_obs,
            "n_features": adata.n_vars,
            "feature_control_sets": list(feature_masks),
            "cell_control_sets": list(cell_masks),
            "compact": compact,
        },
    )

    return None if inplace else target
