from __future__ import annotations

from typing import List, Sequence, Union

import anndata as ad
import numpy as np
import scipy.sparse as sp

from sc_qc.core.exceptions import AssayError

# Name used to address adata.X alongside the named layers
MAIN_ASSAY = "X"

AssaySelector = Union[str, int]


def available_assays(adata: ad.AnnData) -> List[str]:
    """
    Assay names in selection order: the main matrix first, then layers.
    """
    names = [MAIN_ASSAY] if adata.X is not None else []
    names.extend(str(k) for k in adata.layers.keys())
    return names


def get_assay(adata: ad.AnnData, exprs_values: AssaySelector = "counts"):
    """
    Return the cells × features matrix for an assay selector.

    - str: "X" is adata.X, anything else must be a key of adata.layers
    - int: position in available_assays()

    The matrix is returned as stored (dense ndarray or scipy sparse).
    """
    names = available_assays(adata)

    if isinstance(exprs_values, (bool, np.bool_)):
        raise AssayError(f"Assay selector must be a name or position, got {exprs_values!r}")

    if isinstance(exprs_values, (int, np.integer)):
        if not 0 <= exprs_values < len(names):
            raise AssayError(
                f"Assay position {exprs_values} out of range; available assays: {names}"
            )
        exprs_values = names[int(exprs_values)]

    if not isinstance(exprs_values, str):
        raise AssayError(f"Assay selector must be a name or position, got {exprs_values!r}")

    if exprs_values == MAIN_ASSAY and adata.X is not None:
        return adata.X

    if exprs_values in adata.layers:
        return adata.layers[exprs_values]

    raise AssayError(f"Assay '{exprs_values}' not found; available assays: {names}")


def assay_name(adata: ad.AnnData, exprs_values: AssaySelector) -> str:
    """Human-readable name for a selector, used in labels and metric names."""
    if isinstance(exprs_values, (int, np.integer)) and not isinstance(exprs_values, (bool, np.bool_)):
        names = available_assays(adata)
        if 0 <= exprs_values < len(names):
            return names[int(exprs_values)]
    return str(exprs_values)


# -------------------------------------------------------------------------
# Reductions (dense and sparse)
# -------------------------------------------------------------------------
def feature_totals(X) -> np.ndarray:
    """Total expression of each feature across all cells."""
    return np.asarray(X.sum(axis=0), dtype=float).ravel()


def cell_totals(X) -> np.ndarray:
    """Total expression of each cell across all features."""
    return np.asarray(X.sum(axis=1), dtype=float).ravel()


def n_detected(X, detection_limit: float = 0, axis: int = 0) -> np.ndarray:
    """
    Number of entries above detection_limit.

    axis=0 counts cells per feature, axis=1 counts features per cell.
    """
    if sp.issparse(X):
        X = sp.csr_matrix(X)
        if detection_limit >= 0:
            # implicit zeros never exceed a non-negative limit
            detected = X.copy()
            detected.data = (detected.data > detection_limit).astype(np.int64)
            return np.asarray(detected.sum(axis=axis)).ravel().astype(np.int64)
        X = X.toarray()

    return np.asarray((np.asarray(X) > detection_limit).sum(axis=axis)).ravel().astype(np.int64)


def dense_rows(X, rows: Sequence[int]) -> np.ndarray:
    """Densified subset of rows (cells) as float."""
    if sp.issparse(X):
        X = sp.csr_matrix(X)
    sub = X[np.asarray(rows, dtype=int)]
    if sp.issparse(sub):
        sub = sub.toarray()
    return np.asarray(sub, dtype=float)


def dense_columns(X, cols: Sequence[int]) -> np.ndarray:
    """Densified subset of columns (features) as float."""
    if sp.issparse(X):
        X = sp.csc_matrix(X)
    sub = X[:, np.asarray(cols, dtype=int)]
    if sp.issparse(sub):
        sub = sub.toarray()
    return np.asarray(sub, dtype=float)
