from __future__ import annotations

from typing import Any, Optional

import anndata as ad
import numpy as np
import pandas as pd
from pandas.api import types as ptypes

from sc_qc.core.exceptions import SelectionError


def subset_to_index(subset: Optional[Any], adata: ad.AnnData, byrow: bool = True) -> np.ndarray:
    """
    Convert a subset specification into 0-based positions.

    byrow=True addresses features (var), byrow=False addresses cells (obs).

    Accepted specifications:
    - None: every position
    - boolean vector with one entry per feature/cell
    - integer vector of 0-based positions
    - vector of feature/cell names

    Positions are returned in the order given.
    """
    names = adata.var_names if byrow else adata.obs_names
    dim = "features" if byrow else "cells"
    n = len(names)

    if subset is None:
        return np.arange(n)

    if isinstance(subset, (str, int, np.integer)):
        subset = [subset]

    values = np.asarray(pd.Index(subset) if isinstance(subset, (set, frozenset)) else subset)
    if values.ndim != 1:
        raise SelectionError(f"Subset of {dim} must be one-dimensional, got shape {values.shape}")

    if values.size == 0:
        return np.array([], dtype=int)

    if ptypes.is_bool_dtype(values.dtype):
        if values.size != n:
            raise SelectionError(
                f"Boolean subset of {dim} has length {values.size}, expected {n}"
            )
        return np.flatnonzero(values)

    if ptypes.is_integer_dtype(values.dtype):
        bad = values[(values < 0) | (values >= n)]
        if bad.size:
            raise SelectionError(
                f"Subset positions out of range for {n} {dim}: {bad.tolist()[:10]}"
            )
        return values.astype(int)

    if all(isinstance(v, str) for v in values):
        # first occurrence wins for duplicated names
        lookup = pd.Series(np.arange(n), index=names.astype(str))
        lookup = lookup[~lookup.index.duplicated()]
        positions = lookup.reindex(values).fillna(-1).to_numpy().astype(int)
        missing = values[positions < 0]
        if missing.size:
            raise SelectionError(
                f"Subset contains invalid {dim} names: {missing.tolist()[:10]}"
            )
        return positions

    raise SelectionError(
        f"Unsupported subset specification for {dim}: expected booleans, positions or names"
    )
