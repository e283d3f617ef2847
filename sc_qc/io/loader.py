from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import anndata as ad

logger = logging.getLogger(__name__)


def _ensure_unique_names(adata: ad.AnnData, path: Path) -> ad.AnnData:
    """
    Ensure obs_names and var_names are unique, logging what we do.
    """
    if not adata.obs_names.is_unique:
        logger.warning(
            "Observation names are not unique in %s; "
            "calling .obs_names_make_unique() (in-memory fix)",
            path,
        )
        adata.obs_names_make_unique()

    if not adata.var_names.is_unique:
        logger.warning(
            "Variable names are not unique in %s; "
            "calling .var_names_make_unique() (in-memory fix)",
            path,
        )
        adata.var_names_make_unique()

    return adata


def load_dataset(path: Union[str, Path]) -> ad.AnnData:
    """
    Read an .h5ad file into memory.

    :raises FileNotFoundError: if the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"AnnData file not found at {path}.")

    adata = ad.read_h5ad(path)
    adata = _ensure_unique_names(adata, path)

    logger.info(
        "Loaded dataset",
        extra={"path": str(path), "n_cells": adata.n_obs, "n_features": adata.n_vars},
    )
    return adata
