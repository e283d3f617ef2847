"""
Batch QC report: compute metrics once, then build the standard figures.

Used by scripts/qc_report.py; also handy from notebooks:

    settings = load_settings("qc.json")
    annotated, figures = build_qc_report(adata, settings)
    write_report(figures, "qc_out", fmt=settings.output_format)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import anndata as ad
import plotly.graph_objects as go

from sc_qc.config.model import OUTPUT_FORMATS, QCSettings
from sc_qc.core.exceptions import ConfigError
from sc_qc.metrics.qc_metrics import calculate_qc_metrics
from sc_qc.plot.highest_exprs import AUTO, plot_highest_exprs
from sc_qc.plot.metadata_plots import plot_col_data, plot_row_data

logger = logging.getLogger(__name__)


def resolve_feature_controls(adata: ad.AnnData, settings: QCSettings) -> Dict[str, List[str]]:
    """
    Merge explicit feature-control lists with prefix-defined sets
    (e.g. {"mito": "MT-"} selects every feature whose name starts with "MT-").
    """
    controls: Dict[str, List[str]] = {
        name: list(features) for name, features in settings.feature_controls.items()
    }
    names = adata.var_names.astype(str)
    for name, prefix in settings.feature_control_prefixes.items():
        matched = [str(f) for f in names[names.str.startswith(prefix)]]
        if not matched:
            logger.warning(
                "No features match control prefix",
                extra={"control_set": name, "prefix": prefix},
            )
        existing = controls.setdefault(name, [])
        seen = set(existing)
        existing.extend(f for f in matched if f not in seen)
    return controls


def build_qc_report(
    adata: ad.AnnData,
    settings: Optional[QCSettings] = None,
) -> Tuple[ad.AnnData, Dict[str, go.Figure]]:
    """
    Compute QC metrics and build the standard QC figures.

    :return: (annotated copy of adata, {figure name: figure})
    """
    settings = settings or QCSettings()
    ev = settings.exprs_values
    feature_controls = resolve_feature_controls(adata, settings)

    annotated = calculate_qc_metrics(
        adata,
        exprs_values=ev,
        feature_controls=feature_controls or None,
        cell_controls=settings.cell_controls or None,
        percent_top=settings.percent_top,
        detection_limit=settings.detection_limit,
        compact=settings.compact,
    )

    figures: Dict[str, go.Figure] = {}

    figures["highest_exprs"] = plot_highest_exprs(
        annotated,
        n=settings.n_top_features,
        colour_cells_by=settings.colour_cells_by or AUTO,
        exprs_values=ev,
    )

    figures["total_vs_features"] = plot_col_data(
        annotated,
        y=f"total_features_by_{ev}",
        x=f"total_{ev}",
    )

    usable_top = sorted(n for n in settings.percent_top if 0 < n <= annotated.n_vars)
    if usable_top:
        figures["pct_top"] = plot_col_data(
            annotated,
            y=f"pct_{ev}_in_top_{usable_top[0]}_features",
            x=f"total_{ev}",
        )

    for set_name in feature_controls:
        figures[f"pct_{set_name}"] = plot_col_data(
            annotated,
            y=f"pct_{ev}_{set_name}",
            x=f"total_{ev}",
        )

    figures["mean_vs_dropout"] = plot_row_data(
        annotated,
        y=f"pct_dropout_by_{ev}",
        x=f"log10_mean_{ev}",
    )

    logger.info(
        "Built QC report",
        extra={"assay": ev, "figures": list(figures)},
    )
    return annotated, figures


def write_report(
    figures: Dict[str, go.Figure],
    out_dir: Union[str, Path],
    fmt: str = "html",
) -> List[Path]:
    """
    Write one file per figure into out_dir.

    :param fmt: "html" (standalone, plotly.js from CDN) or "json"
    :return: written paths in figure order
    """
    if fmt not in OUTPUT_FORMATS:
        raise ConfigError(f"output format must be one of {OUTPUT_FORMATS}, got '{fmt}'")

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    written: List[Path] = []
    for name, fig in figures.items():
        path = out_dir / f"{name}.{fmt}"
        if fmt == "html":
            fig.write_html(path, include_plotlyjs="cdn")
        else:
            fig.write_json(path)
        written.append(path)

    logger.info(
        "Wrote QC report",
        extra={"out_dir": str(out_dir), "n_files": len(written), "format": fmt},
    )
    return written
