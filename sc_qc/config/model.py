from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from sc_qc.core.exceptions import ConfigError
from sc_qc.metrics.qc_metrics import DEFAULT_PERCENT_TOP

OUTPUT_FORMATS = ("html", "json")


@dataclass
class QCSettings:
    """
    Parsed QC settings.

    Fields:

    - exprs_values: assay used for metrics and plots ("X" or a layer name)
    - percent_top: top-n sizes for pct_<assay>_in_top_<n>_features
    - detection_limit: values strictly above this count as detected
    - compact: store metrics in obsm/varm instead of flat columns
    - n_top_features: number of features in the highest-expression plot

    - feature_controls: {set name: [feature names]}
    - feature_control_prefixes: {set name: name prefix}, e.g. {"mito": "MT-"}
    - cell_controls: {set name: [cell names]}

    - colour_cells_by: cell field for the highest-expression ticks; None uses the default
    - output_format: "html" or "json" figure files
    """

    exprs_values: str = "counts"
    percent_top: Tuple[int, ...] = DEFAULT_PERCENT_TOP
    detection_limit: float = 0.0
    compact: bool = False
    n_top_features: int = 50

    feature_controls: Dict[str, List[str]] = field(default_factory=dict)
    feature_control_prefixes: Dict[str, str] = field(default_factory=dict)
    cell_controls: Dict[str, List[str]] = field(default_factory=dict)

    colour_cells_by: Optional[str] = None
    output_format: str = "html"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["percent_top"] = list(self.percent_top)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> QCSettings:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown QC settings keys: {unknown}")

        defaults = cls()
        try:
            settings = cls(
                exprs_values=str(data.get("exprs_values", defaults.exprs_values)),
                percent_top=tuple(int(n) for n in data.get("percent_top", defaults.percent_top)),
                detection_limit=float(data.get("detection_limit", defaults.detection_limit)),
                compact=bool(data.get("compact", defaults.compact)),
                n_top_features=int(data.get("n_top_features", defaults.n_top_features)),
                feature_controls={
                    str(k): [str(v) for v in vals]
                    for k, vals in dict(data.get("feature_controls", {})).items()
                },
                feature_control_prefixes={
                    str(k): str(v)
                    for k, v in dict(data.get("feature_control_prefixes", {})).items()
                },
                cell_controls={
                    str(k): [str(v) for v in vals]
                    for k, vals in dict(data.get("cell_controls", {})).items()
                },
                colour_cells_by=data.get("colour_cells_by"),
                output_format=str(data.get("output_format", defaults.output_format)).lower(),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid QC settings: {e}") from e

        if settings.n_top_features < 1:
            raise ConfigError("n_top_features must be at least 1")
        if settings.output_format not in OUTPUT_FORMATS:
            raise ConfigError(
                f"output_format must be one of {OUTPUT_FORMATS}, got '{settings.output_format}'"
            )
        return settings
