import argparse
import logging
from pathlib import Path

from sc_qc.config import load_settings
from sc_qc.io import load_dataset
from sc_qc.logging_config import configure_logging
from sc_qc.report import build_qc_report, write_report

logger = logging.getLogger("sc_qc.scripts.qc_report")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Compute QC metrics for an .h5ad file and write the QC figures."
    )
    parser.add_argument("h5ad", type=Path, help="Input AnnData file")
    parser.add_argument("-c", "--config", type=Path, default=None,
                        help="QC settings JSON (defaults to $SC_QC_CONFIG or built-in defaults)")
    parser.add_argument("-o", "--out-dir", type=Path, default=Path("qc_report"),
                        help="Directory for figure files")
    parser.add_argument("--write-h5ad", type=Path, default=None,
                        help="Also write the metric-annotated AnnData here")
    parser.add_argument("--log-format", choices=["json", "plain"], default=None)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(force_format=args.log_format)

    settings = load_settings(args.config)
    adata = load_dataset(args.h5ad)

    annotated, figures = build_qc_report(adata, settings)
    write_report(figures, args.out_dir, fmt=settings.output_format)

    if args.write_h5ad is not None:
        annotated.write_h5ad(args.write_h5ad)
        logger.info("Wrote annotated dataset", extra={"path": str(args.write_h5ad)})


if __name__ == "__main__":
    main()
