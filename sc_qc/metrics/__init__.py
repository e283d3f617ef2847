from .qc_metrics import calculate_qc_metrics

__all__ = ["calculate_qc_metrics"]
