from .model import QCSettings
from .loader import load_settings, save_settings

__all__ = ["QCSettings", "load_settings", "save_settings"]
