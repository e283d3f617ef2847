

class ScQcError(Exception):
    """Base exception for all sc_qc errors"""
    pass

class AssayError(ScQcError, KeyError):
    """Requested assay is not present in the AnnData object"""

    def __str__(self) -> str:
        # KeyError quotes its message; keep it readable
        return str(self.args[0]) if self.args else ""

class MetadataFieldError(ScQcError, ValueError):
    """
    A value specification could not be resolved against .obs/.var,
    the compacted QC table or the assay data
    """
    pass

class SelectionError(ScQcError, ValueError):
    """Invalid subset specification (bad names, positions or mask length)"""
    pass

class ConfigError(ScQcError):
    """Invalid or inconsistent QC settings file"""
    pass
