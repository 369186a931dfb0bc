"""
Exception hierarchy for threatmap.

Every stage raises a subclass of ThreatMapError so callers (and the CLI) can
catch a single base type.
"""


class ThreatMapError(Exception):
    """Base exception for all threatmap errors."""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ThreatMapError):
    """Raised when a component graph has unresolved or conflicting references."""

    def __init__(self, message: str, missing: list[str] = None, details: dict = None):
        self.missing = list(missing or [])
        super().__init__(message, details)


class CatalogError(ThreatMapError):
    """Raised when a threat-template catalog cannot be loaded."""
    pass


class ScoringError(ThreatMapError):
    """Raised for likelihood or impact labels outside the scoring scale."""
    pass


class ModelParseError(ThreatMapError):
    """Raised when a YAML model file cannot be parsed or validated."""
    pass


class ImportParseError(ThreatMapError):
    """Raised when a Terraform or OpenAPI document cannot be imported."""
    pass


class RenderError(ThreatMapError):
    """Raised when a diagram format has no registered renderer."""
    pass
