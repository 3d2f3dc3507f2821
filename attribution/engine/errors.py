"""
Errors surfaced to callers of the report operations.
"""


class ReportError(Exception):
    """Base class for report failures."""
    pass


class ReportValidationError(ReportError, ValueError):
    """Request parameters are missing or inconsistent; raised before any data load."""
    pass


class ReportTimeoutError(ReportError, TimeoutError):
    """The computation exceeded its time budget."""
    pass


class ReportComputationError(ReportError):
    """Unexpected failure while computing; no partial report is returned."""
    pass
