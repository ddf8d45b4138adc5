"""
Error Taxonomy
Medical Report Insights

FormatError and TransportError end a report as `failed`.
StoreError ends the background task. Normalization never raises.
"""


class ReportLensError(Exception):
    """Base class for all service errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class FormatError(ReportLensError):
    """The stored file is unsupported, unreadable or has no text."""


class TransportError(ReportLensError):
    """The AI call failed: network, quota, safety block or timeout."""


class AIUnavailableError(TransportError):
    """No API key is configured, so no AI call can be made."""


class StoreError(ReportLensError):
    """A persistence operation failed."""
