"""mdemit exception hierarchy.

Keep this module small and dependency-free: it is imported broadly across the
project and by tests. The rendering core itself never raises these; they come
from the configuration, build and CLI layers.
"""


class MdemitError(Exception):
    """Base exception for all mdemit errors."""


class MdemitConfigError(MdemitError):
    """Raised for invalid user configuration."""


class MdemitSourceError(MdemitError):
    """Raised when a markdown input cannot be found or read."""


class MdemitBuildError(MdemitError):
    """Raised when one or more outputs of a batch build failed."""
