# powindex/core/errors.py
"""
Error taxonomy for the profile pipeline.

Fatal errors (configuration, authentication, validation) propagate to the caller.
The remaining ones are raised close to the failure and converted into omissions
or documented defaults by the component that owns the degraded result.
"""


class PowIndexError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PowIndexError):
    """No usable classifier provider credentials are configured."""


class AuthenticationError(PowIndexError):
    """Activity-source credentials are missing or were rejected."""


class ValidationError(PowIndexError):
    """Required input (such as the subject identifier) is missing or malformed."""


class ActivitySourceError(PowIndexError):
    """Non-authentication HTTP failure from the activity source."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class PartialFetchFailure(PowIndexError):
    """A single repository could not be fetched; ingestion continues without it."""

    def __init__(self, repo_full_name: str, cause: Exception):
        super().__init__(f"Failed to fetch {repo_full_name}: {cause}")
        self.repo_full_name = repo_full_name
        self.cause = cause


class ClassifierTransportError(PowIndexError):
    """The classifier provider could not be reached or returned an error status."""


class ClassifierFormatError(PowIndexError):
    """The classifier response could not be parsed into the expected structure."""
