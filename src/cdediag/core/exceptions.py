"""Custom exceptions for cdediag."""


class CdeDiagError(Exception):
    """Base exception for all cdediag errors."""


class ConfigurationError(CdeDiagError):
    """Configuration-related errors (missing target, unreadable files, invalid options)."""


class AuthError(CdeDiagError):
    """Temporary credential exchange failed."""


class QueryError(CdeDiagError):
    """A single cluster, cloud or log query failed.

    Attributes:
        operation: Identity of the failed operation (e.g. "list_namespaced_pod dex")
    """

    def __init__(self, message: str, operation: str = ""):
        """Initialize query error.

        Args:
            message: Error message
            operation: Identity of the failed operation
        """
        super().__init__(message)
        self.operation = operation


class QueryTimeoutError(QueryError):
    """A query did not complete within the configured request timeout."""


class BundleError(CdeDiagError):
    """Bundle archival or cleanup failed."""
