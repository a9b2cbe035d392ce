"""
Exception classes for airwave.

This module defines all custom exceptions used throughout the engine.
Each exception is designed to provide a clear, actionable error message
and to distinguish between the different failure modes of the stream.

Exhaustion and rejection are NOT exceptions: an empty queue with no
history fallback is reported as NotAvailable, and a refused enqueue is
reported as an EnqueueResult carrying a RejectReason. Exceptions are
reserved for broken configuration, broken storage, upstream failures
and authorization problems.

Exception Hierarchy:
    RadioError (base)
        ConfigError - Configuration file issues
        DatabaseError - SQLite storage issues
        AllKeysExhaustedError - Every lookup credential is out of quota
        YouTubeError - YouTube Data API issues
        CatalogError - Catalog search provider issues
        SpeechError - Intro generation issues
        AuthorizationError - Caller lacks the controller role
"""


class RadioError(Exception):
    """
    Base exception for all airwave errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all engine errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., catalog id, key id).

    Example:
        try:
            radio.skip(user_id)
        except RadioError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'catalog_id': Catalog track id involved in the error
                     - 'key_id': Lookup credential involved in the error
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(RadioError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - radio.yaml not found
        - radio.yaml has invalid YAML syntax
        - Invalid field values (e.g., target queue size above max)
        - No usable YouTube credential configured

    Example:
        raise ConfigError(
            "'queue.target_size' must not exceed 'queue.max_size'",
            details={'field': 'queue.target_size', 'value': 30}
        )
    """
    pass


class DatabaseError(RadioError):
    """
    Raised when there's an issue with the SQLite store.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Parent directory of radio.db does not exist
        - Schema version mismatch
        - Disk full or permission denied

    Example:
        raise DatabaseError(
            "Database version mismatch: expected 1, got 3",
            details={'expected': 1, 'actual': 3}
        )
    """
    pass


class AllKeysExhaustedError(RadioError):
    """
    Raised when no credential in the key pool can afford an operation.

    This is NON-CRITICAL for the stream: discovery stops spending
    lookups for the rest of its batch, and the queue keeps draining
    into the history fallback until the quota day rolls over.

    Attributes:
        cost: Quota units the rejected operation would have needed.

    Example:
        raise AllKeysExhaustedError(
            "All YouTube API keys have exhausted their daily quota",
            details={'cost': 100, 'quota_day': '2024-05-01'},
            cost=100
        )
    """

    def __init__(self, message: str, details: dict | None = None, cost: int = 0) -> None:
        """
        Initialize the exhaustion error.

        Args:
            message: Human-readable error description.
            details: Optional additional context.
            cost: Quota units that were requested.
        """
        super().__init__(message, details)
        self.cost = cost


class YouTubeError(RadioError):
    """
    Raised when a YouTube Data API call fails.

    Can be CRITICAL for one credential (quota exceeded, status 403) or
    NON-CRITICAL (network error on a single query).

    Attributes:
        status_code: HTTP status returned by the API, if any.
        is_quota_error: True if the API refused the call for quota reasons.
                        The credential that made the call is flagged exhausted.

    Example:
        raise YouTubeError(
            "YouTube search failed: 403 quotaExceeded",
            details={'query': '"Artist" "Title" official', 'key_id': 'key1'},
            status_code=403,
            is_quota_error=True
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status_code: int | None = None,
        is_quota_error: bool = False
    ) -> None:
        """
        Initialize the YouTube error.

        Args:
            message: Human-readable error description.
            details: Optional additional context.
            status_code: HTTP status code, or None for transport errors.
            is_quota_error: Whether the failure consumed the credential's quota.
        """
        super().__init__(message, details)
        self.status_code = status_code
        self.is_quota_error = is_quota_error


class CatalogError(RadioError):
    """
    Raised when the catalog search provider fails.

    NON-CRITICAL: a failed discovery batch is logged and retried by the
    next health check.

    Attributes:
        is_rate_limit: True if the provider answered 429.
    """

    def __init__(self, message: str, details: dict | None = None, is_rate_limit: bool = False) -> None:
        super().__init__(message, details)
        self.is_rate_limit = is_rate_limit


class SpeechError(RadioError):
    """
    Raised when a spoken intro cannot be produced.

    NON-CRITICAL: the track simply plays without an intro.
    """
    pass


class AuthorizationError(RadioError):
    """
    Raised when a caller without the controller role invokes a privileged
    operation (skip, clear queue).

    Example:
        raise AuthorizationError(
            "Only controllers can skip tracks",
            details={'user_id': 'listener-42', 'operation': 'skip'}
        )
    """
    pass
