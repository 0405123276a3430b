"""Custom exceptions for TweetVault.

This module defines the exception hierarchy used by the media acquisition
pipeline. Every failure that can happen while acquiring a single media asset
inherits from AcquisitionError, which carries a ``retryable`` flag consumed
by the retry helper.
"""


class AcquisitionError(Exception):
    """Base class for media acquisition errors.

    All recoverable errors while fetching or extracting media should inherit
    from this class.
    """

    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class MediaFetchError(AcquisitionError):
    """Direct HTTP fetch of a media asset failed.

    Covers network failures and non-2xx responses. Treated as transient.
    """

    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message, retryable=retryable)
        self.status_code = status_code


class ExtractorError(AcquisitionError):
    """The external video extractor failed.

    Non-zero exit, timeout or unparseable output. Treated as transient.
    """

    retryable: bool = True


class ExtractorUnavailableError(ExtractorError):
    """The extractor binary could not be spawned.

    Retrying will not help until the binary is installed.
    """

    retryable: bool = False


class ConfigurationError(Exception):
    """Invalid configuration.

    This is NOT an AcquisitionError - configuration issues should be fixed
    before the server runs, not retried automatically.
    """

    pass
