"""Content cache exceptions."""


class ContentCacheError(Exception):
    """Base exception for content cache operations."""

    pass


class RemoteUnavailable(ContentCacheError):
    """The content source could not be reached or answered with an error.

    Recoverable: the failed fetch is never cached.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteSchemaError(ContentCacheError):
    """A raw record did not have the shape its mapper expects."""

    def __init__(self, message: str, *, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class CursorInvalid(ContentCacheError):
    """The source rejected a pagination cursor (expired or unknown)."""

    pass


class WebhookVerificationFailed(ContentCacheError):
    """Webhook signature missing or not matching the payload."""

    pass


class InvalidWebhookPayload(ContentCacheError):
    """Webhook was signed correctly but its body could not be parsed."""

    pass


class CacheSerializationError(ContentCacheError):
    """A shared tier payload could not be encoded or decoded."""

    pass
