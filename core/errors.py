"""Error taxonomy for the image subsystem.

Every error knows the HTTP status it maps to and how to render itself, so the
handlers in api/errors.py stay one-liners.
"""

from __future__ import annotations


class ImageServiceError(Exception):
    status_code = 500
    default_message = "Image operation failed"

    def __init__(self, message: str | None = None, field: str | None = None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)

    def to_response_body(self) -> dict:
        body: dict = {"success": False, "error": self.message}
        if self.field is not None:
            body["field"] = self.field
        return body


class ImageValidationError(ImageServiceError):
    """Bad input shape, disallowed content type or slot out of range."""

    status_code = 400
    default_message = "Invalid request"

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        errors: list[dict] | None = None,
    ):
        super().__init__(message, field)
        self.errors = errors or []

    def to_response_body(self) -> dict:
        body = super().to_response_body()
        if self.errors:
            body["errors"] = self.errors
        return body


class AuthorizationError(ImageServiceError):
    status_code = 401
    default_message = "Unauthorized"


class ReadOnlyAccessError(ImageServiceError):
    status_code = 403
    default_message = "Demo admin is read-only"


class NotFoundError(ImageServiceError):
    status_code = 404
    default_message = "Not found"


class CapacityExceededError(ImageServiceError):
    status_code = 400
    default_message = "Image limit reached"


class UpstreamFetchError(ImageServiceError):
    """Remote URL unreachable, non-2xx, not an image, or timed out."""

    status_code = 400
    default_message = "Failed to download image from URL"


class PayloadTooLargeError(ImageServiceError):
    status_code = 413
    default_message = "Image too large"


class LegacyDecodeError(ImageServiceError):
    # Never reaches a client: the hero resolver turns it into "not found"
    status_code = 404
    default_message = "Legacy hero image payload could not be decoded"


class StorageError(ImageServiceError):
    status_code = 500
    default_message = "Storage failure"
