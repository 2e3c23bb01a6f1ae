"""Request body validation + error reporting utilities for image ingestion."""

from __future__ import annotations

from pydantic import ValidationError

from core.errors import ImageValidationError
from core.models import BatchImageRequest, RemoteImageRequest


class ValidationErrorDetail:
    """Structured validation error for API responses."""

    def __init__(self, field: str, message: str, value: object = None):
        self.field = field
        self.message = message
        self.value = value

    def to_dict(self) -> dict:
        d: dict = {"field": self.field, "message": self.message}
        if self.value is not None:
            d["value"] = repr(self.value)
        return d


def _pydantic_errors_to_details(exc: ValidationError) -> list[ValidationErrorDetail]:
    """Convert Pydantic ValidationError to our structured error format."""
    details: list[ValidationErrorDetail] = []
    for err in exc.errors():
        field = ".".join(str(loc) for loc in err["loc"])
        details.append(ValidationErrorDetail(
            field=field,
            message=err["msg"],
            value=err.get("input"),
        ))
    return details


def _to_image_validation_error(exc: ValidationError) -> ImageValidationError:
    details = _pydantic_errors_to_details(exc)
    first = details[0] if details else None
    return ImageValidationError(
        f"{first.field}: {first.message}" if first else "Invalid request body",
        field=first.field if first else None,
        errors=[d.to_dict() for d in details],
    )


def validate_remote_image_request(data: object) -> RemoteImageRequest:
    """Validate a JSON POST /images body. Raises ImageValidationError on failure."""
    if not isinstance(data, dict):
        raise ImageValidationError("Request body must be a JSON object")
    try:
        return RemoteImageRequest.model_validate(data)
    except ValidationError as exc:
        raise _to_image_validation_error(exc) from exc


def validate_batch_request(data: object) -> BatchImageRequest:
    """Validate a POST /images/batch body. Raises ImageValidationError on failure."""
    if not isinstance(data, dict):
        raise ImageValidationError("Request body must be a JSON object")
    try:
        return BatchImageRequest.model_validate(data)
    except ValidationError as exc:
        raise _to_image_validation_error(exc) from exc
