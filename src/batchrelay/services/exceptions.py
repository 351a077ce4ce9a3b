"""Service error hierarchy for record store and provider operations.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- UpstreamError: Non-success answer (or no answer) from an external HTTP API
- BatchValidationError: Bad batch request, reported to the caller as 400

Nothing in the service retries; these types only decide how an error is
reported (batch response, failure log entry, or webhook ack).
"""

from typing import Optional


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class UpstreamError(ServiceError):
    """External API answered with a non-success status or could not be reached.

    Attributes:
        status_code: HTTP status, or None for transport failures (timeout, DNS, reset)
        body: Raw response body text (empty for transport failures)
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


# Record store errors
class RecordStoreError(UpstreamError):
    """Airtable create/read/patch failed."""

    pass


# Provider errors
class ProviderError(UpstreamError):
    """Provider rejected a job submission."""

    pass


class ProviderResponseDecodeError(ProviderError):
    """Provider answered 2xx but the body does not match a known response shape."""

    pass


class ImageFetchError(ServiceError):
    """Reference image URL could not be downloaded for inlining."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch image {url}: {reason}")
        self.url = url


class CallbackDecodeError(ServiceError):
    """Webhook payload does not match the provider's known callback shape."""

    pass


# Request validation errors
class BatchValidationError(ServiceError):
    """Batch request rejected before anything was created."""

    pass


class UnknownProviderError(BatchValidationError):
    """Provider name is not one of the configured adapters."""

    def __init__(self, provider: str):
        super().__init__(f"Unknown provider: {provider!r}")
        self.provider = provider
