"""Exception types for the cmskit client.

All errors raised by the HTTP client, configuration loading and payload
validation derive from CmsError so callers can catch them in one place.
Per-field form validation failures are not exceptions: they are reported as an
error map by cmskit.validation.

Form session caller errors (unknown field, wrong value type) are raised as
standard ValueError/TypeError subclasses since they indicate a programming
mistake in the presentation layer rather than a service failure.
"""

from typing import List, Optional


class CmsError(Exception):
    """Base class for errors raised by cmskit."""


class CmsApiError(CmsError):
    """The CMS answered with a non-2xx status.

    Attributes:
        status: HTTP status code
        body: Raw response body text
    """

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"CMS API Error ({status}): {body}")


class CmsConnectionError(CmsError):
    """The CMS could not be reached (DNS, refused connection, timeout)."""


class CmsResponseError(CmsError):
    """The CMS answered 2xx but the body is not the expected JSON payload."""


class SchemaValidationError(CmsResponseError):
    """A payload does not match its JSON Schema.

    Attributes:
        errors: One message per schema violation
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        super().__init__(message)


class CmsConfigError(CmsError):
    """Client configuration is missing or invalid."""


class ConfigError(CmsConfigError):
    """The cms-config.json file is missing, unreadable or invalid."""


class UnknownFieldError(ValueError):
    """A form session was given a field name the form does not define."""

    def __init__(self, form_slug: str, field_name: str):
        self.form_slug = form_slug
        self.field_name = field_name
        super().__init__(f"Form '{form_slug}' has no field named '{field_name}'")


class FieldValueTypeError(TypeError):
    """A form value does not match the field kind (bool for checkbox, str otherwise)."""

    def __init__(self, field_name: str, expected: type, received: object):
        self.field_name = field_name
        self.expected = expected
        self.received = received
        super().__init__(
            f"Field '{field_name}' expects a {expected.__name__} value, "
            f"got {type(received).__name__}"
        )


__all__ = [
    "CmsError",
    "CmsApiError",
    "CmsConnectionError",
    "CmsResponseError",
    "SchemaValidationError",
    "CmsConfigError",
    "ConfigError",
    "UnknownFieldError",
    "FieldValueTypeError",
]
