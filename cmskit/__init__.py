"""cmskit: Python client SDK for a headless CMS.

cmskit provides:
- An async HTTP client for pages, forms, agenda events and posts
- Block and page rendering through an injectable renderer registry
- A form engine: client-side validation that mirrors the server's rules and a
  form session that drives loading, editing, submitting and the outcome
- The ``cms`` command line tool to bootstrap and sync cms-config.json

Basic usage:
    >>> from cmskit import FormSession
    >>> from cmskit.types import FieldKind, FieldValidation, FormDefinition, FormField
    >>> form = FormDefinition(slug="contact", label="Contact", fields=[
    ...     FormField(name="name", kind=FieldKind.TEXT, label="Name",
    ...               validation=FieldValidation(required=True)),
    ... ])
    >>> class Transport:
    ...     async def submit_form(self, slug, values):
    ...         return {"success": True}
    >>> session = FormSession(form=form, transport=Transport())
    >>> print(session.status.value)
    idle
"""

__version__ = "0.1.0"
__author__ = "cmskit Team"

# Version info
VERSION = (0, 1, 0)

# Core exports
from cmskit.client import CmsClient, create_cms_client
from cmskit.rendering import BlockRegistry, render_page
from cmskit.session import FormSession, FormSnapshot
from cmskit.validation import validate_form_data

# Package metadata
__all__ = [
    "__version__",
    "VERSION",
    "CmsClient",
    "create_cms_client",
    "BlockRegistry",
    "render_page",
    "FormSession",
    "FormSnapshot",
    "validate_form_data",
]
