"""HTML rendering of a form session snapshot.

``render_form`` turns a FormSnapshot into markup: a loading notice, a load
error, the success message, or the editable form with per-field errors and a
submit button that is disabled while the submission is in flight.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup

from cmskit.session import FormSnapshot


INPUT_TYPES = {
    "text": "text",
    "email": "email",
    "phone": "tel",
    "number": "number",
    "date": "date",
}


@dataclass(frozen=True)
class FormClassNames:
    """CSS classes applied to the rendered form's elements."""
    form: Optional[str] = None
    field: Optional[str] = None
    label: Optional[str] = None
    input: Optional[str] = None
    error: Optional[str] = None
    button: Optional[str] = None
    success: Optional[str] = None
    error_container: Optional[str] = None
    loading: Optional[str] = None


@lru_cache(maxsize=None)
def _environment() -> Environment:
    return Environment(
        loader=PackageLoader("cmskit", "templates"),
        autoescape=select_autoescape(["html", "j2"]),
    )


def render_form(
    snapshot: FormSnapshot,
    class_names: Optional[FormClassNames] = None,
    loading_text: str = "Loading form...",
    extra_html: Optional[Markup] = None,
) -> Markup:
    """Render a form snapshot as HTML.

    Args:
        snapshot: The session state to render
        class_names: CSS classes for the form's elements
        loading_text: Text shown while the form definition loads
        extra_html: Trusted markup inserted after the fields
    """
    template = _environment().get_template("form.html.j2")
    html = template.render(
        snapshot=snapshot,
        classes=class_names or FormClassNames(),
        loading_text=loading_text,
        extra_html=extra_html,
        input_types=INPUT_TYPES,
    )
    return Markup(html)


__all__ = [
    "INPUT_TYPES",
    "FormClassNames",
    "render_form",
]
