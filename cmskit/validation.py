"""Client-side form validation for cmskit.

This module mirrors the CMS backend's form validation rules so a form can be
checked before it is sent. ``validate_form_data`` evaluates every field of a
form definition against the submitted values and returns at most one message
per field: the first failing check, in this order:

1. required
2. (empty optional fields and checkboxes stop here)
3. kind-specific format (email, number range, date, select/radio option)
4. string length bounds (not for number fields)
5. custom regex

Validation never raises. Regex constraints use ECMAScript syntax and are
translated for ``re`` (see ``translate_ecma_pattern``); a pattern that still
does not compile is skipped.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from dateutil import parser as date_parser

from cmskit.types import ErrorMap, FieldKind, FormDefinition, FormField


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+\Z")

_INFINITY_LITERALS = {"Infinity": math.inf, "+Infinity": math.inf, "-Infinity": -math.inf}
_PREFIXED_INT = re.compile(r"^0[xXoObB][0-9a-fA-F]+$")
_BACKREFERENCE = re.compile(r"\\k<([A-Za-z_]\w*)>")


def _stringify(value: Any) -> str:
    """Render a submitted value the way it is sent over the wire."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_number(text: str) -> Optional[float]:
    """Parse a numeric string, returning None when it is not a number.

    Accepts decimal and exponent notation, 0x/0o/0b integer literals,
    surrounding whitespace and ``Infinity``. Rejects NaN, digit separators and
    non-ASCII digits.
    """
    text = text.strip()
    if not text.isascii():
        return None
    if text in _INFINITY_LITERALS:
        return _INFINITY_LITERALS[text]
    if _PREFIXED_INT.match(text):
        try:
            return float(int(text, 0))
        except ValueError:
            return None
    if "_" in text or any(c.isalpha() and c not in "eE" for c in text):
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number):
        return None
    return number


def _format_bound(bound: float) -> str:
    if isinstance(bound, float) and bound.is_integer():
        return str(int(bound))
    return str(bound)


_DATE_DEFAULTS = (datetime(1999, 1, 1), datetime(2003, 12, 28))


def _is_date(text: str) -> bool:
    """True when ``text`` names a full calendar date.

    The value is parsed against two different default dates; if the year,
    month or day comes out differently, part of the date was missing.
    """
    try:
        first, second = (date_parser.parse(text, default=d) for d in _DATE_DEFAULTS)
    except (ValueError, OverflowError):
        return False
    return first.date() == second.date()


def translate_ecma_pattern(pattern: str) -> str:
    """Rewrite ECMAScript regex syntax that Python's ``re`` reads differently.

    - ``$`` outside a character class anchors at the very end (``\\Z``)
    - ``(?<name>...)`` and ``\\k<name>`` become Python named groups
    - ``[]`` never matches and ``[^]`` matches any character

    Examples:
        >>> translate_ecma_pattern("^(?<d>[0-9]+)$")
        '^(?P<d>[0-9]+)\\\\Z'
    """
    out = []
    i = 0
    in_class = False
    length = len(pattern)
    while i < length:
        c = pattern[i]
        if c == "\\":
            match = _BACKREFERENCE.match(pattern, i)
            if match and not in_class:
                out.append(f"(?P={match.group(1)})")
                i = match.end()
            else:
                out.append(pattern[i:i + 2])
                i += 2
            continue
        if in_class:
            if c == "]":
                in_class = False
            out.append(c)
        elif c == "[":
            if pattern.startswith("[]", i):
                out.append("(?!)")
                i += 2
                continue
            if pattern.startswith("[^]", i):
                out.append(r"[\s\S]")
                i += 3
                continue
            in_class = True
            out.append(c)
        elif c == "$":
            out.append(r"\Z")
        elif pattern.startswith("(?<", i) and pattern[i + 3:i + 4] not in ("=", "!"):
            out.append("(?P<")
            i += 3
            continue
        else:
            out.append(c)
        i += 1
    return "".join(out)


def _compile(pattern: str) -> Optional["re.Pattern[str]"]:
    try:
        return re.compile(translate_ecma_pattern(pattern), re.ASCII)
    except (re.error, OverflowError, RecursionError, ValueError):
        return None


def _check_kind(form_field: FormField, text: str) -> Optional[str]:
    """Run the kind-specific format check on a non-empty value."""
    validation = form_field.validation
    kind = form_field.kind

    if kind == FieldKind.EMAIL:
        if not EMAIL_PATTERN.match(text):
            return "Please enter a valid email address"

    elif kind == FieldKind.NUMBER:
        number = _parse_number(text)
        if number is None:
            return "Please enter a valid number"
        if validation is not None:
            if validation.min is not None and number < validation.min:
                return f"Must be at least {_format_bound(validation.min)}"
            if validation.max is not None and number > validation.max:
                return f"Must be at most {_format_bound(validation.max)}"

    elif kind == FieldKind.DATE:
        if not _is_date(text):
            return "Please enter a valid date"

    elif kind in (FieldKind.SELECT, FieldKind.RADIO):
        if form_field.options:
            if text not in {o.value for o in form_field.options}:
                return "Please select a valid option"

    return None


def validate_field(form_field: FormField, value: Any) -> Optional[str]:
    """Return the first validation message for one field, or None if valid.

    Examples:
        >>> from cmskit.types import FieldValidation
        >>> age = FormField(name="age", kind=FieldKind.NUMBER, label="Age",
        ...                 validation=FieldValidation(min=18, max=65))
        >>> validate_field(age, "10")
        'Must be at least 18'
        >>> validate_field(age, "30") is None
        True
    """
    validation = form_field.validation

    if form_field.required:
        if form_field.is_checkbox:
            if value is not True:
                return f"{form_field.label} is required"
        elif value is None or _stringify(value).strip() == "":
            return f"{form_field.label} is required"

    if form_field.is_checkbox:
        return None

    text = _stringify(value)
    if text.strip() == "":
        return None

    message = _check_kind(form_field, text)
    if message is not None:
        return message

    if validation is None:
        return None

    if form_field.kind != FieldKind.NUMBER:
        if validation.min is not None and len(text) < validation.min:
            return f"Must be at least {_format_bound(validation.min)} characters"
        if validation.max is not None and len(text) > validation.max:
            return f"Must be at most {_format_bound(validation.max)} characters"

    if validation.regex:
        pattern = _compile(validation.regex)
        if pattern is not None and not pattern.search(text):
            return f"{form_field.label} format is invalid"

    return None


def validate_form_data(fields: Sequence[FormField], values: Mapping[str, Any]) -> ErrorMap:
    """Validate form values against field rules.

    Args:
        fields: The form's field rules
        values: Current values keyed by field name

    Returns:
        Mapping of field name to its first error message. Empty means valid.

    Examples:
        >>> from cmskit.types import FieldValidation
        >>> agree = FormField(name="agree", kind=FieldKind.CHECKBOX, label="Terms",
        ...                   validation=FieldValidation(required=True))
        >>> validate_form_data([agree], {"agree": False})
        {'agree': 'Terms is required'}
        >>> validate_form_data([agree], {"agree": True})
        {}
    """
    errors: ErrorMap = {}
    for form_field in fields:
        message = validate_field(form_field, values.get(form_field.name))
        if message is not None:
            errors[form_field.name] = message
    return errors


def find_invalid_patterns(fields: Sequence[FormField]) -> List[str]:
    """Return the names of fields whose regex does not compile."""
    return [
        f.name
        for f in fields
        if f.validation is not None and f.validation.regex and _compile(f.validation.regex) is None
    ]


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating form values.

    Attributes:
        is_valid: Whether every field passed
        errors: Field name to first error message (empty if valid)
        invalid_fields: Names of failing fields, in form field order
    """
    is_valid: bool
    errors: ErrorMap = field(default_factory=dict)
    invalid_fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "isValid": self.is_valid,
            "errors": dict(self.errors),
            "invalidFields": list(self.invalid_fields),
        }


class ValidationEngine:
    """Validates values for one form definition.

    Examples:
        >>> from cmskit.types import FieldValidation
        >>> form = FormDefinition(slug="contact", label="Contact", fields=[
        ...     FormField(name="email", kind=FieldKind.EMAIL, label="Email",
        ...               validation=FieldValidation(required=True)),
        ... ])
        >>> engine = ValidationEngine(form)
        >>> engine.validate({"email": "ada@example.com"}).is_valid
        True
        >>> engine.validate({"email": "nope"}).errors
        {'email': 'Please enter a valid email address'}
    """

    def __init__(self, form: Union[FormDefinition, Sequence[FormField]]) -> None:
        if isinstance(form, FormDefinition):
            self.slug: Optional[str] = form.slug
            self.fields: List[FormField] = list(form.fields)
        else:
            self.slug = None
            self.fields = list(form)
        self.invalid_patterns = find_invalid_patterns(self.fields)
        if self.invalid_patterns:
            logger.warning(
                "Form '%s' has regex constraints that do not compile and will be skipped: %s",
                self.slug or "<fields>", ", ".join(self.invalid_patterns),
            )

    def validate(self, values: Mapping[str, Any]) -> ValidationResult:
        errors = validate_form_data(self.fields, values)
        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            invalid_fields=[f.name for f in self.fields if f.name in errors],
        )


__all__ = [
    "EMAIL_PATTERN",
    "translate_ecma_pattern",
    "validate_field",
    "validate_form_data",
    "find_invalid_patterns",
    "ValidationResult",
    "ValidationEngine",
]
