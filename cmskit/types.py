"""Core type definitions for the cmskit headless CMS client.

This module defines the records exchanged with the CMS service:
- FieldKind / FormField / FormDefinition: form rule sets used by the form engine
- FormStatus: lifecycle states of a form session
- FormSubmitResponse: result of a form submission
- Page / PageComponent / ComponentDefinition: page content and its blocks
- AgendaEvent / Post: listing content served by the CMS

Every record mirrors the service's snake_case JSON shape through
``to_dict()`` / ``from_dict()``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from dateutil.parser import isoparse
from typing_extensions import TypeAlias

from cmskit.errors import SchemaValidationError


FieldValue: TypeAlias = Union[str, bool]
"""A single form value: ``bool`` for checkbox fields, ``str`` for every other kind."""

FieldValues: TypeAlias = Dict[str, FieldValue]
ErrorMap: TypeAlias = Dict[str, str]


class FieldKind(str, Enum):
    """Input kinds a form field can have."""
    TEXT = "text"
    EMAIL = "email"
    PHONE = "phone"
    TEXTAREA = "textarea"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DATE = "date"


class FormStatus(str, Enum):
    """Form session lifecycle states.

    ``success`` is terminal until the session is reset. ``error`` covers both a
    failed load (no form definition) and a failed submission (form retained).
    """
    IDLE = "idle"
    LOADING = "loading"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


class ContentFieldKind(str, Enum):
    """Field kinds used by page components (content, not form input)."""
    TEXT = "text"
    TEXTAREA = "textarea"
    RICHTEXT = "richtext"
    MEDIA = "media"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    SELECT = "select"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return isoparse(value)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class FieldOption:
    """One choice of a select or radio field."""
    value: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "label": self.label}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldOption":
        value = str(data["value"])
        return cls(value=value, label=str(data.get("label", value)))


@dataclass(frozen=True)
class FieldValidation:
    """Validation constraints attached to a form field.

    Attributes:
        required: Whether a value must be provided
        min: Numeric lower bound for number fields, minimum length otherwise
        max: Numeric upper bound for number fields, maximum length otherwise
        regex: Pattern the value must contain a match for
    """
    required: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    regex: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {"required": self.required}
        if self.min is not None:
            result["min"] = self.min
        if self.max is not None:
            result["max"] = self.max
        if self.regex is not None:
            result["regex"] = self.regex
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldValidation":
        """Create FieldValidation from dict."""
        return cls(
            required=bool(data.get("required", False)),
            min=data.get("min"),
            max=data.get("max"),
            regex=data.get("regex") or None,
        )


@dataclass(frozen=True)
class FormField:
    """A single field rule within a form definition.

    Attributes:
        name: Unique field name within the form
        kind: Input kind (``type`` on the wire)
        label: Human-readable label, used in error messages
        placeholder: Optional placeholder text
        options: Choices for select and radio fields
        validation: Optional validation constraints

    Examples:
        >>> f = FormField(name="email", kind=FieldKind.EMAIL, label="Email")
        >>> f.required
        False
    """
    name: str
    kind: FieldKind
    label: str
    placeholder: Optional[str] = None
    options: List[FieldOption] = field(default_factory=list)
    validation: Optional[FieldValidation] = None

    def __post_init__(self):
        if isinstance(self.kind, str) and not isinstance(self.kind, FieldKind):
            object.__setattr__(self, "kind", FieldKind(self.kind))

    @property
    def required(self) -> bool:
        return self.validation is not None and self.validation.required

    @property
    def is_checkbox(self) -> bool:
        return self.kind == FieldKind.CHECKBOX

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "name": self.name,
            "type": self.kind.value,
            "label": self.label,
        }
        if self.placeholder is not None:
            result["placeholder"] = self.placeholder
        if self.options:
            result["options"] = [o.to_dict() for o in self.options]
        if self.validation is not None:
            result["validation"] = self.validation.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormField":
        """Create FormField from dict."""
        validation = data.get("validation")
        return cls(
            name=data["name"],
            kind=FieldKind(data["type"]),
            label=data.get("label") or data["name"],
            placeholder=data.get("placeholder"),
            options=[FieldOption.from_dict(o) for o in data.get("options") or []],
            validation=FieldValidation.from_dict(validation) if validation else None,
        )


@dataclass(frozen=True)
class FormDefinition:
    """A form rule set, identified by its slug.

    Field order is display and validation order. Field names are unique.

    Attributes:
        slug: Unique identifier of the form
        label: Human-readable form title
        fields: Ordered field rules
        success_message: Message shown after a successful submission
        id: Server-side numeric id, when known
    """
    slug: str
    label: str
    fields: List[FormField] = field(default_factory=list)
    success_message: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        seen = set()
        duplicates = []
        for f in self.fields:
            if f.name in seen:
                duplicates.append(f.name)
            seen.add(f.name)
        if duplicates:
            raise SchemaValidationError(
                f"Form '{self.slug}' has duplicate field names: {', '.join(duplicates)}",
                errors=[f"duplicate field name '{name}'" for name in duplicates],
            )

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Optional[FormField]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "slug": self.slug,
            "label": self.label,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.success_message is not None:
            result["success_message"] = self.success_message
        if self.id is not None:
            result["id"] = self.id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormDefinition":
        """Create FormDefinition from a validated payload.

        Raises:
            SchemaValidationError: If field names are not unique
        """
        return cls(
            slug=data["slug"],
            label=data.get("label", data["slug"]),
            fields=[FormField.from_dict(f) for f in data.get("fields", [])],
            success_message=data.get("success_message") or None,
            id=data.get("id"),
        )


@dataclass(frozen=True)
class FormSubmitResponse:
    """Response returned by the CMS after a form submission.

    Unknown response keys are preserved in ``extra``.
    """
    success: bool = True
    message: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.extra)
        result["success"] = self.success
        if self.message is not None:
            result["message"] = self.message
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormSubmitResponse":
        extra = {k: v for k, v in data.items() if k not in ("success", "message")}
        return cls(
            success=bool(data.get("success", True)),
            message=data.get("message") or None,
            extra=extra,
        )


@dataclass(frozen=True)
class ContentFieldDefinition:
    """Field declared by a component definition."""
    name: str
    kind: ContentFieldKind
    label: str
    required: bool = False
    options: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "type": self.kind.value,
            "label": self.label,
        }
        if self.required:
            result["required"] = True
        if self.options:
            result["options"] = list(self.options)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentFieldDefinition":
        return cls(
            name=data["name"],
            kind=ContentFieldKind(data["type"]),
            label=data.get("label", data["name"]),
            required=bool(data.get("required", False)),
            options=list(data.get("options") or []),
        )


@dataclass(frozen=True)
class ComponentDefinition:
    """A component (block) type declared in the CMS."""
    slug: str
    label: str
    fields: List[ContentFieldDefinition] = field(default_factory=list)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "slug": self.slug,
            "label": self.label,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.id is not None:
            result["id"] = self.id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentDefinition":
        return cls(
            slug=data["slug"],
            label=data.get("label", data["slug"]),
            fields=[ContentFieldDefinition.from_dict(f) for f in data.get("fields", [])],
            id=data.get("id"),
        )


@dataclass(frozen=True)
class PageComponent:
    """A component instance placed on a page, with its content."""
    id: int
    component_slug: str
    data: Dict[str, Any] = field(default_factory=dict)
    page_id: Optional[int] = None
    order: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageComponent":
        return cls(
            id=data["id"],
            component_slug=data["component_slug"],
            data=dict(data.get("data") or {}),
            page_id=data.get("page_id"),
            order=data.get("order"),
        )


@dataclass(frozen=True)
class Page:
    """A page and its ordered components."""
    id: int
    slug: str
    title: str
    allowed_blocks: List[str] = field(default_factory=list)
    components: List[PageComponent] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Page":
        return cls(
            id=data["id"],
            slug=data["slug"],
            title=data.get("title", ""),
            allowed_blocks=list(data.get("allowed_blocks") or []),
            components=[PageComponent.from_dict(c) for c in data.get("components") or []],
        )


@dataclass(frozen=True)
class AgendaEvent:
    """A scheduled event published in the CMS agenda."""
    id: int
    slug: str
    title: str
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    description: Optional[str] = None
    location: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    image: Optional[Union[str, Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "start_at": _format_timestamp(self.start_at),
            "end_at": _format_timestamp(self.end_at),
            "description": self.description,
            "location": self.location,
            "category": self.category,
            "status": self.status,
            "image": self.image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgendaEvent":
        return cls(
            id=data["id"],
            slug=data["slug"],
            title=data.get("title", ""),
            start_at=_parse_timestamp(data.get("start_at")),
            end_at=_parse_timestamp(data.get("end_at")),
            description=data.get("description"),
            location=data.get("location"),
            category=data.get("category"),
            status=data.get("status"),
            image=data.get("image"),
        )


@dataclass(frozen=True)
class AgendaEventsParams:
    """Filters for listing agenda events.

    By default the service returns published events ordered by start time.
    """
    status: Optional[str] = None
    upcoming: bool = False
    category: Optional[str] = None
    limit: Optional[int] = None

    def to_query(self) -> Dict[str, str]:
        """Build the query-string parameters, omitting unset filters."""
        query: Dict[str, str] = {}
        if self.status:
            query["status"] = self.status
        if self.upcoming:
            query["upcoming"] = "1"
        if self.category:
            query["category"] = self.category
        if self.limit is not None:
            query["limit"] = str(self.limit)
        return query


@dataclass(frozen=True)
class AgendaEventsResponse:
    """One page of agenda events plus pagination metadata."""
    data: List[AgendaEvent] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgendaEventsResponse":
        return cls(
            data=[AgendaEvent.from_dict(e) for e in data.get("data") or []],
            meta=dict(data.get("meta") or {}),
        )


@dataclass(frozen=True)
class Post:
    """A published post (news item, blog entry)."""
    id: int
    slug: str
    title: str
    excerpt: Optional[str] = None
    content: Optional[str] = None
    published_at: Optional[datetime] = None
    image: Optional[Union[str, Dict[str, Any]]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        return cls(
            id=data["id"],
            slug=data["slug"],
            title=data.get("title", ""),
            excerpt=data.get("excerpt"),
            content=data.get("content"),
            published_at=_parse_timestamp(data.get("published_at")),
            image=data.get("image"),
        )


@dataclass(frozen=True)
class PostsResponse:
    """One page of posts plus pagination metadata."""
    data: List[Post] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PostsResponse":
        return cls(
            data=[Post.from_dict(p) for p in data.get("data") or []],
            meta=dict(data.get("meta") or {}),
        )


__all__ = [
    "FieldValue",
    "FieldValues",
    "ErrorMap",
    "FieldKind",
    "FormStatus",
    "ContentFieldKind",
    "FieldOption",
    "FieldValidation",
    "FormField",
    "FormDefinition",
    "FormSubmitResponse",
    "ContentFieldDefinition",
    "ComponentDefinition",
    "PageComponent",
    "Page",
    "AgendaEvent",
    "AgendaEventsParams",
    "AgendaEventsResponse",
    "Post",
    "PostsResponse",
]
