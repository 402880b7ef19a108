"""Shared fixtures: sample forms and controllable fake collaborators."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from cmskit.types import (
    FieldKind,
    FieldOption,
    FieldValidation,
    FormDefinition,
    FormField,
    FormSubmitResponse,
)


CONTACT_FORM_PAYLOAD: Dict[str, Any] = {
    "id": 7,
    "slug": "contact",
    "label": "Contact us",
    "success_message": "We will be in touch",
    "fields": [
        {"name": "name", "type": "text", "label": "Name", "validation": {"required": True}},
        {"name": "email", "type": "email", "label": "Email", "validation": {"required": True}},
        {
            "name": "topic",
            "type": "select",
            "label": "Topic",
            "options": [
                {"value": "sales", "label": "Sales"},
                {"value": "support", "label": "Support"},
            ],
        },
        {"name": "message", "type": "textarea", "label": "Message", "validation": {"max": 500}},
        {"name": "agree", "type": "checkbox", "label": "Privacy policy", "validation": {"required": True}},
    ],
}


def make_contact_form() -> FormDefinition:
    return FormDefinition(
        slug="contact",
        label="Contact us",
        success_message="We will be in touch",
        fields=[
            FormField(name="name", kind=FieldKind.TEXT, label="Name",
                      validation=FieldValidation(required=True)),
            FormField(name="email", kind=FieldKind.EMAIL, label="Email",
                      validation=FieldValidation(required=True)),
            FormField(name="topic", kind=FieldKind.SELECT, label="Topic", options=[
                FieldOption(value="sales", label="Sales"),
                FieldOption(value="support", label="Support"),
            ]),
            FormField(name="message", kind=FieldKind.TEXTAREA, label="Message",
                      validation=FieldValidation(max=500)),
            FormField(name="agree", kind=FieldKind.CHECKBOX, label="Privacy policy",
                      validation=FieldValidation(required=True)),
        ],
    )


def fill_valid(session) -> None:
    session.set_field("name", "Ada Lovelace")
    session.set_field("email", "ada@example.com")
    session.set_field("topic", "support")
    session.set_field("agree", True)


class FakeTransport:
    """Records submissions; answers immediately, fails, or waits to be resolved."""

    def __init__(
        self,
        response: Any = None,
        error: Optional[Exception] = None,
        hold: bool = False,
    ):
        self.response = response
        self.error = error
        self.hold = hold
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.pending: Optional[asyncio.Future] = None

    async def submit_form(self, slug: str, values: Dict[str, Any]) -> Any:
        self.calls.append((slug, dict(values)))
        if self.hold:
            self.pending = asyncio.get_running_loop().create_future()
            return await self.pending
        if self.error is not None:
            raise self.error
        return self.response if self.response is not None else FormSubmitResponse()


class FakeSource:
    """Form definition source whose answer is released by the test."""

    def __init__(self):
        self.calls: List[str] = []
        self.pending: Optional[asyncio.Future] = None

    async def get_form(self, slug: str) -> Any:
        self.calls.append(slug)
        self.pending = asyncio.get_running_loop().create_future()
        return await self.pending


@pytest.fixture
def contact_form() -> FormDefinition:
    return make_contact_form()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport(response=FormSubmitResponse(message="Thanks"))


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()
