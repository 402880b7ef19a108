"""Tests for the form session (submission state machine).

Tests cover:
- Initialization with a supplied form or a slug to load
- Loading success and failure
- Field edits, value types and error clearing
- Submit blocked by validation, successful and failed submissions
- Rejection of overlapping submits
- Discarding late results after teardown
- Reset and snapshots
"""

import asyncio

import pytest

from cmskit.errors import CmsApiError, FieldValueTypeError, UnknownFieldError
from cmskit.events import EventEmitter, EventType
from cmskit.session import (
    DEFAULT_SUCCESS_MESSAGE,
    FormSession,
    FormSnapshot,
    build_initial_values,
)
from cmskit.types import (
    FieldKind,
    FieldValidation,
    FormDefinition,
    FormField,
    FormStatus,
    FormSubmitResponse,
)

from tests.conftest import (
    CONTACT_FORM_PAYLOAD,
    FakeSource,
    FakeTransport,
    fill_valid,
    make_contact_form,
)


def record_events(session):
    events = []
    session.emitter.on_any(events.append)
    return events


class TestInitialization:
    """Test how a session starts."""

    def test_supplied_form_starts_idle(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        snapshot = session.snapshot
        assert snapshot.status == FormStatus.IDLE
        assert snapshot.form is contact_form
        assert snapshot.values == {
            "name": "", "email": "", "topic": "", "message": "", "agree": False,
        }
        assert snapshot.errors == {}
        assert snapshot.result_message == ""

    def test_slug_starts_loading(self, source, transport):
        session = FormSession(slug="contact", source=source, transport=transport)
        assert session.status == FormStatus.LOADING
        assert session.form is None
        assert session.snapshot.values == {}

    def test_requires_form_or_source(self, transport):
        with pytest.raises(ValueError):
            FormSession(transport=transport)
        with pytest.raises(ValueError):
            FormSession(slug="contact", transport=transport)

    def test_requires_transport(self, contact_form):
        with pytest.raises(ValueError):
            FormSession(form=contact_form)

    def test_source_doubles_as_transport(self):
        class Client(FakeSource, FakeTransport):
            def __init__(self):
                FakeSource.__init__(self)
                FakeTransport.__init__(self)

        client = Client()
        session = FormSession(slug="contact", source=client)
        assert session._transport is client

    def test_supplied_form_with_uncompilable_regex(self, transport):
        form = FormDefinition(slug="code", label="Code", fields=[
            FormField(name="code", kind=FieldKind.TEXT, label="Code",
                      validation=FieldValidation(regex="a{4294967296}")),
        ])
        session = FormSession(form=form, transport=transport)
        assert session.status == FormStatus.IDLE

    def test_build_initial_values_keeps_field_order(self, contact_form):
        assert list(build_initial_values(contact_form)) == contact_form.field_names()


class TestLoading:
    """Test fetching the form definition."""

    @pytest.mark.asyncio
    async def test_load_success(self, source, transport, contact_form):
        session = FormSession(slug="contact", source=source, transport=transport)
        events = record_events(session)
        task = session.mount()
        await asyncio.sleep(0)
        assert source.calls == ["contact"]

        source.pending.set_result(contact_form)
        await task

        assert session.status == FormStatus.IDLE
        assert session.form is contact_form
        assert session.snapshot.values == build_initial_values(contact_form)
        assert [e.type for e in events] == [EventType.FORM_LOADED]

    @pytest.mark.asyncio
    async def test_load_accepts_raw_payload(self, source, transport):
        session = FormSession(slug="contact", source=source, transport=transport)
        task = session.mount()
        await asyncio.sleep(0)
        source.pending.set_result(CONTACT_FORM_PAYLOAD)
        await task
        assert session.status == FormStatus.IDLE
        assert session.form.field_names() == ["name", "email", "topic", "message", "agree"]

    @pytest.mark.asyncio
    async def test_load_failure(self, source, transport):
        load_errors = []
        session = FormSession(
            slug="contact", source=source, transport=transport, on_load_error=load_errors.append,
        )
        task = session.mount()
        await asyncio.sleep(0)
        failure = CmsApiError(404, "Form not found")
        source.pending.set_exception(failure)
        await task

        snapshot = session.snapshot
        assert snapshot.status == FormStatus.ERROR
        assert snapshot.form is None
        assert snapshot.is_load_failure is True
        assert snapshot.result_message == "CMS API Error (404): Form not found"
        assert load_errors == [failure]

    @pytest.mark.asyncio
    async def test_load_failure_without_message_uses_default(self, source, transport):
        session = FormSession(slug="contact", source=source, transport=transport)
        task = session.mount()
        await asyncio.sleep(0)
        source.pending.set_exception(RuntimeError())
        await task
        assert session.snapshot.result_message == "Failed to load form"

    @pytest.mark.asyncio
    async def test_malformed_payload_is_a_load_failure(self, source, transport):
        session = FormSession(slug="contact", source=source, transport=transport)
        task = session.mount()
        await asyncio.sleep(0)
        source.pending.set_result({"slug": "contact", "fields": [{"name": "x", "type": "bogus"}]})
        await task
        assert session.status == FormStatus.ERROR
        assert session.form is None

    @pytest.mark.asyncio
    async def test_load_failure_is_not_recoverable(self, source, transport):
        session = FormSession(slug="contact", source=source, transport=transport)
        task = session.mount()
        await asyncio.sleep(0)
        source.pending.set_exception(RuntimeError("down"))
        await task

        assert session.set_field("name", "Ada") is False
        assert await session.submit() is False
        assert session.reset() is False
        assert session.status == FormStatus.ERROR
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_mount_is_idempotent(self, source, transport):
        session = FormSession(slug="contact", source=source, transport=transport)
        task = session.mount()
        assert session.mount() is task
        await asyncio.sleep(0)
        assert source.calls == ["contact"]
        source.pending.set_result(make_contact_form())
        await task

    @pytest.mark.asyncio
    async def test_mount_with_supplied_form_is_noop(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        assert session.mount() is None
        await session.load()
        assert session.status == FormStatus.IDLE

    @pytest.mark.asyncio
    async def test_load_awaits_outcome(self, transport, contact_form):
        class ImmediateSource:
            async def get_form(self, slug):
                return contact_form

        session = FormSession(slug="contact", source=ImmediateSource(), transport=transport)
        await session.load()
        assert session.status == FormStatus.IDLE

    @pytest.mark.asyncio
    async def test_uncompilable_regex_does_not_break_load(self, source, transport, caplog):
        session = FormSession(slug="code", source=source, transport=transport)
        events = record_events(session)
        task = session.mount()
        await asyncio.sleep(0)
        with caplog.at_level("WARNING", logger="cmskit.validation"):
            source.pending.set_result({
                "slug": "code",
                "fields": [{
                    "name": "code", "type": "text", "label": "Code",
                    "validation": {"required": True, "regex": "a{4294967296}"},
                }],
            })
            await task

        assert session.status == FormStatus.IDLE
        assert [e.type for e in events] == [EventType.FORM_LOADED]
        assert "code" in caplog.text

        session.set_field("code", "anything")
        assert await session.submit() is True
        assert transport.calls == [("code", {"code": "anything"})]

    @pytest.mark.asyncio
    async def test_edits_ignored_while_loading(self, source, transport):
        session = FormSession(slug="contact", source=source, transport=transport)
        assert session.set_field("name", "Ada") is False
        assert await session.submit() is False
        assert transport.calls == []


class TestFieldEdits:
    """Test field edits."""

    def test_edit_updates_value(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        assert session.set_field("name", "Ada") is True
        assert session.snapshot.values["name"] == "Ada"
        assert session.status == FormStatus.IDLE

    def test_edits_apply_in_order(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        session.set_field("name", "A")
        session.set_field("name", "Ad")
        session.set_field("name", "Ada")
        assert session.snapshot.values["name"] == "Ada"

    @pytest.mark.asyncio
    async def test_edit_clears_only_that_field_error(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        await session.submit()
        assert set(session.snapshot.errors) == {"name", "email", "agree"}

        session.set_field("name", "x")
        assert set(session.snapshot.errors) == {"email", "agree"}

    @pytest.mark.asyncio
    async def test_edit_does_not_revalidate(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        await session.submit()
        session.set_field("email", "still not an email")
        assert "email" not in session.snapshot.errors

    def test_unknown_field(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        with pytest.raises(UnknownFieldError):
            session.set_field("nope", "x")

    def test_checkbox_needs_bool(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        with pytest.raises(FieldValueTypeError):
            session.set_field("agree", "true")

    def test_text_needs_str(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        with pytest.raises(FieldValueTypeError):
            session.set_field("name", True)

    def test_edit_emits_field_updated(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        events = record_events(session)
        session.set_field("name", "Ada")
        assert events[-1].type == EventType.FIELD_UPDATED
        assert events[-1].payload == {"field": "name"}


class TestSubmitValidation:
    """Test that invalid values never reach the transport."""

    @pytest.mark.asyncio
    async def test_submit_blocked_by_validation(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        session.set_field("name", "Ada")
        session.set_field("email", "ada@example.com")

        assert await session.submit() is False

        snapshot = session.snapshot
        assert snapshot.status == FormStatus.IDLE
        assert snapshot.errors == {"agree": "Privacy policy is required"}
        assert len(transport.calls) == 0

    @pytest.mark.asyncio
    async def test_errors_replaced_wholesale(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        await session.submit()
        assert set(session.snapshot.errors) == {"name", "email", "agree"}

        session.set_field("agree", True)
        session.set_field("email", "bad")
        await session.submit()
        assert session.snapshot.errors == {
            "name": "Name is required",
            "email": "Please enter a valid email address",
        }

    @pytest.mark.asyncio
    async def test_validation_failed_event(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        events = record_events(session)
        await session.submit()
        assert events[-1].type == EventType.VALIDATION_FAILED
        assert set(events[-1].payload["errors"]) == {"name", "email", "agree"}
        assert events[-1].payload["invalid_fields"] == ["name", "email", "agree"]

    @pytest.mark.asyncio
    async def test_submit_uses_latest_edits(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        fill_valid(session)
        session.set_field("email", "bad")
        await session.submit()
        assert session.snapshot.errors == {"email": "Please enter a valid email address"}
        assert transport.calls == []


class TestSubmitSuccess:
    """Test successful round trips."""

    @pytest.mark.asyncio
    async def test_successful_round_trip(self, contact_form, transport):
        successes = []
        session = FormSession(form=contact_form, transport=transport, on_success=successes.append)
        fill_valid(session)

        assert await session.submit() is True

        snapshot = session.snapshot
        assert snapshot.status == FormStatus.SUCCESS
        assert snapshot.result_message == "Thanks"
        assert snapshot.errors == {}
        assert snapshot.values == build_initial_values(contact_form)
        assert transport.calls == [(
            "contact",
            {"name": "Ada Lovelace", "email": "ada@example.com", "topic": "support",
             "message": "", "agree": True},
        )]
        assert successes == [FormSubmitResponse(message="Thanks")]

    @pytest.mark.asyncio
    async def test_keeps_values_without_reset(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport, reset_on_success=False)
        fill_valid(session)
        await session.submit()
        assert session.status == FormStatus.SUCCESS
        assert session.snapshot.values["name"] == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_falls_back_to_form_success_message(self, contact_form):
        session = FormSession(form=contact_form, transport=FakeTransport(response={"success": True}))
        fill_valid(session)
        await session.submit()
        assert session.snapshot.result_message == "We will be in touch"

    @pytest.mark.asyncio
    async def test_falls_back_to_default_message(self):
        form = make_contact_form()
        form = type(form)(slug=form.slug, label=form.label, fields=form.fields)
        session = FormSession(form=form, transport=FakeTransport(response=FormSubmitResponse()))
        fill_valid(session)
        await session.submit()
        assert session.snapshot.result_message == DEFAULT_SUCCESS_MESSAGE

    @pytest.mark.asyncio
    async def test_status_is_submitting_while_in_flight(self, contact_form):
        transport = FakeTransport(hold=True)
        session = FormSession(form=contact_form, transport=transport)
        events = record_events(session)
        fill_valid(session)

        task = asyncio.ensure_future(session.submit())
        await asyncio.sleep(0)
        assert session.status == FormStatus.SUBMITTING
        assert session.snapshot.submit_button_label == "Submitting..."
        assert events[-1].type == EventType.SUBMISSION_STARTED

        transport.pending.set_result({"message": "Got it", "id": 12})
        assert await task is True
        assert session.snapshot.result_message == "Got it"
        assert events[-1].type == EventType.SUBMISSION_SUCCEEDED
        assert events[-1].payload == {"success": True, "message": "Got it", "id": 12}

    @pytest.mark.asyncio
    async def test_success_is_terminal_until_reset(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        fill_valid(session)
        await session.submit()
        fill_valid(session)
        assert await session.submit() is False
        assert len(transport.calls) == 1
        assert session.status == FormStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_break_session(self, contact_form, transport):
        def broken(response):
            raise RuntimeError("callback bug")

        session = FormSession(form=contact_form, transport=transport, on_success=broken)
        fill_valid(session)
        assert await session.submit() is True
        assert session.status == FormStatus.SUCCESS


class TestSubmitFailure:
    """Test failed submissions."""

    @pytest.mark.asyncio
    async def test_failure_keeps_form(self, contact_form):
        failures = []
        failure = CmsApiError(500, "Internal error")
        session = FormSession(
            form=contact_form, transport=FakeTransport(error=failure), on_error=failures.append,
        )
        fill_valid(session)

        assert await session.submit() is False

        snapshot = session.snapshot
        assert snapshot.status == FormStatus.ERROR
        assert snapshot.form is contact_form
        assert snapshot.is_load_failure is False
        assert snapshot.is_editable is True
        assert snapshot.result_message == "CMS API Error (500): Internal error"
        assert snapshot.values["name"] == "Ada Lovelace"
        assert failures == [failure]

    @pytest.mark.asyncio
    async def test_failure_default_message(self, contact_form):
        session = FormSession(form=contact_form, transport=FakeTransport(error=RuntimeError("")))
        fill_valid(session)
        await session.submit()
        assert session.snapshot.result_message == "Failed to submit form"

    @pytest.mark.asyncio
    async def test_edit_after_failure_returns_to_idle(self, contact_form):
        session = FormSession(form=contact_form, transport=FakeTransport(error=RuntimeError("x")))
        fill_valid(session)
        await session.submit()
        session.set_field("name", "Grace")
        assert session.status == FormStatus.IDLE
        assert session.snapshot.result_message == ""

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, contact_form):
        transport = FakeTransport(error=RuntimeError("offline"))
        session = FormSession(form=contact_form, transport=transport)
        fill_valid(session)
        await session.submit()
        assert session.status == FormStatus.ERROR

        transport.error = None
        transport.response = FormSubmitResponse(message="Thanks")
        assert await session.submit() is True
        assert session.status == FormStatus.SUCCESS
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_invalid_retry_after_failure_goes_idle(self, contact_form):
        transport = FakeTransport(error=RuntimeError("offline"))
        session = FormSession(form=contact_form, transport=transport)
        fill_valid(session)
        await session.submit()

        session._values["email"] = "broken"
        assert await session.submit() is False
        assert session.status == FormStatus.IDLE
        assert session.snapshot.errors == {"email": "Please enter a valid email address"}
        assert len(transport.calls) == 1


class TestConcurrentSubmits:
    """Test that only one submission runs per idle -> submit cycle."""

    @pytest.mark.asyncio
    async def test_second_submit_rejected_while_submitting(self, contact_form):
        transport = FakeTransport(hold=True)
        successes = []
        session = FormSession(form=contact_form, transport=transport, on_success=successes.append)
        fill_valid(session)

        first = asyncio.ensure_future(session.submit())
        await asyncio.sleep(0)
        session.set_field("email", "not an email")
        assert await session.submit() is False
        assert len(transport.calls) == 1
        assert session.snapshot.errors == {}

        transport.pending.set_result(FormSubmitResponse(message="ok"))
        assert await first is True
        assert len(successes) == 1


class TestTeardown:
    """Test that late results never touch a destroyed session."""

    @pytest.mark.asyncio
    async def test_stale_load_result_discarded(self, source, transport, contact_form):
        load_errors = []
        session = FormSession(
            slug="contact", source=source, transport=transport, on_load_error=load_errors.append,
        )
        events = record_events(session)
        task = session.mount()
        await asyncio.sleep(0)

        session.destroy()
        source.pending.set_result(contact_form)
        await task

        assert session.status == FormStatus.LOADING
        assert session.form is None
        assert session.snapshot.values == {}
        assert events == []
        assert load_errors == []

    @pytest.mark.asyncio
    async def test_stale_load_failure_discarded(self, source, transport):
        load_errors = []
        session = FormSession(
            slug="contact", source=source, transport=transport, on_load_error=load_errors.append,
        )
        task = session.mount()
        await asyncio.sleep(0)
        session.destroy()
        source.pending.set_exception(RuntimeError("late"))
        await task

        assert session.status == FormStatus.LOADING
        assert session.snapshot.result_message == ""
        assert load_errors == []

    @pytest.mark.asyncio
    async def test_stale_submit_result_discarded(self, contact_form):
        transport = FakeTransport(hold=True)
        successes = []
        session = FormSession(form=contact_form, transport=transport, on_success=successes.append)
        fill_valid(session)
        events = record_events(session)

        task = asyncio.ensure_future(session.submit())
        await asyncio.sleep(0)
        session.destroy()
        transport.pending.set_result(FormSubmitResponse(message="Thanks"))

        assert await task is False
        assert session.status == FormStatus.SUBMITTING
        assert session.snapshot.result_message == ""
        assert session.snapshot.values["name"] == "Ada Lovelace"
        assert successes == []
        assert [e.type for e in events] == [EventType.SUBMISSION_STARTED]

    @pytest.mark.asyncio
    async def test_stale_submit_failure_discarded(self, contact_form):
        transport = FakeTransport(hold=True)
        failures = []
        session = FormSession(form=contact_form, transport=transport, on_error=failures.append)
        fill_valid(session)

        task = asyncio.ensure_future(session.submit())
        await asyncio.sleep(0)
        session.close()
        transport.pending.set_exception(RuntimeError("late"))

        assert await task is False
        assert failures == []
        assert session.status == FormStatus.SUBMITTING

    @pytest.mark.asyncio
    async def test_destroyed_session_ignores_calls(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        session.destroy()
        assert session.is_alive is False
        assert session.set_field("name", "Ada") is False
        fill_valid(session)
        assert await session.submit() is False
        assert session.reset() is False
        assert session.mount() is None
        assert transport.calls == []


class TestReset:
    """Test explicit reset."""

    @pytest.mark.asyncio
    async def test_reset_after_success(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport, reset_on_success=False)
        events = record_events(session)
        fill_valid(session)
        await session.submit()

        assert session.reset() is True
        snapshot = session.snapshot
        assert snapshot.status == FormStatus.IDLE
        assert snapshot.values == build_initial_values(contact_form)
        assert snapshot.result_message == ""
        assert events[-1].type == EventType.FORM_RESET

    @pytest.mark.asyncio
    async def test_reset_rejected_while_submitting(self, contact_form):
        transport = FakeTransport(hold=True)
        session = FormSession(form=contact_form, transport=transport)
        fill_valid(session)
        task = asyncio.ensure_future(session.submit())
        await asyncio.sleep(0)
        assert session.reset() is False
        transport.pending.set_result(None)
        assert await task is True
        assert session.snapshot.result_message == "We will be in touch"


class TestSnapshot:
    """Test the read-only snapshot."""

    def test_snapshot_is_a_copy(self, contact_form, transport):
        session = FormSession(form=contact_form, transport=transport)
        snapshot = session.snapshot
        snapshot.values["name"] = "tampered"
        assert session.snapshot.values["name"] == ""

    def test_labels(self, contact_form, transport):
        session = FormSession(
            form=contact_form, transport=transport, submit_label="Send", submitting_label="Sending",
        )
        assert session.snapshot.submit_button_label == "Send"

    def test_value_for_defaults(self, contact_form):
        snapshot = FormSnapshot(status=FormStatus.IDLE, form=contact_form)
        assert snapshot.value_for("agree") is False
        assert snapshot.value_for("name") == ""

    def test_shared_emitter(self, contact_form, transport):
        emitter = EventEmitter()
        seen = []
        emitter.on_any(seen.append)
        first = FormSession(form=contact_form, transport=transport, emitter=emitter)
        second = FormSession(form=make_contact_form(), transport=transport, emitter=emitter)
        first.set_field("name", "a")
        second.set_field("name", "b")
        assert len(seen) == 2
        assert first.snapshot.values["name"] == "a"
        assert second.snapshot.values["name"] == "b"
