"""Form session: the submission state machine behind a rendered CMS form.

A FormSession owns one form instance. It loads the form definition (unless one
is supplied), tracks field values and per-field errors, validates before
submitting, and records the outcome of the submission.

Usage:
    >>> import asyncio
    >>> from cmskit.types import FieldKind, FormDefinition, FormField, FormSubmitResponse
    >>> class Transport:
    ...     async def submit_form(self, slug, values):
    ...         return FormSubmitResponse(message="Thanks")
    >>> form = FormDefinition(slug="newsletter", label="Newsletter", fields=[
    ...     FormField(name="email", kind=FieldKind.EMAIL, label="Email"),
    ... ])
    >>> session = FormSession(form=form, transport=Transport())
    >>> session.set_field("email", "ada@example.com")
    True
    >>> asyncio.run(session.submit())
    True
    >>> session.snapshot.result_message
    'Thanks'

Concurrency model:
    Everything runs on one asyncio event loop. Loading the form definition and
    submitting values are the only awaits. Each of them captures the session's
    liveness token before awaiting; once the session is destroyed, results
    that arrive later are dropped without touching state or notifying anyone.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from typing_extensions import Protocol

from cmskit.errors import FieldValueTypeError, UnknownFieldError
from cmskit.events import EventEmitter, EventType, FormEvent
from cmskit.schema import parse_form_definition
from cmskit.state_machine import FormStateMachine
from cmskit.types import (
    ErrorMap,
    FieldValue,
    FieldValues,
    FormDefinition,
    FormStatus,
    FormSubmitResponse,
)
from cmskit.validation import ValidationEngine


logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_MESSAGE = "Form submitted successfully"
DEFAULT_LOAD_ERROR_MESSAGE = "Failed to load form"
DEFAULT_SUBMIT_ERROR_MESSAGE = "Failed to submit form"


class FormDefinitionSource(Protocol):
    """Anything that can fetch a form definition by slug."""

    async def get_form(self, slug: str) -> FormDefinition:
        ...


class SubmissionTransport(Protocol):
    """Anything that can submit form values for a slug."""

    async def submit_form(self, slug: str, values: Mapping[str, FieldValue]) -> FormSubmitResponse:
        ...


def build_initial_values(form: FormDefinition) -> FieldValues:
    """Default values for a form: False for checkboxes, empty string otherwise.

    Examples:
        >>> from cmskit.types import FieldKind, FormField
        >>> form = FormDefinition(slug="f", label="F", fields=[
        ...     FormField(name="name", kind=FieldKind.TEXT, label="Name"),
        ...     FormField(name="agree", kind=FieldKind.CHECKBOX, label="Agree"),
        ... ])
        >>> build_initial_values(form)
        {'name': '', 'agree': False}
    """
    return {f.name: (False if f.is_checkbox else "") for f in form.fields}


def _message_from(exc: BaseException, default: str) -> str:
    message = str(exc).strip()
    return message or default


@dataclass(frozen=True)
class FormSnapshot:
    """Read-only view of a form session, for rendering.

    Attributes:
        status: Current session status
        form: The form definition, or None while loading or after a load failure
        values: Current field values
        errors: Field name to error message for fields that failed validation
        result_message: Outcome text (success message or failure reason)
        submit_label: Button label while editable
        submitting_label: Button label while a submission is in flight
    """
    status: FormStatus
    form: Optional[FormDefinition]
    values: Dict[str, FieldValue] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    result_message: str = ""
    submit_label: str = "Submit"
    submitting_label: str = "Submitting..."

    @property
    def is_load_failure(self) -> bool:
        """True when loading the form definition failed; the session cannot recover."""
        return self.status == FormStatus.ERROR and self.form is None

    @property
    def is_editable(self) -> bool:
        return self.form is not None and self.status in (FormStatus.IDLE, FormStatus.ERROR)

    @property
    def submit_button_label(self) -> str:
        if self.status == FormStatus.SUBMITTING:
            return self.submitting_label
        return self.submit_label

    def value_for(self, name: str) -> FieldValue:
        """Current value of a field, falling back to the kind's default."""
        if name in self.values:
            return self.values[name]
        form_field = self.form.get_field(name) if self.form is not None else None
        return False if form_field is not None and form_field.is_checkbox else ""


class _Liveness:
    """Flag shared between a session and the async operations it issued."""

    __slots__ = ("alive",)

    def __init__(self) -> None:
        self.alive = True


class FormSession:
    """Submission state machine for one rendered form.

    Attributes:
        slug: Slug of the form this session is bound to
        reset_on_success: Rebuild default values after a successful submission
        emitter: Event emitter receiving every FormEvent of this session

    Args:
        form: A form definition to use directly; the session starts ``idle``
        slug: Slug of the form to fetch when ``form`` is not given; the session
            starts ``loading``
        source: Fetches the form definition by slug
        transport: Submits values; defaults to ``source`` when that can submit
        reset_on_success: See attribute
        submit_label: Button label while editable
        submitting_label: Button label while submitting
        on_success: Called with the FormSubmitResponse after a successful submission
        on_error: Called with the exception after a failed submission
        on_load_error: Called with the exception after a failed load
        emitter: Share an existing EventEmitter instead of creating one

    Raises:
        ValueError: If neither ``form`` nor ``slug`` and ``source`` are given,
            or no transport is available
    """

    def __init__(
        self,
        *,
        form: Optional[FormDefinition] = None,
        slug: Optional[str] = None,
        source: Optional[FormDefinitionSource] = None,
        transport: Optional[SubmissionTransport] = None,
        reset_on_success: bool = True,
        submit_label: str = "Submit",
        submitting_label: str = "Submitting...",
        on_success: Optional[Callable[[FormSubmitResponse], Any]] = None,
        on_error: Optional[Callable[[Exception], Any]] = None,
        on_load_error: Optional[Callable[[Exception], Any]] = None,
        emitter: Optional[EventEmitter] = None,
    ):
        if form is None and (not slug or source is None):
            raise ValueError("FormSession needs either a form definition or a slug and a source")
        if transport is None and hasattr(source, "submit_form"):
            transport = source  # type: ignore[assignment]
        if transport is None:
            raise ValueError("FormSession needs a transport to submit values")

        self.slug: str = form.slug if form is not None else slug  # type: ignore[assignment]
        self.reset_on_success = reset_on_success
        self.submit_label = submit_label
        self.submitting_label = submitting_label
        self.emitter = emitter if emitter is not None else EventEmitter()

        self._source = source
        self._transport = transport
        self._on_success = on_success
        self._on_error = on_error
        self._on_load_error = on_load_error

        self._form: Optional[FormDefinition] = form
        self._values: FieldValues = build_initial_values(form) if form is not None else {}
        self._errors: ErrorMap = {}
        self._result_message = ""
        self._machine = FormStateMachine(
            status=FormStatus.IDLE if form is not None else FormStatus.LOADING
        )
        self._liveness = _Liveness()
        self._engine: Optional[ValidationEngine] = ValidationEngine(form) if form is not None else None
        self._load_task: Optional["asyncio.Task[None]"] = None

    # -- reading -----------------------------------------------------------

    @property
    def status(self) -> FormStatus:
        return self._machine.status

    @property
    def form(self) -> Optional[FormDefinition]:
        return self._form

    @property
    def is_alive(self) -> bool:
        return self._liveness.alive

    @property
    def snapshot(self) -> FormSnapshot:
        """Current state of the session. Mappings are copies."""
        return FormSnapshot(
            status=self._machine.status,
            form=self._form,
            values=dict(self._values),
            errors=dict(self._errors),
            result_message=self._result_message,
            submit_label=self.submit_label,
            submitting_label=self.submitting_label,
        )

    # -- loading -----------------------------------------------------------

    def mount(self) -> Optional["asyncio.Task[None]"]:
        """Start fetching the form definition if the session is still loading.

        Must be called with a running event loop. Calling it again while the
        fetch is outstanding returns the same task.

        Returns:
            The fetch task, or None when there is nothing to fetch
        """
        if not self._liveness.alive or self._machine.status != FormStatus.LOADING:
            return None
        if self._load_task is None:
            loop = asyncio.get_running_loop()
            self._load_task = loop.create_task(self._load(self._liveness))
        return self._load_task

    async def load(self) -> None:
        """Fetch the form definition and wait for the outcome to be applied."""
        task = self.mount()
        if task is not None:
            await task

    async def _load(self, liveness: _Liveness) -> None:
        logger.debug("Loading form '%s'", self.slug)
        try:
            result = await self._source.get_form(self.slug)  # type: ignore[union-attr]
            form = result if isinstance(result, FormDefinition) else parse_form_definition(result)
            engine = ValidationEngine(form)
        except Exception as exc:
            if not liveness.alive:
                logger.debug("Dropping load failure for destroyed session '%s'", self.slug)
                return
            self._machine.transition_to(FormStatus.ERROR)
            self._result_message = _message_from(exc, DEFAULT_LOAD_ERROR_MESSAGE)
            logger.warning("Loading form '%s' failed: %s", self.slug, self._result_message)
            self._notify(EventType.FORM_LOAD_FAILED, self._on_load_error, exc, error=exc)
            return

        if not liveness.alive:
            logger.debug("Dropping loaded form for destroyed session '%s'", self.slug)
            return

        self._form = form
        self._engine = engine
        self._values = build_initial_values(form)
        self._errors = {}
        self._machine.transition_to(FormStatus.IDLE)
        self._emit(EventType.FORM_LOADED, payload={"fields": form.field_names()})

    # -- editing -----------------------------------------------------------

    def set_field(self, name: str, value: FieldValue) -> bool:
        """Record a user edit and clear that field's error.

        A failed submission returns the session to ``idle``. Edits are ignored
        while no form is loaded or after the session is destroyed.

        Returns:
            True if the edit was applied

        Raises:
            UnknownFieldError: If the form has no such field
            FieldValueTypeError: If a checkbox gets a non-bool or another kind a non-str
        """
        if not self._liveness.alive or self._form is None:
            logger.debug("Ignoring edit of '%s' on form '%s' without a loaded form", name, self.slug)
            return False

        form_field = self._form.get_field(name)
        if form_field is None:
            raise UnknownFieldError(self._form.slug, name)
        expected = bool if form_field.is_checkbox else str
        if not isinstance(value, expected):
            raise FieldValueTypeError(name, expected, value)

        self._values[name] = value
        self._errors.pop(name, None)
        if self._machine.status == FormStatus.ERROR:
            self._reenter_idle()
        self._emit(EventType.FIELD_UPDATED, payload={"field": name})
        return True

    # -- submitting --------------------------------------------------------

    async def submit(self) -> bool:
        """Validate the current values and submit them.

        Only acts from ``idle`` or after a failed submission. Anything else
        (loading, already submitting, succeeded, destroyed) is a no-op that
        neither validates nor calls the transport.

        Returns:
            True if the submission succeeded and was applied to this session
        """
        liveness = self._liveness
        form = self._form
        if not liveness.alive or form is None or not self._machine.is_editable():
            logger.debug(
                "Ignoring submit of form '%s' in status '%s'", self.slug, self._machine.status.value
            )
            return False

        if self._machine.status == FormStatus.ERROR:
            self._reenter_idle()

        result = self._engine.validate(self._values)  # type: ignore[union-attr]
        if not result.is_valid:
            self._errors = dict(result.errors)
            logger.debug(
                "Form '%s' failed validation on: %s", form.slug, ", ".join(result.invalid_fields)
            )
            self._emit(
                EventType.VALIDATION_FAILED,
                payload={"errors": dict(result.errors), "invalid_fields": result.invalid_fields},
            )
            return False

        self._errors = {}
        self._machine.transition_to(FormStatus.SUBMITTING)
        values = dict(self._values)
        self._emit(EventType.SUBMISSION_STARTED)

        try:
            result = await self._transport.submit_form(form.slug, values)
            response = self._coerce_response(result)
        except Exception as exc:
            if not liveness.alive:
                logger.debug("Dropping submit failure for destroyed session '%s'", form.slug)
                return False
            self._machine.transition_to(FormStatus.ERROR)
            self._result_message = _message_from(exc, DEFAULT_SUBMIT_ERROR_MESSAGE)
            logger.warning("Submitting form '%s' failed: %s", form.slug, self._result_message)
            self._notify(EventType.SUBMISSION_FAILED, self._on_error, exc, error=exc)
            return False

        if not liveness.alive:
            logger.debug("Dropping submit response for destroyed session '%s'", form.slug)
            return False

        self._machine.transition_to(FormStatus.SUCCESS)
        self._result_message = response.message or form.success_message or DEFAULT_SUCCESS_MESSAGE
        if self.reset_on_success:
            self._values = build_initial_values(form)
        self._notify(
            EventType.SUBMISSION_SUCCEEDED,
            self._on_success,
            response,
            payload=response.to_dict(),
        )
        return True

    @staticmethod
    def _coerce_response(result: Union[FormSubmitResponse, Mapping[str, Any], None]) -> FormSubmitResponse:
        if isinstance(result, FormSubmitResponse):
            return result
        if result is None:
            return FormSubmitResponse()
        return FormSubmitResponse.from_dict(dict(result))

    # -- lifecycle ---------------------------------------------------------

    def reset(self) -> bool:
        """Return a finished form to a fresh ``idle`` state with default values.

        Returns:
            True if the session was reset
        """
        if not self._liveness.alive or self._form is None:
            return False
        status = self._machine.status
        if status in (FormStatus.SUCCESS, FormStatus.ERROR):
            self._machine.transition_to(FormStatus.IDLE)
        elif status != FormStatus.IDLE:
            return False
        self._values = build_initial_values(self._form)
        self._errors = {}
        self._result_message = ""
        self._emit(EventType.FORM_RESET)
        return True

    def destroy(self) -> None:
        """Tear the session down.

        Outstanding loads and submissions keep running but their results are
        discarded. Later edits, submits and resets are no-ops.
        """
        if self._liveness.alive:
            logger.debug("Destroying session for form '%s'", self.slug)
        self._liveness.alive = False

    close = destroy

    # -- internals ---------------------------------------------------------

    def _reenter_idle(self) -> None:
        self._machine.transition_to(FormStatus.IDLE)
        self._result_message = ""

    def _emit(
        self,
        event_type: EventType,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        logger.debug("Form '%s': %s (status=%s)", self.slug, event_type.value, self._machine.status.value)
        self.emitter.emit(
            FormEvent(
                type=event_type,
                form_slug=self.slug,
                ts=datetime.now(timezone.utc),
                status=self._machine.status,
                payload=payload,
                error=error,
            )
        )

    def _notify(
        self,
        event_type: EventType,
        callback: Optional[Callable[[Any], Any]],
        argument: Any,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Emit a terminal event and invoke the matching callback once."""
        self._emit(event_type, payload=payload, error=error)
        if callback is None:
            return
        try:
            callback(argument)
        except Exception:
            logger.exception("Callback for %s on form '%s' failed", event_type.value, self.slug)


__all__ = [
    "DEFAULT_SUCCESS_MESSAGE",
    "DEFAULT_LOAD_ERROR_MESSAGE",
    "DEFAULT_SUBMIT_ERROR_MESSAGE",
    "FormDefinitionSource",
    "SubmissionTransport",
    "FormSnapshot",
    "FormSession",
    "build_initial_values",
]
