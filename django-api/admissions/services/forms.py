"""Capability interfaces for the form-field subsystem.

Field definitions and their per-type rules live outside this app. The core
only asks a validator whether a payload is acceptable before storing it.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from admissions.domain import EventId, FormPayload, TicketId
from admissions.domain.errors import FormValidationError

FieldDefinition = Mapping[str, Any]


class FormFieldSource(Protocol):
    def fields_for(self, event_id: EventId, ticket_id: TicketId) -> Sequence[FieldDefinition]:
        ...


class FormValidator(Protocol):
    def validate(self, fields: Sequence[FieldDefinition], payload: FormPayload) -> None:
        """Raise FormValidationError if ``payload`` does not satisfy ``fields``."""
        ...


class NoFormFields:
    """Source for events without custom fields."""

    def fields_for(self, event_id: EventId, ticket_id: TicketId) -> Sequence[FieldDefinition]:
        return ()


class RequiredFieldsValidator:
    """Checks only that fields marked ``required`` carry a non-empty value."""

    def validate(self, fields: Sequence[FieldDefinition], payload: FormPayload) -> None:
        errors: dict[str, str] = {}
        for definition in fields:
            name = definition.get("name")
            if not name or not definition.get("required"):
                continue
            value = payload.data.get(name)
            if value is None or value == "" or value == []:
                errors[name] = "This field is required"
        if errors:
            raise FormValidationError(errors)
