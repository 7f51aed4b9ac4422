"""In-process implementation of the admission stores.

Each counter is guarded by its own lock, keyed per ticket or per invitation
code, so unrelated tickets never contend. Registration uniqueness is guarded
per event.
"""

import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import replace
from typing import Hashable, Iterator

from django.utils import timezone

from admissions.domain import (
    Event,
    EventId,
    FormPayload,
    InvitationCode,
    InvitationCodeId,
    Referral,
    ReferralId,
    ReferralUsage,
    Registration,
    RegistrationId,
    RegistrationStatus,
    Ticket,
    TicketId,
)
from admissions.domain.errors import DuplicateRegistrationError, ReferralAlreadyRedeemedError
from admissions.stores.interfaces import (
    EventStore,
    InventoryStore,
    InvitationStore,
    ReferralStore,
    RegistrationStore,
)


class KeyedLocks:
    """Lazily created lock per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = defaultdict(threading.Lock)

    def __call__(self, key: Hashable) -> threading.Lock:
        with self._guard:
            return self._locks[key]


class InMemoryAdmissionStore(
    EventStore, InventoryStore, InvitationStore, ReferralStore, RegistrationStore
):
    """All admission stores over shared dictionaries."""

    def __init__(self) -> None:
        self._locks = KeyedLocks()
        self.events: dict[EventId, Event] = {}
        self.tickets: dict[TicketId, Ticket] = {}
        self.codes: dict[InvitationCodeId, InvitationCode] = {}
        self.registrations: dict[RegistrationId, Registration] = {}
        self.referrals: dict[ReferralId, Referral] = {}
        self.usages: list[ReferralUsage] = []

    # Administrative setup

    def add_event(self, event: Event) -> Event:
        self.events[event.id] = event
        return event

    def add_ticket(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = ticket
        return ticket

    def add_invitation_code(self, code: InvitationCode) -> InvitationCode:
        self.codes[code.id] = code
        return code

    # EventStore / InventoryStore

    def get_event(self, event_id: EventId) -> Event | None:
        return self.events.get(event_id)

    def get_ticket(self, ticket_id: TicketId) -> Ticket | None:
        return self.tickets.get(ticket_id)

    def increment_sold_count(self, ticket_id: TicketId, quantity: int) -> bool:
        with self._locks(("ticket", ticket_id)):
            ticket = self.tickets.get(ticket_id)
            if ticket is None or not ticket.is_active:
                return False
            if ticket.sold_count + quantity > ticket.quantity.value:
                return False
            self.tickets[ticket_id] = replace(ticket, sold_count=ticket.sold_count + quantity)
            return True

    def decrement_sold_count(self, ticket_id: TicketId, quantity: int) -> bool:
        with self._locks(("ticket", ticket_id)):
            ticket = self.tickets.get(ticket_id)
            if ticket is None or ticket.sold_count < quantity:
                return False
            self.tickets[ticket_id] = replace(ticket, sold_count=ticket.sold_count - quantity)
            return True

    # InvitationStore

    def find_code(self, code: str, ticket_id: TicketId) -> InvitationCode | None:
        for candidate in list(self.codes.values()):
            if candidate.code == code and candidate.ticket_id == ticket_id:
                return candidate
        return None

    def code_exists_elsewhere(self, code: str, ticket_id: TicketId) -> bool:
        return any(
            candidate.code == code and candidate.ticket_id != ticket_id
            for candidate in list(self.codes.values())
        )

    def get_code(self, code_id: InvitationCodeId) -> InvitationCode | None:
        return self.codes.get(code_id)

    def increment_used_count(self, code_id: InvitationCodeId) -> bool:
        with self._locks(("code", code_id)):
            code = self.codes.get(code_id)
            if code is None or not code.is_active or code.is_exhausted:
                return False
            self.codes[code_id] = replace(code, used_count=code.used_count + 1)
            return True

    def decrement_used_count(self, code_id: InvitationCodeId) -> bool:
        with self._locks(("code", code_id)):
            code = self.codes.get(code_id)
            if code is None or code.used_count == 0:
                return False
            self.codes[code_id] = replace(code, used_count=code.used_count - 1)
            return True

    # ReferralStore

    def get_by_code(self, code: str) -> Referral | None:
        for referral in list(self.referrals.values()):
            if referral.code == code:
                return referral
        return None

    def get_by_id(self, referral_id: ReferralId) -> Referral | None:
        return self.referrals.get(referral_id)

    def get_for_registration(self, registration_id: RegistrationId) -> Referral | None:
        for referral in list(self.referrals.values()):
            if referral.registration_id == registration_id:
                return referral
        return None

    def insert_referral(self, referral: Referral) -> Referral | None:
        with self._locks("referrals"):
            existing = self.get_for_registration(referral.registration_id)
            if existing is not None:
                return existing
            if self.get_by_code(referral.code) is not None:
                return None
            self.referrals[referral.id] = referral
            return referral

    def get_incoming_usage(self, registration_id: RegistrationId) -> ReferralUsage | None:
        for usage in list(self.usages):
            if usage.registration_id == registration_id:
                return usage
        return None

    def list_usages(self, referral_id: ReferralId) -> list[ReferralUsage]:
        usages = [usage for usage in list(self.usages) if usage.referral_id == referral_id]
        return sorted(usages, key=lambda usage: usage.used_at, reverse=True)

    @contextmanager
    def redemption_guard(self, event_id: EventId) -> Iterator[None]:
        with self._locks(("event", event_id)):
            yield

    def record_usage(self, usage: ReferralUsage) -> ReferralUsage:
        with self._locks(("usage", usage.registration_id)):
            if self.get_incoming_usage(usage.registration_id) is not None:
                raise ReferralAlreadyRedeemedError(str(usage.registration_id))
            self.usages.append(usage)
            return usage

    # RegistrationStore

    def get_registration(self, registration_id: RegistrationId) -> Registration | None:
        return self.registrations.get(registration_id)

    def find_by_email(self, email: str, event_id: EventId) -> Registration | None:
        for registration in list(self.registrations.values()):
            if registration.email == email and registration.event_id == event_id:
                return registration
        return None

    def list_for_user(self, user_id: str) -> list[Registration]:
        registrations = [r for r in list(self.registrations.values()) if r.user_id == user_id]
        return sorted(registrations, key=lambda r: r.created_at, reverse=True)

    def count_for_event(self, event_id: EventId) -> int:
        return sum(1 for r in list(self.registrations.values()) if r.event_id == event_id)

    def commit_registration(
        self, registration: Registration, usage: ReferralUsage | None = None
    ) -> Registration:
        with self._locks(("event", registration.event_id)):
            if self.find_by_email(registration.email, registration.event_id):
                raise DuplicateRegistrationError(str(registration.event_id))
            self.registrations[registration.id] = registration
            if usage is not None:
                self.usages.append(usage)
            return registration

    def transition_status(
        self,
        registration_id: RegistrationId,
        from_status: RegistrationStatus,
        to_status: RegistrationStatus,
    ) -> bool:
        with self._locks(("registration", registration_id)):
            registration = self.registrations.get(registration_id)
            if registration is None or registration.status != from_status:
                return False
            self.registrations[registration_id] = replace(
                registration, status=to_status, updated_at=timezone.now()
            )
            return True

    def update_form_data(
        self, registration_id: RegistrationId, form_data: FormPayload
    ) -> Registration | None:
        with self._locks(("registration", registration_id)):
            registration = self.registrations.get(registration_id)
            if registration is None:
                return None
            updated = replace(registration, form_data=form_data, updated_at=timezone.now())
            self.registrations[registration_id] = updated
            return updated
