"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. Counter mutations are
conditional single-step updates: implementations return ``False`` instead
of writing when the guard does not hold, and never read-then-write.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager

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


class EventStore(ABC):
    """Read-only access to administratively managed event configuration."""

    @abstractmethod
    def get_event(self, event_id: EventId) -> Event | None:
        """Return an event by ID, or None if not found."""
        ...

    @abstractmethod
    def get_ticket(self, ticket_id: TicketId) -> Ticket | None:
        """Return a ticket by ID, or None if not found."""
        ...


class InventoryStore(ABC):
    """Ticket sold counters. Only InventoryLedger writes through this interface."""

    @abstractmethod
    def get_ticket(self, ticket_id: TicketId) -> Ticket | None:
        ...

    @abstractmethod
    def increment_sold_count(self, ticket_id: TicketId, quantity: int) -> bool:
        """Add ``quantity`` if the ticket is active and ``sold_count + quantity <= quantity``."""
        ...

    @abstractmethod
    def decrement_sold_count(self, ticket_id: TicketId, quantity: int) -> bool:
        """Subtract ``quantity`` if that does not take the counter below zero."""
        ...


class InvitationStore(ABC):
    """Invitation codes and their used counters. Only InvitationRedeemer writes."""

    @abstractmethod
    def find_code(self, code: str, ticket_id: TicketId) -> InvitationCode | None:
        """Return the code issued for ``ticket_id``, or None."""
        ...

    @abstractmethod
    def code_exists_elsewhere(self, code: str, ticket_id: TicketId) -> bool:
        """Check if the code string was issued for any other ticket."""
        ...

    @abstractmethod
    def get_code(self, code_id: InvitationCodeId) -> InvitationCode | None:
        ...

    @abstractmethod
    def increment_used_count(self, code_id: InvitationCodeId) -> bool:
        """Add one use if the code is active and below its usage limit."""
        ...

    @abstractmethod
    def decrement_used_count(self, code_id: InvitationCodeId) -> bool:
        """Return one use if that does not take the counter below zero."""
        ...


class ReferralStore(ABC):
    """Referral codes and usage edges. Only ReferralGraph writes."""

    @abstractmethod
    def get_by_code(self, code: str) -> Referral | None:
        ...

    @abstractmethod
    def get_by_id(self, referral_id: ReferralId) -> Referral | None:
        ...

    @abstractmethod
    def get_for_registration(self, registration_id: RegistrationId) -> Referral | None:
        """Return the referral owned by a registration, or None."""
        ...

    @abstractmethod
    def insert_referral(self, referral: Referral) -> Referral | None:
        """Persist a referral.

        Returns the already existing referral if the registration owns one,
        or None if ``referral.code`` is taken by another registration.
        """
        ...

    @abstractmethod
    def get_incoming_usage(self, registration_id: RegistrationId) -> ReferralUsage | None:
        """Return the usage through which a registration was referred, or None."""
        ...

    @abstractmethod
    def list_usages(self, referral_id: ReferralId) -> list[ReferralUsage]:
        """Return usages of a referral, most recent first."""
        ...

    @abstractmethod
    def redemption_guard(self, event_id: EventId) -> AbstractContextManager[None]:
        """Serialize referral redemptions within an event.

        The chain walk and the usage insert run inside the guard, so two
        redemptions cannot both pass the cycle check and then close a loop.
        """
        ...

    @abstractmethod
    def record_usage(self, usage: ReferralUsage) -> ReferralUsage:
        """Persist a usage edge for an already committed registration.

        Raises:
            ReferralAlreadyRedeemedError: If the registration was already referred.
        """
        ...


class RegistrationStore(ABC):
    """Registration rows."""

    @abstractmethod
    def get_registration(self, registration_id: RegistrationId) -> Registration | None:
        ...

    @abstractmethod
    def find_by_email(self, email: str, event_id: EventId) -> Registration | None:
        """Return the registration for (email, event) in any status, or None."""
        ...

    @abstractmethod
    def list_for_user(self, user_id: str) -> list[Registration]:
        """Return a user's registrations ordered by created_at descending."""
        ...

    @abstractmethod
    def count_for_event(self, event_id: EventId) -> int:
        ...

    @abstractmethod
    def commit_registration(
        self, registration: Registration, usage: ReferralUsage | None = None
    ) -> Registration:
        """Persist a registration and its incoming referral usage in one step.

        Raises:
            DuplicateRegistrationError: If (email, event) is already taken.
            InfrastructureError: If storage fails for any other reason.
        """
        ...

    @abstractmethod
    def transition_status(
        self,
        registration_id: RegistrationId,
        from_status: RegistrationStatus,
        to_status: RegistrationStatus,
    ) -> bool:
        """Move a registration between statuses only if it is currently in ``from_status``."""
        ...

    @abstractmethod
    def update_form_data(
        self, registration_id: RegistrationId, form_data: FormPayload
    ) -> Registration | None:
        ...
