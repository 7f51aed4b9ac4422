"""Domain models representing persisted state.

These are pure domain objects with no API input rules.
Django ORM models are in admissions/models.py (persistence layer).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from admissions.domain.value_objects import (
    Capacity,
    EventId,
    FormPayload,
    InvitationCodeId,
    Money,
    ReferralId,
    RegistrationId,
    TicketId,
    TimeWindow,
)


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    WAITLISTED = "waitlisted"


@dataclass(frozen=True)
class Event:
    """Domain representation of an Event."""

    id: EventId
    slug: str | None
    name: Any
    starts_at: datetime
    ends_at: datetime
    edit_deadline: datetime | None
    is_active: bool
    hidden: bool

    @property
    def is_open(self) -> bool:
        return self.is_active and not self.hidden

    def has_started(self, now: datetime) -> bool:
        return now >= self.starts_at


@dataclass(frozen=True)
class Ticket:
    """Domain representation of a Ticket and its inventory counters."""

    id: TicketId
    event_id: EventId
    name: Any
    price: Money
    quantity: Capacity
    sold_count: int
    sales_window: TimeWindow
    require_invite_code: bool = False
    require_sms_verification: bool = False
    hidden: bool = False
    is_active: bool = True

    @property
    def available(self) -> int:
        return max(0, self.quantity.value - self.sold_count)


@dataclass(frozen=True)
class InvitationCode:
    """Domain representation of an InvitationCode."""

    id: InvitationCodeId
    ticket_id: TicketId
    code: str
    name: str | None
    usage_limit: int | None
    used_count: int
    validity: TimeWindow
    is_active: bool = True

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    @property
    def remaining_uses(self) -> int | None:
        if self.usage_limit is None:
            return None
        return max(0, self.usage_limit - self.used_count)


@dataclass(frozen=True)
class Registration:
    """Domain representation of a Registration.

    Referral relationships are held as ids (``referred_by`` is the code
    string that was redeemed) and resolved through the referral store.
    """

    id: RegistrationId
    user_id: str
    event_id: EventId
    ticket_id: TicketId
    email: str
    status: RegistrationStatus
    form_data: FormPayload
    referred_by: str | None
    invitation_code_id: InvitationCodeId | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Referral:
    """A referral code owned by one registration, scoped to its event."""

    id: ReferralId
    code: str
    registration_id: RegistrationId
    event_id: EventId
    is_active: bool
    created_at: datetime


@dataclass(frozen=True)
class ReferralUsage:
    """Edge recording that ``registration_id`` redeemed ``referral_id``."""

    referral_id: ReferralId
    registration_id: RegistrationId
    event_id: EventId
    used_at: datetime


@dataclass(frozen=True)
class RegistrationIntent:
    """Admission request handed over by the authenticated caller."""

    user_id: str
    event_id: EventId
    ticket_id: TicketId
    email: str
    form_data: FormPayload = field(default_factory=FormPayload)
    invitation_code: str | None = None
    referral_code: str | None = None
    sms_verified: bool = False


@dataclass(frozen=True)
class ReservationToken:
    """Proof of an optimistic increment of a ticket's sold counter."""

    ticket_id: TicketId
    quantity: int = 1
    token_id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class RedemptionToken:
    """Proof of an increment of an invitation code's used counter."""

    code_id: InvitationCodeId
    code: str
    ticket_id: TicketId
    token_id: UUID = field(default_factory=uuid4)


@dataclass(frozen=True)
class TicketAvailability:
    """Read model for UI display."""

    ticket_id: TicketId
    available: int
    is_on_sale: bool
    is_sold_out: bool


@dataclass(frozen=True)
class InvitationCodeStatus:
    """Read model describing whether a code could currently be redeemed."""

    code: str
    ticket_id: TicketId
    name: str | None
    is_valid: bool
    is_expired: bool
    is_not_yet_valid: bool
    is_usage_exceeded: bool
    remaining_uses: int | None


@dataclass(frozen=True)
class ReferralLink:
    code: str
    url: str
    event_id: EventId


@dataclass(frozen=True)
class ReferredRegistration:
    registration_id: RegistrationId
    status: RegistrationStatus
    masked_email: str
    registered_at: datetime


@dataclass(frozen=True)
class ReferralStats:
    total_referrals: int
    successful_referrals: int
    referrals: tuple[ReferredRegistration, ...] = ()


@dataclass(frozen=True)
class RegistrationView:
    """Registration plus the flags the attendee-facing UI needs."""

    registration: Registration
    is_upcoming: bool
    is_past: bool
    can_edit: bool
    can_cancel: bool
