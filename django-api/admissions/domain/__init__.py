from admissions.domain.models import (
    Event,
    InvitationCode,
    InvitationCodeStatus,
    RedemptionToken,
    Referral,
    ReferralLink,
    ReferralStats,
    ReferralUsage,
    ReferredRegistration,
    Registration,
    RegistrationIntent,
    RegistrationStatus,
    RegistrationView,
    ReservationToken,
    Ticket,
    TicketAvailability,
)
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

__all__ = [
    "Event",
    "Ticket",
    "InvitationCode",
    "InvitationCodeStatus",
    "Registration",
    "RegistrationIntent",
    "RegistrationStatus",
    "RegistrationView",
    "Referral",
    "ReferralLink",
    "ReferralStats",
    "ReferralUsage",
    "ReferredRegistration",
    "ReservationToken",
    "RedemptionToken",
    "TicketAvailability",
    "EventId",
    "TicketId",
    "RegistrationId",
    "ReferralId",
    "InvitationCodeId",
    "Money",
    "Capacity",
    "TimeWindow",
    "FormPayload",
]
