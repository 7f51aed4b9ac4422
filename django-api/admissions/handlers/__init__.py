from admissions.handlers.views import (
    InvitationCodeVerifyView,
    ReferralLinkView,
    ReferralStatsView,
    ReferralValidateView,
    RegistrationCancelView,
    RegistrationDetailView,
    RegistrationListView,
    TicketAvailabilityView,
)

__all__ = [
    "InvitationCodeVerifyView",
    "ReferralLinkView",
    "ReferralStatsView",
    "ReferralValidateView",
    "RegistrationCancelView",
    "RegistrationDetailView",
    "RegistrationListView",
    "TicketAvailabilityView",
]
