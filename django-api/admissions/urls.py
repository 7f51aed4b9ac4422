from django.urls import path

from admissions.handlers import (
    InvitationCodeVerifyView,
    ReferralLinkView,
    ReferralStatsView,
    ReferralValidateView,
    RegistrationCancelView,
    RegistrationDetailView,
    RegistrationListView,
    TicketAvailabilityView,
)

urlpatterns = [
    path("registrations", RegistrationListView.as_view(), name="registration-list"),
    path(
        "registrations/<str:registration_id>",
        RegistrationDetailView.as_view(),
        name="registration-detail",
    ),
    path(
        "registrations/<str:registration_id>/cancel",
        RegistrationCancelView.as_view(),
        name="registration-cancel",
    ),
    path(
        "registrations/<str:registration_id>/referral-link",
        ReferralLinkView.as_view(),
        name="referral-link",
    ),
    path(
        "registrations/<str:registration_id>/referral-stats",
        ReferralStatsView.as_view(),
        name="referral-stats",
    ),
    path("referrals/validate", ReferralValidateView.as_view(), name="referral-validate"),
    path(
        "invitation-codes/verify",
        InvitationCodeVerifyView.as_view(),
        name="invitation-code-verify",
    ),
    path(
        "tickets/<str:ticket_id>/availability",
        TicketAvailabilityView.as_view(),
        name="ticket-availability",
    ),
]
