"""Wires the admission services to the Django ORM stores.

One coordinator per process: the ledger and redeemer keep the settlement
bookkeeping that makes release idempotent.
"""

from functools import lru_cache

from admissions.conf import AdmissionSettings
from admissions.services.inventory_ledger import InventoryLedger
from admissions.services.invitation_redeemer import InvitationRedeemer
from admissions.services.referral_graph import ReferralGraph
from admissions.services.registration_coordinator import RegistrationCoordinator
from admissions.stores.django_store import (
    DjangoEventStore,
    DjangoInventoryStore,
    DjangoInvitationStore,
    DjangoReferralStore,
    DjangoRegistrationStore,
)


@lru_cache(maxsize=1)
def get_registration_coordinator() -> RegistrationCoordinator:
    config = AdmissionSettings.from_settings()
    registrations = DjangoRegistrationStore()
    return RegistrationCoordinator(
        events=DjangoEventStore(),
        registrations=registrations,
        ledger=InventoryLedger(DjangoInventoryStore()),
        redeemer=InvitationRedeemer(DjangoInvitationStore()),
        referrals=ReferralGraph(DjangoReferralStore(), registrations, config=config),
        config=config,
    )
