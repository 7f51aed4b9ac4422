from admissions.services.inventory_ledger import InventoryLedger
from admissions.services.invitation_redeemer import InvitationRedeemer
from admissions.services.referral_graph import ReferralGraph
from admissions.services.registration_coordinator import (
    AdmissionStage,
    RegistrationCoordinator,
)

__all__ = [
    "InventoryLedger",
    "InvitationRedeemer",
    "ReferralGraph",
    "RegistrationCoordinator",
    "AdmissionStage",
]
