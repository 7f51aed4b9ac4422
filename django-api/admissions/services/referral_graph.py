"""Referral graph - referral codes and the "who referred whom" edges between registrations.

Edges point from the redeeming registration to the owner of the referral it
used. Registrations are nodes keyed by id; the graph is never materialised,
walks go through the stores one edge at a time.
"""

import logging
import re
import secrets
import string
from collections.abc import Callable
from datetime import datetime

from django.utils import timezone

from admissions.conf import AdmissionSettings
from admissions.domain import (
    EventId,
    Referral,
    ReferralId,
    ReferralLink,
    ReferralStats,
    ReferralUsage,
    ReferredRegistration,
    RegistrationId,
    RegistrationStatus,
)
from admissions.domain.errors import (
    CyclicReferralError,
    ForbiddenError,
    InfrastructureError,
    InvalidReferralCodeError,
    ReferralAlreadyRedeemedError,
    ReferralEventMismatchError,
    RegistrationNotFoundError,
    SelfReferralError,
)
from admissions.stores.interfaces import ReferralStore, RegistrationStore

logger = logging.getLogger(__name__)

REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits

_EMAIL_PATTERN = re.compile(r"^(.{1,2}).*?(@.+)$")


def generate_referral_code(length: int = 6) -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def mask_email(email: str) -> str:
    """Keep the first two characters and the domain: ``alice@x.io`` -> ``al***@x.io``."""
    match = _EMAIL_PATTERN.match(email)
    if match is None:
        return "***"
    start, domain = match.group(1), match.group(2)
    hidden = max(3, len(email) - len(start) - len(domain))
    return start + "*" * hidden + domain


class ReferralGraph:
    """Service for issuing and redeeming referral codes."""

    def __init__(
        self,
        referrals: ReferralStore,
        registrations: RegistrationStore,
        config: AdmissionSettings | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._referrals = referrals
        self._registrations = registrations
        self._config = config or AdmissionSettings()
        self._clock = clock

    def create_referral(self, registration_id: RegistrationId, event_id: EventId) -> Referral:
        """Issue the registration's referral code, or return the one it already has.

        Raises:
            InfrastructureError: If no unused code could be drawn.
        """
        existing = self._referrals.get_for_registration(registration_id)
        if existing is not None:
            return existing

        for _ in range(self._config.referral_code_max_attempts):
            candidate = Referral(
                id=ReferralId.new(),
                code=generate_referral_code(self._config.referral_code_length),
                registration_id=registration_id,
                event_id=event_id,
                is_active=True,
                created_at=self._clock(),
            )
            stored = self._referrals.insert_referral(candidate)
            if stored is not None:
                if stored.id == candidate.id:
                    logger.info("Issued referral code %s to registration %s", stored.code, registration_id)
                return stored
            logger.debug("Referral code collision on %s, drawing again", candidate.code)

        logger.error(
            "Failed to generate unique referral code after %d attempts",
            self._config.referral_code_max_attempts,
        )
        raise InfrastructureError(
            "Could not generate a referral code", detail={"registration_id": str(registration_id)}
        )

    def validate_redemption(
        self, code: str, redeeming_registration_id: RegistrationId, event_id: EventId
    ) -> ReferralUsage:
        """Check that ``redeeming_registration_id`` may redeem ``code`` and return the pending edge.

        Nothing is written; the caller persists the returned usage.

        Raises:
            InvalidReferralCodeError: If the code is unknown or inactive, or its owner is no
                longer confirmed.
            ReferralEventMismatchError: If the code belongs to another event.
            SelfReferralError: If the redeemer owns the code.
            CyclicReferralError: If the redeemer is already upstream of the code's owner.
            ReferralAlreadyRedeemedError: If the redeemer was already referred.
        """
        code = normalize_code(code)
        referral = self._referrals.get_by_code(code)
        if referral is None or not referral.is_active:
            raise InvalidReferralCodeError(code)
        owner = self._registrations.get_registration(referral.registration_id)
        if owner is None or owner.status != RegistrationStatus.CONFIRMED:
            raise InvalidReferralCodeError(code)
        if referral.event_id != event_id:
            raise ReferralEventMismatchError(code, str(event_id))
        if referral.registration_id == redeeming_registration_id:
            raise SelfReferralError(code)
        self._ensure_acyclic(referral, redeeming_registration_id, event_id)
        if self._referrals.get_incoming_usage(redeeming_registration_id) is not None:
            raise ReferralAlreadyRedeemedError(str(redeeming_registration_id))

        return ReferralUsage(
            referral_id=referral.id,
            registration_id=redeeming_registration_id,
            event_id=event_id,
            used_at=self._clock(),
        )

    def redeem_referral(
        self, code: str, redeeming_registration_id: RegistrationId, event_id: EventId
    ) -> ReferralUsage:
        """Record that an existing registration redeemed ``code``."""
        registration = self._registrations.get_registration(redeeming_registration_id)
        if registration is None:
            raise RegistrationNotFoundError(str(redeeming_registration_id))
        if registration.event_id != event_id:
            raise ReferralEventMismatchError(normalize_code(code), str(event_id))
        with self._referrals.redemption_guard(event_id):
            usage = self.validate_redemption(code, redeeming_registration_id, event_id)
            recorded = self._referrals.record_usage(usage)
        logger.info("Registration %s redeemed referral %s", redeeming_registration_id, usage.referral_id)
        return recorded

    def _ensure_acyclic(
        self, referral: Referral, redeemer: RegistrationId, event_id: EventId
    ) -> None:
        """Walk upstream from the referral's owner; reaching the redeemer closes a loop."""
        max_hops = self._registrations.count_for_event(event_id) + 1
        visited: set[RegistrationId] = set()
        current = referral.registration_id
        for _ in range(max_hops):
            if current == redeemer or current in visited:
                raise CyclicReferralError(referral.code)
            visited.add(current)
            incoming = self._referrals.get_incoming_usage(current)
            if incoming is None:
                return
            upstream = self._referrals.get_by_id(incoming.referral_id)
            if upstream is None:
                return
            current = upstream.registration_id
        raise CyclicReferralError(referral.code)

    def referral_link(self, registration_id: RegistrationId) -> ReferralLink:
        """Return the shareable link for a confirmed registration, issuing its code if needed."""
        registration = self._registrations.get_registration(registration_id)
        if registration is None or registration.status != RegistrationStatus.CONFIRMED:
            raise RegistrationNotFoundError(str(registration_id))
        referral = self.create_referral(registration_id, registration.event_id)
        if not referral.is_active:
            raise InvalidReferralCodeError(referral.code)
        return ReferralLink(
            code=referral.code,
            url=f"{self._config.frontend_uri}/register?ref={referral.code}",
            event_id=referral.event_id,
        )

    def validate_code(self, code: str, event_id: EventId) -> RegistrationId | None:
        """Return the referring registration if ``code`` is usable for the event, else None."""
        referral = self._referrals.get_by_code(normalize_code(code))
        if referral is None or not referral.is_active or referral.event_id != event_id:
            return None
        owner = self._registrations.get_registration(referral.registration_id)
        if owner is None or owner.status != RegistrationStatus.CONFIRMED:
            return None
        return owner.id

    def stats(self, registration_id: RegistrationId, user_id: str) -> ReferralStats:
        """Summarise who used a registration's code. Only the owner may see it.

        Raises:
            RegistrationNotFoundError: If the registration has no active code or is not confirmed.
            ForbiddenError: If ``user_id`` does not own the registration.
        """
        referral = self._referrals.get_for_registration(registration_id)
        owner = self._registrations.get_registration(registration_id)
        if (
            referral is None
            or not referral.is_active
            or owner is None
            or owner.status != RegistrationStatus.CONFIRMED
        ):
            raise RegistrationNotFoundError(str(registration_id))
        if owner.user_id != user_id:
            raise ForbiddenError("You may not view these referral statistics")

        referred: list[ReferredRegistration] = []
        for usage in self._referrals.list_usages(referral.id):
            registration = self._registrations.get_registration(usage.registration_id)
            if registration is None:
                continue
            referred.append(
                ReferredRegistration(
                    registration_id=registration.id,
                    status=registration.status,
                    masked_email=mask_email(registration.email),
                    registered_at=usage.used_at,
                )
            )
        successful = sum(1 for r in referred if r.status == RegistrationStatus.CONFIRMED)
        return ReferralStats(
            total_referrals=len(referred),
            successful_referrals=successful,
            referrals=tuple(referred),
        )
