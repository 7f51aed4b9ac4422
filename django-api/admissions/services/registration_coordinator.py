"""Registration coordinator - all business logic for admitting attendees lives here.

Services:
- Depend only on interfaces (stores) and the other admission services
- Validate domain invariants
- Perform orchestration and error mapping
- Return domain models or raise domain errors

An admission reserves inventory, redeems an invitation code and validates a
referral in that order, then commits the registration. Any failure before
the commit releases what was already taken, so counters end where they
started.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from django.utils import timezone

from admissions.conf import AdmissionSettings
from admissions.domain import (
    Event,
    FormPayload,
    RedemptionToken,
    ReferralLink,
    ReferralUsage,
    Registration,
    RegistrationId,
    RegistrationIntent,
    RegistrationStatus,
    RegistrationView,
    ReservationToken,
    Ticket,
)
from admissions.domain.errors import (
    AlreadyCancelledError,
    DeadlineExceededError,
    DomainError,
    DuplicateRegistrationError,
    EventUnavailableError,
    InfrastructureError,
    InvalidCodeError,
    NotCancellableError,
    NotEditableError,
    RegistrationNotFoundError,
    SmsVerificationRequiredError,
    TicketUnavailableError,
    ValidationError,
)
from admissions.services.forms import (
    FormFieldSource,
    FormValidator,
    NoFormFields,
    RequiredFieldsValidator,
)
from admissions.services.inventory_ledger import InventoryLedger
from admissions.services.invitation_redeemer import InvitationRedeemer
from admissions.services.referral_graph import ReferralGraph, normalize_code
from admissions.stores.interfaces import EventStore, RegistrationStore

logger = logging.getLogger(__name__)


class AdmissionStage(str, Enum):
    VALIDATING = "validating"
    RESERVING_INVENTORY = "reserving_inventory"
    REDEEMING_INVITATION = "redeeming_invitation"
    REDEEMING_REFERRAL = "redeeming_referral"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class AdmissionAttempt:
    """Mutable state of one register() call."""

    intent: RegistrationIntent
    deadline: float
    monotonic: Callable[[], float]
    registration_id: RegistrationId = field(default_factory=RegistrationId.new)
    stage: AdmissionStage = AdmissionStage.VALIDATING
    reservation: ReservationToken | None = None
    redemption: RedemptionToken | None = None
    usage: ReferralUsage | None = None

    def advance(self, stage: AdmissionStage) -> None:
        if self.stage in (AdmissionStage.COMMITTED, AdmissionStage.ROLLED_BACK):
            raise RuntimeError(f"Admission {self.registration_id} already {self.stage.value}")
        logger.debug(
            "Admission %s: %s -> %s", self.registration_id, self.stage.value, stage.value
        )
        self.stage = stage

    def check_deadline(self) -> None:
        if self.monotonic() >= self.deadline:
            raise DeadlineExceededError(self.stage.value)


class RegistrationCoordinator:
    """Service for registration admission, cancellation and attendee-facing reads."""

    def __init__(
        self,
        events: EventStore,
        registrations: RegistrationStore,
        ledger: InventoryLedger,
        redeemer: InvitationRedeemer,
        referrals: ReferralGraph,
        form_fields: FormFieldSource | None = None,
        form_validator: FormValidator | None = None,
        config: AdmissionSettings | None = None,
        clock: Callable[[], datetime] = timezone.now,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._events = events
        self._registrations = registrations
        self._ledger = ledger
        self._redeemer = redeemer
        self._referrals = referrals
        self._form_fields = form_fields or NoFormFields()
        self._form_validator = form_validator or RequiredFieldsValidator()
        self._config = config or AdmissionSettings()
        self._clock = clock
        self._monotonic = monotonic

    @property
    def ledger(self) -> InventoryLedger:
        return self._ledger

    @property
    def redeemer(self) -> InvitationRedeemer:
        return self._redeemer

    @property
    def referrals(self) -> ReferralGraph:
        return self._referrals

    @property
    def config(self) -> AdmissionSettings:
        return self._config

    def register(self, intent: RegistrationIntent, timeout: float | None = None) -> Registration:
        """Admit a registration or raise with no counters changed.

        Raises:
            ValidationError: For inactive event or ticket, bad form data or any
                invitation/referral rule.
            DuplicateRegistrationError: If the email is already registered for the event.
            SoldOutError: If the ticket has no remaining capacity.
            InfrastructureError: If storage fails or the deadline passes before commit.
        """
        timeout = self._config.register_timeout_seconds if timeout is None else timeout
        attempt = AdmissionAttempt(
            intent=intent,
            deadline=self._monotonic() + timeout,
            monotonic=self._monotonic,
        )
        try:
            event, ticket = self._validate(attempt)

            attempt.advance(AdmissionStage.RESERVING_INVENTORY)
            attempt.check_deadline()
            attempt.reservation = self._ledger.try_reserve(ticket.id)

            if ticket.require_invite_code or intent.invitation_code:
                attempt.advance(AdmissionStage.REDEEMING_INVITATION)
                attempt.check_deadline()
                if not intent.invitation_code:
                    raise InvalidCodeError(None, reason="required")
                attempt.redemption = self._redeemer.try_redeem(intent.invitation_code, ticket.id)

            if intent.referral_code:
                attempt.advance(AdmissionStage.REDEEMING_REFERRAL)
                attempt.check_deadline()
                attempt.usage = self._referrals.validate_redemption(
                    intent.referral_code, attempt.registration_id, event.id
                )

            attempt.advance(AdmissionStage.COMMITTING)
            attempt.check_deadline()
            registration = self._registrations.commit_registration(
                self._build_registration(attempt), attempt.usage
            )
        except DomainError as exc:
            self._roll_back(attempt, exc)
            raise
        except Exception as exc:
            logger.exception("Unexpected failure admitting %s", attempt.registration_id)
            self._roll_back(attempt, exc)
            raise InfrastructureError() from exc

        self._finalize(attempt, registration)
        return registration

    def _validate(self, attempt: AdmissionAttempt) -> tuple[Event, Ticket]:
        intent = attempt.intent
        if not intent.email or "@" not in intent.email:
            raise ValidationError("A valid email is required", detail={"field": "email"})

        event = self._events.get_event(intent.event_id)
        if event is None or not event.is_open:
            raise EventUnavailableError(str(intent.event_id))

        ticket = self._events.get_ticket(intent.ticket_id)
        if (
            ticket is None
            or ticket.event_id != event.id
            or not ticket.is_active
            or ticket.hidden
        ):
            raise TicketUnavailableError(str(intent.ticket_id))

        if ticket.require_sms_verification and not intent.sms_verified:
            raise SmsVerificationRequiredError(str(ticket.id))

        fields = self._form_fields.fields_for(event.id, ticket.id)
        self._form_validator.validate(fields, intent.form_data)

        if self._registrations.find_by_email(self._email(intent), event.id) is not None:
            raise DuplicateRegistrationError(str(event.id))
        return event, ticket

    @staticmethod
    def _email(intent: RegistrationIntent) -> str:
        return intent.email.strip().lower()

    def _build_registration(self, attempt: AdmissionAttempt) -> Registration:
        intent = attempt.intent
        now = self._clock()
        return Registration(
            id=attempt.registration_id,
            user_id=intent.user_id,
            event_id=intent.event_id,
            ticket_id=intent.ticket_id,
            email=self._email(intent),
            status=RegistrationStatus.CONFIRMED,
            form_data=intent.form_data,
            referred_by=normalize_code(intent.referral_code) if attempt.usage else None,
            invitation_code_id=attempt.redemption.code_id if attempt.redemption else None,
            created_at=now,
            updated_at=now,
        )

    def _roll_back(self, attempt: AdmissionAttempt, cause: BaseException) -> None:
        failed_at = attempt.stage
        if attempt.redemption is not None:
            self._release(self._redeemer.release, attempt.redemption, attempt)
        if attempt.reservation is not None:
            self._release(self._ledger.release, attempt.reservation, attempt)
        attempt.advance(AdmissionStage.ROLLED_BACK)
        if attempt.reservation is not None or attempt.redemption is not None:
            logger.warning(
                "Admission %s rolled back at %s: %s",
                attempt.registration_id,
                failed_at.value,
                cause,
            )
        else:
            logger.info(
                "Admission %s rejected at %s: %s",
                attempt.registration_id,
                failed_at.value,
                cause,
            )

    def _retry(self, operation: Callable[[], object], description: str) -> bool:
        """Run ``operation`` up to ``release_max_attempts`` times; False if every attempt failed."""
        for attempt_number in range(1, self._config.release_max_attempts + 1):
            try:
                operation()
                return True
            except Exception:
                logger.warning(
                    "%s failed (attempt %d of %d)",
                    description,
                    attempt_number,
                    self._config.release_max_attempts,
                    exc_info=True,
                )
        return False

    def _release(self, release: Callable, token, attempt: AdmissionAttempt) -> None:
        """Run a compensating release, retrying on storage failure."""
        if self._retry(lambda: release(token), f"Release of token {token.token_id}"):
            return
        logger.error(
            "Token %s for admission %s could not be released; counter needs reconciliation",
            token.token_id,
            attempt.registration_id,
        )

    def _finalize(self, attempt: AdmissionAttempt, registration: Registration) -> None:
        if attempt.reservation is not None:
            self._ledger.commit(attempt.reservation)
        if attempt.redemption is not None:
            self._redeemer.commit(attempt.redemption)
        attempt.advance(AdmissionStage.COMMITTED)
        logger.info(
            "Registration %s admitted for event %s on ticket %s",
            registration.id,
            registration.event_id,
            registration.ticket_id,
        )
        try:
            self._referrals.create_referral(registration.id, registration.event_id)
        except InfrastructureError:
            # referral_link() issues the code on first request instead.
            logger.exception("Referral code not issued for registration %s", registration.id)

    def _owned_registration(
        self, registration_id: RegistrationId, user_id: str | None
    ) -> Registration:
        registration = self._registrations.get_registration(registration_id)
        if registration is None or (user_id is not None and registration.user_id != user_id):
            raise RegistrationNotFoundError(str(registration_id))
        return registration

    def cancel(self, registration_id: RegistrationId, user_id: str | None = None) -> Registration:
        """Cancel a confirmed registration and return its seat and invitation use.

        Pass ``user_id`` to restrict the cancellation to the registration's owner.
        Referral rows are kept so referral chains stay intact.
        """
        registration = self._owned_registration(registration_id, user_id)
        if registration.status == RegistrationStatus.CANCELLED:
            raise AlreadyCancelledError(str(registration_id))
        if registration.status != RegistrationStatus.CONFIRMED:
            raise NotCancellableError(str(registration_id), "status")

        event = self._events.get_event(registration.event_id)
        if event is not None and event.has_started(self._clock()):
            raise NotCancellableError(str(registration_id), "event_started")

        if not self._registrations.transition_status(
            registration_id, RegistrationStatus.CONFIRMED, RegistrationStatus.CANCELLED
        ):
            raise AlreadyCancelledError(str(registration_id))

        if not self._retry(
            lambda: self._ledger.return_to_stock(registration.ticket_id),
            f"Returning seat of registration {registration_id}",
        ):
            logger.error(
                "Seat of cancelled registration %s was not returned to ticket %s; counter needs reconciliation",
                registration_id,
                registration.ticket_id,
            )
        if registration.invitation_code_id is not None and not self._retry(
            lambda: self._redeemer.return_use(registration.invitation_code_id),
            f"Returning invitation use of registration {registration_id}",
        ):
            logger.error(
                "Invitation use of cancelled registration %s was not returned to code %s; "
                "counter needs reconciliation",
                registration_id,
                registration.invitation_code_id,
            )
        logger.info("Registration %s cancelled", registration_id)
        return self._registrations.get_registration(registration_id)

    def update_form_data(
        self, registration_id: RegistrationId, user_id: str, form_data: FormPayload
    ) -> Registration:
        """Replace the form data of a confirmed registration before the edit deadline."""
        registration = self._owned_registration(registration_id, user_id)
        event = self._events.get_event(registration.event_id)
        ticket = self._events.get_ticket(registration.ticket_id)
        now = self._clock()

        if registration.status != RegistrationStatus.CONFIRMED:
            raise NotEditableError(str(registration_id), "status")
        if event is None or event.has_started(now):
            raise NotEditableError(str(registration_id), "event_started")
        if event.edit_deadline is not None:
            if now >= event.edit_deadline:
                raise NotEditableError(str(registration_id), "edit_deadline_passed")
        elif ticket is not None and ticket.sales_window.ends_at and now >= ticket.sales_window.ends_at:
            raise NotEditableError(str(registration_id), "sales_ended")

        fields = self._form_fields.fields_for(registration.event_id, registration.ticket_id)
        self._form_validator.validate(fields, form_data)

        updated = self._registrations.update_form_data(registration_id, form_data)
        if updated is None:
            raise RegistrationNotFoundError(str(registration_id))
        return updated

    def _view(self, registration: Registration) -> RegistrationView:
        event = self._events.get_event(registration.event_id)
        ticket = self._events.get_ticket(registration.ticket_id)
        now = self._clock()
        confirmed = registration.status == RegistrationStatus.CONFIRMED
        upcoming = event is not None and event.starts_at > now
        if event is not None and event.edit_deadline is not None:
            before_edit_cutoff = event.edit_deadline > now
        else:
            sale_end = ticket.sales_window.ends_at if ticket is not None else None
            before_edit_cutoff = sale_end is None or sale_end > now
        return RegistrationView(
            registration=registration,
            is_upcoming=upcoming,
            is_past=event is not None and event.ends_at < now,
            can_edit=confirmed and upcoming and before_edit_cutoff,
            can_cancel=confirmed and upcoming,
        )

    def list_for_user(self, user_id: str) -> list[RegistrationView]:
        return [self._view(r) for r in self._registrations.list_for_user(user_id)]

    def get_for_user(self, registration_id: RegistrationId, user_id: str) -> RegistrationView:
        return self._view(self._owned_registration(registration_id, user_id))

    def referral_link(
        self, registration_id: RegistrationId, user_id: str | None = None
    ) -> ReferralLink:
        """Read accessor for a registration's own referral code."""
        self._owned_registration(registration_id, user_id)
        return self._referrals.referral_link(registration_id)
