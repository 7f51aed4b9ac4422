"""Unit tests for RegistrationCoordinator.

Covers the admission pipeline end to end over the in-memory store: the
happy path, contention on the last seat, invitation exhaustion, cyclic
referrals and compensation when a later stage fails.
Run with: pytest tests/test_registration_coordinator.py -v
"""

import itertools
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from admissions.conf import AdmissionSettings
from admissions.domain import FormPayload, RegistrationStatus
from admissions.domain.errors import (
    AlreadyCancelledError,
    CyclicReferralError,
    DeadlineExceededError,
    DuplicateRegistrationError,
    EventUnavailableError,
    FormValidationError,
    InfrastructureError,
    InvalidCodeError,
    InvalidReferralCodeError,
    NotCancellableError,
    NotEditableError,
    RegistrationNotFoundError,
    SmsVerificationRequiredError,
    SoldOutError,
    TicketUnavailableError,
    UsageLimitExceededError,
    ValidationError,
)
from admissions.services import (
    InventoryLedger,
    InvitationRedeemer,
    ReferralGraph,
    RegistrationCoordinator,
)
from admissions.stores.memory_store import InMemoryAdmissionStore


class FailingCommitStore(InMemoryAdmissionStore):
    """Store whose registration insert always fails."""

    def __init__(self, error: Exception, release_failures: int = 0) -> None:
        super().__init__()
        self.error = error
        self.release_failures = release_failures

    def commit_registration(self, registration, usage=None):
        raise self.error

    def decrement_sold_count(self, ticket_id, quantity):
        if self.release_failures:
            self.release_failures -= 1
            raise InfrastructureError()
        return super().decrement_sold_count(ticket_id, quantity)


class BrokenReferralStore(InMemoryAdmissionStore):
    """Store that cannot issue referral codes until ``healthy`` is set."""

    healthy = False

    def insert_referral(self, referral):
        if not self.healthy:
            raise InfrastructureError()
        return super().insert_referral(referral)


class FlakyCounterStore(InMemoryAdmissionStore):
    """Store whose counter decrements fail a set number of times before succeeding."""

    def __init__(self, seat_failures: int = 0, use_failures: int = 0) -> None:
        super().__init__()
        self.seat_failures = seat_failures
        self.use_failures = use_failures

    def decrement_sold_count(self, ticket_id, quantity):
        if self.seat_failures:
            self.seat_failures -= 1
            raise InfrastructureError()
        return super().decrement_sold_count(ticket_id, quantity)

    def decrement_used_count(self, code_id):
        if self.use_failures:
            self.use_failures -= 1
            raise InfrastructureError()
        return super().decrement_used_count(code_id)


class CompanyField:
    def fields_for(self, event_id, ticket_id):
        return [{"name": "company", "required": True}]


def build_coordinator(store, now, **overrides) -> RegistrationCoordinator:
    options = {
        "events": store,
        "registrations": store,
        "ledger": InventoryLedger(store, clock=lambda: now),
        "redeemer": InvitationRedeemer(store, clock=lambda: now),
        "referrals": ReferralGraph(store, store, clock=lambda: now),
        "clock": lambda: now,
    }
    options.update(overrides)
    return RegistrationCoordinator(**options)


@pytest.fixture
def event(make_event):
    return make_event()


@pytest.fixture
def ticket(make_ticket, event):
    return make_ticket(event, quantity=10)


class TestRegisterHappyPath:
    """Tests for a successful admission."""

    def test_registration_is_confirmed(self, store, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket, email=" Alice@Example.com"))

        assert registration.status == RegistrationStatus.CONFIRMED
        assert registration.email == "alice@example.com"
        assert registration.referred_by is None
        assert store.get_registration(registration.id) == registration
        assert store.get_ticket(ticket.id).sold_count == 1

    def test_referral_code_issued_after_commit(self, store, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket))
        referral = store.get_for_registration(registration.id)
        assert referral is not None
        assert referral.event_id == event.id

    def test_register_with_referral_code(self, store, coordinator, make_intent, event, ticket):
        alice = coordinator.register(make_intent(event, ticket))
        code = store.get_for_registration(alice.id).code

        bob = coordinator.register(
            make_intent(event, ticket, email="bob@example.com", user_id="user-2", referral_code=code.lower())
        )

        assert bob.referred_by == code
        assert store.get_incoming_usage(bob.id).referral_id == store.get_by_code(code).id

    def test_register_with_invitation_code(self, store, coordinator, make_intent, make_code, event, make_ticket):
        ticket = make_ticket(event, require_invite_code=True)
        code = make_code(ticket, usage_limit=5)

        registration = coordinator.register(make_intent(event, ticket, invitation_code="VIP2026"))

        assert registration.invitation_code_id == code.id
        assert store.get_code(code.id).used_count == 1

    def test_optional_code_is_still_validated(self, store, coordinator, make_intent, event, ticket):
        with pytest.raises(InvalidCodeError):
            coordinator.register(make_intent(event, ticket, invitation_code="BOGUS"))
        assert store.get_ticket(ticket.id).sold_count == 0

    def test_form_data_is_stored(self, coordinator, make_intent, event, ticket):
        payload = FormPayload({"company": "Acme", "diet": ["vegan"]}, schema_version=2)
        registration = coordinator.register(make_intent(event, ticket, form_data=payload))
        assert registration.form_data == payload


class TestRegisterValidation:
    """Tests for rejections before anything is reserved."""

    def test_invalid_email(self, coordinator, make_intent, event, ticket):
        with pytest.raises(ValidationError) as excinfo:
            coordinator.register(make_intent(event, ticket, email="not-an-email"))
        assert excinfo.value.detail == {"field": "email"}

    def test_hidden_event(self, store, coordinator, make_intent, make_event, make_ticket):
        event = make_event(hidden=True)
        ticket = make_ticket(event)
        with pytest.raises(EventUnavailableError):
            coordinator.register(make_intent(event, ticket))
        assert store.get_ticket(ticket.id).sold_count == 0

    def test_ticket_from_other_event(self, coordinator, make_intent, make_event, make_ticket, event):
        foreign = make_ticket(make_event(slug="other"))
        with pytest.raises(TicketUnavailableError):
            coordinator.register(make_intent(event, foreign))

    def test_hidden_ticket(self, coordinator, make_intent, make_ticket, event):
        ticket = make_ticket(event, hidden=True)
        with pytest.raises(TicketUnavailableError):
            coordinator.register(make_intent(event, ticket))

    def test_sms_verification_required(self, coordinator, make_intent, make_ticket, event):
        ticket = make_ticket(event, require_sms_verification=True)
        with pytest.raises(SmsVerificationRequiredError):
            coordinator.register(make_intent(event, ticket))
        coordinator.register(make_intent(event, ticket, sms_verified=True))

    def test_form_validator_rejects_missing_field(self, store, now, make_intent, event, ticket):
        coordinator = build_coordinator(store, now, form_fields=CompanyField())
        with pytest.raises(FormValidationError) as excinfo:
            coordinator.register(make_intent(event, ticket))
        assert excinfo.value.detail == {"fields": {"company": "This field is required"}}
        assert store.get_ticket(ticket.id).sold_count == 0

    def test_duplicate_email(self, store, coordinator, make_intent, event, ticket):
        coordinator.register(make_intent(event, ticket))
        with pytest.raises(DuplicateRegistrationError):
            coordinator.register(make_intent(event, ticket, email="ALICE@example.com", user_id="user-2"))
        assert store.get_ticket(ticket.id).sold_count == 1

    def test_missing_required_invitation_code(self, store, coordinator, make_intent, make_ticket, event):
        ticket = make_ticket(event, require_invite_code=True)
        with pytest.raises(InvalidCodeError) as excinfo:
            coordinator.register(make_intent(event, ticket))
        assert excinfo.value.detail["reason"] == "required"
        assert store.get_ticket(ticket.id).sold_count == 0


class TestScenarios:
    """End-to-end admission scenarios."""

    def test_sold_out_race(self, store, coordinator, make_intent, make_ticket, event):
        """Eight attendees race for the last seat; one wins, seven see SoldOutError."""
        ticket = make_ticket(event, quantity=1)
        barrier = threading.Barrier(8)

        def attempt(index):
            barrier.wait()
            try:
                coordinator.register(
                    make_intent(event, ticket, email=f"guest{index}@example.com", user_id=f"user-{index}")
                )
                return "admitted"
            except SoldOutError:
                return "sold_out"

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(attempt, range(8)))

        assert outcomes.count("admitted") == 1
        assert outcomes.count("sold_out") == 7
        assert store.get_ticket(ticket.id).sold_count == 1
        assert store.count_for_event(event.id) == 1

    def test_same_email_race_admits_once(self, store, coordinator, make_intent, event, ticket):
        barrier = threading.Barrier(5)

        def attempt(_):
            barrier.wait()
            try:
                coordinator.register(make_intent(event, ticket))
                return True
            except DuplicateRegistrationError:
                return False

        with ThreadPoolExecutor(max_workers=5) as pool:
            outcomes = list(pool.map(attempt, range(5)))

        assert outcomes.count(True) == 1
        assert store.get_ticket(ticket.id).sold_count == 1

    def test_cyclic_referral_rejected(self, store, coordinator, make_intent, event, ticket):
        """A refers B, B issues its code; A redeeming it changes nothing."""
        alice = coordinator.register(make_intent(event, ticket))
        code_a = store.get_for_registration(alice.id).code
        bob = coordinator.register(
            make_intent(event, ticket, email="bob@example.com", user_id="user-2", referral_code=code_a)
        )
        code_b = store.get_for_registration(bob.id).code

        with pytest.raises(CyclicReferralError):
            coordinator.referrals.redeem_referral(code_b, alice.id, event.id)

        assert len(store.usages) == 1
        assert store.get_ticket(ticket.id).sold_count == 2

    def test_invitation_exhaustion(self, store, coordinator, make_intent, make_code, make_ticket, event):
        ticket = make_ticket(event, require_invite_code=True)
        code = make_code(ticket, usage_limit=2)
        for index in range(2):
            coordinator.register(
                make_intent(event, ticket, email=f"p{index}@example.com", invitation_code="VIP2026")
            )

        with pytest.raises(UsageLimitExceededError):
            coordinator.register(make_intent(event, ticket, email="late@example.com", invitation_code="VIP2026"))

        assert store.get_code(code.id).used_count == 2
        assert store.get_ticket(ticket.id).sold_count == 2


class TestCompensation:
    """Tests that failed admissions leave every counter where it started."""

    def test_referral_failure_releases_invitation_and_seat(
        self, store, coordinator, make_intent, make_code, make_ticket, event
    ):
        ticket = make_ticket(event, require_invite_code=True)
        code = make_code(ticket, usage_limit=1)

        with pytest.raises(InvalidReferralCodeError):
            coordinator.register(make_intent(event, ticket, invitation_code="VIP2026", referral_code="ZZZZZZ"))

        assert store.get_ticket(ticket.id).sold_count == 0
        assert store.get_code(code.id).used_count == 0
        assert store.count_for_event(event.id) == 0

    def test_invitation_failure_releases_seat(self, store, coordinator, make_intent, make_ticket, event):
        ticket = make_ticket(event, require_invite_code=True)
        with pytest.raises(InvalidCodeError):
            coordinator.register(make_intent(event, ticket, invitation_code="UNKNOWN"))
        assert store.get_ticket(ticket.id).sold_count == 0

    def test_storage_failure_on_commit(self, now, make_intent, make_event, make_ticket, make_code):
        store = FailingCommitStore(InfrastructureError())
        event = store.add_event(make_event())
        ticket = store.add_ticket(make_ticket(event, require_invite_code=True))
        code = store.add_invitation_code(make_code(ticket, usage_limit=3))
        coordinator = build_coordinator(store, now)

        with pytest.raises(InfrastructureError):
            coordinator.register(make_intent(event, ticket, invitation_code="VIP2026"))

        assert store.get_ticket(ticket.id).sold_count == 0
        assert store.get_code(code.id).used_count == 0

    def test_unexpected_error_is_wrapped(self, now, make_intent, make_event, make_ticket):
        store = FailingCommitStore(RuntimeError("connection reset"))
        event = store.add_event(make_event())
        ticket = store.add_ticket(make_ticket(event))
        coordinator = build_coordinator(store, now)

        with pytest.raises(InfrastructureError) as excinfo:
            coordinator.register(make_intent(event, ticket))

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert store.get_ticket(ticket.id).sold_count == 0

    def test_release_is_retried(self, now, make_intent, make_event, make_ticket):
        store = FailingCommitStore(InfrastructureError(), release_failures=2)
        event = store.add_event(make_event())
        ticket = store.add_ticket(make_ticket(event))
        coordinator = build_coordinator(store, now)

        with pytest.raises(InfrastructureError):
            coordinator.register(make_intent(event, ticket))

        assert store.get_ticket(ticket.id).sold_count == 0

    def test_release_gives_up_after_max_attempts(self, now, make_intent, make_event, make_ticket, caplog):
        store = FailingCommitStore(InfrastructureError(), release_failures=5)
        event = store.add_event(make_event())
        ticket = store.add_ticket(make_ticket(event))
        coordinator = build_coordinator(store, now, config=AdmissionSettings(release_max_attempts=2))

        with pytest.raises(InfrastructureError):
            coordinator.register(make_intent(event, ticket))

        assert store.get_ticket(ticket.id).sold_count == 1
        assert "could not be released" in caplog.text

    def test_referral_code_failure_does_not_undo_registration(
        self, now, make_intent, make_event, make_ticket
    ):
        store = BrokenReferralStore()
        event = store.add_event(make_event())
        ticket = store.add_ticket(make_ticket(event))
        coordinator = build_coordinator(store, now)

        registration = coordinator.register(make_intent(event, ticket))

        assert store.get_for_registration(registration.id) is None
        assert store.get_ticket(ticket.id).sold_count == 1

        store.healthy = True
        link = coordinator.referral_link(registration.id, "user-1")
        assert store.get_for_registration(registration.id).code == link.code


class TestDeadline:
    """Tests for the admission deadline."""

    def test_expired_deadline_reserves_nothing(self, store, coordinator, make_intent, event, ticket):
        with pytest.raises(DeadlineExceededError) as excinfo:
            coordinator.register(make_intent(event, ticket), timeout=0)
        assert excinfo.value.detail["stage"] == "reserving_inventory"
        assert store.get_ticket(ticket.id).sold_count == 0

    def test_deadline_mid_admission_releases_everything(
        self, store, now, make_intent, make_code, make_ticket, event
    ):
        ticket = make_ticket(event, require_invite_code=True)
        code = make_code(ticket)
        alice = build_coordinator(store, now).register(
            make_intent(event, ticket, invitation_code="VIP2026", email="alice@example.com")
        )
        referral_code = store.get_for_registration(alice.id).code
        ticks = itertools.chain([0.0, 0.0, 0.0], itertools.repeat(100.0))
        coordinator = build_coordinator(store, now, monotonic=lambda: next(ticks))

        with pytest.raises(DeadlineExceededError) as excinfo:
            coordinator.register(
                make_intent(
                    event,
                    ticket,
                    email="bob@example.com",
                    invitation_code="VIP2026",
                    referral_code=referral_code,
                ),
                timeout=10,
            )

        assert excinfo.value.detail["stage"] == "redeeming_referral"
        assert store.get_ticket(ticket.id).sold_count == 1
        assert store.get_code(code.id).used_count == 1


class TestCancel:
    """Tests for RegistrationCoordinator.cancel."""

    def test_cancel_returns_seat_and_invitation_use(
        self, store, coordinator, make_intent, make_code, make_ticket, event
    ):
        ticket = make_ticket(event, require_invite_code=True)
        code = make_code(ticket, usage_limit=1)
        registration = coordinator.register(make_intent(event, ticket, invitation_code="VIP2026"))

        cancelled = coordinator.cancel(registration.id, "user-1")

        assert cancelled.status == RegistrationStatus.CANCELLED
        assert store.get_ticket(ticket.id).sold_count == 0
        assert store.get_code(code.id).used_count == 0

    def test_double_cancel(self, store, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket))
        coordinator.cancel(registration.id)
        with pytest.raises(AlreadyCancelledError):
            coordinator.cancel(registration.id)
        assert store.get_ticket(ticket.id).sold_count == 0

    def test_cancel_keeps_referral_rows(self, store, coordinator, make_intent, event, ticket):
        alice = coordinator.register(make_intent(event, ticket))
        code = store.get_for_registration(alice.id).code
        bob = coordinator.register(
            make_intent(event, ticket, email="bob@example.com", user_id="user-2", referral_code=code)
        )
        coordinator.cancel(bob.id, "user-2")
        assert store.get_incoming_usage(bob.id) is not None

    def test_other_user_cannot_cancel(self, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket))
        with pytest.raises(RegistrationNotFoundError):
            coordinator.cancel(registration.id, "intruder")

    def test_cannot_cancel_after_event_start(self, now, coordinator, make_intent, make_event, make_ticket):
        event = make_event(starts_at=now - timedelta(hours=1), ends_at=now + timedelta(hours=5))
        ticket = make_ticket(event)
        registration = coordinator.register(make_intent(event, ticket))
        with pytest.raises(NotCancellableError) as excinfo:
            coordinator.cancel(registration.id)
        assert excinfo.value.detail["reason"] == "event_started"

    def test_cancel_retries_returning_seat_and_use(self, now, make_intent, make_event, make_ticket, make_code):
        store = FlakyCounterStore(seat_failures=2, use_failures=2)
        event = store.add_event(make_event())
        ticket = store.add_ticket(make_ticket(event, require_invite_code=True))
        code = store.add_invitation_code(make_code(ticket, usage_limit=1))
        coordinator = build_coordinator(store, now)
        registration = coordinator.register(make_intent(event, ticket, invitation_code="VIP2026"))

        coordinator.cancel(registration.id)

        assert store.get_ticket(ticket.id).sold_count == 0
        assert store.get_code(code.id).used_count == 0

    def test_cancel_logs_seat_it_could_not_return(self, now, make_intent, make_event, make_ticket, caplog):
        """The cancellation stands and the stuck counter is reported for reconciliation."""
        store = FlakyCounterStore(seat_failures=5)
        event = store.add_event(make_event())
        ticket = store.add_ticket(make_ticket(event))
        coordinator = build_coordinator(store, now, config=AdmissionSettings(release_max_attempts=2))
        registration = coordinator.register(make_intent(event, ticket))

        cancelled = coordinator.cancel(registration.id)

        assert cancelled.status == RegistrationStatus.CANCELLED
        assert store.get_ticket(ticket.id).sold_count == 1
        assert "was not returned to ticket" in caplog.text

    def test_code_of_cancelled_registration_cannot_be_redeemed(
        self, store, coordinator, make_intent, event, ticket
    ):
        alice = coordinator.register(make_intent(event, ticket))
        code = store.get_for_registration(alice.id).code
        coordinator.cancel(alice.id)

        with pytest.raises(InvalidReferralCodeError):
            coordinator.register(
                make_intent(event, ticket, email="bob@example.com", user_id="user-2", referral_code=code)
            )

        assert store.count_for_event(event.id) == 1
        assert store.get_ticket(ticket.id).sold_count == 0


class TestUpdateFormData:
    """Tests for RegistrationCoordinator.update_form_data."""

    def test_update(self, store, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket))
        payload = FormPayload({"company": "Initech"})
        updated = coordinator.update_form_data(registration.id, "user-1", payload)
        assert updated.form_data == payload
        assert store.get_registration(registration.id).form_data == payload

    def test_after_edit_deadline(self, now, coordinator, make_intent, make_event, make_ticket):
        event = make_event(edit_deadline=now - timedelta(minutes=1))
        registration = coordinator.register(make_intent(event, make_ticket(event)))
        with pytest.raises(NotEditableError) as excinfo:
            coordinator.update_form_data(registration.id, "user-1", FormPayload())
        assert excinfo.value.detail["reason"] == "edit_deadline_passed"

    def test_cancelled_registration(self, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket))
        coordinator.cancel(registration.id)
        with pytest.raises(NotEditableError):
            coordinator.update_form_data(registration.id, "user-1", FormPayload())

    def test_revalidates_form(self, store, now, make_intent, event, ticket):
        registration = build_coordinator(store, now).register(make_intent(event, ticket))
        coordinator = build_coordinator(store, now, form_fields=CompanyField())
        with pytest.raises(FormValidationError):
            coordinator.update_form_data(registration.id, "user-1", FormPayload({"company": ""}))


class TestUserViews:
    """Tests for list_for_user and get_for_user."""

    def test_flags_for_upcoming_registration(self, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket))
        view = coordinator.get_for_user(registration.id, "user-1")
        assert view.is_upcoming and not view.is_past
        assert view.can_edit and view.can_cancel

    def test_cancelled_registration_flags(self, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket))
        coordinator.cancel(registration.id)
        view = coordinator.get_for_user(registration.id, "user-1")
        assert not view.can_cancel
        assert not view.can_edit

    def test_list_only_own_registrations(self, coordinator, make_intent, event, ticket):
        coordinator.register(make_intent(event, ticket))
        coordinator.register(make_intent(event, ticket, email="bob@example.com", user_id="user-2"))
        views = coordinator.list_for_user("user-1")
        assert [v.registration.email for v in views] == ["alice@example.com"]

    def test_get_other_users_registration(self, coordinator, make_intent, event, ticket):
        registration = coordinator.register(make_intent(event, ticket))
        with pytest.raises(RegistrationNotFoundError):
            coordinator.get_for_user(registration.id, "user-2")
