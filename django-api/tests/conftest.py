"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from rest_framework.test import APIClient

from admissions.domain import (
    Capacity,
    Event,
    EventId,
    FormPayload,
    InvitationCode,
    InvitationCodeId,
    Money,
    Registration,
    RegistrationId,
    RegistrationIntent,
    RegistrationStatus,
    Ticket,
    TicketId,
    TimeWindow,
)
from admissions.services import (
    InventoryLedger,
    InvitationRedeemer,
    ReferralGraph,
    RegistrationCoordinator,
)
from admissions.stores.memory_store import InMemoryAdmissionStore

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=dt_timezone.utc)


def clock() -> datetime:
    return NOW


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture(autouse=True)
def clear_cache():
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryAdmissionStore:
    return InMemoryAdmissionStore()


@pytest.fixture
def make_event(store):
    def _make(**overrides) -> Event:
        values = {
            "id": EventId(uuid4()),
            "slug": "spring-summit",
            "name": {"en": "Spring Summit"},
            "starts_at": NOW + timedelta(days=30),
            "ends_at": NOW + timedelta(days=31),
            "edit_deadline": None,
            "is_active": True,
            "hidden": False,
        }
        values.update(overrides)
        return store.add_event(Event(**values))

    return _make


@pytest.fixture
def make_ticket(store):
    def _make(event: Event, quantity: int = 10, **overrides) -> Ticket:
        values = {
            "id": TicketId(uuid4()),
            "event_id": event.id,
            "name": {"en": "General admission"},
            "price": Money(Decimal("0")),
            "quantity": Capacity(quantity),
            "sold_count": 0,
            "sales_window": TimeWindow(NOW - timedelta(days=1), NOW + timedelta(days=20)),
        }
        values.update(overrides)
        return store.add_ticket(Ticket(**values))

    return _make


@pytest.fixture
def make_code(store):
    def _make(ticket: Ticket, code: str = "VIP2026", usage_limit: int | None = None, **overrides) -> InvitationCode:
        values = {
            "id": InvitationCodeId(uuid4()),
            "ticket_id": ticket.id,
            "code": code,
            "name": "Partners",
            "usage_limit": usage_limit,
            "used_count": 0,
            "validity": TimeWindow(),
        }
        values.update(overrides)
        return store.add_invitation_code(InvitationCode(**values))

    return _make


@pytest.fixture
def make_registration(store):
    """Insert a confirmed registration directly, bypassing admission."""

    def _make(event: Event, ticket: Ticket, email: str, user_id: str = "user-1", **overrides) -> Registration:
        values = {
            "id": RegistrationId.new(),
            "user_id": user_id,
            "event_id": event.id,
            "ticket_id": ticket.id,
            "email": email,
            "status": RegistrationStatus.CONFIRMED,
            "form_data": FormPayload(),
            "referred_by": None,
            "invitation_code_id": None,
            "created_at": NOW,
            "updated_at": NOW,
        }
        values.update(overrides)
        registration = Registration(**values)
        store.registrations[registration.id] = registration
        return registration

    return _make


@pytest.fixture
def make_intent():
    def _make(event: Event, ticket: Ticket, email: str = "alice@example.com", **overrides) -> RegistrationIntent:
        values = {
            "user_id": "user-1",
            "event_id": event.id,
            "ticket_id": ticket.id,
            "email": email,
        }
        values.update(overrides)
        return RegistrationIntent(**values)

    return _make


@pytest.fixture
def ledger(store) -> InventoryLedger:
    return InventoryLedger(store, clock=clock)


@pytest.fixture
def redeemer(store) -> InvitationRedeemer:
    return InvitationRedeemer(store, clock=clock)


@pytest.fixture
def graph(store) -> ReferralGraph:
    return ReferralGraph(store, store, clock=clock)


@pytest.fixture
def coordinator(store, ledger, redeemer, graph) -> RegistrationCoordinator:
    return RegistrationCoordinator(
        events=store,
        registrations=store,
        ledger=ledger,
        redeemer=redeemer,
        referrals=graph,
        clock=clock,
    )


@pytest.fixture
def orm_event(db):
    from django.utils import timezone

    from admissions.models import Event as EventRow

    start = timezone.now() + timedelta(days=30)
    return EventRow.objects.create(
        slug="spring-summit",
        name={"en": "Spring Summit"},
        start_date=start,
        end_date=start + timedelta(days=1),
    )


@pytest.fixture
def orm_ticket(orm_event):
    from admissions.models import Ticket as TicketRow

    return TicketRow.objects.create(
        event=orm_event,
        name={"en": "General admission"},
        price=Decimal("25.00"),
        quantity=2,
    )


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(
        username="alice", email="alice@example.com", password="secret"
    )


@pytest.fixture
def auth_client(api_client, user) -> APIClient:
    api_client.force_authenticate(user=user)
    return api_client
