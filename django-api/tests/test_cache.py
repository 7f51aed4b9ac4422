"""Tests for cache behavior.

Run with: pytest tests/test_cache.py -v
"""

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from admissions import models as orm
from admissions.cache import ticket_availability_key


@pytest.mark.django_db
class TestAvailabilityCache:
    """Tests for the ticket availability read model cache."""

    def _available(self, client: APIClient, orm_ticket) -> int:
        return client.get(f"/api/tickets/{orm_ticket.id}/availability").json()["data"]["available"]

    def test_response_is_cached(self, api_client: APIClient, orm_ticket):
        """A second read is served from cache even if the row changed underneath."""
        assert self._available(api_client, orm_ticket) == 2
        assert cache.get(ticket_availability_key(str(orm_ticket.id))) is not None

        orm.Ticket.objects.filter(pk=orm_ticket.pk).update(quantity=5)

        assert self._available(api_client, orm_ticket) == 2

    def test_ticket_save_invalidates_cache(self, api_client: APIClient, orm_ticket):
        """Saving a ticket invalidates the tickets:{id}:availability key."""
        self._available(api_client, orm_ticket)

        orm_ticket.quantity = 5
        orm_ticket.save()

        assert cache.get(ticket_availability_key(str(orm_ticket.id))) is None
        assert self._available(api_client, orm_ticket) == 5

    def test_ticket_delete_invalidates_cache(self, api_client: APIClient, orm_ticket):
        self._available(api_client, orm_ticket)
        ticket_id = str(orm_ticket.id)
        orm_ticket.delete()
        assert cache.get(ticket_availability_key(ticket_id)) is None

    def test_registration_invalidates_cache(self, api_client: APIClient, auth_client: APIClient, orm_ticket):
        """A reservation changes sold_count and drops the cached availability."""
        assert self._available(api_client, orm_ticket) == 2

        auth_client.post(
            "/api/registrations",
            {"event_id": str(orm_ticket.event_id), "ticket_id": str(orm_ticket.id)},
            format="json",
        )

        assert self._available(api_client, orm_ticket) == 1

    def test_cancellation_invalidates_cache(self, api_client: APIClient, auth_client: APIClient, orm_ticket):
        response = auth_client.post(
            "/api/registrations",
            {"event_id": str(orm_ticket.event_id), "ticket_id": str(orm_ticket.id)},
            format="json",
        )
        assert self._available(api_client, orm_ticket) == 1

        auth_client.put(f"/api/registrations/{response.json()['data']['id']}/cancel")

        assert self._available(api_client, orm_ticket) == 2
