"""Cache keys for read models shown to attendees."""

from django.core.cache import cache


def ticket_availability_key(ticket_id: str) -> str:
    return f"tickets:{ticket_id}:availability"


def invalidate_ticket(ticket_id: str) -> None:
    cache.delete(ticket_availability_key(ticket_id))
