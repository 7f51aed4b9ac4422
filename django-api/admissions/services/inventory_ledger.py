"""Inventory ledger - owns every change to a ticket's sold counter.

Reservation is optimistic: the counter is incremented as soon as capacity
allows and released again if the admission is abandoned.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from django.utils import timezone

from admissions.domain import ReservationToken, TicketAvailability, TicketId
from admissions.domain.errors import (
    SalesWindowClosedError,
    SoldOutError,
    TicketUnavailableError,
    ValidationError,
)
from admissions.services.settlement import SettlementBook
from admissions.stores.interfaces import InventoryStore

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Service for ticket capacity reservations."""

    def __init__(
        self,
        store: InventoryStore,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._store = store
        self._clock = clock
        self._book = SettlementBook()

    def try_reserve(self, ticket_id: TicketId, quantity: int = 1) -> ReservationToken:
        """Reserve ``quantity`` seats on a ticket.

        Raises:
            ValidationError: If quantity is not positive.
            TicketUnavailableError: If the ticket does not exist or is inactive.
            SalesWindowClosedError: If sales have not started or have ended.
            SoldOutError: If remaining capacity is below ``quantity``.
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", detail={"quantity": quantity})

        ticket = self._store.get_ticket(ticket_id)
        if ticket is None or not ticket.is_active:
            raise TicketUnavailableError(str(ticket_id))

        now = self._clock()
        if not ticket.sales_window.has_started(now):
            raise SalesWindowClosedError(str(ticket_id), "not_started")
        if ticket.sales_window.has_ended(now):
            raise SalesWindowClosedError(str(ticket_id), "ended")

        if not self._store.increment_sold_count(ticket_id, quantity):
            current = self._store.get_ticket(ticket_id)
            if current is None or not current.is_active:
                raise TicketUnavailableError(str(ticket_id))
            raise SoldOutError(str(ticket_id))

        token = ReservationToken(ticket_id=ticket_id, quantity=quantity)
        logger.debug("Reserved %s seat(s) on ticket %s (token %s)", quantity, ticket_id, token.token_id)
        return token

    def commit(self, token: ReservationToken) -> None:
        """Mark a reservation as final. The counter was already incremented."""
        self._book.claim(token.token_id, "committed")

    def release(self, token: ReservationToken) -> bool:
        """Give a reservation's seats back. Safe to call more than once.

        Returns True if this call released the seats.
        """
        if not self._book.claim(token.token_id, "released"):
            return False
        try:
            released = self._store.decrement_sold_count(token.ticket_id, token.quantity)
        except Exception:
            self._book.unclaim(token.token_id)
            raise
        if not released:
            logger.warning(
                "Release of token %s found nothing to return on ticket %s",
                token.token_id,
                token.ticket_id,
            )
        else:
            logger.info("Released %s seat(s) on ticket %s", token.quantity, token.ticket_id)
        return released

    def return_to_stock(self, ticket_id: TicketId, quantity: int = 1) -> bool:
        """Return seats held by a cancelled registration."""
        returned = self._store.decrement_sold_count(ticket_id, quantity)
        if not returned:
            logger.warning("Ticket %s had no sold seats to return", ticket_id)
        return returned

    def availability(self, ticket_id: TicketId) -> TicketAvailability:
        """Return remaining capacity and sale status for display."""
        ticket = self._store.get_ticket(ticket_id)
        if ticket is None or not ticket.is_active:
            raise TicketUnavailableError(str(ticket_id))
        available = ticket.available
        return TicketAvailability(
            ticket_id=ticket_id,
            available=available,
            is_on_sale=ticket.sales_window.contains(self._clock()),
            is_sold_out=available <= 0,
        )
