"""Invitation redeemer - owns every change to an invitation code's used counter."""

import logging
from collections.abc import Callable
from datetime import datetime

from django.utils import timezone

from admissions.domain import (
    InvitationCode,
    InvitationCodeId,
    InvitationCodeStatus,
    RedemptionToken,
    TicketId,
)
from admissions.domain.errors import (
    CodeTicketMismatchError,
    ExpiredCodeError,
    InvalidCodeError,
    UsageLimitExceededError,
)
from admissions.services.settlement import SettlementBook
from admissions.stores.interfaces import InvitationStore

logger = logging.getLogger(__name__)


class InvitationRedeemer:
    """Service for validating and consuming invitation codes."""

    def __init__(
        self,
        store: InvitationStore,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._store = store
        self._clock = clock
        self._book = SettlementBook()

    def _lookup(self, code: str, ticket_id: TicketId) -> InvitationCode:
        invitation = self._store.find_code(code, ticket_id)
        if invitation is None:
            if self._store.code_exists_elsewhere(code, ticket_id):
                raise CodeTicketMismatchError(code, str(ticket_id))
            raise InvalidCodeError(code)
        return invitation

    def try_redeem(self, code: str, ticket_id: TicketId) -> RedemptionToken:
        """Consume one use of ``code`` for ``ticket_id``.

        Raises:
            InvalidCodeError: If the code is unknown or inactive.
            CodeTicketMismatchError: If the code was issued for another ticket.
            ExpiredCodeError: If now is outside the code's validity window.
            UsageLimitExceededError: If no uses remain.
        """
        invitation = self._lookup(code, ticket_id)
        if not invitation.is_active:
            raise InvalidCodeError(code, reason="inactive")

        now = self._clock()
        if not invitation.validity.has_started(now):
            raise ExpiredCodeError(code, reason="not_yet_valid")
        if invitation.validity.has_ended(now):
            raise ExpiredCodeError(code)
        if invitation.is_exhausted:
            raise UsageLimitExceededError(code)

        if not self._store.increment_used_count(invitation.id):
            current = self._store.get_code(invitation.id)
            if current is None or not current.is_active:
                raise InvalidCodeError(code, reason="inactive")
            raise UsageLimitExceededError(code)

        token = RedemptionToken(code_id=invitation.id, code=code, ticket_id=ticket_id)
        logger.debug("Redeemed invitation code %s for ticket %s", invitation.id, ticket_id)
        return token

    def commit(self, token: RedemptionToken) -> None:
        self._book.claim(token.token_id, "committed")

    def release(self, token: RedemptionToken) -> bool:
        """Give a redemption's use back. Safe to call more than once."""
        if not self._book.claim(token.token_id, "released"):
            return False
        try:
            released = self._store.decrement_used_count(token.code_id)
        except Exception:
            self._book.unclaim(token.token_id)
            raise
        if released:
            logger.info("Released one use of invitation code %s", token.code_id)
        else:
            logger.warning("Release of token %s found no use to return", token.token_id)
        return released

    def return_use(self, code_id: InvitationCodeId) -> bool:
        """Return the use held by a cancelled registration."""
        return self._store.decrement_used_count(code_id)

    def inspect(self, code: str, ticket_id: TicketId) -> InvitationCodeStatus:
        """Describe a code without consuming it.

        Raises:
            InvalidCodeError: If the code is unknown or inactive.
            CodeTicketMismatchError: If the code was issued for another ticket.
        """
        invitation = self._lookup(code, ticket_id)
        if not invitation.is_active:
            raise InvalidCodeError(code, reason="inactive")
        now = self._clock()
        is_expired = invitation.validity.has_ended(now)
        is_not_yet_valid = not invitation.validity.has_started(now)
        is_usage_exceeded = invitation.is_exhausted
        return InvitationCodeStatus(
            code=invitation.code,
            ticket_id=invitation.ticket_id,
            name=invitation.name,
            is_valid=not (is_expired or is_not_yet_valid or is_usage_exceeded),
            is_expired=is_expired,
            is_not_yet_valid=is_not_yet_valid,
            is_usage_exceeded=is_usage_exceeded,
            remaining_uses=invitation.remaining_uses,
        )
