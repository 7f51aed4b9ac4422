"""Django ORM implementation of the admission stores.

Counter updates are single conditional UPDATE statements built from F()
expressions, so the guard and the increment execute atomically in the
database and concurrent callers cannot oversell.
"""

import functools
import logging
from contextlib import contextmanager
from typing import Iterator

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from admissions import cache as admissions_cache
from admissions import models as orm
from admissions.domain import (
    Capacity,
    Event,
    EventId,
    FormPayload,
    InvitationCode,
    InvitationCodeId,
    Money,
    Referral,
    ReferralId,
    ReferralUsage,
    Registration,
    RegistrationId,
    RegistrationStatus,
    Ticket,
    TicketId,
    TimeWindow,
)
from admissions.domain.errors import (
    DuplicateRegistrationError,
    InfrastructureError,
    ReferralAlreadyRedeemedError,
)
from admissions.stores.interfaces import (
    EventStore,
    InventoryStore,
    InvitationStore,
    ReferralStore,
    RegistrationStore,
)

logger = logging.getLogger(__name__)


def _storage_errors(method):
    """Surface database failures on counter updates as InfrastructureError."""

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except DatabaseError as exc:
            logger.exception("Storage failure in %s", method.__qualname__)
            raise InfrastructureError() from exc

    return wrapper


def _event_to_domain(row: orm.Event) -> Event:
    return Event(
        id=EventId(row.id),
        slug=row.slug,
        name=row.name,
        starts_at=row.start_date,
        ends_at=row.end_date,
        edit_deadline=row.edit_deadline,
        is_active=row.is_active,
        hidden=row.hidden,
    )


def _ticket_to_domain(row: orm.Ticket) -> Ticket:
    return Ticket(
        id=TicketId(row.id),
        event_id=EventId(row.event_id),
        name=row.name,
        price=Money(row.price),
        quantity=Capacity(row.quantity),
        sold_count=row.sold_count,
        sales_window=TimeWindow(row.sale_start, row.sale_end),
        require_invite_code=row.require_invite_code,
        require_sms_verification=row.require_sms_verification,
        hidden=row.hidden,
        is_active=row.is_active,
    )


def _code_to_domain(row: orm.InvitationCode) -> InvitationCode:
    return InvitationCode(
        id=InvitationCodeId(row.id),
        ticket_id=TicketId(row.ticket_id),
        code=row.code,
        name=row.name,
        usage_limit=row.usage_limit,
        used_count=row.used_count,
        validity=TimeWindow(row.valid_from, row.valid_until),
        is_active=row.is_active,
    )


def _registration_to_domain(row: orm.Registration) -> Registration:
    return Registration(
        id=RegistrationId(row.id),
        user_id=row.user_id,
        event_id=EventId(row.event_id),
        ticket_id=TicketId(row.ticket_id),
        email=row.email,
        status=RegistrationStatus(row.status),
        form_data=FormPayload(row.form_data or {}, row.form_schema_version),
        referred_by=row.referred_by,
        invitation_code_id=(
            InvitationCodeId(row.invitation_code_id) if row.invitation_code_id else None
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _referral_to_domain(row: orm.Referral) -> Referral:
    return Referral(
        id=ReferralId(row.id),
        code=row.code,
        registration_id=RegistrationId(row.registration_id),
        event_id=EventId(row.event_id),
        is_active=row.is_active,
        created_at=row.created_at,
    )


def _usage_to_domain(row: orm.ReferralUsage) -> ReferralUsage:
    return ReferralUsage(
        referral_id=ReferralId(row.referral_id),
        registration_id=RegistrationId(row.registration_id),
        event_id=EventId(row.event_id),
        used_at=row.used_at,
    )


class DjangoEventStore(EventStore):
    """PostgreSQL-backed event configuration store using Django ORM."""

    def get_event(self, event_id: EventId) -> Event | None:
        row = orm.Event.objects.filter(pk=event_id.value).first()
        return _event_to_domain(row) if row else None

    def get_ticket(self, ticket_id: TicketId) -> Ticket | None:
        row = orm.Ticket.objects.filter(pk=ticket_id.value).first()
        return _ticket_to_domain(row) if row else None


class DjangoInventoryStore(InventoryStore):
    """Ticket counters updated with guarded UPDATE statements."""

    def get_ticket(self, ticket_id: TicketId) -> Ticket | None:
        row = orm.Ticket.objects.filter(pk=ticket_id.value).first()
        return _ticket_to_domain(row) if row else None

    @_storage_errors
    def increment_sold_count(self, ticket_id: TicketId, quantity: int) -> bool:
        updated = orm.Ticket.objects.filter(
            pk=ticket_id.value,
            is_active=True,
            sold_count__lte=F("quantity") - quantity,
        ).update(sold_count=F("sold_count") + quantity)
        if updated:
            admissions_cache.invalidate_ticket(str(ticket_id))
        return updated == 1

    @_storage_errors
    def decrement_sold_count(self, ticket_id: TicketId, quantity: int) -> bool:
        updated = orm.Ticket.objects.filter(
            pk=ticket_id.value,
            sold_count__gte=quantity,
        ).update(sold_count=F("sold_count") - quantity)
        if updated:
            admissions_cache.invalidate_ticket(str(ticket_id))
        return updated == 1


class DjangoInvitationStore(InvitationStore):
    """Invitation code counters updated with guarded UPDATE statements."""

    def find_code(self, code: str, ticket_id: TicketId) -> InvitationCode | None:
        row = orm.InvitationCode.objects.filter(code=code, ticket_id=ticket_id.value).first()
        return _code_to_domain(row) if row else None

    def code_exists_elsewhere(self, code: str, ticket_id: TicketId) -> bool:
        return (
            orm.InvitationCode.objects.filter(code=code)
            .exclude(ticket_id=ticket_id.value)
            .exists()
        )

    def get_code(self, code_id: InvitationCodeId) -> InvitationCode | None:
        row = orm.InvitationCode.objects.filter(pk=code_id.value).first()
        return _code_to_domain(row) if row else None

    @_storage_errors
    def increment_used_count(self, code_id: InvitationCodeId) -> bool:
        updated = (
            orm.InvitationCode.objects.filter(pk=code_id.value, is_active=True)
            .filter(Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit")))
            .update(used_count=F("used_count") + 1)
        )
        return updated == 1

    @_storage_errors
    def decrement_used_count(self, code_id: InvitationCodeId) -> bool:
        updated = orm.InvitationCode.objects.filter(
            pk=code_id.value, used_count__gt=0
        ).update(used_count=F("used_count") - 1)
        return updated == 1


class DjangoReferralStore(ReferralStore):
    """Referral codes and usage edges using Django ORM."""

    def get_by_code(self, code: str) -> Referral | None:
        row = orm.Referral.objects.filter(code=code).first()
        return _referral_to_domain(row) if row else None

    def get_by_id(self, referral_id: ReferralId) -> Referral | None:
        row = orm.Referral.objects.filter(pk=referral_id.value).first()
        return _referral_to_domain(row) if row else None

    def get_for_registration(self, registration_id: RegistrationId) -> Referral | None:
        row = orm.Referral.objects.filter(registration_id=registration_id.value).first()
        return _referral_to_domain(row) if row else None

    @_storage_errors
    def insert_referral(self, referral: Referral) -> Referral | None:
        try:
            with transaction.atomic():
                row, created = orm.Referral.objects.get_or_create(
                    registration_id=referral.registration_id.value,
                    defaults={
                        "id": referral.id.value,
                        "code": referral.code,
                        "event_id": referral.event_id.value,
                        "is_active": referral.is_active,
                    },
                )
        except IntegrityError:
            # get_or_create already retried the lookup, so the code collided.
            return None
        return _referral_to_domain(row)

    def get_incoming_usage(self, registration_id: RegistrationId) -> ReferralUsage | None:
        row = orm.ReferralUsage.objects.filter(registration_id=registration_id.value).first()
        return _usage_to_domain(row) if row else None

    def list_usages(self, referral_id: ReferralId) -> list[ReferralUsage]:
        rows = orm.ReferralUsage.objects.filter(referral_id=referral_id.value).order_by(
            "-used_at"
        )
        return [_usage_to_domain(row) for row in rows]

    @contextmanager
    def redemption_guard(self, event_id: EventId) -> Iterator[None]:
        with transaction.atomic():
            # The event row lock orders redemptions; the chain walk then sees committed edges.
            list(
                orm.Event.objects.select_for_update()
                .filter(pk=event_id.value)
                .values_list("pk", flat=True)
            )
            yield

    @_storage_errors
    def record_usage(self, usage: ReferralUsage) -> ReferralUsage:
        try:
            with transaction.atomic():
                if orm.ReferralUsage.objects.select_for_update().filter(
                    registration_id=usage.registration_id.value
                ).exists():
                    raise ReferralAlreadyRedeemedError(str(usage.registration_id))
                orm.ReferralUsage.objects.create(
                    referral_id=usage.referral_id.value,
                    registration_id=usage.registration_id.value,
                    event_id=usage.event_id.value,
                    used_at=usage.used_at,
                )
        except IntegrityError as exc:
            raise ReferralAlreadyRedeemedError(str(usage.registration_id)) from exc
        return usage


class DjangoRegistrationStore(RegistrationStore):
    """Registration rows using Django ORM."""

    def get_registration(self, registration_id: RegistrationId) -> Registration | None:
        row = orm.Registration.objects.filter(pk=registration_id.value).first()
        return _registration_to_domain(row) if row else None

    def find_by_email(self, email: str, event_id: EventId) -> Registration | None:
        row = orm.Registration.objects.filter(email=email, event_id=event_id.value).first()
        return _registration_to_domain(row) if row else None

    def list_for_user(self, user_id: str) -> list[Registration]:
        rows = orm.Registration.objects.filter(user_id=user_id).order_by("-created_at")
        return [_registration_to_domain(row) for row in rows]

    def count_for_event(self, event_id: EventId) -> int:
        return orm.Registration.objects.filter(event_id=event_id.value).count()

    def commit_registration(
        self, registration: Registration, usage: ReferralUsage | None = None
    ) -> Registration:
        try:
            with transaction.atomic():
                row = orm.Registration.objects.create(
                    id=registration.id.value,
                    user_id=registration.user_id,
                    event_id=registration.event_id.value,
                    ticket_id=registration.ticket_id.value,
                    email=registration.email,
                    status=registration.status.value,
                    form_data=registration.form_data.data,
                    form_schema_version=registration.form_data.schema_version,
                    referred_by=registration.referred_by,
                    invitation_code_id=(
                        registration.invitation_code_id.value
                        if registration.invitation_code_id
                        else None
                    ),
                )
                if usage is not None:
                    orm.ReferralUsage.objects.create(
                        referral_id=usage.referral_id.value,
                        registration_id=usage.registration_id.value,
                        event_id=usage.event_id.value,
                        used_at=usage.used_at,
                    )
        except IntegrityError as exc:
            if self.find_by_email(registration.email, registration.event_id):
                raise DuplicateRegistrationError(str(registration.event_id)) from exc
            logger.exception("Integrity failure committing registration %s", registration.id)
            raise InfrastructureError() from exc
        except DatabaseError as exc:
            logger.exception("Database failure committing registration %s", registration.id)
            raise InfrastructureError() from exc
        return _registration_to_domain(row)

    def transition_status(
        self,
        registration_id: RegistrationId,
        from_status: RegistrationStatus,
        to_status: RegistrationStatus,
    ) -> bool:
        rows = orm.Registration.objects.filter(
            pk=registration_id.value, status=from_status.value
        )
        # update() skips auto_now
        return rows.update(status=to_status.value, updated_at=timezone.now()) == 1

    def update_form_data(
        self, registration_id: RegistrationId, form_data: FormPayload
    ) -> Registration | None:
        row = orm.Registration.objects.filter(pk=registration_id.value).first()
        if row is None:
            return None
        row.form_data = form_data.data
        row.form_schema_version = form_data.schema_version
        row.save(update_fields=["form_data", "form_schema_version", "updated_at"])
        return _registration_to_domain(row)
