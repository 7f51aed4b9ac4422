"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/models.py.
"""

import uuid

from django.db import models
from django.db.models import F, Q


class Event(models.Model):
    """Persistence model for events."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slug = models.SlugField(max_length=255, unique=True, blank=True, null=True)
    name = models.JSONField()
    description = models.JSONField(blank=True, null=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    edit_deadline = models.DateTimeField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    hidden = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["-created_at"], name="admissions__created_7c1f0e_idx"),
        ]

    def __str__(self) -> str:
        return self.slug or str(self.id)


class Ticket(models.Model):
    """Persistence model for tickets. ``sold_count`` is written only by the inventory store."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="tickets")
    name = models.JSONField()
    description = models.JSONField(blank=True, null=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    quantity = models.PositiveIntegerField()
    sold_count = models.PositiveIntegerField(default=0)
    sale_start = models.DateTimeField(blank=True, null=True)
    sale_end = models.DateTimeField(blank=True, null=True)
    require_invite_code = models.BooleanField(default=False)
    require_sms_verification = models.BooleanField(default=False)
    hidden = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["event"], name="admissions__event_i_3b9d2a_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(sold_count__lte=F("quantity")),
                name="ticket_sold_count_within_quantity",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.sold_count}/{self.quantity})"


class InvitationCode(models.Model):
    """Persistence model for invitation codes. ``used_count`` is written only by the invitation store."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    ticket = models.ForeignKey(
        Ticket, on_delete=models.CASCADE, related_name="invitation_codes"
    )
    code = models.CharField(max_length=100)
    name = models.CharField(max_length=255, blank=True, null=True)
    usage_limit = models.PositiveIntegerField(blank=True, null=True)
    used_count = models.PositiveIntegerField(default=0)
    valid_from = models.DateTimeField(blank=True, null=True)
    valid_until = models.DateTimeField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["code"], name="admissions__code_5e8a41_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["ticket", "code"], name="invitation_code_unique_per_ticket"
            ),
            models.CheckConstraint(
                condition=Q(usage_limit__isnull=True) | Q(used_count__lte=F("usage_limit")),
                name="invitation_code_used_within_limit",
            ),
        ]

    def __str__(self) -> str:
        return self.code


class Registration(models.Model):
    """Persistence model for registrations. Cancellation is a status change, never a delete."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        CANCELLED = "cancelled", "Cancelled"
        WAITLISTED = "waitlisted", "Waitlisted"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=255, db_index=True)
    event = models.ForeignKey(
        Event, on_delete=models.PROTECT, related_name="registrations"
    )
    ticket = models.ForeignKey(
        Ticket, on_delete=models.PROTECT, related_name="registrations"
    )
    email = models.EmailField(max_length=255)
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.CONFIRMED
    )
    form_data = models.JSONField(default=dict)
    form_schema_version = models.PositiveSmallIntegerField(default=1)
    referred_by = models.CharField(max_length=32, blank=True, null=True)
    invitation_code = models.ForeignKey(
        InvitationCode,
        on_delete=models.PROTECT,
        related_name="registrations",
        blank=True,
        null=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["email", "event"], name="registration_unique_email_per_event"
            ),
        ]
        indexes = [
            models.Index(fields=["event", "status"], name="admissions__event_i_9f42c7_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.email} - {self.status}"


class Referral(models.Model):
    """Persistence model for the referral code owned by a registration."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=32, unique=True)
    registration = models.OneToOneField(
        Registration, on_delete=models.PROTECT, related_name="referral"
    )
    event = models.ForeignKey(Event, on_delete=models.PROTECT, related_name="referrals")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.code


class ReferralUsage(models.Model):
    """Persistence model for a redeemed referral (redeemer -> referral owner edge)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    referral = models.ForeignKey(
        Referral, on_delete=models.PROTECT, related_name="usages"
    )
    registration = models.ForeignKey(
        Registration, on_delete=models.PROTECT, related_name="referral_usages"
    )
    event = models.ForeignKey(
        Event, on_delete=models.PROTECT, related_name="referral_usages"
    )
    used_at = models.DateTimeField()

    class Meta:
        ordering = ["-used_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["referral", "registration"],
                name="referral_usage_unique_per_registration",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.referral_id} <- {self.registration_id}"
