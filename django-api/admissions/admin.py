from django.contrib import admin

from admissions.models import (
    Event,
    InvitationCode,
    Referral,
    ReferralUsage,
    Registration,
    Ticket,
)


class TicketInline(admin.TabularInline):
    model = Ticket
    extra = 1
    readonly_fields = ["sold_count"]


class InvitationCodeInline(admin.TabularInline):
    model = InvitationCode
    extra = 1
    readonly_fields = ["used_count"]


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ["slug", "start_date", "end_date", "is_active", "hidden"]
    search_fields = ["slug"]
    inlines = [TicketInline]


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ["event", "price", "quantity", "sold_count", "sale_start", "sale_end"]
    list_filter = ["event", "is_active"]
    readonly_fields = ["sold_count"]
    inlines = [InvitationCodeInline]


@admin.register(InvitationCode)
class InvitationCodeAdmin(admin.ModelAdmin):
    list_display = ["code", "ticket", "usage_limit", "used_count", "valid_until", "is_active"]
    list_filter = ["ticket__event", "is_active"]
    search_fields = ["code"]
    readonly_fields = ["used_count"]


@admin.register(Registration)
class RegistrationAdmin(admin.ModelAdmin):
    list_display = ["email", "event", "ticket", "status", "created_at"]
    list_filter = ["event", "status"]
    search_fields = ["email", "user_id"]


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    list_display = ["code", "registration", "event", "is_active"]
    search_fields = ["code"]


@admin.register(ReferralUsage)
class ReferralUsageAdmin(admin.ModelAdmin):
    list_display = ["referral", "registration", "event", "used_at"]
    list_filter = ["event"]
