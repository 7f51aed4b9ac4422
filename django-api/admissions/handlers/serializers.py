"""Serializers for request input and for transforming domain models to API responses."""

from rest_framework import serializers


class RegistrationCreateSerializer(serializers.Serializer):
    """Input for POST /api/registrations"""

    event_id = serializers.UUIDField()
    ticket_id = serializers.UUIDField()
    invitation_code = serializers.CharField(
        max_length=100, required=False, allow_blank=True, allow_null=True
    )
    referral_code = serializers.CharField(
        max_length=32, required=False, allow_blank=True, allow_null=True
    )
    form_data = serializers.DictField(required=False, default=dict)
    form_schema_version = serializers.IntegerField(min_value=1, required=False, default=1)


class RegistrationUpdateSerializer(serializers.Serializer):
    """Input for PUT /api/registrations/{id}"""

    form_data = serializers.DictField()
    form_schema_version = serializers.IntegerField(min_value=1, required=False, default=1)


class RegistrationSerializer(serializers.Serializer):
    """Serializer for Registration domain model."""

    id = serializers.UUIDField(source="id.value")
    user_id = serializers.CharField()
    event_id = serializers.UUIDField(source="event_id.value")
    ticket_id = serializers.UUIDField(source="ticket_id.value")
    email = serializers.EmailField()
    status = serializers.CharField(source="status.value")
    form_data = serializers.DictField(source="form_data.data")
    form_schema_version = serializers.IntegerField(source="form_data.schema_version")
    referred_by = serializers.CharField(allow_null=True)
    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField()


class RegistrationViewSerializer(serializers.Serializer):
    """Registration with the flags the attendee UI needs, flattened."""

    is_upcoming = serializers.BooleanField()
    is_past = serializers.BooleanField()
    can_edit = serializers.BooleanField()
    can_cancel = serializers.BooleanField()

    def to_representation(self, instance):
        data = RegistrationSerializer(instance.registration).data
        data.update(super().to_representation(instance))
        return data


class TicketAvailabilitySerializer(serializers.Serializer):
    ticket_id = serializers.UUIDField(source="ticket_id.value")
    available = serializers.IntegerField()
    is_on_sale = serializers.BooleanField()
    is_sold_out = serializers.BooleanField()


class InvitationCodeVerifySerializer(serializers.Serializer):
    """Input for POST /api/invitation-codes/verify"""

    code = serializers.CharField(max_length=100)
    ticket_id = serializers.UUIDField()


class InvitationCodeStatusSerializer(serializers.Serializer):
    code = serializers.CharField()
    ticket_id = serializers.UUIDField(source="ticket_id.value")
    name = serializers.CharField(allow_null=True)
    is_valid = serializers.BooleanField()
    is_expired = serializers.BooleanField()
    is_not_yet_valid = serializers.BooleanField()
    is_usage_exceeded = serializers.BooleanField()
    remaining_uses = serializers.IntegerField(allow_null=True)


class ReferralValidateSerializer(serializers.Serializer):
    """Input for POST /api/referrals/validate"""

    code = serializers.CharField(min_length=1, max_length=32)
    event_id = serializers.UUIDField()


class ReferralLinkSerializer(serializers.Serializer):
    referral_code = serializers.CharField(source="code")
    referral_link = serializers.CharField(source="url")
    event_id = serializers.UUIDField(source="event_id.value")


class ReferredRegistrationSerializer(serializers.Serializer):
    id = serializers.UUIDField(source="registration_id.value")
    status = serializers.CharField(source="status.value")
    email = serializers.CharField(source="masked_email")
    registered_at = serializers.DateTimeField()


class ReferralStatsSerializer(serializers.Serializer):
    total_referrals = serializers.IntegerField()
    successful_referrals = serializers.IntegerField()
    referral_list = ReferredRegistrationSerializer(source="referrals", many=True)
