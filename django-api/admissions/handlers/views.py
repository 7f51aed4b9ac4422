"""HTTP handlers (views) - handle HTTP concerns only.

Handlers:
- Parse requests and validate input format
- Call services for business logic
- Map domain errors to HTTP responses
- Never contain business logic
- Never expose internal error details
"""

import logging

from django.core.cache import cache
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from admissions.cache import ticket_availability_key
from admissions.domain import (
    EventId,
    FormPayload,
    RegistrationId,
    RegistrationIntent,
    TicketId,
)
from admissions.domain.errors import (
    ConflictError,
    DomainError,
    ForbiddenError,
    InfrastructureError,
    InvalidIdError,
    NotFoundError,
    ValidationError,
)
from admissions.handlers.serializers import (
    InvitationCodeStatusSerializer,
    InvitationCodeVerifySerializer,
    ReferralLinkSerializer,
    ReferralStatsSerializer,
    ReferralValidateSerializer,
    RegistrationCreateSerializer,
    RegistrationSerializer,
    RegistrationUpdateSerializer,
    RegistrationViewSerializer,
    TicketAvailabilitySerializer,
)
from admissions.services.container import get_registration_coordinator

logger = logging.getLogger(__name__)

_STATUS_BY_CATEGORY = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InfrastructureError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def success(data, message: str | None = None, status_code: int = status.HTTP_200_OK) -> Response:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return Response(body, status=status_code)


def domain_error_response(error: DomainError) -> Response:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for category, category_status in _STATUS_BY_CATEGORY:
        if isinstance(error, category):
            status_code = category_status
            break
    body = {
        "success": False,
        "error": {"code": error.code.value, "message": error.message, "details": error.detail},
    }
    return Response(body, status=status_code)


def invalid_input_response(errors) -> Response:
    body = {
        "success": False,
        "error": {"code": "VALIDATION_ERROR", "message": "Invalid request", "details": errors},
    }
    return Response(body, status=status.HTTP_400_BAD_REQUEST)


def _registration_id(value: str) -> RegistrationId:
    try:
        return RegistrationId.from_string(value)
    except ValueError:
        raise InvalidIdError("registration_id") from None


class AdmissionAPIView(APIView):
    """Base view translating domain errors into the JSON error envelope."""

    def handle_exception(self, exc):
        if isinstance(exc, DomainError):
            if isinstance(exc, InfrastructureError):
                logger.error("Request %s %s failed: %s", self.request.method, self.request.path, exc)
            return domain_error_response(exc)
        return super().handle_exception(exc)

    @property
    def coordinator(self):
        return get_registration_coordinator()


class RegistrationListView(AdmissionAPIView):
    """Handler for GET/POST /api/registrations"""

    permission_classes = [IsAuthenticated]

    def post(self, request: Request) -> Response:
        serializer = RegistrationCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)
        data = serializer.validated_data
        intent = RegistrationIntent(
            user_id=str(request.user.pk),
            event_id=EventId(data["event_id"]),
            ticket_id=TicketId(data["ticket_id"]),
            email=request.user.email,
            form_data=FormPayload(data["form_data"], data["form_schema_version"]),
            invitation_code=data.get("invitation_code") or None,
            referral_code=data.get("referral_code") or None,
            sms_verified=bool(getattr(request.user, "phone_verified", False)),
        )
        registration = self.coordinator.register(intent)
        return success(
            RegistrationSerializer(registration).data,
            message="Registration successful",
            status_code=status.HTTP_201_CREATED,
        )

    def get(self, request: Request) -> Response:
        views = self.coordinator.list_for_user(str(request.user.pk))
        return success(RegistrationViewSerializer(views, many=True).data)


class RegistrationDetailView(AdmissionAPIView):
    """Handler for GET/PUT /api/registrations/{registration_id}"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request, registration_id: str) -> Response:
        view = self.coordinator.get_for_user(
            _registration_id(registration_id), str(request.user.pk)
        )
        return success(RegistrationViewSerializer(view).data)

    def put(self, request: Request, registration_id: str) -> Response:
        serializer = RegistrationUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)
        data = serializer.validated_data
        registration = self.coordinator.update_form_data(
            _registration_id(registration_id),
            str(request.user.pk),
            FormPayload(data["form_data"], data["form_schema_version"]),
        )
        return success(RegistrationSerializer(registration).data, message="Registration updated")


class RegistrationCancelView(AdmissionAPIView):
    """Handler for PUT /api/registrations/{registration_id}/cancel"""

    permission_classes = [IsAuthenticated]

    def put(self, request: Request, registration_id: str) -> Response:
        self.coordinator.cancel(_registration_id(registration_id), str(request.user.pk))
        return success(None, message="Registration cancelled")


class ReferralLinkView(AdmissionAPIView):
    """Handler for GET /api/registrations/{registration_id}/referral-link"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request, registration_id: str) -> Response:
        link = self.coordinator.referral_link(
            _registration_id(registration_id), str(request.user.pk)
        )
        return success(ReferralLinkSerializer(link).data)


class ReferralStatsView(AdmissionAPIView):
    """Handler for GET /api/registrations/{registration_id}/referral-stats"""

    permission_classes = [IsAuthenticated]

    def get(self, request: Request, registration_id: str) -> Response:
        stats = self.coordinator.referrals.stats(
            _registration_id(registration_id), str(request.user.pk)
        )
        return success(ReferralStatsSerializer(stats).data)


class ReferralValidateView(AdmissionAPIView):
    """Handler for POST /api/referrals/validate"""

    permission_classes = [AllowAny]

    def post(self, request: Request) -> Response:
        serializer = ReferralValidateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)
        referrer_id = self.coordinator.referrals.validate_code(
            serializer.validated_data["code"], EventId(serializer.validated_data["event_id"])
        )
        return success(
            {
                "is_valid": referrer_id is not None,
                "referrer_id": str(referrer_id) if referrer_id else None,
            }
        )


class InvitationCodeVerifyView(AdmissionAPIView):
    """Handler for POST /api/invitation-codes/verify"""

    permission_classes = [AllowAny]

    def post(self, request: Request) -> Response:
        serializer = InvitationCodeVerifySerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input_response(serializer.errors)
        code_status = self.coordinator.redeemer.inspect(
            serializer.validated_data["code"], TicketId(serializer.validated_data["ticket_id"])
        )
        return success(InvitationCodeStatusSerializer(code_status).data)


class TicketAvailabilityView(AdmissionAPIView):
    """Handler for GET /api/tickets/{ticket_id}/availability"""

    permission_classes = [AllowAny]

    def get(self, request: Request, ticket_id: str) -> Response:
        try:
            parsed = TicketId.from_string(ticket_id)
        except ValueError:
            raise InvalidIdError("ticket_id") from None

        key = ticket_availability_key(str(parsed))
        data = cache.get(key)
        if data is None:
            availability = self.coordinator.ledger.availability(parsed)
            data = TicketAvailabilitySerializer(availability).data
            cache.set(key, data, self.coordinator.config.availability_cache_seconds)
        return success(data)
