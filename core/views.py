import logging

from django.contrib.auth import get_user_model
from django.db import connections
from django.db.utils import DatabaseError
from rest_framework import generics, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework_simplejwt.views import TokenObtainPairView

from common.exceptions import InvalidOperation
from common.permissions import (
    IsCompanyAdmin,
    IsCompanyMember,
    ensure_same_company,
    is_admin_or_system_admin,
    scoped_queryset_for_user,
)
from core.serializers import (
    CompanyRegistrationSerializer,
    CompanySerializer,
    CoworkerSerializer,
    EmailOrUsernameTokenObtainPairSerializer,
    PasswordChangeSerializer,
    PasswordSetConfirmSerializer,
    make_password_token,
)

User = get_user_model()
logger = logging.getLogger(__name__)


class RegisterView(generics.CreateAPIView):
    serializer_class = CompanyRegistrationSerializer
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"

    def perform_create(self, serializer):
        user = serializer.save()
        logger.info("company_registered", extra={"company_id": user.company_id, "user_id": user.id})


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"


class CoworkerViewSet(viewsets.ModelViewSet):
    """Users of the acting user's company.

    Listing, creating, deactivating and reactivating are admin operations.
    Anyone may read and edit their own record; only admins change profiles.
    """

    serializer_class = CoworkerSerializer
    permission_classes = [IsAuthenticated, IsCompanyMember, IsCompanyAdmin]
    admin_actions = {"list", "create", "destroy", "reactivate", "password_token"}
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        queryset = scoped_queryset_for_user(User.objects.all(), self.request.user).order_by("first_name", "username")
        if self.action == "list" and self.request.query_params.get("include_inactive", "").lower() not in {"1", "true"}:
            queryset = queryset.filter(is_active=True).exclude(profile=User.Profile.INACTIVE)
        return queryset

    def get_object(self):
        # Resolved outside the company scope so cross-company lookups answer 403, not 404.
        coworker = User.objects.filter(pk=self.kwargs["pk"]).first()
        if coworker is None:
            raise NotFound("Coworker not found.")
        ensure_same_company(self.request.user, coworker.company_id, "This coworker belongs to another company.", user_id=coworker.id)

        user = self.request.user
        if coworker.pk != user.pk and not is_admin_or_system_admin(user, coworker.company_id):
            raise PermissionDenied("Only administrators can manage other coworkers.")
        return coworker

    def perform_create(self, serializer):
        profile = serializer.validated_data.get("profile", User.Profile.EMPLOYEE)
        if profile != User.Profile.EMPLOYEE:
            raise PermissionDenied("New coworkers can only be created with the employee profile.")

        coworker = serializer.save(company_id=self.request.user.company_id, profile=User.Profile.EMPLOYEE)
        logger.info(
            "coworker_created",
            extra={"user_id": coworker.id, "company_id": coworker.company_id},
        )

    def perform_update(self, serializer):
        user = self.request.user
        new_profile = serializer.validated_data.get("profile")
        if new_profile is not None and new_profile != serializer.instance.profile:
            if not is_admin_or_system_admin(user, serializer.instance.company_id):
                raise PermissionDenied("Only administrators can change a coworker profile.")

        coworker = serializer.save()
        logger.info("coworker_updated", extra={"user_id": coworker.id, "company_id": coworker.company_id})

    def perform_destroy(self, instance):
        if instance.pk == self.request.user.pk:
            raise InvalidOperation("You cannot deactivate your own account.")
        instance.deactivate()
        logger.info("coworker_deactivated", extra={"user_id": instance.id, "company_id": instance.company_id})

    @action(detail=True, methods=["post"])
    def reactivate(self, request, pk=None):
        coworker = self.get_object()
        coworker.reactivate()
        logger.info("coworker_reactivated", extra={"user_id": coworker.id, "company_id": coworker.company_id})
        return Response(self.get_serializer(coworker).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="password-token")
    def password_token(self, request, pk=None):
        """One-time uid/token the coworker exchanges at password/confirm/ for a password of their own."""
        coworker = self.get_object()
        logger.info("password_token_issued", extra={"user_id": coworker.id, "company_id": coworker.company_id})
        return Response(make_password_token(coworker), status=status.HTTP_200_OK)


class PasswordSetConfirmView(generics.GenericAPIView):
    serializer_class = PasswordSetConfirmSerializer
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "auth"

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info("password_set", extra={"user_id": user.id, "company_id": user.company_id})
        return Response({"detail": "Password set successfully."}, status=status.HTTP_200_OK)


class PasswordChangeView(generics.GenericAPIView):
    serializer_class = PasswordChangeSerializer
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info("password_changed", extra={"user_id": user.id, "company_id": user.company_id})
        return Response({"detail": "Password changed successfully."}, status=status.HTTP_200_OK)


class CurrentCompanyView(generics.RetrieveUpdateAPIView):
    serializer_class = CompanySerializer
    permission_classes = [IsAuthenticated, IsCompanyMember, IsCompanyAdmin]
    admin_actions = {"put", "patch"}

    def get_object(self):
        return self.request.user.company

    def perform_update(self, serializer):
        company = serializer.save()
        logger.info("company_updated", extra={"company_id": company.id, "user_id": self.request.user.id})


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response({"status": "ok", "request_id": getattr(request, "request_id", None)})


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.exception("readiness_check_failed")
        return Response(
            {"status": "error", "request_id": getattr(request, "request_id", None)},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return Response({"status": "ready", "request_id": getattr(request, "request_id", None)})
