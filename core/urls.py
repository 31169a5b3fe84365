from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import (
    CoworkerViewSet,
    CurrentCompanyView,
    PasswordChangeView,
    PasswordSetConfirmView,
    RegisterView,
    healthz,
    readyz,
)

router = DefaultRouter()
router.register(r"coworkers", CoworkerViewSet, basename="coworker")

urlpatterns = router.urls + [
    path("register/", RegisterView.as_view(), name="register"),
    path("password/confirm/", PasswordSetConfirmView.as_view(), name="password_set_confirm"),
    path("password/change/", PasswordChangeView.as_view(), name="password_change"),
    path("company/", CurrentCompanyView.as_view(), name="current_company"),
    path("healthz/", healthz, name="healthz"),
    path("readyz/", readyz, name="readyz"),
]
