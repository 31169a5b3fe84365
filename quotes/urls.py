from django.urls import path
from rest_framework.routers import DefaultRouter

from quotes.reports import DashboardStatsView
from quotes.views import QuoteItemViewSet, QuoteViewSet

router = DefaultRouter()
router.register(r"quotes", QuoteViewSet, basename="quote")
router.register(r"quote-items", QuoteItemViewSet, basename="quote-item")

urlpatterns = router.urls + [
    path("dashboard/stats/", DashboardStatsView.as_view(), name="dashboard_stats"),
]
