from datetime import datetime, time
from decimal import Decimal

from django.db.models import Count, DecimalField, Q, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.permissions import IsCompanyMember
from core.models import User
from customers.models import Customer
from quotes.models import Quote


def month_bounds(now):
    """Start of the current month and start of the previous one, in the active timezone."""
    local_now = timezone.localtime(now)
    this_month = datetime.combine(local_now.date().replace(day=1), time.min, tzinfo=local_now.tzinfo)
    if this_month.month == 1:
        last_month = this_month.replace(year=this_month.year - 1, month=12)
    else:
        last_month = this_month.replace(month=this_month.month - 1)
    return this_month, last_month


def get_dashboard_stats(company_id, now=None):
    this_month, last_month = month_bounds(now or timezone.now())
    this_month_q = Q(created_at__gte=this_month)
    last_month_q = Q(created_at__gte=last_month, created_at__lt=this_month)
    money = DecimalField(max_digits=14, decimal_places=2)

    customers = Customer.objects.for_company(company_id).aggregate(
        total=Count("id"),
        this_month=Count("id", filter=this_month_q),
        last_month=Count("id", filter=last_month_q),
    )
    quotes = Quote.objects.for_company(company_id).aggregate(
        total=Count("id"),
        this_month=Count("id", filter=this_month_q),
        last_month=Count("id", filter=last_month_q),
        revenue_this_month=Coalesce(Sum("total_price", filter=this_month_q), Value(Decimal("0")), output_field=money),
        revenue_last_month=Coalesce(Sum("total_price", filter=last_month_q), Value(Decimal("0")), output_field=money),
    )
    coworkers = User.objects.filter(company_id=company_id, is_active=True).exclude(profile=User.Profile.INACTIVE).count()

    return {
        "total_customers": customers["total"],
        "customers_this_month": customers["this_month"],
        "customers_last_month": customers["last_month"],
        "total_quotes": quotes["total"],
        "quotes_this_month": quotes["this_month"],
        "quotes_last_month": quotes["last_month"],
        "revenue_this_month": quotes["revenue_this_month"],
        "revenue_last_month": quotes["revenue_last_month"],
        "total_coworkers": coworkers,
    }


class DashboardStatsView(APIView):
    permission_classes = [IsAuthenticated, IsCompanyMember]

    def get(self, request):
        stats = get_dashboard_stats(request.user.company_id)
        stats["revenue_this_month"] = str(stats["revenue_this_month"])
        stats["revenue_last_month"] = str(stats["revenue_last_month"])
        return Response(stats)
