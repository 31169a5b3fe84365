from django.db.models import Q

SORT_FIELDS = {
    "created_at": "created_at",
    "client_name": "customer__name",
    "total_price": "total_price",
}
DEFAULT_SORT = "created_at"


def filter_quotes(queryset, params):
    """Apply the list filters carried by `params` (already validated values)."""
    if params.get("customer_id"):
        queryset = queryset.filter(customer_id=params["customer_id"])
    if params.get("user_id"):
        queryset = queryset.filter(user_id=params["user_id"])
    if params.get("client_name"):
        queryset = queryset.filter(customer__name__icontains=params["client_name"])
    if params.get("client_phone"):
        phone = params["client_phone"]
        queryset = queryset.filter(
            Q(customer__phone_mobile__icontains=phone) | Q(customer__phone_landline__icontains=phone)
        )
    if params.get("search"):
        term = params["search"]
        queryset = queryset.filter(
            Q(customer__name__icontains=term)
            | Q(user__first_name__icontains=term)
            | Q(user__last_name__icontains=term)
            | Q(user__username__icontains=term)
        )
    if params.get("created_from"):
        queryset = queryset.filter(created_at__gte=params["created_from"])
    if params.get("created_to"):
        queryset = queryset.filter(created_at__lte=params["created_to"])
    return queryset


def sort_quotes(queryset, sort_by=None, descending=None):
    # Without an explicit sort the newest quotes come first.
    if not sort_by:
        return queryset.order_by("-created_at", "-id")

    column = SORT_FIELDS.get(sort_by, SORT_FIELDS[DEFAULT_SORT])
    if descending:
        return queryset.order_by(f"-{column}", "-id")
    return queryset.order_by(column, "id")
