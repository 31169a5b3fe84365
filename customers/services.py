import logging

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound

from common.permissions import ensure_same_company
from customers.models import Customer
from customers.relationships import add_or_update_relationships

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "email", "phone_mobile", "phone_landline", "address", "observations")
LIST_ORDERING = {
    "name": "name",
    "email": "email",
    "created_at": "created_at",
    "updated_at": "updated_at",
}


def _load_owned_customer(customer_id, user, for_update=False):
    queryset = Customer.objects.select_for_update() if for_update else Customer.objects.all()
    customer = queryset.filter(pk=customer_id).first()
    if customer is None:
        raise NotFound("Customer not found.")
    ensure_same_company(
        user,
        customer.company_id,
        "This customer belongs to another company.",
        customer_id=customer.id,
    )
    return customer


def create_customer(data, user):
    """Create a customer in the acting user's company, with optional initial relationships."""
    relationships = data.get("relationships") or []
    values = {field: data[field] for field in EDITABLE_FIELDS if field in data}

    with transaction.atomic():
        customer = Customer.objects.create(company_id=user.company_id, **values)
        if relationships:
            new_entries = [{**entry, "id": 0} for entry in relationships]
            add_or_update_relationships(customer.id, new_entries, user)

    logger.info(
        "customer_created",
        extra={"customer_id": customer.id, "company_id": customer.company_id, "user_id": user.id},
    )
    return customer


def get_customer(customer_id, user):
    return _load_owned_customer(customer_id, user)


def update_customer(customer_id, data, user):
    with transaction.atomic():
        customer = _load_owned_customer(customer_id, user, for_update=True)
        changed = []
        for field in EDITABLE_FIELDS:
            if field in data:
                setattr(customer, field, data[field])
                changed.append(field)
        customer.updated_at = timezone.now()
        customer.save(update_fields=changed + ["updated_at"])

    logger.info(
        "customer_updated",
        extra={"customer_id": customer.id, "company_id": customer.company_id, "user_id": user.id},
    )
    return customer


def soft_delete_customer(customer_id, user):
    with transaction.atomic():
        customer = _load_owned_customer(customer_id, user, for_update=True)
        Customer.objects.filter(pk=customer.pk).soft_delete()

    logger.info(
        "customer_soft_deleted",
        extra={"customer_id": customer.id, "company_id": customer.company_id, "user_id": user.id},
    )


def search_customers(user, term):
    return Customer.objects.for_company(user.company_id).search(term)


def list_customers(user, search=None, order_by="name", direction="asc"):
    queryset = Customer.objects.for_company(user.company_id)
    if search:
        queryset = queryset.filter(Q(name__icontains=search) | Q(email__icontains=search))

    column = LIST_ORDERING.get(order_by, "name")
    if (direction or "").lower() == "desc":
        column = f"-{column}"
    return queryset.order_by(column, "id")
