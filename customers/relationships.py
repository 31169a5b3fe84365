import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from common.exceptions import BusinessRuleError
from common.permissions import ensure_same_company
from customers.models import Customer, CustomerRelationship

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 500


def validate_relationship(data):
    """Return the validation messages for one relationship input; empty means valid."""
    errors = []
    description = (data.get("description") or "").strip()
    if not description:
        errors.append("Description is required.")
    elif len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters.")
    return errors


def is_valid_relationship(data):
    return not validate_relationship(data)


def _get_owned_customer(customer_id, user):
    customer = Customer.objects.filter(pk=customer_id).first()
    if customer is None:
        raise NotFound("Customer not found.")
    ensure_same_company(
        user,
        customer.company_id,
        "This customer belongs to another company.",
        customer_id=customer.id,
    )
    return customer


def add_or_update_relationships(customer_id, inputs, user):
    """Create (id missing or 0) or update the given relationships of one customer.

    Every input is validated first; a single invalid entry rejects the whole
    batch. Updated entries must be live relationships of this customer.
    """
    customer = _get_owned_customer(customer_id, user)

    errors = []
    for data in inputs:
        errors.extend(validate_relationship(data))
    if errors:
        raise BusinessRuleError(errors)

    now = timezone.now()
    saved = []
    with transaction.atomic():
        for data in inputs:
            relationship_id = data.get("id") or 0
            if relationship_id == 0:
                relationship = CustomerRelationship.objects.create(
                    customer=customer,
                    description=data["description"].strip(),
                    date_time=data.get("date_time") or now,
                    created_at=now,
                )
            else:
                relationship = (
                    CustomerRelationship.objects.select_for_update()
                    .filter(pk=relationship_id, customer_id=customer.id)
                    .first()
                )
                if relationship is None:
                    raise BusinessRuleError(f"Relationship {relationship_id} does not belong to this customer.")
                relationship.description = data["description"].strip()
                if data.get("date_time"):
                    relationship.date_time = data["date_time"]
                relationship.updated_at = now
                relationship.save(update_fields=["description", "date_time", "updated_at"])
            saved.append(relationship)

    logger.info(
        "customer_relationships_saved",
        extra={
            "customer_id": customer.id,
            "company_id": customer.company_id,
            "relationship_ids": [relationship.id for relationship in saved],
        },
    )
    return saved


def list_relationships(customer_id, user):
    customer = _get_owned_customer(customer_id, user)
    return list(CustomerRelationship.objects.for_customer(customer.id).newest_first())


def delete_relationships(customer_id, relationship_ids, user):
    """Logically delete relationships; every id must be a live relationship of the customer."""
    customer = _get_owned_customer(customer_id, user)
    requested = set(relationship_ids)
    if not requested:
        return 0

    with transaction.atomic():
        relationships = CustomerRelationship.objects.select_for_update().filter(
            customer_id=customer.id,
            pk__in=requested,
        )
        found = set(relationships.values_list("pk", flat=True))
        missing = sorted(requested - found)
        if missing:
            raise BusinessRuleError(
                f"Relationships {', '.join(str(pk) for pk in missing)} do not belong to this customer."
            )
        deleted = CustomerRelationship.objects.filter(pk__in=found).soft_delete()

    logger.info(
        "customer_relationships_deleted",
        extra={"customer_id": customer.id, "company_id": customer.company_id, "relationship_ids": sorted(found)},
    )
    return deleted
