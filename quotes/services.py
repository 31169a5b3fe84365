import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from common.exceptions import BusinessRuleError
from common.permissions import ensure_same_company
from customers.models import Customer
from quotes.models import PaymentMethod, Quote, QuoteItem
from quotes.pricing import apply_item_changes, recalculate_quote_total
from quotes.queries import filter_quotes, sort_quotes

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("payment_method", "payment_conditions", "cash_discount")


def ensure_quote_owner(quote, user):
    ensure_same_company(
        user,
        quote.customer.company_id,
        "This quote belongs to another company.",
        quote_id=quote.id,
    )


def lock_quote(quote_id, include_archived=False):
    """Load a quote holding its row lock for the rest of the surrounding transaction."""
    manager = Quote.all_objects if include_archived else Quote.objects
    return manager.select_for_update().filter(pk=quote_id).first()


def _build_item(quote, data, order):
    item = QuoteItem(quote=quote, order=order)
    return apply_item_changes(item, data)


def create_quote(data, user):
    items = data.get("items") or []
    if not items:
        raise BusinessRuleError("A quote must have at least one item.")

    customer = Customer.objects.filter(pk=data["customer_id"]).first()
    if customer is None:
        raise NotFound("Customer not found.")
    ensure_same_company(
        user,
        customer.company_id,
        "This customer belongs to another company.",
        customer_id=customer.id,
    )

    with transaction.atomic():
        quote = Quote.objects.create(
            customer=customer,
            user=user,
            created_at=timezone.now(),
            payment_method=data.get("payment_method") or PaymentMethod.UNKNOWN,
            payment_conditions=data.get("payment_conditions") or "",
            cash_discount=data.get("cash_discount"),
        )
        QuoteItem.objects.bulk_create(
            [_build_item(quote, entry, order) for order, entry in enumerate(items, start=1)]
        )
        recalculate_quote_total(quote)
        quote.save(update_fields=["total_price"])

    logger.info(
        "quote_created",
        extra={
            "quote_id": quote.id,
            "customer_id": customer.id,
            "company_id": customer.company_id,
            "user_id": user.id,
        },
    )
    return quote


def get_quote(quote_id, user):
    """The live quote, or None when it does not exist or was archived."""
    quote = Quote.objects.with_items().filter(pk=quote_id).first()
    if quote is None:
        return None
    ensure_quote_owner(quote, user)
    return quote


def _replace_items(quote, entries):
    if not entries:
        raise BusinessRuleError("A quote must keep at least one item.")

    existing = {item.id: item for item in quote.items.all()}
    referenced = [entry["id"] for entry in entries if entry.get("id")]
    if len(referenced) != len(set(referenced)):
        raise BusinessRuleError("An item can appear only once in the item list.")
    foreign = [item_id for item_id in referenced if item_id not in existing]
    if foreign:
        raise BusinessRuleError(
            f"Items {', '.join(str(item_id) for item_id in foreign)} do not belong to this quote."
        )

    quote.items.exclude(pk__in=referenced).delete()
    quote.items.park_orders(len(entries))

    to_update = []
    to_create = []
    for order, entry in enumerate(entries, start=1):
        if entry.get("id"):
            item = existing[entry["id"]]
            apply_item_changes(item, entry)
            item.order = order
            to_update.append(item)
        else:
            to_create.append(_build_item(quote, entry, order))

    if to_update:
        QuoteItem.objects.bulk_update(
            to_update,
            ["description", "quantity", "unit_price", "total_price", "custom_fields", "order"],
        )
    if to_create:
        QuoteItem.objects.bulk_create(to_create)


def update_quote(quote_id, data, user):
    """Update payment data and, when given, replace the item list.

    The creation timestamp and the creator are never touched.
    """
    with transaction.atomic():
        quote = lock_quote(quote_id)
        if quote is None:
            raise NotFound("Quote not found.")
        ensure_quote_owner(quote, user)

        for field in EDITABLE_FIELDS:
            if field in data:
                setattr(quote, field, data[field])
        if "items" in data:
            _replace_items(quote, data["items"])

        recalculate_quote_total(quote)
        quote.updated_at = timezone.now()
        quote.save(update_fields=[*EDITABLE_FIELDS, "total_price", "updated_at"])

    logger.info(
        "quote_updated",
        extra={"quote_id": quote.id, "company_id": user.company_id, "user_id": user.id},
    )
    return quote


def archive_quote(quote_id, user):
    """Archive a quote. False when it does not exist or is already archived."""
    with transaction.atomic():
        quote = lock_quote(quote_id, include_archived=True)
        if quote is None:
            return False
        ensure_quote_owner(quote, user)
        if quote.is_archived:
            return False

        quote.is_archived = True
        quote.updated_at = timezone.now()
        quote.save(update_fields=["is_archived", "updated_at"])

    logger.info(
        "quote_archived",
        extra={"quote_id": quote.id, "company_id": user.company_id, "user_id": user.id},
    )
    return True


def list_quotes(user, params):
    queryset = Quote.objects.for_company(user.company_id).with_items()
    queryset = filter_quotes(queryset, params)
    return sort_quotes(queryset, params.get("sort_by"), params.get("descending"))
