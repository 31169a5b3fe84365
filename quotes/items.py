"""Line item operations on a quote.

Each operation runs in one transaction that first takes the quote row lock,
so concurrent edits of the same quote are applied one after the other. The
quote total is recalculated before the transaction commits.
"""

import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from common.exceptions import BusinessRuleError, InvalidOperation
from quotes.models import QuoteItem
from quotes.pricing import apply_item_changes, recalculate_quote_total
from quotes.services import ensure_quote_owner, lock_quote

logger = logging.getLogger(__name__)


def _save_total(quote):
    recalculate_quote_total(quote)
    quote.updated_at = timezone.now()
    quote.save(update_fields=["total_price", "updated_at"])


def _relabel(quote, ordered_items):
    """Assign orders 1..N following `ordered_items`."""
    quote.items.park_orders(len(ordered_items))
    for order, item in enumerate(ordered_items, start=1):
        item.order = order
    QuoteItem.objects.bulk_update(ordered_items, ["order"])


def _lock_item(item_id, user):
    """Lock the parent quote, then load the item; returns (quote, item).

    Items of archived quotes are treated as missing.
    """
    quote_id = QuoteItem.objects.filter(pk=item_id).values_list("quote_id", flat=True).first()
    if quote_id is None:
        raise NotFound("Quote item not found.")

    quote = lock_quote(quote_id)
    if quote is None:
        raise NotFound("Quote item not found.")
    ensure_quote_owner(quote, user)

    item = QuoteItem.objects.select_for_update().filter(pk=item_id, quote_id=quote.id).first()
    if item is None:
        raise NotFound("Quote item not found.")
    return quote, item


def add_item(quote_id, data, user):
    with transaction.atomic():
        quote = lock_quote(quote_id)
        if quote is None:
            raise NotFound("Quote not found.")
        ensure_quote_owner(quote, user)

        item = QuoteItem(quote=quote, order=quote.items.count() + 1)
        apply_item_changes(item, data)
        item.save()
        _save_total(quote)

    logger.info(
        "quote_item_added",
        extra={"quote_id": quote.id, "item_id": item.id, "user_id": user.id},
    )
    return item


def update_item(item_id, data, user):
    with transaction.atomic():
        quote, item = _lock_item(item_id, user)
        apply_item_changes(item, data)
        item.save()
        _save_total(quote)

    logger.info(
        "quote_item_updated",
        extra={"quote_id": quote.id, "item_id": item.id, "user_id": user.id},
    )
    return item


def delete_item(item_id, user):
    """Delete an item and close the gap in the order sequence.

    The last item of a quote cannot be deleted.
    """
    with transaction.atomic():
        quote, item = _lock_item(item_id, user)
        if quote.items.count() <= 1:
            raise BusinessRuleError("A quote must keep at least one item.")

        item.delete()
        _relabel(quote, list(QuoteItem.objects.for_quote(quote.id).order_by("order")))
        _save_total(quote)

    logger.info(
        "quote_item_deleted",
        extra={"quote_id": quote.id, "item_id": item_id, "user_id": user.id},
    )
    return True


def reorder_items(quote_id, ordered_item_ids, user):
    """Give the quote's items the order of `ordered_item_ids`, which must list each item exactly once."""
    with transaction.atomic():
        quote = lock_quote(quote_id)
        if quote is None:
            raise NotFound("Quote not found.")
        ensure_quote_owner(quote, user)

        items = {item.id: item for item in quote.items.all()}
        requested = list(ordered_item_ids)
        if len(requested) != len(set(requested)):
            raise InvalidOperation("The new order lists an item more than once.")
        if set(requested) != set(items):
            raise InvalidOperation("The new order must list exactly the items of this quote.")

        _relabel(quote, [items[item_id] for item_id in requested])
        _save_total(quote)

    logger.info(
        "quote_items_reordered",
        extra={"quote_id": quote.id, "user_id": user.id},
    )
    return True
